from contextlib import asynccontextmanager
import os
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from tripcurator.database import SessionLocal, init_db
from tripcurator.routers import admin, extension, imports, locations, public, search, settings, trips
from tripcurator.services.settings import seed_default_settings
from tripcurator.services.tags import seed_default_tags

# Configure logging to show in Docker logs
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting TripCurator API v0.1.0")
    init_db()
    db = SessionLocal()
    try:
        seed_default_settings(db)
        seed_default_tags(db)
    finally:
        db.close()
    yield


app = FastAPI(title="TripCurator", version="0.1.0", lifespan=lifespan)

# Configure CORS - frontend origins plus the browser extension
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_origin_regex=r"chrome-extension://.*",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(trips.router)
app.include_router(locations.router)
app.include_router(search.router)
app.include_router(imports.router)
app.include_router(extension.router)
app.include_router(settings.router)
app.include_router(admin.router)
app.include_router(public.router)


@app.get("/health")
def health():
    return {"status": "ok"}

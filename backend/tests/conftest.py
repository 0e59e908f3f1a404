import os

os.environ["DATABASE_URL"] = "sqlite:///./test.db"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from tripcurator.database import Base, get_db
from tripcurator.main import app
from tripcurator.models import Trip, User
from tripcurator.services import llm
from tripcurator.services.pipeline import set_session_factory
from tripcurator.services.settings import settings_cache

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ENV_KEYS = ["GROQ_API_KEY", "GOOGLE_PLACES_API_KEY", "GOOGLE_MAPS_API_KEY", "MAPBOX_API_KEY"]


@pytest.fixture(autouse=True)
def setup_db(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    Base.metadata.create_all(bind=engine)
    set_session_factory(TestingSessionLocal)
    settings_cache.clear()
    llm._clients.clear()
    yield
    Base.metadata.drop_all(bind=engine)
    set_session_factory(None)
    settings_cache.clear()


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def user(db):
    u = User(id="u1", email="traveller@example.com", name="Tess Traveller")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def admin_user(db):
    u = User(id="admin1", email="admin@example.com", name="Ada Admin", is_admin=True)
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def trip(db, user):
    t = Trip(id="t1", user_id=user.id, title="Lisbon Long Weekend", description="Food and viewpoints")
    db.add(t)
    db.commit()
    db.refresh(t)
    return t


@pytest.fixture
def auth(user):
    return {"X-User-Id": user.id}


@pytest.fixture
def admin_auth(admin_user):
    return {"X-User-Id": admin_user.id}

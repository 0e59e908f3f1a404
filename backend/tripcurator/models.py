import uuid
from datetime import datetime, timezone
from sqlalchemy import String, Integer, Float, DateTime, JSON, ForeignKey, Text, Boolean
from sqlalchemy.orm import Mapped, mapped_column, relationship
from tripcurator.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_share_token() -> str:
    return uuid.uuid4().hex[:16]


TAG_CATEGORIES = ["place_type", "ambience", "timing", "feature", "cuisine", "activity"]


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    trips: Mapped[list["Trip"]] = relationship("Trip", back_populates="user", cascade="all, delete-orphan")


class Trip(Base):
    __tablename__ = "trips"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    share_token: Mapped[str] = mapped_column(String(32), unique=True, index=True, default=new_share_token)
    home_base_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    home_base_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    home_base_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    home_base_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)

    user: Mapped["User"] = relationship("User", back_populates="trips")
    locations: Mapped[list["Location"]] = relationship(
        "Location", back_populates="trip", cascade="all, delete-orphan", order_by="Location.order_index"
    )
    import_jobs: Mapped[list["ImportJob"]] = relationship("ImportJob", cascade="all, delete-orphan")


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    trip_id: Mapped[str] = mapped_column(String(36), ForeignKey("trips.id"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    longitude: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    # Scraped from the source page
    url_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    url_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    url_image: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(100), nullable=True)
    hours: Mapped[str | None] = mapped_column(Text, nullable=True)
    price_range: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rating: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cuisine: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reservation_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    user_image: Mapped[str | None] = mapped_column(Text, nullable=True)  # data URL

    raw_transcription: Mapped[str | None] = mapped_column(Text, nullable=True)
    polished_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Places API enrichment
    google_place_id: Mapped[str | None] = mapped_column(String(300), nullable=True)
    google_rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    google_review_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    google_types: Mapped[list | None] = mapped_column(JSON, nullable=True)
    google_website: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    google_formatted_phone: Mapped[str | None] = mapped_column(String(100), nullable=True)
    google_formatted_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    places_enriched_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    order_index: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)

    trip: Mapped["Trip"] = relationship("Trip", back_populates="locations")
    location_tags: Mapped[list["LocationTag"]] = relationship(
        "LocationTag", back_populates="location", cascade="all, delete-orphan"
    )

    @property
    def tags(self) -> list["Tag"]:
        return [lt.tag for lt in self.location_tags]


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)  # lowercase-hyphenated
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    created_by_llm: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    location_tags: Mapped[list["LocationTag"]] = relationship(
        "LocationTag", back_populates="tag", cascade="all, delete-orphan"
    )


class LocationTag(Base):
    __tablename__ = "location_tags"

    location_id: Mapped[str] = mapped_column(String(36), ForeignKey("locations.id"), primary_key=True)
    tag_id: Mapped[str] = mapped_column(String(36), ForeignKey("tags.id"), primary_key=True)

    location: Mapped["Location"] = relationship("Location", back_populates="location_tags")
    tag: Mapped["Tag"] = relationship("Tag", back_populates="location_tags")


class ApiUsageLog(Base):
    __tablename__ = "api_usage_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    service: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(50), nullable=False)
    input_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    output_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    audio_duration_seconds: Mapped[float | None] = mapped_column(Float, nullable=True)
    cost_usd: Mapped[float] = mapped_column(Float, default=0.0)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location_id: Mapped[str | None] = mapped_column(String(36), nullable=True)  # not a FK: ledger outlives locations
    request_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now, index=True)


class SystemSetting(Base):
    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)


class ImportJob(Base):
    __tablename__ = "import_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    trip_id: Mapped[str] = mapped_column(String(36), ForeignKey("trips.id"), nullable=False)
    source_type: Mapped[str] = mapped_column(String(30), nullable=False)  # direct, csv, text
    status: Mapped[str] = mapped_column(String(20), default="processing")
    total_locations: Mapped[int] = mapped_column(Integer, default=0)
    processed_locations: Mapped[int] = mapped_column(Integer, default=0)
    imported_locations: Mapped[int] = mapped_column(Integer, default=0)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # {"items": [...]} or {"text": "..."}
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

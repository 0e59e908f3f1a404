from datetime import datetime
from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional

from tripcurator.models import TAG_CATEGORIES


class CamelModel(BaseModel):
    """Serialises as camelCase; accepts camelCase or snake_case input."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True, "from_attributes": True}


def _normalize_whitespace(v: str | None) -> str | None:
    if v is None:
        return v
    return " ".join(v.strip().split())


# --- Trips ---


class TripCreateRequest(CamelModel):
    title: str
    description: Optional[str] = None
    is_public: bool = False
    home_base_address: Optional[str] = None
    home_base_url: Optional[str] = None
    home_base_latitude: Optional[float] = None
    home_base_longitude: Optional[float] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title is required")
        return v


class TripUpdateRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    is_public: Optional[bool] = None
    home_base_address: Optional[str] = None
    home_base_url: Optional[str] = None
    home_base_latitude: Optional[float] = None
    home_base_longitude: Optional[float] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str | None) -> str | None:
        return v.strip() if v else None


class TagResponse(CamelModel):
    id: str
    name: str
    category: str
    usage_count: int = 0
    created_by_llm: bool = False
    is_active: bool = True


class TripSummary(CamelModel):
    id: str
    title: str


class LocationPreview(CamelModel):
    id: str
    name: str
    url_image: Optional[str] = None


class LocationResponse(CamelModel):
    id: str
    trip_id: str
    name: str
    category: Optional[str] = None
    latitude: float
    longitude: float
    address: Optional[str] = None
    source_url: Optional[str] = None
    url_title: Optional[str] = None
    url_description: Optional[str] = None
    url_image: Optional[str] = None
    user_image: Optional[str] = None
    phone: Optional[str] = None
    hours: Optional[str] = None
    price_range: Optional[str] = None
    rating: Optional[str] = None
    cuisine: Optional[str] = None
    reservation_url: Optional[str] = None
    raw_transcription: Optional[str] = None
    polished_description: Optional[str] = None
    google_place_id: Optional[str] = None
    google_rating: Optional[float] = None
    google_review_count: Optional[int] = None
    google_types: Optional[list[str]] = None
    google_website: Optional[str] = None
    google_formatted_phone: Optional[str] = None
    google_formatted_address: Optional[str] = None
    places_enriched_at: Optional[datetime] = None
    order_index: int = 0
    created_at: Optional[datetime] = None
    tags: list[TagResponse] = []


class LocationWithTripResponse(LocationResponse):
    trip: Optional[TripSummary] = None


class LocationSaveResponse(LocationResponse):
    pipeline: dict = {}


class TripResponse(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    is_public: bool = False
    share_token: str
    home_base_address: Optional[str] = None
    home_base_url: Optional[str] = None
    home_base_latitude: Optional[float] = None
    home_base_longitude: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TripListItem(TripResponse):
    location_count: int = 0
    locations: list[LocationPreview] = []


class TripDetailResponse(TripResponse):
    locations: list[LocationResponse] = []
    categories: list[str] = []


# --- Public (sanitised) ---


class PublicTag(CamelModel):
    id: str
    name: str
    category: str


class PublicLocation(CamelModel):
    id: str
    name: str
    address: Optional[str] = None
    latitude: float
    longitude: float
    source_url: Optional[str] = None
    url_title: Optional[str] = None
    url_description: Optional[str] = None
    url_image: Optional[str] = None
    user_image: Optional[str] = None
    phone: Optional[str] = None
    hours: Optional[str] = None
    price_range: Optional[str] = None
    rating: Optional[str] = None
    cuisine: Optional[str] = None
    reservation_url: Optional[str] = None
    polished_description: Optional[str] = None
    google_rating: Optional[float] = None
    order_index: int = 0
    tags: list[PublicTag] = []


class PublicTripResponse(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    created_by: Optional[str] = None
    locations: list[PublicLocation] = []


# --- Locations ---


class LocationCreateRequest(CamelModel):
    trip_id: str
    name: Optional[str] = None
    source_url: Optional[str] = None
    category: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    url_title: Optional[str] = None
    url_description: Optional[str] = None
    url_image: Optional[str] = None
    notes: Optional[str] = None
    tag_ids: Optional[list[str]] = None
    tag_names: Optional[list[str]] = None

    @field_validator("trip_id")
    @classmethod
    def validate_trip_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Trip ID is required")
        return v

    @field_validator("name", "address", mode="before")
    @classmethod
    def normalize_text(cls, v: str | None) -> str | None:
        return _normalize_whitespace(v) or None


class LocationUpdateRequest(CamelModel):
    name: Optional[str] = None
    category: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    source_url: Optional[str] = None
    raw_transcription: Optional[str] = None
    polished_description: Optional[str] = None
    order_index: Optional[int] = None
    tag_ids: Optional[list[str]] = None

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, v: str | None) -> str | None:
        return _normalize_whitespace(v) or None


class AudioProcessResponse(CamelModel):
    success: bool = True
    transcription: str
    description: str
    tags: list[dict]
    location: LocationResponse


class EnrichResponse(CamelModel):
    enriched: bool
    location: LocationResponse


# --- Tags ---


class TagCreateRequest(CamelModel):
    name: str
    category: str

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in TAG_CATEGORIES:
            raise ValueError(f"category must be one of: {', '.join(TAG_CATEGORIES)}")
        return v


class TagUpdateRequest(CamelModel):
    id: str
    name: Optional[str] = None
    category: Optional[str] = None
    is_active: Optional[bool] = None


class TagMergeRequest(CamelModel):
    source_tag_id: str
    target_tag_id: str


class TagMergeResponse(CamelModel):
    success: bool = True
    merged_count: int
    target_tag: TagResponse


# --- Import ---


class ImportItem(CamelModel):
    name: str
    address: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return _normalize_whitespace(v)


class ImportRequest(CamelModel):
    trip_id: str
    source_type: str  # direct, csv, text
    locations: Optional[list[ImportItem]] = None
    csv_data: Optional[list[ImportItem]] = None
    text: Optional[str] = None

    @field_validator("source_type")
    @classmethod
    def validate_source_type(cls, v: str) -> str:
        v = v.strip().lower()
        # Older clients send pasted documents as google_docs
        if v == "google_docs":
            v = "text"
        if v not in {"direct", "csv", "text"}:
            raise ValueError("source_type must be one of: direct, csv, text")
        return v


class ImportJobResponse(CamelModel):
    id: str
    trip_id: str
    source_type: str
    status: str
    total_locations: int = 0
    processed_locations: int = 0
    imported_locations: int = 0
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ParseTextRequest(CamelModel):
    text: str

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Text is required")
        return v


# --- Settings ---


class SettingUpdateRequest(CamelModel):
    key: str
    value: Optional[str] = None

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Key is required")
        return v

# homematch/schemas.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Literal, Optional, Tuple
from datetime import datetime

PropertyType = Literal[
    "single_family", "condo", "townhome", "multi_family", "manufactured", "land", "other"
]
PROPERTY_TYPE_VALUES: Tuple[str, ...] = (
    "single_family", "condo", "townhome", "multi_family", "manufactured", "land", "other"
)
ListingStatus = Literal["active", "pending", "sold"]

DbInteractionType = Literal["like", "dislike", "skip", "view"]
UiInteractionType = Literal["liked", "viewed", "skip"]

# accepted spellings -> stored value; "dislike" is the legacy name for "skip"
INTERACTION_TYPE_ALIASES: Dict[str, str] = {
    "like": "like", "liked": "like",
    "view": "view", "viewed": "view",
    "skip": "skip", "passed": "skip", "dislike": "skip",
}


class CityStatePair(BaseModel):
    city: str = ""
    state: str = ""


class PropertyUpsert(BaseModel):
    """A normalized listing row, keyed by ``zpid`` for upserts."""
    zpid: str = Field(..., min_length=1, max_length=64)
    address: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=2, max_length=2)
    zip_code: str = Field(..., min_length=5, max_length=10)
    price: float = Field(..., ge=0)
    bedrooms: float = Field(0, ge=0, le=20)
    bathrooms: float = Field(0, ge=0, le=20)
    square_feet: Optional[float] = Field(None, ge=0)
    lot_size_sqft: Optional[float] = Field(None, ge=0)
    year_built: Optional[int] = Field(None, ge=1600, le=2100)
    property_type: Optional[PropertyType] = None
    listing_status: ListingStatus = "active"
    images: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    is_active: bool = True

    @field_validator("state")
    @classmethod
    def _upper_state(cls, v: str) -> str:
        return v.upper()

    @field_validator("images")
    @classmethod
    def _image_urls(cls, v: List[str]) -> List[str]:
        return [u for u in v if isinstance(u, str) and (u.startswith(("http://", "https://")) or u.startswith("/"))]


class DashboardPreferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    price_range: Optional[Tuple[float, float]] = Field(None, alias="priceRange")
    bedrooms: Optional[float] = None
    bathrooms: Optional[float] = None
    property_types: Optional[Dict[str, bool]] = Field(None, alias="propertyTypes")
    must_haves: Optional[Dict[str, bool]] = Field(None, alias="mustHaves")
    search_radius: Optional[float] = Field(None, alias="searchRadius")
    all_cities: Optional[bool] = Field(None, alias="allCities")
    cities: Optional[List[CityStatePair]] = None
    neighborhoods: Optional[List[str]] = None


class SortSpec(BaseModel):
    field: Literal["created_at", "price", "bedrooms", "bathrooms", "square_feet", "year_built"] = "created_at"
    direction: Literal["asc", "desc"] = "desc"


class InteractionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    property_id: str = Field(..., alias="propertyId", min_length=1, max_length=64)
    type: str

    @field_validator("type")
    @classmethod
    def _known_type(cls, v: str) -> str:
        if v not in INTERACTION_TYPE_ALIASES:
            raise ValueError(f"Unknown interaction type: {v}")
        return v


class InteractionSummary(BaseModel):
    liked: int = 0
    passed: int = 0
    viewed: int = 0


class MutualLike(BaseModel):
    property_id: str
    liked_by_count: int
    first_liked_at: Optional[str] = None
    last_liked_at: Optional[str] = None
    user_ids: List[str] = Field(default_factory=list)


class HouseholdActivity(BaseModel):
    id: str
    user_id: str
    property_id: str
    interaction_type: DbInteractionType
    created_at: str
    user_display_name: str = "Unknown"
    property_address: str = ""
    property_price: float = 0
    property_bedrooms: float = 0
    property_bathrooms: float = 0
    property_images: List[str] = Field(default_factory=list)
    is_mutual: bool = False


class CouplesStats(BaseModel):
    total_mutual_likes: int = 0
    total_household_likes: int = 0
    activity_streak_days: int = 0
    last_mutual_like_at: Optional[str] = None


class IngestLocationSummary(BaseModel):
    location: str
    attempted: int = 0
    transformed: int = 0
    inserted_or_updated: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)


class IngestTotals(BaseModel):
    attempted: int = 0
    transformed: int = 0
    inserted_or_updated: int = 0
    skipped: int = 0


class IngestSummary(BaseModel):
    started_at: Optional[datetime] = None
    totals: IngestTotals = Field(default_factory=IngestTotals)
    locations: List[IngestLocationSummary] = Field(default_factory=list)


class IngestRequest(BaseModel):
    locations: Optional[List[str]] = None
    max_pages: Optional[int] = Field(None, ge=1, le=50)
    fetch_images: Optional[bool] = None

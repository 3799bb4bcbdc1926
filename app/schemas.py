from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Literal, Optional
from datetime import datetime
from . import config

FuelType = Literal["gasoline", "diesel", "hybrid", "electric", "cng", "lpg", "plugin-hybrid"]
Transmission = Literal["manual", "automatic", "semi-automatic", "cvt"]
ConditionRating = Literal["excellent", "very_good", "good", "fair", "poor"]
Drivetrain = Literal["fwd", "rwd", "awd", "4wd"]
SortKey = Literal[
    "price_asc", "price_desc", "year_asc", "year_desc", "mileage_asc",
    "distance", "newest", "oldest", "relevance",
]

# rough bounding box of the Philippine archipelago
PH_LATITUDE = (4.5, 21.5)
PH_LONGITUDE = (116.0, 127.0)


class FilterSpec(BaseModel):
    """Buyer-supplied search constraints. Unset fields constrain nothing."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    brand_id: Optional[int] = None
    model_id: Optional[int] = None
    category_id: Optional[int] = None

    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    min_year: Optional[int] = None
    max_year: Optional[int] = None
    min_mileage: Optional[int] = Field(None, ge=0)
    max_mileage: Optional[int] = Field(None, ge=0)
    min_rating: Optional[float] = Field(None, ge=0, le=5)

    fuel_type: Optional[List[FuelType]] = None
    transmission: Optional[List[Transmission]] = None
    condition_rating: Optional[List[ConditionRating]] = None

    city_id: Optional[int] = None
    province_id: Optional[int] = None
    region_id: Optional[int] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    radius: Optional[float] = Field(None, gt=0)

    features: Optional[List[int]] = None

    financing_available: bool = False
    trade_in_accepted: bool = False
    warranty_remaining: bool = False
    casa_maintained: bool = False
    seller_verified: bool = False
    featured_only: bool = False

    @model_validator(mode="after")
    def check_consistency(self):
        for low, high in (("min_price", "max_price"), ("min_year", "max_year"),
                          ("min_mileage", "max_mileage")):
            lo, hi = getattr(self, low), getattr(self, high)
            if lo is not None and hi is not None and lo > hi:
                raise ValueError(f"{low} must not exceed {high}")
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be supplied together")
        if self.radius is not None and self.latitude is None:
            raise ValueError("radius requires latitude and longitude")
        return self

    @property
    def has_proximity(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class SearchOptions(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    page: int = Field(1, ge=1)
    limit: int = Field(config.SEARCH_DEFAULT_LIMIT, ge=1)
    sort_by: SortKey = "relevance"
    include_images: bool = True
    include_features: bool = False
    include_seller: bool = True

    @field_validator("limit")
    @classmethod
    def clamp_limit(cls, value: int) -> int:
        return min(value, config.SEARCH_MAX_LIMIT)


class ImageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    image_url: str
    thumbnail_url: Optional[str] = None
    alt_text: Optional[str] = None
    is_primary: bool
    display_order: int


class FeatureOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    category: Optional[str] = None
    is_premium: bool = False


class SellerOut(BaseModel):
    id: int
    name: str
    rating: float
    verified: bool


class ListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    seller_id: int
    brand_id: int
    model_id: int
    category_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    year: int
    price: float
    original_price: Optional[float] = None
    currency: str
    negotiable: bool
    financing_available: bool
    trade_in_accepted: bool
    mileage: int
    fuel_type: str
    transmission: str
    engine_size: Optional[str] = None
    horsepower: Optional[int] = None
    drivetrain: Optional[str] = None
    condition_rating: str
    accident_history: bool
    flood_history: bool
    service_records_available: bool
    warranty_remaining: bool
    casa_maintained: bool
    city_id: int
    province_id: int
    region_id: int
    latitude: float
    longitude: float
    status: str
    approval_status: str
    is_featured: bool
    views_count: int
    unique_views_count: int
    average_rating: float
    quality_score: float
    completeness_score: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_price_update: Optional[datetime] = None
    sold_at: Optional[datetime] = None

    distance: Optional[float] = None
    images: List[ImageOut] = []
    features: List[FeatureOut] = []
    seller: Optional[SellerOut] = None


class SearchResultPage(BaseModel):
    listings: List[ListingOut]
    total: int
    page: int
    limit: int
    total_pages: int


class ListingCreate(BaseModel):
    brand_id: int
    model_id: int
    category_id: Optional[int] = None
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    year: int = Field(..., ge=1900)
    price: float = Field(..., gt=0)
    currency: str = "PHP"
    negotiable: bool = True
    financing_available: bool = False
    trade_in_accepted: bool = False
    mileage: int = Field(..., ge=0)
    fuel_type: FuelType
    transmission: Transmission
    engine_size: Optional[str] = None
    horsepower: Optional[int] = Field(None, gt=0)
    drivetrain: Optional[Drivetrain] = None
    exterior_color_id: Optional[int] = None
    interior_color_id: Optional[int] = None
    condition_rating: ConditionRating
    accident_history: bool = False
    accident_details: Optional[str] = None
    flood_history: bool = False
    service_history: bool = True
    service_records_available: bool = False
    number_of_owners: int = Field(1, ge=1)
    warranty_remaining: bool = False
    warranty_details: Optional[str] = None
    vin: Optional[str] = None
    engine_number: Optional[str] = None
    chassis_number: Optional[str] = None
    plate_number: Optional[str] = None
    or_cr_available: bool = True
    lto_registered: bool = True
    casa_maintained: bool = False
    comprehensive_insurance: bool = False
    insurance_company: Optional[str] = None
    city_id: int
    province_id: int
    region_id: int
    barangay: Optional[str] = None
    detailed_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    expires_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_coordinates(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be supplied together")
        if self.latitude is not None:
            if not (PH_LATITUDE[0] <= self.latitude <= PH_LATITUDE[1]
                    and PH_LONGITUDE[0] <= self.longitude <= PH_LONGITUDE[1]):
                raise ValueError("coordinates must be within Philippines bounds")
        return self


class ListingUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    negotiable: Optional[bool] = None
    financing_available: Optional[bool] = None
    trade_in_accepted: Optional[bool] = None
    mileage: Optional[int] = Field(None, ge=0)
    fuel_type: Optional[FuelType] = None
    transmission: Optional[Transmission] = None
    engine_size: Optional[str] = None
    horsepower: Optional[int] = Field(None, gt=0)
    drivetrain: Optional[Drivetrain] = None
    exterior_color_id: Optional[int] = None
    interior_color_id: Optional[int] = None
    condition_rating: Optional[ConditionRating] = None
    accident_history: Optional[bool] = None
    accident_details: Optional[str] = None
    flood_history: Optional[bool] = None
    service_history: Optional[bool] = None
    service_records_available: Optional[bool] = None
    number_of_owners: Optional[int] = Field(None, ge=1)
    warranty_remaining: Optional[bool] = None
    warranty_details: Optional[str] = None
    vin: Optional[str] = None
    engine_number: Optional[str] = None
    chassis_number: Optional[str] = None
    plate_number: Optional[str] = None
    or_cr_available: Optional[bool] = None
    lto_registered: Optional[bool] = None
    casa_maintained: Optional[bool] = None
    comprehensive_insurance: Optional[bool] = None
    insurance_company: Optional[str] = None
    city_id: Optional[int] = None
    province_id: Optional[int] = None
    region_id: Optional[int] = None
    barangay: Optional[str] = None
    detailed_address: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=PH_LATITUDE[0], le=PH_LATITUDE[1])
    longitude: Optional[float] = Field(None, ge=PH_LONGITUDE[0], le=PH_LONGITUDE[1])
    expires_at: Optional[datetime] = None
    change_reason: Optional[str] = None

    @field_validator(
        "title", "price", "mileage", "fuel_type", "transmission", "condition_rating",
        "city_id", "province_id", "region_id", "latitude", "longitude",
    )
    @classmethod
    def not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class PriceChangeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    listing_id: int
    old_price: float
    new_price: float
    price_change: float
    change_percentage: float
    change_type: str
    changed_by: Optional[int] = None
    change_reason: str
    created_at: datetime


class PriceHistoryPage(BaseModel):
    history: List[PriceChangeOut]
    total: int
    page: int
    total_pages: int


class PriceStatistics(BaseModel):
    current_price: float
    original_price: float
    lowest_price: float
    highest_price: float
    total_changes: int
    price_increases: int
    price_decreases: int
    total_change: float
    total_change_percentage: float
    trend: Literal["increasing", "decreasing", "stable"]
    last_change_date: Optional[datetime] = None


class ViewStats(BaseModel):
    listing_id: int
    since: datetime
    total_views: int
    unique_viewers: int
    active_days: int

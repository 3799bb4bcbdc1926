# app/models.py
"""SQLAlchemy ORM models for persisted entities.

`Listing` is the searchable unit. Sellers, features and images are reference
data maintained by other services and only read here; `ListingView`,
`DailyViewer` and `PriceChange` are append-only side channels.
"""
from sqlalchemy import (
    Column, Integer, Text, String, Numeric, Float, Boolean, Date, TIMESTAMP,
    ForeignKey, func, Index,
)
from sqlalchemy.orm import relationship
from .db import Base


class Seller(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    first_name = Column(Text)
    last_name = Column(Text)
    average_rating = Column(Float, nullable=False, default=0)
    identity_verified = Column(Boolean, nullable=False, default=False)


class Feature(Base):
    __tablename__ = "features"
    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    category = Column(String(32))
    is_premium = Column(Boolean, nullable=False, default=False)


class ListingFeature(Base):
    __tablename__ = "listing_features"
    listing_id = Column(Integer, ForeignKey("listings.id"), primary_key=True)
    feature_id = Column(Integer, ForeignKey("features.id"), primary_key=True)


class Listing(Base):
    __tablename__ = "listings"
    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    brand_id = Column(Integer, nullable=False)
    model_id = Column(Integer, nullable=False)
    category_id = Column(Integer)

    title = Column(Text, nullable=False)
    description = Column(Text)
    year = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    original_price = Column(Numeric(12, 2))
    currency = Column(String(3), nullable=False, default="PHP")
    negotiable = Column(Boolean, nullable=False, default=True)
    financing_available = Column(Boolean, nullable=False, default=False)
    trade_in_accepted = Column(Boolean, nullable=False, default=False)

    mileage = Column(Integer, nullable=False)
    fuel_type = Column(String(16), nullable=False)
    transmission = Column(String(16), nullable=False)
    engine_size = Column(String(16))
    horsepower = Column(Integer)
    drivetrain = Column(String(8))
    exterior_color_id = Column(Integer)
    interior_color_id = Column(Integer)

    condition_rating = Column(String(16), nullable=False)
    accident_history = Column(Boolean, nullable=False, default=False)
    accident_details = Column(Text)
    flood_history = Column(Boolean, nullable=False, default=False)
    service_history = Column(Boolean, nullable=False, default=True)
    service_records_available = Column(Boolean, nullable=False, default=False)
    number_of_owners = Column(Integer, nullable=False, default=1)
    warranty_remaining = Column(Boolean, nullable=False, default=False)
    warranty_details = Column(Text)

    vin = Column(String(32))
    engine_number = Column(String(32))
    chassis_number = Column(String(32))
    plate_number = Column(String(16))
    or_cr_available = Column(Boolean, nullable=False, default=True)
    lto_registered = Column(Boolean, nullable=False, default=True)
    casa_maintained = Column(Boolean, nullable=False, default=False)
    comprehensive_insurance = Column(Boolean, nullable=False, default=False)
    insurance_company = Column(Text)

    city_id = Column(Integer, nullable=False)
    province_id = Column(Integer, nullable=False)
    region_id = Column(Integer, nullable=False)
    barangay = Column(Text)
    detailed_address = Column(Text)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    status = Column(String(16), nullable=False, default="pending")
    approval_status = Column(String(16), nullable=False, default="pending")
    approved_by = Column(Integer)
    approved_at = Column(TIMESTAMP(timezone=True))
    rejection_reason = Column(Text)
    is_featured = Column(Boolean, nullable=False, default=False)

    views_count = Column(Integer, nullable=False, default=0)
    unique_views_count = Column(Integer, nullable=False, default=0)
    average_rating = Column(Float, nullable=False, default=0)
    search_score = Column(Float, nullable=False, default=0)
    quality_score = Column(Float, nullable=False, default=0)
    completeness_score = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(TIMESTAMP(timezone=True))
    sold_at = Column(TIMESTAMP(timezone=True))
    last_price_update = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    seller_account = relationship(Seller)

Index("idx_listings_price", Listing.price)
Index("idx_listings_year", Listing.year)
Index("idx_listings_visibility", Listing.is_active, Listing.status, Listing.approval_status)
Index("idx_listings_ranking", Listing.is_featured, Listing.quality_score, Listing.created_at)
Index("idx_listings_location", Listing.city_id, Listing.province_id, Listing.region_id)


class ListingImage(Base):
    __tablename__ = "listing_images"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False, index=True)
    image_url = Column(Text, nullable=False)
    thumbnail_url = Column(Text)
    alt_text = Column(Text)
    is_primary = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=0)
    processing_status = Column(String(16), nullable=False, default="uploading")
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())


class ListingView(Base):
    __tablename__ = "listing_views"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False, index=True)
    user_id = Column(Integer)
    session_id = Column(Text)
    ip_address = Column(String(45))
    viewed_at = Column(TIMESTAMP(timezone=True), nullable=False)


class DailyViewer(Base):
    """First view of a listing by a user on a given calendar day."""
    __tablename__ = "listing_daily_viewers"
    listing_id = Column(Integer, ForeignKey("listings.id"), primary_key=True)
    user_id = Column(Integer, primary_key=True)
    view_date = Column(Date, primary_key=True)


class PriceChange(Base):
    __tablename__ = "price_history"
    id = Column(Integer, primary_key=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False, index=True)
    old_price = Column(Numeric(12, 2), nullable=False)
    new_price = Column(Numeric(12, 2), nullable=False)
    price_change = Column(Numeric(12, 2), nullable=False)
    change_percentage = Column(Numeric(7, 2), nullable=False)
    change_type = Column(String(8), nullable=False)
    changed_by = Column(Integer)
    change_reason = Column(Text, nullable=False, default="manual")
    created_at = Column(TIMESTAMP(timezone=True), nullable=False)

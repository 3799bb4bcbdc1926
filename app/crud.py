# app/crud.py
"""Low-level persistence helpers for `Listing` rows.

These helpers never commit; `app.services.ListingService` owns the transaction
so derived state (scores, price ledger) lands with the change that caused it.
"""
from datetime import datetime
from sqlalchemy import select, true
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from .models import Listing

# Manila, used when a seller does not pin the car's location
DEFAULT_COORDINATES = (14.5995, 120.9842)


def get_listing(db: Session, listing_id: int, include_inactive: bool = False) -> Optional[Listing]:
    stmt = select(Listing).where(Listing.id == listing_id)
    if not include_inactive:
        stmt = stmt.where(Listing.is_active == true())
    return db.scalar(stmt)


def insert_listing(db: Session, data: Dict[str, Any], seller_id: int, now: datetime) -> Listing:
    values = dict(data)
    if values.get("latitude") is None or values.get("longitude") is None:
        values["latitude"], values["longitude"] = DEFAULT_COORDINATES
    obj = Listing(
        **values,
        seller_id=seller_id,
        original_price=values["price"],
        status="pending",
        approval_status="pending",
        is_featured=False,
        views_count=0,
        unique_views_count=0,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    db.add(obj)
    return obj


def apply_updates(obj: Listing, updates: Dict[str, Any], now: datetime) -> Listing:
    for k, v in updates.items():
        setattr(obj, k, v)
    obj.updated_at = now
    return obj


def expired_listings(db: Session, now: datetime) -> List[Listing]:
    stmt = select(Listing).where(
        Listing.is_active == true(),
        Listing.status == "approved",
        Listing.expires_at.is_not(None),
        Listing.expires_at < now,
    )
    return list(db.scalars(stmt))

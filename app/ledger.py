# app/ledger.py
"""Append-only price history for listings.

Records are written inside the caller's transaction so a price update and its
ledger entry commit (or roll back) together. Nothing here updates or deletes
existing records.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from .models import Listing, PriceChange
from .schemas import PriceStatistics
from .utils import logger

CENTS = Decimal("0.01")


def as_price(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class PriceLedger:
    def __init__(self, db: Session):
        self.db = db

    def record_price_change(self, listing: Listing, old_price, new_price, actor_id: Optional[int],
                            reason: str, changed_at: datetime) -> Optional[PriceChange]:
        old, new = as_price(old_price), as_price(new_price)
        if old == new:
            logger.debug("Price of listing %s unchanged at %s; nothing recorded", listing.id, new)
            return None

        change = new - old
        percentage = (change / old * 100).quantize(CENTS, rounding=ROUND_HALF_UP) if old else Decimal("0")
        record = PriceChange(
            listing_id=listing.id,
            old_price=old,
            new_price=new,
            price_change=change,
            change_percentage=percentage,
            change_type="increase" if change > 0 else "decrease",
            changed_by=actor_id,
            change_reason=reason,
            created_at=changed_at,
        )
        self.db.add(record)
        listing.last_price_update = changed_at
        logger.info("Listing %s price %s -> %s (%s%%) by %s", listing.id, old, new, percentage, actor_id)
        return record

    def history(self, listing_id: int, page: int = 1, limit: int = 20) -> Tuple[List[PriceChange], int]:
        total = self.db.scalar(
            select(func.count(PriceChange.id)).where(PriceChange.listing_id == listing_id)
        ) or 0
        records = self.db.scalars(
            select(PriceChange)
            .where(PriceChange.listing_id == listing_id)
            .order_by(PriceChange.created_at.desc(), PriceChange.id.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        ).all()
        return list(records), total

    def statistics(self, listing_id: int) -> Optional[PriceStatistics]:
        listing = self.db.get(Listing, listing_id)
        if listing is None:
            return None
        records = self.db.scalars(
            select(PriceChange)
            .where(PriceChange.listing_id == listing_id)
            .order_by(PriceChange.created_at.asc(), PriceChange.id.asc())
        ).all()

        current = as_price(listing.price)
        original = as_price(listing.original_price if listing.original_price is not None else listing.price)
        seen = [original] + [as_price(r.new_price) for r in records]
        total_change = current - original
        if total_change > 0:
            trend = "increasing"
        elif total_change < 0:
            trend = "decreasing"
        else:
            trend = "stable"

        return PriceStatistics(
            current_price=float(current),
            original_price=float(original),
            lowest_price=float(min(seen)),
            highest_price=float(max(seen)),
            total_changes=len(records),
            price_increases=sum(1 for r in records if r.change_type == "increase"),
            price_decreases=sum(1 for r in records if r.change_type == "decrease"),
            total_change=float(total_change),
            total_change_percentage=float((total_change / original * 100).quantize(CENTS)) if original else 0.0,
            trend=trend,
            last_change_date=records[-1].created_at if records else None,
        )

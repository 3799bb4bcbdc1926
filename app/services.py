# app/services.py
"""Listing mutations and the derived state that must move with them.

Every mutation recomputes scores and appends price history in the same
transaction as the change itself, then invalidates cache tags touching the
listing once the transaction has committed.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
from . import crud, scoring
from .exceptions import InvalidTransition, ListingNotFound
from .ledger import PriceLedger, as_price
from .models import Listing
from .schemas import ListingCreate, ListingUpdate
from .search.cache import SearchCache, listing_scope_tags
from .utils import logger

# listings in these states can no longer be edited by the seller
LOCKED_STATUSES = ("sold", "suspended", "removed", "expired")


class ListingService:
    def __init__(self, db: Session, cache: SearchCache, ledger: Optional[PriceLedger] = None):
        self.db = db
        self.cache = cache
        self.ledger = ledger or PriceLedger(db)

    def _load(self, listing_id: int) -> Listing:
        obj = crud.get_listing(self.db, listing_id)
        if obj is None:
            raise ListingNotFound(listing_id)
        return obj

    def _rescore(self, obj: Listing):
        obj.completeness_score, obj.quality_score = scoring.score_listing(obj)

    def _commit(self, obj: Listing, tags: set) -> Listing:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(obj)
        self.cache.invalidate(tags | listing_scope_tags(obj))
        return obj

    def create_listing(self, payload: ListingCreate, seller_id: int, now: datetime) -> Listing:
        obj = crud.insert_listing(self.db, payload.model_dump(), seller_id, now)
        self._rescore(obj)
        self.db.flush()
        obj = self._commit(obj, set())
        logger.info("Created listing %s for seller %s (completeness=%s quality=%s)",
                    obj.id, seller_id, obj.completeness_score, obj.quality_score)
        return obj

    def update_listing(self, listing_id: int, payload: ListingUpdate, actor_id: Optional[int],
                       now: datetime) -> Listing:
        obj = self._load(listing_id)
        if obj.status in LOCKED_STATUSES:
            raise InvalidTransition(listing_id, obj.status, "update")

        updates: Dict[str, Any] = payload.model_dump(exclude_unset=True)
        reason = updates.pop("change_reason", None) or "manual"
        before = listing_scope_tags(obj)
        old_price = obj.price

        crud.apply_updates(obj, updates, now)
        if "price" in updates and as_price(updates["price"]) != as_price(old_price):
            self.ledger.record_price_change(obj, old_price, updates["price"], actor_id, reason, now)
        if scoring.needs_rescore(updates):
            self._rescore(obj)

        obj = self._commit(obj, before)
        logger.info("Updated listing %s fields=%s", listing_id, sorted(updates))
        return obj

    def approve(self, listing_id: int, moderator_id: Optional[int], now: datetime) -> Listing:
        obj = self._load(listing_id)
        if obj.status in ("sold", "removed"):
            raise InvalidTransition(listing_id, obj.status, "approve")
        obj.status = "approved"
        obj.approval_status = "approved"
        obj.approved_by = moderator_id
        obj.approved_at = now
        obj.updated_at = now
        return self._commit(obj, set())

    def reject(self, listing_id: int, reason: str, now: datetime) -> Listing:
        obj = self._load(listing_id)
        if obj.status in ("sold", "removed"):
            raise InvalidTransition(listing_id, obj.status, "reject")
        obj.status = "rejected"
        obj.approval_status = "rejected"
        obj.rejection_reason = reason
        obj.updated_at = now
        return self._commit(obj, set())

    def suspend(self, listing_id: int, now: datetime) -> Listing:
        obj = self._load(listing_id)
        if obj.status in ("sold", "removed"):
            raise InvalidTransition(listing_id, obj.status, "suspend")
        obj.status = "suspended"
        obj.updated_at = now
        return self._commit(obj, set())

    def mark_sold(self, listing_id: int, now: datetime) -> Listing:
        obj = self._load(listing_id)
        if obj.status != "approved":
            raise InvalidTransition(listing_id, obj.status, "mark as sold")
        obj.status = "sold"
        obj.sold_at = now
        obj.updated_at = now
        return self._commit(obj, set())

    def soft_delete(self, listing_id: int, now: datetime) -> Listing:
        obj = self._load(listing_id)
        if obj.status == "sold":
            raise InvalidTransition(listing_id, obj.status, "delete")
        obj.is_active = False
        obj.status = "removed"
        obj.updated_at = now
        return self._commit(obj, set())

    def expire_listings(self, now: datetime) -> int:
        expired = crud.expired_listings(self.db, now)
        if not expired:
            return 0
        tags = set()
        for obj in expired:
            obj.status = "expired"
            obj.updated_at = now
            tags |= listing_scope_tags(obj)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.cache.invalidate(tags)
        logger.info("Expired %d listings", len(expired))
        return len(expired)

# app/tracking.py
"""View analytics: raw view events plus per-listing running counters."""
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from . import config
from .models import DailyViewer, Listing, ListingView
from .schemas import ViewStats


def insert_ignoring_duplicates(db: Session, model, values: dict) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING; True when a row was actually written."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite_insert(model).values(**values).on_conflict_do_nothing()
    else:
        raise NotImplementedError(f"insert-or-ignore not supported for {dialect}")
    return db.execute(stmt).rowcount == 1


class ViewTracker:
    def __init__(self, db: Session, tz: str = config.BUSINESS_TIMEZONE):
        self.db = db
        self.tz = ZoneInfo(tz)

    def calendar_day(self, viewed_at: datetime) -> date:
        if viewed_at.tzinfo is None:
            viewed_at = viewed_at.replace(tzinfo=timezone.utc)
        return viewed_at.astimezone(self.tz).date()

    def track_view(self, listing_id: int, viewed_at: datetime, viewer_id: Optional[int] = None,
                   session_id: Optional[str] = None, ip_address: Optional[str] = None) -> bool:
        """Record one view; returns True when it counted as the viewer's first view today.

        `views_count` always grows by one. `unique_views_count` grows only for an
        identified viewer whose (listing, viewer, day) row did not exist yet; the
        unique row makes concurrent first views count exactly once.
        """
        try:
            self.db.execute(insert(ListingView).values(
                listing_id=listing_id,
                user_id=viewer_id,
                session_id=session_id,
                ip_address=ip_address,
                viewed_at=viewed_at,
            ))
            self.db.execute(
                update(Listing)
                .where(Listing.id == listing_id)
                .values(views_count=Listing.views_count + 1)
            )

            first_today = False
            if viewer_id is not None:
                first_today = insert_ignoring_duplicates(self.db, DailyViewer, {
                    "listing_id": listing_id,
                    "user_id": viewer_id,
                    "view_date": self.calendar_day(viewed_at),
                })
                if first_today:
                    self.db.execute(
                        update(Listing)
                        .where(Listing.id == listing_id)
                        .values(unique_views_count=Listing.unique_views_count + 1)
                    )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return first_today

    def stats(self, listing_id: int, since: datetime) -> ViewStats:
        """Views, distinct identified viewers and business days with a view, since `since`."""
        in_window = (ListingView.listing_id == listing_id, ListingView.viewed_at >= since)
        total, unique = self.db.execute(
            select(func.count(ListingView.id), func.count(func.distinct(ListingView.user_id)))
            .where(*in_window)
        ).one()
        days = {self.calendar_day(ts) for ts in self.db.scalars(select(ListingView.viewed_at).where(*in_window))}
        return ViewStats(
            listing_id=listing_id,
            since=since,
            total_views=total,
            unique_viewers=unique,
            active_days=len(days),
        )

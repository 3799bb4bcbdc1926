# app/search/engine.py
"""Entry point for listing search and listing detail reads."""
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from .. import config
from ..repository import ListingRepository
from ..schemas import FilterSpec, ListingOut, SearchOptions, SearchResultPage
from ..tracking import ViewTracker
from ..utils import logger
from .cache import FEATURED_TAG, SearchCache, scope_tag
from .compiler import QueryCompiler


class SearchEngine:
    """Wires compiler, cache and repository together.

    The compiler and cache are process-wide; the repository is bound to the
    caller's database session.
    """

    def __init__(self, compiler: QueryCompiler, cache: SearchCache, repository: ListingRepository):
        self.compiler = compiler
        self.cache = cache
        self.repository = repository

    def search(self, filters: FilterSpec, options: SearchOptions, ttl: Optional[int] = None,
               tags=()) -> SearchResultPage:
        def compute() -> SearchResultPage:
            compiled = self.compiler.compile(filters, options)
            return self.repository.page(compiled, options)

        return self.cache.get_or_compute(filters, options, compute, ttl=ttl, tags=tags)

    def featured(self, limit: int = 10) -> SearchResultPage:
        filters = FilterSpec(featured_only=True)
        options = SearchOptions(limit=limit, sort_by="newest")
        return self.search(filters, options, ttl=self.cache.facet_ttl, tags={FEATURED_TAG})

    def by_brand(self, brand_id: int, page: int = 1, limit: int = 20) -> SearchResultPage:
        filters = FilterSpec(brand_id=brand_id)
        options = SearchOptions(page=page, limit=limit)
        return self.search(filters, options, ttl=self.cache.facet_ttl,
                           tags={scope_tag("brand_id", brand_id)})

    def get_by_id(self, listing_id: int) -> Optional[ListingOut]:
        """Fully enriched active listing, or None when it does not exist or was removed."""
        cached = self.cache.get_detail(listing_id)
        if cached is not None:
            return cached
        listing = self.repository.get_with_details(listing_id)
        if listing is not None:
            self.cache.set_detail(listing)
        return listing


def record_view(db: Session, listing_id: int, viewed_at: datetime, viewer_id: Optional[int] = None,
                session_id: Optional[str] = None, ip_address: Optional[str] = None,
                tz: str = config.BUSINESS_TIMEZONE) -> bool:
    """Track a detail view without ever failing the read that triggered it."""
    try:
        return ViewTracker(db, tz).track_view(listing_id, viewed_at, viewer_id=viewer_id,
                                              session_id=session_id, ip_address=ip_address)
    except Exception:
        logger.exception("Failed to track view of listing %s", listing_id)
        return False

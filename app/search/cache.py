# app/search/cache.py
"""Content-addressed cache for search pages and listing details.

The cache is an accelerator only: every failure of the underlying store is
logged and treated as a miss (on read) or skipped (on write), and the caller
gets a freshly computed result instead of an error.
"""
import hashlib
from typing import Callable, Iterable, Optional

from pydantic import ValidationError

from .. import config
from ..cache_store import CacheStore
from ..exceptions import CacheUnavailable
from ..schemas import FilterSpec, ListingOut, SearchOptions, SearchResultPage
from ..utils import logger
from .compiler import QueryCompiler

FEATURED_TAG = "facet:featured"
# filter field -> tag prefix; pages scoped by these are dropped when a listing in that scope changes
SCOPE_FIELDS = ("brand_id", "model_id", "category_id", "city_id", "province_id", "region_id")


def listing_tag(listing_id: int) -> str:
    return f"listing:{listing_id}"


def scope_tag(field: str, value) -> str:
    return f"{field[:-3]}:{value}"


def filter_tags(filters: FilterSpec) -> set:
    tags = set()
    for name in SCOPE_FIELDS:
        value = getattr(filters, name)
        if value is not None:
            tags.add(scope_tag(name, value))
    if filters.featured_only:
        tags.add(FEATURED_TAG)
    return tags


def listing_scope_tags(listing) -> set:
    """Tags a change to `listing` (ORM row or snapshot object) must invalidate."""
    tags = {listing_tag(listing.id), FEATURED_TAG}
    for name in SCOPE_FIELDS:
        value = getattr(listing, name, None)
        if value is not None:
            tags.add(scope_tag(name, value))
    return tags


def detail_key(listing_id: int) -> str:
    return f"listing:detail:{listing_id}"


class SearchCache:
    def __init__(self, store: CacheStore, compiler: Optional[QueryCompiler] = None,
                 search_ttl: int = config.SEARCH_CACHE_TTL,
                 facet_ttl: int = config.FACET_CACHE_TTL,
                 detail_ttl: int = config.DETAIL_CACHE_TTL):
        self.store = store
        self.compiler = compiler or QueryCompiler()
        self.search_ttl = search_ttl
        self.facet_ttl = facet_ttl
        self.detail_ttl = detail_ttl

    def cache_key(self, filters: FilterSpec, options: SearchOptions) -> str:
        canonical = self.compiler.canonical_form(filters, options)
        return "search:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    def get_or_compute(self, filters: FilterSpec, options: SearchOptions,
                       compute: Callable[[], SearchResultPage], ttl: Optional[int] = None,
                       tags: Iterable[str] = ()) -> SearchResultPage:
        key = self.cache_key(filters, options)
        cached = self._read(key, SearchResultPage)
        if cached is not None:
            logger.debug("Search cache hit %s", key)
            return cached

        page = compute()
        entry_tags = filter_tags(filters) | set(tags)
        entry_tags.update(listing_tag(item.id) for item in page.listings)
        self._write(key, page, ttl or self.search_ttl, entry_tags)
        return page

    def get_detail(self, listing_id: int) -> Optional[ListingOut]:
        return self._read(detail_key(listing_id), ListingOut)

    def set_detail(self, listing: ListingOut) -> None:
        self._write(detail_key(listing.id), listing, self.detail_ttl, {listing_tag(listing.id)})

    def invalidate(self, tags: Iterable[str]) -> int:
        tags = set(tags)
        try:
            removed = self.store.invalidate_tags(tags)
        except CacheUnavailable as e:
            logger.warning("Cache invalidation skipped for %s: %s", sorted(tags), e)
            return 0
        logger.info("Invalidated %d cache keys for tags %s", removed, sorted(tags))
        return removed

    def healthy(self) -> bool:
        return self.store.ping()

    def _read(self, key: str, model):
        try:
            raw = self.store.get(key)
        except CacheUnavailable as e:
            logger.warning("Cache read bypassed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding unreadable cache entry %s: %s", key, e)
            return None

    def _write(self, key: str, value, ttl: int, tags: Iterable[str]) -> None:
        try:
            self.store.set(key, value.model_dump_json().encode("utf-8"), ttl, tags)
        except CacheUnavailable as e:
            logger.warning("Cache write skipped for %s: %s", key, e)

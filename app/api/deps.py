# app/api/deps.py
"""FastAPI dependency wiring.

The compiler and the cache are built once per process; repositories and
services are built per request around that request's session.
"""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from ..cache_store import RedisCacheStore
from ..db import SessionLocal, get_db
from ..repository import ListingRepository
from ..search.cache import SearchCache
from ..search.compiler import QueryCompiler
from ..search.engine import SearchEngine
from ..services import ListingService


@lru_cache(maxsize=None)
def get_compiler() -> QueryCompiler:
    return QueryCompiler()


@lru_cache(maxsize=None)
def get_search_cache() -> SearchCache:
    return SearchCache(RedisCacheStore.from_url(), compiler=get_compiler())


def get_search_engine(
    db: Session = Depends(get_db),
    compiler: QueryCompiler = Depends(get_compiler),
    cache: SearchCache = Depends(get_search_cache),
) -> SearchEngine:
    return SearchEngine(compiler, cache, ListingRepository(db))


def get_listing_service(
    db: Session = Depends(get_db),
    cache: SearchCache = Depends(get_search_cache),
) -> ListingService:
    return ListingService(db, cache)


def get_session_factory():
    return SessionLocal

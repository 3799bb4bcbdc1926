import itertools
import math
import os
from collections import defaultdict
from datetime import datetime, timedelta, timezone

os.environ.setdefault("POSTGRES_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "0")

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db import Base
from app.exceptions import CacheUnavailable
from app.models import Feature, Listing, ListingFeature, ListingImage, Seller
from app.repository import ListingRepository
from app.search.cache import SearchCache
from app.search.compiler import QueryCompiler
from app.search.engine import SearchEngine

BASE_TIME = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

LISTING_DEFAULTS = {
    "brand_id": 1,
    "model_id": 10,
    "title": "2020 Toyota Vios 1.3 E",
    "year": 2020,
    "price": 800000,
    "mileage": 30000,
    "fuel_type": "gasoline",
    "transmission": "automatic",
    "condition_rating": "good",
    "city_id": 100,
    "province_id": 10,
    "region_id": 1,
    "latitude": 14.5995,
    "longitude": 120.9842,
    "status": "approved",
    "approval_status": "approved",
}


class MemoryCacheStore:
    """Dict-backed CacheStore; TTLs are recorded, not enforced."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.tags = defaultdict(set)

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ttl, tags=()):
        self.data[key] = value
        self.ttls[key] = ttl
        for tag in tags:
            self.tags[tag].add(key)

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def invalidate_tags(self, tags):
        keys = set()
        for tag in tags:
            keys |= self.tags.pop(tag, set())
        return self.delete(*keys)

    def ping(self):
        return True


class UnavailableCacheStore:
    def get(self, key):
        raise CacheUnavailable("connection refused")

    def set(self, key, value, ttl, tags=()):
        raise CacheUnavailable("connection refused")

    def delete(self, *keys):
        raise CacheUnavailable("connection refused")

    def invalidate_tags(self, tags):
        raise CacheUnavailable("connection refused")

    def ping(self):
        return False


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})

    @event.listens_for(eng, "connect")
    def register_math(dbapi_conn, _record):
        for name, fn in (("radians", math.radians), ("sin", math.sin), ("cos", math.cos),
                         ("asin", math.asin), ("sqrt", math.sqrt)):
            dbapi_conn.create_function(name, 1, fn)

    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store():
    return MemoryCacheStore()


@pytest.fixture
def search_cache(store):
    return SearchCache(store)


@pytest.fixture
def unavailable_cache():
    return SearchCache(UnavailableCacheStore())


@pytest.fixture
def search_engine(db, search_cache):
    return SearchEngine(QueryCompiler(), search_cache, ListingRepository(db))


@pytest.fixture
def seller(db):
    obj = Seller(first_name="Juan", last_name="Dela Cruz", average_rating=4.5, identity_verified=True)
    db.add(obj)
    db.commit()
    return obj


@pytest.fixture
def make_listing(db, seller):
    counter = itertools.count()

    def _make(**overrides):
        created = BASE_TIME + timedelta(minutes=next(counter))
        values = dict(LISTING_DEFAULTS, seller_id=seller.id, created_at=created, updated_at=created)
        values.update(overrides)
        values.setdefault("original_price", values["price"])
        listing = Listing(**values)
        db.add(listing)
        db.commit()
        return listing

    return _make


@pytest.fixture
def make_feature(db):
    def _make(name, category="safety", listings=()):
        feature = Feature(name=name, category=category)
        db.add(feature)
        db.flush()
        for listing in listings:
            db.add(ListingFeature(listing_id=listing.id, feature_id=feature.id))
        db.commit()
        return feature

    return _make


@pytest.fixture
def make_image(db):
    def _make(listing, **overrides):
        values = {"image_url": "https://img.example/car.jpg", "processing_status": "ready",
                  "is_primary": False, "display_order": 0, "created_at": BASE_TIME}
        values.update(overrides)
        image = ListingImage(listing_id=listing.id, **values)
        db.add(image)
        db.commit()
        return image

    return _make

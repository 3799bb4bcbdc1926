from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import select

from app.crud import DEFAULT_COORDINATES
from app.exceptions import InvalidTransition, ListingNotFound
from app.ledger import PriceLedger
from app.models import PriceChange
from app.schemas import FilterSpec, ListingCreate, ListingUpdate, SearchOptions
from app.services import ListingService

NOW = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)


def naive(dt):
    return dt.replace(tzinfo=None) if dt.tzinfo is not None else dt


@pytest.fixture
def service(db, search_cache):
    return ListingService(db, search_cache)


def history(db, listing_id):
    return db.scalars(select(PriceChange).where(PriceChange.listing_id == listing_id)).all()


def new_listing_payload(**overrides):
    values = dict(
        brand_id=1, model_id=10, title="2019 Honda City", year=2019, price=650000, mileage=40000,
        fuel_type="gasoline", transmission="cvt", condition_rating="very_good",
        city_id=100, province_id=10, region_id=1,
    )
    values.update(overrides)
    return ListingCreate(**values)


def test_create_listing_starts_pending_and_scored(service, seller):
    listing = service.create_listing(new_listing_payload(description="x" * 120, vin="VIN123"), seller.id, NOW)
    assert listing.status == "pending"
    assert listing.approval_status == "pending"
    assert listing.original_price == Decimal("650000")
    assert (listing.latitude, listing.longitude) == DEFAULT_COORDINATES
    assert listing.completeness_score == round(2 / 13 * 100)
    assert listing.quality_score == 7.5
    assert listing.views_count == 0


def test_create_listing_rejects_coordinates_outside_philippines():
    with pytest.raises(ValidationError):
        new_listing_payload(latitude=35.68, longitude=139.69)


def test_price_drop_is_recorded_once(db, service, make_listing):
    listing = make_listing(price=800000)
    updated = service.update_listing(listing.id, ListingUpdate(price=750000), actor_id=9, now=NOW)

    records = history(db, listing.id)
    assert len(records) == 1
    record = records[0]
    assert record.old_price == Decimal("800000")
    assert record.new_price == Decimal("750000")
    assert record.price_change == Decimal("-50000")
    assert record.change_percentage == Decimal("-6.25")
    assert record.change_type == "decrease"
    assert record.changed_by == 9
    assert record.change_reason == "manual"
    assert naive(updated.last_price_update) == naive(NOW)
    assert updated.price == Decimal("750000")
    assert updated.original_price == Decimal("800000")


def test_unchanged_price_writes_no_history(db, service, make_listing):
    listing = make_listing(price=800000)
    service.update_listing(listing.id, ListingUpdate(price=800000, title="Same price"), actor_id=9, now=NOW)
    assert history(db, listing.id) == []


def test_change_reason_is_stored(db, service, make_listing):
    listing = make_listing(price=800000)
    service.update_listing(listing.id, ListingUpdate(price=820000, change_reason="market adjustment"), 9, NOW)
    record = history(db, listing.id)[0]
    assert record.change_type == "increase"
    assert record.change_reason == "market adjustment"


def test_original_price_cannot_be_updated():
    with pytest.raises(ValidationError):
        ListingUpdate(original_price=1)


def test_required_fields_cannot_be_nulled():
    with pytest.raises(ValidationError):
        ListingUpdate(price=None)


def test_price_update_invalidates_cached_pages(service, search_engine, make_listing):
    listing = make_listing(price=800000)
    filters, options = FilterSpec(), SearchOptions()
    assert search_engine.search(filters, options).listings[0].price == 800000

    service.update_listing(listing.id, ListingUpdate(price=750000), actor_id=9, now=NOW)
    assert search_engine.search(filters, options).listings[0].price == 750000


def test_detail_cache_is_invalidated(service, search_engine, make_listing):
    listing = make_listing(title="Old title")
    assert search_engine.get_by_id(listing.id).title == "Old title"
    service.update_listing(listing.id, ListingUpdate(title="New title"), actor_id=None, now=NOW)
    assert search_engine.get_by_id(listing.id).title == "New title"


def test_scoring_fields_trigger_rescore(service, make_listing):
    listing = make_listing(quality_score=1.0, completeness_score=3)
    updated = service.update_listing(listing.id, ListingUpdate(description="x" * 320), None, NOW)
    assert updated.quality_score == 8.0
    assert updated.completeness_score == round(1 / 13 * 100)


def test_other_fields_leave_scores_alone(service, make_listing):
    listing = make_listing(quality_score=1.0, completeness_score=3)
    updated = service.update_listing(listing.id, ListingUpdate(mileage=45000), None, NOW)
    assert updated.quality_score == 1.0
    assert updated.completeness_score == 3


def test_update_missing_listing(service):
    with pytest.raises(ListingNotFound):
        service.update_listing(12345, ListingUpdate(title="x"), None, NOW)


def test_sold_listing_is_locked(service, make_listing):
    listing = make_listing(status="sold")
    with pytest.raises(InvalidTransition):
        service.update_listing(listing.id, ListingUpdate(price=1), None, NOW)
    with pytest.raises(InvalidTransition):
        service.soft_delete(listing.id, NOW)


def test_moderation_lifecycle(service, make_listing):
    listing = make_listing(status="pending", approval_status="pending")
    approved = service.approve(listing.id, moderator_id=77, now=NOW)
    assert (approved.status, approved.approval_status, approved.approved_by) == ("approved", "approved", 77)

    sold = service.mark_sold(listing.id, NOW)
    assert sold.status == "sold"
    assert naive(sold.sold_at) == naive(NOW)
    with pytest.raises(InvalidTransition):
        service.approve(listing.id, 77, NOW)


def test_reject_and_suspend(service, make_listing):
    rejected = service.reject(make_listing(status="pending").id, "Blurry photos", NOW)
    assert rejected.status == rejected.approval_status == "rejected"
    assert rejected.rejection_reason == "Blurry photos"
    assert service.suspend(make_listing().id, NOW).status == "suspended"


def test_only_approved_listings_can_be_sold(service, make_listing):
    listing = make_listing(status="pending", approval_status="pending")
    with pytest.raises(InvalidTransition):
        service.mark_sold(listing.id, NOW)


def test_soft_delete_hides_listing(service, search_engine, make_listing):
    listing = make_listing()
    assert search_engine.search(FilterSpec(), SearchOptions()).total == 1
    service.soft_delete(listing.id, NOW)
    assert search_engine.get_by_id(listing.id) is None
    assert search_engine.search(FilterSpec(), SearchOptions()).total == 0
    with pytest.raises(ListingNotFound):
        service.approve(listing.id, 1, NOW)


def test_expire_listings(service, make_listing):
    stale = make_listing(expires_at=NOW - timedelta(days=1))
    fresh = make_listing(expires_at=NOW + timedelta(days=1))
    forever = make_listing()
    assert service.expire_listings(NOW) == 1
    assert stale.status == "expired"
    assert fresh.status == "approved"
    assert forever.status == "approved"
    assert service.expire_listings(NOW) == 0


def test_price_history_and_statistics(db, service, make_listing):
    listing = make_listing(price=800000)
    service.update_listing(listing.id, ListingUpdate(price=750000), 9, NOW)
    service.update_listing(listing.id, ListingUpdate(price=780000), 9, NOW + timedelta(days=1))

    ledger = PriceLedger(db)
    records, total = ledger.history(listing.id, page=1, limit=1)
    assert total == 2
    assert [r.new_price for r in records] == [Decimal("780000")]

    stats = ledger.statistics(listing.id)
    assert stats.current_price == 780000
    assert stats.original_price == 800000
    assert stats.lowest_price == 750000
    assert stats.highest_price == 800000
    assert (stats.total_changes, stats.price_increases, stats.price_decreases) == (2, 1, 1)
    assert stats.total_change == -20000
    assert stats.total_change_percentage == -2.5
    assert stats.trend == "decreasing"
    assert ledger.statistics(9999) is None


def test_statistics_without_changes(db, make_listing):
    listing = make_listing(price=800000)
    stats = PriceLedger(db).statistics(listing.id)
    assert stats.total_changes == 0
    assert stats.trend == "stable"
    assert stats.last_change_date is None

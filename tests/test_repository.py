import pytest

from app.models import Seller
from app.repository import ListingRepository, total_pages
from app.schemas import FilterSpec, SearchOptions
from app.search.compiler import QueryCompiler
from app.search.geo import haversine_km


def run(db, filters=None, **options):
    filters = filters or FilterSpec()
    opts = SearchOptions(**options)
    return ListingRepository(db).page(QueryCompiler().compile(filters, opts), opts)


def ids(page):
    return [item.id for item in page.listings]


def test_price_and_fuel_filters(db, make_listing):
    vios = make_listing(price=800000, fuel_type="gasoline", year=2020)
    make_listing(price=1500000, fuel_type="gasoline")

    included = run(db, FilterSpec(min_price=500000, max_price=1000000, fuel_type=["gasoline", "diesel"]))
    assert ids(included) == [vios.id]
    assert included.listings[0].price == 800000

    excluded = run(db, FilterSpec(min_price=500000, max_price=1000000, fuel_type=["diesel"]))
    assert excluded.total == 0
    assert excluded.listings == []


def test_only_active_approved_listings_are_searchable(db, make_listing):
    visible = make_listing()
    make_listing(status="pending", approval_status="pending")
    make_listing(is_active=False)
    make_listing(status="sold")
    assert ids(run(db)) == [visible.id]


@pytest.mark.parametrize("sort_by,key,reverse", [
    ("price_asc", "price", False),
    ("price_desc", "price", True),
    ("year_asc", "year", False),
    ("mileage_asc", "mileage", False),
])
def test_sorted_results(db, make_listing, sort_by, key, reverse):
    for price, year, mileage in ((900000, 2018, 50000), (650000, 2021, 12000), (720000, 2019, 80000)):
        make_listing(price=price, year=year, mileage=mileage)
    values = [getattr(item, key) for item in run(db, sort_by=sort_by).listings]
    assert values == sorted(values, reverse=reverse)


def test_relevance_order(db, make_listing):
    plain_old = make_listing(quality_score=9.0)
    featured = make_listing(is_featured=True, quality_score=5.0)
    plain_new = make_listing(quality_score=9.0)
    low = make_listing(quality_score=6.0)
    assert ids(run(db)) == [featured.id, plain_new.id, plain_old.id, low.id]


def test_pagination_reports_exact_total(db, make_listing):
    for _ in range(5):
        make_listing()
    page = run(db, page=3, limit=2, sort_by="oldest")
    assert page.total == 5
    assert page.total_pages == 3
    assert len(page.listings) == 1

    seen = []
    for n in (1, 2, 3):
        seen += ids(run(db, page=n, limit=2, sort_by="oldest"))
    assert len(seen) == len(set(seen)) == 5


def test_page_beyond_the_end_is_empty(db, make_listing):
    make_listing()
    page = run(db, page=4, limit=10)
    assert page.listings == []
    assert page.total == 1


def test_features_match_all_requested(db, make_listing, make_feature):
    both = make_listing()
    one = make_listing()
    abs_ = make_feature("ABS", listings=[both, one])
    camera = make_feature("Backup camera", listings=[both])

    page = run(db, FilterSpec(features=[abs_.id, camera.id]))
    assert ids(page) == [both.id]
    assert page.total == 1

    assert sorted(ids(run(db, FilterSpec(features=[abs_.id])))) == sorted([both.id, one.id])


def test_radius_filter_and_distance(db, make_listing):
    origin = (14.5995, 120.9842)
    near = make_listing(latitude=14.55, longitude=121.02)
    far = make_listing(latitude=10.3157, longitude=123.8854)
    d_near = haversine_km(*origin, 14.55, 121.02)

    inside = run(db, FilterSpec(latitude=origin[0], longitude=origin[1], radius=d_near + 1e-6))
    assert ids(inside) == [near.id]
    assert inside.listings[0].distance == pytest.approx(d_near)

    exact = run(db, FilterSpec(latitude=origin[0], longitude=origin[1], radius=d_near))
    assert ids(exact) == [near.id]

    outside = run(db, FilterSpec(latitude=origin[0], longitude=origin[1], radius=d_near - 1e-3))
    assert outside.total == 0

    by_distance = run(db, FilterSpec(latitude=origin[0], longitude=origin[1]), sort_by="distance")
    assert ids(by_distance) == [near.id, far.id]
    assert by_distance.listings[0].distance < by_distance.listings[1].distance


def test_distance_absent_without_origin(db, make_listing):
    make_listing()
    assert run(db).listings[0].distance is None


def test_seller_verified_filter(db, make_listing):
    unverified = Seller(first_name="Ana", identity_verified=False)
    db.add(unverified)
    db.commit()
    verified_listing = make_listing()
    make_listing(seller_id=unverified.id)
    assert ids(run(db, FilterSpec(seller_verified=True))) == [verified_listing.id]


def test_images_are_ready_only_and_ordered(db, make_listing, make_image):
    listing = make_listing()
    second = make_image(listing, display_order=2)
    first = make_image(listing, display_order=1)
    primary = make_image(listing, is_primary=True, display_order=5)
    make_image(listing, processing_status="processing", display_order=0)

    images = run(db).listings[0].images
    assert [img.id for img in images] == [primary.id, first.id, second.id]


def test_enrichment_options(db, make_listing, make_image, make_feature):
    listing = make_listing()
    make_image(listing)
    make_feature("Sunroof", category="comfort", listings=[listing])
    make_feature("Airbags", category="safety", listings=[listing])

    bare = run(db, include_images=False, include_seller=False)
    assert bare.listings[0].images == []
    assert bare.listings[0].seller is None
    assert bare.listings[0].features == []

    full = run(db, include_features=True)
    assert [f.name for f in full.listings[0].features] == ["Sunroof", "Airbags"]
    assert full.listings[0].seller.name == "Juan Dela Cruz"
    assert full.listings[0].seller.verified is True
    assert full.total == bare.total == 1


def test_get_with_details(db, make_listing, make_feature):
    listing = make_listing(status="pending", approval_status="pending")
    make_feature("ABS", listings=[listing])
    removed = make_listing(is_active=False)

    repo = ListingRepository(db)
    detail = repo.get_with_details(listing.id)
    assert detail.id == listing.id
    assert [f.name for f in detail.features] == ["ABS"]
    assert detail.seller is not None
    assert repo.get_with_details(removed.id) is None
    assert repo.get_with_details(9999) is None


def test_total_pages():
    assert total_pages(0, 20) == 0
    assert total_pages(20, 20) == 1
    assert total_pages(21, 20) == 2

from app.schemas import FilterSpec, SearchOptions, SearchResultPage
from app.search.cache import filter_tags, listing_tag


def _page():
    return SearchResultPage(listings=[], total=0, page=1, limit=20, total_pages=0)


class Counter:
    def __init__(self, page):
        self.calls = 0
        self.page = page

    def __call__(self):
        self.calls += 1
        return self.page


def test_equivalent_filters_share_a_key(search_cache):
    a = search_cache.cache_key(FilterSpec(fuel_type=["gasoline", "diesel"]), SearchOptions())
    b = search_cache.cache_key(FilterSpec(fuel_type=["diesel", "gasoline"]), SearchOptions())
    assert a == b
    assert a.startswith("search:")


def test_different_filters_get_different_keys(search_cache):
    a = search_cache.cache_key(FilterSpec(fuel_type=["gasoline"]), SearchOptions())
    b = search_cache.cache_key(FilterSpec(fuel_type=["diesel"]), SearchOptions())
    assert a != b


def test_second_lookup_is_served_from_cache(search_cache, store):
    compute = Counter(_page())
    filters, options = FilterSpec(brand_id=1), SearchOptions()
    first = search_cache.get_or_compute(filters, options, compute)
    second = search_cache.get_or_compute(filters, options, compute)
    assert compute.calls == 1
    assert first == second
    key = search_cache.cache_key(filters, options)
    assert store.ttls[key] == 300


def test_ttl_override_and_tags(search_cache, store):
    filters = FilterSpec(brand_id=5)
    search_cache.get_or_compute(filters, SearchOptions(), Counter(_page()), ttl=1800, tags={"extra"})
    key = search_cache.cache_key(filters, SearchOptions())
    assert store.ttls[key] == 1800
    for tag in ("brand:5", "extra"):
        assert key in store.tags[tag]
    assert set(store.tags) == {"brand:5", "extra"}


def test_invalidate_drops_tagged_entries(search_cache, store):
    compute = Counter(_page())
    filters = FilterSpec(brand_id=5)
    search_cache.get_or_compute(filters, SearchOptions(), compute)
    assert search_cache.invalidate({"brand:5"}) == 1
    search_cache.get_or_compute(filters, SearchOptions(), compute)
    assert compute.calls == 2


def test_unrelated_invalidation_keeps_entry(search_cache):
    compute = Counter(_page())
    filters = FilterSpec(brand_id=5)
    search_cache.get_or_compute(filters, SearchOptions(), compute)
    search_cache.invalidate({"brand:6", listing_tag(999)})
    search_cache.get_or_compute(filters, SearchOptions(), compute)
    assert compute.calls == 1


def test_unavailable_store_falls_through_to_compute(unavailable_cache):
    cache = unavailable_cache
    compute = Counter(_page())
    page = cache.get_or_compute(FilterSpec(), SearchOptions(), compute)
    cache.get_or_compute(FilterSpec(), SearchOptions(), compute)
    assert page.total == 0
    assert compute.calls == 2
    assert cache.invalidate({"brand:1"}) == 0
    assert cache.healthy() is False
    assert cache.get_detail(1) is None


def test_unreadable_entry_is_recomputed(search_cache, store):
    filters = FilterSpec()
    store.set(search_cache.cache_key(filters, SearchOptions()), b"{not json", 300)
    compute = Counter(_page())
    search_cache.get_or_compute(filters, SearchOptions(), compute)
    assert compute.calls == 1


def test_unscoped_search_has_no_catch_all_tag():
    assert filter_tags(FilterSpec(min_price=500000)) == set()
    assert filter_tags(FilterSpec(brand_id=2, featured_only=True)) == {"brand:2", "facet:featured"}


def test_healthy(search_cache):
    assert search_cache.healthy() is True

# app/search/compiler.py
"""Compile a FilterSpec + SearchOptions into a store-independent query plan.

The plan is a list of typed predicates, the values they bind, and an ordering
policy. Nothing here knows about SQL; `app.search.render` turns a plan into
SQLAlchemy clauses. Only fields that are actually set produce predicates, which
keeps compiled plans (and the cache keys derived from the same inputs) stable.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from ..schemas import FilterSpec, SearchOptions

SEARCHABLE_STATUS = "approved"

# filter field -> (listing column, operator)
RANGE_FILTERS = (
    ("min_price", "price", ">="),
    ("max_price", "price", "<="),
    ("min_year", "year", ">="),
    ("max_year", "year", "<="),
    ("min_mileage", "mileage", ">="),
    ("max_mileage", "mileage", "<="),
    ("min_rating", "average_rating", ">="),
)
EQUALITY_FILTERS = ("brand_id", "model_id", "category_id", "city_id", "province_id", "region_id")
SET_FILTERS = ("fuel_type", "transmission", "condition_rating")
# filter toggle -> listing column
TOGGLE_FILTERS = (
    ("financing_available", "financing_available"),
    ("trade_in_accepted", "trade_in_accepted"),
    ("warranty_remaining", "warranty_remaining"),
    ("casa_maintained", "casa_maintained"),
    ("featured_only", "is_featured"),
)
# filter fields whose value order carries no meaning
UNORDERED_FILTERS = SET_FILTERS + ("features",)


@dataclass(frozen=True)
class Comparison:
    column: str
    op: str
    param: str


@dataclass(frozen=True)
class InList:
    column: str
    param: str


@dataclass(frozen=True)
class IsTrue:
    column: str


@dataclass(frozen=True)
class SellerVerified:
    pass


@dataclass(frozen=True)
class WithinRadius:
    radius_param: str


@dataclass(frozen=True)
class HasAllFeatures:
    """Listing carries every requested feature (GROUP BY ... HAVING count = N)."""
    param: str
    count_param: str


@dataclass(frozen=True)
class OrderTerm:
    column: str
    descending: bool = False


RELEVANCE_ORDER = (
    OrderTerm("is_featured", True),
    OrderTerm("quality_score", True),
    OrderTerm("created_at", True),
)
NEWEST_ORDER = (OrderTerm("created_at", True),)

SORT_ORDERS = {
    "price_asc": (OrderTerm("price"),),
    "price_desc": (OrderTerm("price", True),),
    "year_asc": (OrderTerm("year"),),
    "year_desc": (OrderTerm("year", True),),
    "mileage_asc": (OrderTerm("mileage"),),
    "distance": (OrderTerm("distance"),),
    "newest": NEWEST_ORDER,
    "oldest": (OrderTerm("created_at"),),
    "relevance": RELEVANCE_ORDER,
}


@dataclass
class CompiledQuery:
    predicates: list = field(default_factory=list)
    parameters: Dict[str, Any] = field(default_factory=dict)
    order_by: Tuple[OrderTerm, ...] = RELEVANCE_ORDER
    grouping_required: bool = False
    distance_origin: Optional[Tuple[float, float]] = None

    def add(self, predicate, **params):
        self.predicates.append(predicate)
        self.parameters.update(params)


class QueryCompiler:

    def compile(self, filters: FilterSpec, options: SearchOptions) -> CompiledQuery:
        compiled = CompiledQuery()

        compiled.add(IsTrue("is_active"))
        compiled.add(Comparison("status", "=", "status"), status=SEARCHABLE_STATUS)
        compiled.add(Comparison("approval_status", "=", "approval_status"),
                     approval_status=SEARCHABLE_STATUS)

        for name in EQUALITY_FILTERS:
            value = getattr(filters, name)
            if value is not None:
                compiled.add(Comparison(name, "=", name), **{name: value})

        for name, column, op in RANGE_FILTERS:
            value = getattr(filters, name)
            if value is not None:
                compiled.add(Comparison(column, op, name), **{name: value})

        for name in SET_FILTERS:
            values = getattr(filters, name)
            if values:
                compiled.add(InList(name, name), **{name: list(values)})

        for name, column in TOGGLE_FILTERS:
            if getattr(filters, name):
                compiled.add(IsTrue(column))

        if filters.seller_verified:
            compiled.add(SellerVerified())

        if filters.has_proximity:
            compiled.distance_origin = (filters.latitude, filters.longitude)
            if filters.radius is not None:
                compiled.add(WithinRadius("radius"), radius=filters.radius)

        if filters.features:
            feature_ids = sorted(set(filters.features))
            compiled.add(HasAllFeatures("features", "feature_count"),
                         features=feature_ids, feature_count=len(feature_ids))
            compiled.grouping_required = True

        compiled.order_by = self.order_for(options.sort_by, compiled.distance_origin is not None)
        return compiled

    @staticmethod
    def order_for(sort_by: str, has_origin: bool) -> Tuple[OrderTerm, ...]:
        if sort_by == "distance" and not has_origin:
            return NEWEST_ORDER
        return SORT_ORDERS.get(sort_by, RELEVANCE_ORDER)

    @staticmethod
    def canonical_form(filters: FilterSpec, options: SearchOptions) -> str:
        """Deterministic JSON for (filters, options); equivalent inputs serialize identically.

        Unset fields, false toggles and empty sets are omitted rather than written
        as null, and order-independent sets are sorted and de-duplicated.
        """
        canonical = {}
        for name, value in filters.model_dump(mode="json").items():
            if value is None or value is False or value == []:
                continue
            if name in UNORDERED_FILTERS:
                value = sorted(set(value))
            canonical[name] = value
        payload = {"filters": canonical, "options": options.model_dump(mode="json")}
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))

# app/search/render.py
"""Render a CompiledQuery into SQLAlchemy clauses over the `listings` table."""
from sqlalchemy import select, func, true

from ..models import Listing, ListingFeature, Seller
from .compiler import (
    CompiledQuery, Comparison, InList, IsTrue, SellerVerified, WithinRadius, HasAllFeatures,
)
from .geo import GeoProximityEvaluator

_OPERATORS = {
    "=": lambda col, value: col == value,
    ">=": lambda col, value: col >= value,
    "<=": lambda col, value: col <= value,
}


def _column(name: str):
    return getattr(Listing, name)


def distance_expression(compiled: CompiledQuery):
    if compiled.distance_origin is None:
        return None
    return GeoProximityEvaluator(*compiled.distance_origin).sql_distance(Listing.latitude, Listing.longitude)


def render_predicate(predicate, compiled: CompiledQuery):
    params = compiled.parameters
    if isinstance(predicate, Comparison):
        return _OPERATORS[predicate.op](_column(predicate.column), params[predicate.param])
    if isinstance(predicate, InList):
        return _column(predicate.column).in_(params[predicate.param])
    if isinstance(predicate, IsTrue):
        return _column(predicate.column) == true()
    if isinstance(predicate, SellerVerified):
        return Listing.seller_account.has(Seller.identity_verified == true())
    if isinstance(predicate, WithinRadius):
        return distance_expression(compiled) <= params[predicate.radius_param]
    if isinstance(predicate, HasAllFeatures):
        matching = (
            select(ListingFeature.listing_id)
            .where(ListingFeature.feature_id.in_(params[predicate.param]))
            .group_by(ListingFeature.listing_id)
            .having(func.count(func.distinct(ListingFeature.feature_id)) == params[predicate.count_param])
        )
        return Listing.id.in_(matching)
    raise TypeError(f"unsupported predicate: {predicate!r}")


def render_where(compiled: CompiledQuery) -> list:
    return [render_predicate(p, compiled) for p in compiled.predicates]


def render_order_by(compiled: CompiledQuery, distance_label=None) -> list:
    clauses = []
    for term in compiled.order_by:
        col = distance_label if term.column == "distance" else _column(term.column)
        clauses.append(col.desc() if term.descending else col.asc())
    # stable tie-break so pages never overlap
    clauses.append(Listing.id.asc())
    return clauses

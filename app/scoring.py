# app/scoring.py
"""Listing quality signals used for ranking.

Both scores are pure functions of a listing snapshot: a mapping of attribute
names to values, or any object exposing them as attributes (e.g. an ORM row).
"""
from collections.abc import Mapping
from typing import Any, Iterable, Tuple

# Optional fields that make a listing more informative; each filled one counts equally.
COMPLETENESS_FIELDS = (
    "description",
    "engine_size",
    "horsepower",
    "drivetrain",
    "exterior_color_id",
    "interior_color_id",
    "warranty_details",
    "vin",
    "engine_number",
    "chassis_number",
    "plate_number",
    "insurance_company",
    "detailed_address",
)

QUALITY_BASE = 5.0
QUALITY_MIN = 0.0
QUALITY_MAX = 10.0

# description depth: each threshold passed adds its weight (cumulative)
DESCRIPTION_THRESHOLDS = ((100, 1.0), (300, 1.0))
# technical detail disclosed
TECHNICAL_FIELD_WEIGHT = 0.5
TECHNICAL_FIELDS = ("engine_size", "horsepower", "drivetrain")
# history transparency
SERVICE_RECORDS_WEIGHT = 1.0
CLEAN_HISTORY_WEIGHT = 0.5
# verification documents
VIN_WEIGHT = 0.5
OR_CR_WEIGHT = 0.5

QUALITY_FIELDS = (
    "description",
    *TECHNICAL_FIELDS,
    "service_records_available",
    "accident_history",
    "flood_history",
    "vin",
    "or_cr_available",
)

# An update touching any of these recomputes both scores.
SCORING_FIELDS = frozenset(COMPLETENESS_FIELDS) | frozenset(QUALITY_FIELDS)


def _get(listing: Any, name: str):
    if isinstance(listing, Mapping):
        return listing.get(name)
    return getattr(listing, name, None)


def _filled(value) -> bool:
    return bool(value) and len(str(value).strip()) > 0


def completeness_score(listing) -> int:
    filled = sum(1 for name in COMPLETENESS_FIELDS if _filled(_get(listing, name)))
    return round(filled / len(COMPLETENESS_FIELDS) * 100)


def quality_score(listing) -> float:
    score = QUALITY_BASE

    description = _get(listing, "description") or ""
    for threshold, weight in DESCRIPTION_THRESHOLDS:
        if len(description) > threshold:
            score += weight

    for name in TECHNICAL_FIELDS:
        if _get(listing, name):
            score += TECHNICAL_FIELD_WEIGHT

    if _get(listing, "service_records_available"):
        score += SERVICE_RECORDS_WEIGHT
    if not _get(listing, "accident_history") and not _get(listing, "flood_history"):
        score += CLEAN_HISTORY_WEIGHT

    if _get(listing, "vin"):
        score += VIN_WEIGHT
    if _get(listing, "or_cr_available"):
        score += OR_CR_WEIGHT

    return min(QUALITY_MAX, max(QUALITY_MIN, score))


def score_listing(listing) -> Tuple[int, float]:
    return completeness_score(listing), quality_score(listing)


def needs_rescore(changed_fields: Iterable[str]) -> bool:
    return not SCORING_FIELDS.isdisjoint(changed_fields)

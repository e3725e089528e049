"""In-process predicate evaluation against CandidateRecord values."""

import math
from typing import Any

from src.core.schemas import CandidateRecord
from src.query.fields import get_value
from src.query.predicate import (
    And,
    AnyOf,
    Eq,
    GeoWithin,
    Not,
    Or,
    Predicate,
    Range,
    Should,
    TextMatch,
)

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance on a sphere of radius 6371 km."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def matches(predicate: Predicate, record: CandidateRecord) -> bool:
    """Return True if ``record`` satisfies ``predicate``."""
    if isinstance(predicate, And):
        return all(matches(c, record) for c in predicate.clauses)
    if isinstance(predicate, Or):
        return any(matches(c, record) for c in predicate.clauses)
    if isinstance(predicate, Not):
        return not matches(predicate.clause, record)
    if isinstance(predicate, Should):
        return True
    if isinstance(predicate, Eq):
        return _fold(get_value(record, predicate.field), predicate.ignore_case) == _fold(
            predicate.value, predicate.ignore_case
        )
    if isinstance(predicate, AnyOf):
        return _any_of(predicate, get_value(record, predicate.field))
    if isinstance(predicate, Range):
        return _in_range(predicate, get_value(record, predicate.field))
    if isinstance(predicate, TextMatch):
        term = predicate.term.lower()
        for name in predicate.fields:
            value = get_value(record, name)
            values = value if isinstance(value, tuple) else (value,)
            if any(isinstance(v, str) and term in v.lower() for v in values):
                return True
        return False
    if isinstance(predicate, GeoWithin):
        lat, lng = record.location.lat, record.location.lng
        if lat is None or lng is None:
            return False
        return haversine_km(predicate.lat, predicate.lng, lat, lng) <= predicate.radius_km
    msg = f"Unknown predicate node: {type(predicate).__name__}"
    raise TypeError(msg)


def _fold(value: Any, ignore_case: bool) -> Any:
    if ignore_case and isinstance(value, str):
        return value.lower()
    return value


def _any_of(predicate: AnyOf, value: Any) -> bool:
    if value is None:
        return False
    actual = value if isinstance(value, tuple) else (value,)
    actual = [_fold(v, predicate.ignore_case) for v in actual]
    wanted = [_fold(v, predicate.ignore_case) for v in predicate.values]
    if predicate.substring:
        return any(
            isinstance(a, str) and isinstance(w, str) and w in a
            for a in actual
            for w in wanted
        )
    return any(a in wanted for a in actual)


def _in_range(predicate: Range, value: Any) -> bool:
    if value is None:
        return False
    if predicate.gt is not None and not value > predicate.gt:
        return False
    if predicate.gte is not None and not value >= predicate.gte:
        return False
    if predicate.lt is not None and not value < predicate.lt:
        return False
    if predicate.lte is not None and not value <= predicate.lte:
        return False
    return True

"""Lower a predicate tree to a SQLite WHERE clause over the ``jobs`` table.

Rows keep the job document as JSON in ``doc``; timestamps live in numeric
columns (``posted_ts``, ``expires_ts``) so range comparisons are numeric.
SQL NULL is treated as "no match", so ``Not`` coalesces before negating to
agree with in-process evaluation.
"""

import sqlite3
from datetime import datetime
from typing import Any

from src.query.evaluate import haversine_km
from src.query.fields import FieldSpec, SortKey, field_spec
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


def register_functions(conn: sqlite3.Connection) -> None:
    """Register the Python functions the lowered SQL relies on."""
    conn.create_function("geo_distance_km", 4, _geo_distance, deterministic=True)


def _geo_distance(lat1: float, lng1: float, lat2: float | None, lng2: float | None) -> float | None:
    if lat2 is None or lng2 is None:
        return None
    return haversine_km(lat1, lng1, lat2, lng2)


def to_sql(predicate: Predicate) -> tuple[str, list[Any]]:
    """Return ``(where_sql, params)`` for ``predicate``."""
    params: list[Any] = []
    sql = _lower(predicate, params)
    return sql, params


def order_by(sort_keys: list[SortKey]) -> str:
    """ORDER BY body with nulls last for every key."""
    parts = []
    for key in sort_keys:
        expr = field_spec(key.field).sql()
        if key.ignore_case:
            expr = f"lower({expr})"
        parts.append(f"({expr}) IS NULL")
        parts.append(f"{expr} {'DESC' if key.descending else 'ASC'}")
    return ", ".join(parts) if parts else "job_id ASC"


def _lower(predicate: Predicate, params: list[Any]) -> str:
    if isinstance(predicate, And):
        if not predicate.clauses:
            return "1"
        return "(" + " AND ".join(_lower(c, params) for c in predicate.clauses) + ")"
    if isinstance(predicate, Or):
        if not predicate.clauses:
            return "0"
        return "(" + " OR ".join(_lower(c, params) for c in predicate.clauses) + ")"
    if isinstance(predicate, Not):
        return f"(NOT COALESCE({_lower(predicate.clause, params)}, 0))"
    if isinstance(predicate, Should):
        return "1"
    if isinstance(predicate, Eq):
        spec = field_spec(predicate.field)
        expr = spec.sql()
        if predicate.ignore_case:
            expr = f"lower({expr})"
        params.append(_bind(predicate.value, spec, predicate.ignore_case))
        return f"({expr} = ?)"
    if isinstance(predicate, AnyOf):
        return _lower_any_of(predicate, params)
    if isinstance(predicate, Range):
        return _lower_range(predicate, params)
    if isinstance(predicate, TextMatch):
        term = predicate.term.lower()
        parts = []
        for name in predicate.fields:
            spec = field_spec(name)
            if spec.many:
                parts.append(
                    f"EXISTS (SELECT 1 FROM json_each(doc, '{spec.json_path}') "
                    f"WHERE instr(lower(value), ?) > 0)"
                )
            else:
                parts.append(f"(instr(lower(COALESCE({spec.sql()}, '')), ?) > 0)")
            params.append(term)
        return "(" + " OR ".join(parts) + ")"
    if isinstance(predicate, GeoWithin):
        params.extend([predicate.lat, predicate.lng, predicate.radius_km])
        return (
            "(geo_distance_km(?, ?, json_extract(doc, '$.location.lat'), "
            "json_extract(doc, '$.location.lng')) <= ?)"
        )
    msg = f"Unknown predicate node: {type(predicate).__name__}"
    raise TypeError(msg)


def _lower_any_of(predicate: AnyOf, params: list[Any]) -> str:
    spec = field_spec(predicate.field)
    values = [_bind(v, spec, predicate.ignore_case) for v in predicate.values]
    if not values:
        return "0"
    expr = "value" if spec.many else spec.sql()
    if predicate.ignore_case:
        expr = f"lower({expr})"
    if predicate.substring:
        condition = " OR ".join(f"instr({expr}, ?) > 0" for _ in values)
    else:
        condition = f"{expr} IN ({', '.join('?' for _ in values)})"
    params.extend(values)
    if spec.many:
        return f"EXISTS (SELECT 1 FROM json_each(doc, '{spec.json_path}') WHERE {condition})"
    return f"({condition})"


def _lower_range(predicate: Range, params: list[Any]) -> str:
    spec = field_spec(predicate.field)
    expr = spec.sql()
    parts = []
    for op, bound in ((">", predicate.gt), (">=", predicate.gte),
                      ("<", predicate.lt), ("<=", predicate.lte)):
        if bound is not None:
            parts.append(f"{expr} {op} ?")
            params.append(_bind(bound, spec, False))
    if not parts:
        return f"({expr} IS NOT NULL)"
    return "(" + " AND ".join(parts) + ")"


def _bind(value: Any, spec: FieldSpec, ignore_case: bool) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return value.timestamp()
    if ignore_case and isinstance(value, str):
        return value.lower()
    return value

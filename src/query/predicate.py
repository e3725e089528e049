"""Store-agnostic predicate tree.

Nodes are immutable values. Backends (``src.query.evaluate`` for in-process
records, ``src.query.sql`` for SQLite) interpret the same tree; the compiler
never emits a store query string.

Field names are dotted paths into ``CandidateRecord`` (``salary.min``,
``company.name``). ``src.query.fields`` lists the ones backends understand.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union


@dataclass(frozen=True)
class Eq:
    field: str
    value: Any
    ignore_case: bool = False


@dataclass(frozen=True)
class AnyOf:
    """Field (scalar or list-valued) matches at least one of ``values``.

    With ``substring`` a value matches when it is contained in the field.
    """

    field: str
    values: tuple[Any, ...]
    ignore_case: bool = False
    substring: bool = False


@dataclass(frozen=True)
class Range:
    """Bounded comparison; missing field values never match."""

    field: str
    gt: float | datetime | None = None
    gte: float | datetime | None = None
    lt: float | datetime | None = None
    lte: float | datetime | None = None


@dataclass(frozen=True)
class TextMatch:
    """Case-insensitive substring of ``term`` in any of ``fields``."""

    fields: tuple[str, ...]
    term: str


@dataclass(frozen=True)
class GeoWithin:
    """Job coordinates within ``radius_km`` of a center (spherical distance)."""

    lat: float
    lng: float
    radius_km: float


@dataclass(frozen=True)
class And:
    clauses: tuple["Predicate", ...]


@dataclass(frozen=True)
class Or:
    clauses: tuple["Predicate", ...]


@dataclass(frozen=True)
class Not:
    clause: "Predicate"


@dataclass(frozen=True)
class Should:
    """Optional clause: always matches, but a match raises the text score."""

    clause: "Predicate"
    boost: float = 25.0


Predicate = Union[Eq, AnyOf, Range, TextMatch, GeoWithin, And, Or, Not, Should]

MATCH_ALL = And(clauses=())


def iter_nodes(predicate: Predicate):
    """Yield every node of the tree, depth first."""
    yield predicate
    if isinstance(predicate, (And, Or)):
        for clause in predicate.clauses:
            yield from iter_nodes(clause)
    elif isinstance(predicate, (Not, Should)):
        yield from iter_nodes(predicate.clause)


def should_clauses(predicate: Predicate) -> list[Should]:
    return [node for node in iter_nodes(predicate) if isinstance(node, Should)]


def describe(predicate: Predicate) -> str:
    """Compact human-readable form, used by ``--dry-run`` and debug logs."""
    if isinstance(predicate, And):
        if not predicate.clauses:
            return "TRUE"
        return "(" + " AND ".join(describe(c) for c in predicate.clauses) + ")"
    if isinstance(predicate, Or):
        return "(" + " OR ".join(describe(c) for c in predicate.clauses) + ")"
    if isinstance(predicate, Not):
        return f"NOT {describe(predicate.clause)}"
    if isinstance(predicate, Should):
        return f"SHOULD[{predicate.boost:g}] {describe(predicate.clause)}"
    if isinstance(predicate, Eq):
        return f"{predicate.field} = {predicate.value!r}"
    if isinstance(predicate, AnyOf):
        op = "CONTAINS ANY" if predicate.substring else "IN"
        return f"{predicate.field} {op} {list(predicate.values)!r}"
    if isinstance(predicate, Range):
        parts = []
        for op, bound in ((">", predicate.gt), (">=", predicate.gte),
                          ("<", predicate.lt), ("<=", predicate.lte)):
            if bound is not None:
                value = bound.isoformat() if isinstance(bound, datetime) else bound
                parts.append(f"{predicate.field} {op} {value}")
        return " AND ".join(parts)
    if isinstance(predicate, TextMatch):
        return f"TEXT({','.join(predicate.fields)}) ~ {predicate.term!r}"
    if isinstance(predicate, GeoWithin):
        return f"GEO({predicate.lat}, {predicate.lng}) <= {predicate.radius_km}km"
    msg = f"Unknown predicate node: {type(predicate).__name__}"
    raise TypeError(msg)

"""Registry of filterable/sortable record fields shared by both backends."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.core.schemas import CandidateRecord


@dataclass(frozen=True)
class FieldSpec:
    """One dotted record path.

    ``column`` names a dedicated SQLite column; otherwise the value is read
    from the JSON document at ``$.<name>``. ``many`` marks list-valued fields.
    """

    name: str
    many: bool = False
    timestamp: bool = False
    column: str | None = None

    @property
    def json_path(self) -> str:
        return "$." + self.name

    def sql(self) -> str:
        if self.column:
            return self.column
        return f"json_extract(doc, '{self.json_path}')"


FIELDS: dict[str, FieldSpec] = {
    spec.name: spec
    for spec in (
        FieldSpec("job_id", column="job_id"),
        FieldSpec("title"),
        FieldSpec("description"),
        FieldSpec("status"),
        FieldSpec("is_deleted"),
        FieldSpec("job_type"),
        FieldSpec("skills", many=True),
        FieldSpec("benefits", many=True),
        FieldSpec("features", many=True),
        FieldSpec("diversity_tags", many=True),
        FieldSpec("posted_at", timestamp=True, column="posted_ts"),
        FieldSpec("expires_at", timestamp=True, column="expires_ts"),
        FieldSpec("company.id"),
        FieldSpec("company.name"),
        FieldSpec("company.rating"),
        FieldSpec("company.size"),
        FieldSpec("company.type"),
        FieldSpec("location.city"),
        FieldSpec("location.state"),
        FieldSpec("location.country"),
        FieldSpec("location.remote"),
        FieldSpec("location.work_mode"),
        FieldSpec("salary.min"),
        FieldSpec("salary.max"),
        FieldSpec("salary.currency"),
        FieldSpec("salary.disclosed"),
        FieldSpec("experience.min"),
        FieldSpec("experience.max"),
        FieldSpec("experience.level"),
        FieldSpec("applications_count"),
        FieldSpec("views_count"),
        FieldSpec("shares_count"),
        FieldSpec("featured"),
        FieldSpec("urgent"),
        FieldSpec("text_score", column="text_score"),
    )
}


@dataclass(frozen=True)
class SortKey:
    """One store ordering key. Missing values always sort last."""

    field: str
    descending: bool = True
    ignore_case: bool = False


def field_spec(name: str) -> FieldSpec:
    try:
        return FIELDS[name]
    except KeyError:
        msg = f"Unknown record field: {name}"
        raise ValueError(msg) from None


def get_value(record: CandidateRecord, name: str) -> Any:
    """Resolve a dotted path against a record."""
    field_spec(name)
    value: Any = record
    for part in name.split("."):
        value = getattr(value, part, None)
        if value is None:
            return None
    return value


def to_timestamp(value: datetime | None) -> float | None:
    return value.timestamp() if value is not None else None

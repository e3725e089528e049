"""Filter normalizer: raw request parameters -> FilterCriteria / SortSpec.

The raw schema is closed (unknown keys are violations) and every violation is
collected before raising, so a caller sees the whole list at once.

Canonical form: strings trimmed with inner whitespace collapsed, list values
de-duplicated case-insensitively and sorted. Normalizing an already
normalized value (``normalize(criteria)``) returns an equal value.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from src.core.config import FilterConfig
from src.core.errors import FilterValidationError
from src.core.schemas import (
    CUSTOM_FIELDS,
    STRATEGIES,
    CompanyFilter,
    ExperienceFilter,
    FilterCriteria,
    GeoRadius,
    LocationFilter,
    SalaryFilter,
    SortSpec,
    WeightedCriterion,
)

logger = logging.getLogger(__name__)

SORT_KEYS = frozenset(
    {"sortBy", "sortOrder", "userLat", "userLng", "userSkills", "userExperience", "criteria"}
)
OPTION_KEYS = frozenset({"includeFacets"})

MAX_RADIUS_KM = 500.0

ShortText = Annotated[str, StringConstraints(strip_whitespace=True, max_length=50)]
CompanyId = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]

WorkMode = Literal["remote", "hybrid", "onsite"]
JobType = Literal["full-time", "part-time", "contract", "internship", "temporary", "freelance"]
ExperienceLevel = Literal[
    "fresher", "entry-level", "mid-level", "senior-level", "lead",
    "manager", "director", "vp", "c-level",
]
CompanySize = Literal["startup", "1-10", "11-50", "51-200", "201-500", "501-1000", "1000+"]
CompanyType = Literal["startup", "mnc", "public", "private", "non-profit", "government"]
SalaryPreset = Literal["0-3L", "3L-6L", "6L-10L", "10L-15L", "15L-25L", "25L-50L", "50L+"]
DatePosted = Literal["any", "past-24h", "past-week", "past-month", "past-3-months"]
Benefit = Literal[
    "health-insurance", "dental-insurance", "life-insurance",
    "pf-esi", "gratuity", "bonus", "stock-options", "esop",
    "flexible-hours", "work-from-home", "hybrid-work",
    "paid-leave", "maternity-leave", "paternity-leave",
    "learning-budget", "certification-support", "conference-budget",
    "gym-membership", "meal-allowance", "transport-allowance",
    "mobile-allowance", "internet-allowance", "laptop-provided",
    "free-snacks", "team-outings", "flexible-vacation",
]
JobFeature = Literal[
    "easy-apply", "quick-apply", "actively-recruiting", "urgent-hiring",
    "few-applicants", "recently-posted", "promoted-job", "featured-job",
    "verified-company", "background-check-required", "reference-check-required",
    "portfolio-required", "github-required", "assessment-required",
]
DiversityTag = Literal[
    "women-friendly", "lgbtq-friendly", "disability-friendly",
    "veteran-friendly", "equal-opportunity", "diverse-leadership",
    "women-led", "minority-led", "inclusive-culture",
]

_ENUM_LISTS = (
    "work_mode", "job_type", "experience_level", "company_size",
    "company_type", "benefits", "job_features", "diversity_tags",
)
_TEXT_LISTS = ("city", "state", "company_ids", "skills")


def _split_csv(value: Any) -> Any:
    """Accept "a,b" query-string lists as well as real lists."""
    if isinstance(value, str):
        return [part for part in value.split(",") if part.strip()]
    return value


class _FilterInput(BaseModel):
    """Closed raw filter schema (camelCase keys)."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel)

    q: str = Field(default="", max_length=200)
    exact_phrase: bool = False
    exclude_words: str = Field(default="", max_length=200)

    city: list[ShortText] = Field(default_factory=list, max_length=5)
    state: list[ShortText] = Field(default_factory=list, max_length=3)
    country: str | None = Field(default=None, max_length=50)
    remote: bool | None = None
    work_mode: list[WorkMode] = Field(default_factory=list)
    near_me: str | None = None

    min_salary: int | None = Field(default=None, ge=0, le=10_000_000)
    max_salary: int | None = Field(default=None, ge=0, le=10_000_000)
    salary_range: SalaryPreset | None = None
    currency: Literal["INR", "USD", "EUR", "GBP"] = "INR"
    show_salary: bool = False

    job_type: list[JobType] = Field(default_factory=list)
    experience_level: list[ExperienceLevel] = Field(default_factory=list)
    min_experience: float | None = Field(default=None, ge=0, le=50)
    max_experience: float | None = Field(default=None, ge=0, le=50)

    company_ids: list[CompanyId] = Field(default_factory=list, max_length=20)
    company_size: list[CompanySize] = Field(default_factory=list)
    company_type: list[CompanyType] = Field(default_factory=list)
    company_rating: float | None = Field(default=None, ge=1, le=5)

    skills: list[ShortText] = Field(default_factory=list, max_length=10)
    date_posted: DatePosted = "any"
    benefits: list[Benefit] = Field(default_factory=list)
    job_features: list[JobFeature] = Field(default_factory=list)
    diversity_tags: list[DiversityTag] = Field(default_factory=list)

    page: int = Field(default=1, ge=1)
    limit: int | None = Field(default=None, ge=1)
    include_expired: bool = False

    @field_validator(*_ENUM_LISTS, mode="before")
    @classmethod
    def enum_lists_lowered(cls, v: Any) -> Any:
        v = _split_csv(v)
        if isinstance(v, list):
            return [item.strip().lower() if isinstance(item, str) else item for item in v]
        return v

    @field_validator(*_TEXT_LISTS, mode="before")
    @classmethod
    def text_lists_split(cls, v: Any) -> Any:
        return _split_csv(v)

    @field_validator("currency", "date_posted", mode="before")
    @classmethod
    def enum_stripped(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class _CriterionInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    field: str = Field(min_length=1, max_length=50)
    weight: float = Field(ge=-100, le=100)


class _SortInput(BaseModel):
    """Closed raw sort schema (camelCase keys)."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel)

    sort_by: Literal[STRATEGIES] | None = None  # type: ignore[valid-type]
    sort_order: Literal["asc", "desc"] = "desc"
    user_lat: float | None = Field(default=None, ge=-90, le=90)
    user_lng: float | None = Field(default=None, ge=-180, le=180)
    user_skills: list[ShortText] = Field(default_factory=list, max_length=50)
    user_experience: float | None = Field(default=None, ge=0, le=50)
    criteria: list[_CriterionInput] = Field(default_factory=list, max_length=10)

    @field_validator("sort_by", "sort_order", mode="before")
    @classmethod
    def lowered(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("user_skills", mode="before")
    @classmethod
    def skills_split(cls, v: Any) -> Any:
        return _split_csv(v)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def split_request(raw: Mapping[str, Any]) -> tuple[dict[str, Any], dict[str, Any], dict[str, Any]]:
    """Split a combined request mapping into (filters, sort, options)."""
    filters: dict[str, Any] = {}
    sort: dict[str, Any] = {}
    options: dict[str, Any] = {}
    for key, value in raw.items():
        if key in SORT_KEYS:
            sort[key] = value
        elif key in OPTION_KEYS:
            options[key] = value
        else:
            filters[key] = value
    return filters, sort, options


def normalize(
    raw: Mapping[str, Any] | FilterCriteria,
    config: FilterConfig | None = None,
) -> FilterCriteria:
    """Validate and canonicalize raw filter input.

    Raises:
        FilterValidationError: listing every violated constraint.
    """
    config = config or FilterConfig()
    if isinstance(raw, FilterCriteria):
        raw = raw.to_raw()
    raw = dict(raw)

    violations: list[dict[str, str]] = []
    try:
        parsed = _FilterInput.model_validate(raw)
    except ValidationError as exc:
        violations.extend(_violations_from(exc))
        parsed = None
    violations.extend(_cross_field_violations(raw, config))

    if parsed is None or violations:
        violations = _dedupe(violations)
        logger.debug("Rejected filter input with %d violations", len(violations))
        raise FilterValidationError(violations)

    return _build_criteria(parsed, config)


def normalize_sort(raw: Mapping[str, Any]) -> SortSpec:
    """Validate sort input and enforce strategy-specific requirements.

    Raises:
        FilterValidationError: listing every violated constraint.
    """
    raw = dict(raw)
    violations: list[dict[str, str]] = []
    parsed: _SortInput | None = None
    try:
        parsed = _SortInput.model_validate(raw)
    except ValidationError as exc:
        violations.extend(_violations_from(exc))

    if parsed is not None:
        strategy = parsed.sort_by or "relevance"
        if strategy == "distance":
            if parsed.user_lat is None:
                violations.append(_violation("userLat", "required for distance sort"))
            if parsed.user_lng is None:
                violations.append(_violation("userLng", "required for distance sort"))
        if strategy == "custom":
            if not parsed.criteria:
                violations.append(_violation("criteria", "required for custom sort"))
            for i, criterion in enumerate(parsed.criteria):
                name = criterion.field.strip().lower()
                if name not in CUSTOM_FIELDS:
                    violations.append(_violation(
                        f"criteria[{i}].field",
                        f"unknown field '{criterion.field}', expected one of {list(CUSTOM_FIELDS)}",
                    ))

    if parsed is None or violations:
        raise FilterValidationError(_dedupe(violations))

    return SortSpec(
        strategy=parsed.sort_by or "relevance",
        order=parsed.sort_order,
        user_lat=parsed.user_lat,
        user_lng=parsed.user_lng,
        user_skills=_canonical(parsed.user_skills),
        user_experience=parsed.user_experience,
        criteria=tuple(
            WeightedCriterion(field=c.field.strip().lower(), weight=c.weight)
            for c in parsed.criteria
        ),
        explicit=parsed.sort_by is not None,
    )


class RequestOptions(BaseModel):
    """Per-request switches that are neither filters nor sort parameters."""

    model_config = ConfigDict(
        frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True,
    )

    include_facets: bool = False


def normalize_options(raw: Mapping[str, Any]) -> RequestOptions:
    try:
        return RequestOptions.model_validate(dict(raw))
    except ValidationError as exc:
        raise FilterValidationError(_dedupe(_violations_from(exc))) from exc


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _build_criteria(parsed: _FilterInput, config: FilterConfig) -> FilterCriteria:
    near = _parse_near(parsed.near_me) if parsed.near_me else None
    country = _collapse(parsed.country or "") or config.home_country
    return FilterCriteria(
        query=_collapse(parsed.q),
        exact_phrase=parsed.exact_phrase,
        exclude_words=_collapse(parsed.exclude_words),
        location=LocationFilter(
            cities=_canonical(parsed.city),
            states=_canonical(parsed.state),
            country=country,
            remote=parsed.remote,
            work_modes=_canonical(parsed.work_mode),
            near=near,
        ),
        salary=SalaryFilter(
            min=parsed.min_salary,
            max=parsed.max_salary,
            currency=parsed.currency,
            preset=parsed.salary_range,
            disclosed_only=parsed.show_salary,
        ),
        job_types=_canonical(parsed.job_type),
        experience=ExperienceFilter(
            min=parsed.min_experience,
            max=parsed.max_experience,
            levels=_canonical(parsed.experience_level),
        ),
        company=CompanyFilter(
            ids=tuple(sorted(set(parsed.company_ids))),
            sizes=_canonical(parsed.company_size),
            types=_canonical(parsed.company_type),
            min_rating=parsed.company_rating,
        ),
        skills=_canonical(parsed.skills),
        date_posted=parsed.date_posted,
        benefits=_canonical(parsed.benefits),
        features=_canonical(parsed.job_features),
        diversity_tags=_canonical(parsed.diversity_tags),
        page=parsed.page,
        limit=parsed.limit or config.default_limit,
        include_expired=parsed.include_expired,
    )


def _cross_field_violations(raw: Mapping[str, Any], config: FilterConfig) -> list[dict[str, str]]:
    """Checks spanning several fields, evaluated on whatever parses."""
    violations: list[dict[str, str]] = []

    min_salary = _as_number(raw.get("minSalary"))
    max_salary = _as_number(raw.get("maxSalary"))
    if min_salary is not None and max_salary is not None and min_salary > max_salary:
        violations.append(_violation("maxSalary", "must be greater than or equal to minSalary"))
    if raw.get("salaryRange") is not None and (
        raw.get("minSalary") is not None or raw.get("maxSalary") is not None
    ):
        violations.append(_violation("salaryRange", "cannot be combined with minSalary/maxSalary"))

    min_exp = _as_number(raw.get("minExperience"))
    max_exp = _as_number(raw.get("maxExperience"))
    if min_exp is not None and max_exp is not None and min_exp > max_exp:
        violations.append(
            _violation("maxExperience", "must be greater than or equal to minExperience")
        )

    near = raw.get("nearMe")
    if isinstance(near, str) and near.strip():
        violations.extend(_near_violations(near))

    page = _as_number(raw.get("page"))
    if page is not None and page > config.max_page:
        violations.append(_violation("page", f"must be at most {config.max_page}"))
    limit = _as_number(raw.get("limit"))
    if limit is not None and limit > config.max_limit:
        violations.append(_violation("limit", f"must be at most {config.max_limit}"))

    return violations


def _near_violations(value: str) -> list[dict[str, str]]:
    parts = [_as_number(p) for p in value.split(",")]
    if len(parts) != 3 or any(p is None for p in parts):
        return [_violation("nearMe", "expected 'lat,lng,radiusKm'")]
    lat, lng, radius = parts
    violations = []
    if not -90 <= lat <= 90:  # type: ignore[operator]
        violations.append(_violation("nearMe", "latitude must be within [-90, 90]"))
    if not -180 <= lng <= 180:  # type: ignore[operator]
        violations.append(_violation("nearMe", "longitude must be within [-180, 180]"))
    if not 0 < radius <= MAX_RADIUS_KM:  # type: ignore[operator]
        violations.append(_violation("nearMe", f"radius must be within (0, {MAX_RADIUS_KM:g}] km"))
    return violations


def _parse_near(value: str) -> GeoRadius:
    lat, lng, radius = (float(p) for p in value.split(","))
    return GeoRadius(lat=lat, lng=lng, radius_km=radius)


def _violations_from(exc: ValidationError) -> list[dict[str, str]]:
    violations = []
    for error in exc.errors():
        loc = error.get("loc", ())
        field = ""
        for part in loc:
            field += f"[{part}]" if isinstance(part, int) else (f".{part}" if field else str(part))
        violations.append(_violation(field or "input", error["msg"]))
    return violations


def _violation(field: str, message: str) -> dict[str, str]:
    return {"field": field, "message": message}


def _dedupe(violations: list[dict[str, str]]) -> list[dict[str, str]]:
    seen: set[tuple[str, str]] = set()
    result = []
    for v in violations:
        key = (v["field"], v["message"])
        if key not in seen:
            seen.add(key)
            result.append(v)
    return result


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _collapse(text: str) -> str:
    return " ".join(text.split())


def _canonical(values: Iterable[str]) -> tuple[str, ...]:
    """Lower-case, collapse whitespace, drop empties and duplicates, sort."""
    return tuple(sorted({_collapse(v).lower() for v in values if _collapse(v)}))

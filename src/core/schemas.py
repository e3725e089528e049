"""Core data models for the ranking engine.

Every model is frozen: criteria and records are built once per request and
shared read-only between the compiler, the coordinator, and the cache.
"""

import json
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

STRATEGIES = (
    "relevance",
    "date",
    "salary-high",
    "salary-low",
    "company-rating",
    "applications",
    "views",
    "trending",
    "match-score",
    "distance",
    "urgency",
    "experience-match",
    "alphabetical",
    "featured",
    "custom",
)

CUSTOM_FIELDS = ("salary", "recency", "rating", "applications", "views")


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so comparisons never mix naive and aware."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Filter criteria
# ---------------------------------------------------------------------------


class GeoRadius(BaseModel):
    """A center point plus radius in kilometers."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float
    radius_km: float

    def to_raw(self) -> str:
        return f"{self.lat!r},{self.lng!r},{self.radius_km!r}"


class LocationFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    cities: tuple[str, ...] = ()
    states: tuple[str, ...] = ()
    country: str | None = None
    remote: bool | None = None
    work_modes: tuple[str, ...] = ()
    near: GeoRadius | None = None


class SalaryFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: int | None = None
    max: int | None = None
    currency: str = "INR"
    preset: str | None = None
    disclosed_only: bool = False


class ExperienceFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float | None = None
    max: float | None = None
    levels: tuple[str, ...] = ()


class CompanyFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    ids: tuple[str, ...] = ()
    sizes: tuple[str, ...] = ()
    types: tuple[str, ...] = ()
    min_rating: float | None = None


class FilterCriteria(BaseModel):
    """Normalized, validated filter input for one search request.

    Produced only by ``src.filters.normalizer.normalize``; ``to_raw`` emits
    the raw request form so that normalizing twice is a no-op.
    """

    model_config = ConfigDict(frozen=True)

    query: str = ""
    exact_phrase: bool = False
    exclude_words: str = ""
    location: LocationFilter = Field(default_factory=LocationFilter)
    salary: SalaryFilter = Field(default_factory=SalaryFilter)
    job_types: tuple[str, ...] = ()
    experience: ExperienceFilter = Field(default_factory=ExperienceFilter)
    company: CompanyFilter = Field(default_factory=CompanyFilter)
    skills: tuple[str, ...] = ()
    date_posted: str = "any"
    benefits: tuple[str, ...] = ()
    features: tuple[str, ...] = ()
    diversity_tags: tuple[str, ...] = ()
    page: int = 1
    limit: int = 20
    include_expired: bool = False

    def to_raw(self) -> dict[str, Any]:
        """Return the raw request mapping that normalizes back to this value."""
        raw: dict[str, Any] = {
            "q": self.query,
            "exactPhrase": self.exact_phrase,
            "excludeWords": self.exclude_words,
            "city": list(self.location.cities),
            "state": list(self.location.states),
            "workMode": list(self.location.work_modes),
            "currency": self.salary.currency,
            "showSalary": self.salary.disclosed_only,
            "jobType": list(self.job_types),
            "experienceLevel": list(self.experience.levels),
            "companyIds": list(self.company.ids),
            "companySize": list(self.company.sizes),
            "companyType": list(self.company.types),
            "skills": list(self.skills),
            "datePosted": self.date_posted,
            "benefits": list(self.benefits),
            "jobFeatures": list(self.features),
            "diversityTags": list(self.diversity_tags),
            "page": self.page,
            "limit": self.limit,
            "includeExpired": self.include_expired,
        }
        optional = {
            "country": self.location.country,
            "remote": self.location.remote,
            "nearMe": self.location.near.to_raw() if self.location.near else None,
            "minSalary": self.salary.min,
            "maxSalary": self.salary.max,
            "salaryRange": self.salary.preset,
            "minExperience": self.experience.min,
            "maxExperience": self.experience.max,
            "companyRating": self.company.min_rating,
        }
        raw.update({k: v for k, v in optional.items() if v is not None})
        return raw

    def canonical_json(self) -> str:
        """Stable JSON form used for cache keys."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))

    def active_filters(self) -> dict[str, Any]:
        """Raw filters that differ from an empty request (pagination excluded)."""
        defaults = FilterCriteria(location=LocationFilter(country=self.location.country)).to_raw()
        return {
            key: value
            for key, value in self.to_raw().items()
            if key not in ("page", "limit") and defaults.get(key) != value
        }


# ---------------------------------------------------------------------------
# Sort spec
# ---------------------------------------------------------------------------


class WeightedCriterion(BaseModel):
    """One term of a user-composed weighted sort."""

    model_config = ConfigDict(frozen=True)

    field: str
    weight: float


class SortSpec(BaseModel):
    """Strategy, direction, and strategy-specific parameters."""

    model_config = ConfigDict(frozen=True)

    strategy: str = "relevance"
    order: str = "desc"
    user_lat: float | None = None
    user_lng: float | None = None
    user_skills: tuple[str, ...] = ()
    user_experience: float | None = None
    criteria: tuple[WeightedCriterion, ...] = ()
    explicit: bool = False

    def cache_params(self) -> dict[str, Any]:
        """Parameters that change the ranking, for cache key derivation."""
        return self.model_dump(mode="json", exclude={"explicit"})


# ---------------------------------------------------------------------------
# Candidate records
# ---------------------------------------------------------------------------


class CompanySummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = ""
    rating: float | None = None
    size: str | None = None
    type: str | None = None


class JobLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    city: str = ""
    state: str = ""
    country: str = ""
    remote: bool = False
    work_mode: str | None = None
    lat: float | None = None
    lng: float | None = None


class SalaryInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float | None = None
    max: float | None = None
    currency: str = "INR"
    disclosed: bool = True


class ExperienceInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float | None = None
    max: float | None = None
    level: str | None = None


class CandidateRecord(BaseModel):
    """Read-only projection of a job posting, owned by the job store."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    title: str
    description: str = ""
    company: CompanySummary = Field(default_factory=CompanySummary)
    location: JobLocation = Field(default_factory=JobLocation)
    salary: SalaryInfo = Field(default_factory=SalaryInfo)
    job_type: str = ""
    experience: ExperienceInfo = Field(default_factory=ExperienceInfo)
    skills: tuple[str, ...] = ()
    benefits: tuple[str, ...] = ()
    features: tuple[str, ...] = ()
    diversity_tags: tuple[str, ...] = ()
    posted_at: datetime | None = None
    expires_at: datetime | None = None
    status: str = "active"
    is_deleted: bool = False
    applications_count: int = 0
    views_count: int = 0
    shares_count: int = 0
    featured: bool = False
    urgent: bool = False
    text_score: float | None = None

    @field_validator("posted_at", "expires_at")
    @classmethod
    def timestamps_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)


class ScoreResult(BaseModel):
    """Score of one candidate under one strategy."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    primary_score: float
    tiebreak_timestamp: datetime | None = None


# ---------------------------------------------------------------------------
# Personalization
# ---------------------------------------------------------------------------


class UserSignal(BaseModel):
    """Preference signals supplied by the user-profile collaborator."""

    model_config = ConfigDict(frozen=True)

    top_skills: tuple[str, ...] = ()
    top_locations: tuple[str, ...] = ()
    preferred_job_types: tuple[str, ...] = ()
    preferred_resume_id: str | None = None


class PersonalizationResult(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    score: float = Field(ge=0.0, le=100.0)
    reasons: tuple[str, ...] = ()

    @property
    def reason_text(self) -> str:
        return " • ".join(self.reasons)


# ---------------------------------------------------------------------------
# Ranked output
# ---------------------------------------------------------------------------


class RankedItem(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    job: CandidateRecord
    score: float | None = None
    personalization: PersonalizationResult | None = None


class PaginationMeta(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class RankedPage(BaseModel):
    """Output of the ranking coordinator: one page plus its total."""

    model_config = ConfigDict(frozen=True)

    items: tuple[RankedItem, ...]
    pagination: PaginationMeta
    excluded: int = 0


class SortMeta(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    strategy: str
    order: str
    cached: bool = False
    description: str = ""


class AppliedFilters(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    count: int = 0
    active: dict[str, Any] = Field(default_factory=dict)


class FacetBucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    count: int


class PageResult(BaseModel):
    """Response page: items, pagination, sort metadata, and extras."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    items: tuple[RankedItem, ...] = ()
    pagination: PaginationMeta
    sort_meta: SortMeta
    applied_filters: AppliedFilters = Field(default_factory=AppliedFilters)
    facets: dict[str, tuple[FacetBucket, ...]] | None = None

    def with_cached(self, cached: bool) -> "PageResult":
        return self.model_copy(
            update={"sort_meta": self.sort_meta.model_copy(update={"cached": cached})}
        )

    def to_response(self) -> dict[str, Any]:
        """Plain camelCase mapping for the request surface."""
        return self.model_dump(mode="json", by_alias=True)

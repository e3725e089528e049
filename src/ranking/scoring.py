"""Scoring library and the strategy registry.

Store-ordered strategies (relevance, date, salary, counters) are expressed as
store sort keys. Computed strategies are pure functions
``(CandidateRecord, ScoringContext) -> float``; higher is better except for
``distance``.
A scorer raises ComputationError when a candidate cannot be scored under its
strategy; the coordinator excludes such candidates.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from src.core.errors import ComputationError
from src.core.schemas import CandidateRecord, SortSpec
from src.query.fields import SortKey

SECONDS_PER_DAY = 86400.0
KM_PER_DEGREE = 111.0

URGENCY_BUCKETS = ((24.0, 100.0), (72.0, 80.0), (168.0, 60.0))
URGENCY_DEFAULT = 20.0

MATCH_NO_USER_SKILLS = 50.0

EXPERIENCE_IN_RANGE = 100.0
EXPERIENCE_ABOVE = 80.0
EXPERIENCE_BELOW = 60.0
EXPERIENCE_NO_DATA = 30.0


@dataclass(frozen=True)
class ScoringContext:
    """Sort parameters plus the per-request snapshot time."""

    sort: SortSpec
    now: datetime


Scorer = Callable[[CandidateRecord, ScoringContext], float]


def days_since_posted(record: CandidateRecord, now: datetime) -> float | None:
    if record.posted_at is None:
        return None
    return (now - record.posted_at).total_seconds() / SECONDS_PER_DAY


def hours_to_deadline(record: CandidateRecord, now: datetime) -> float | None:
    if record.expires_at is None:
        return None
    return (record.expires_at - now).total_seconds() / 3600.0


# ---------------------------------------------------------------------------
# Computed strategies
# ---------------------------------------------------------------------------


def trending_score(record: CandidateRecord, ctx: ScoringContext) -> float:
    """Engagement weighted by an exponential decay with a two-day scale."""
    days = days_since_posted(record, ctx.now)
    if days is None:
        raise ComputationError(record.job_id, "trending", "no posting date")
    apps = record.applications_count
    views = record.views_count
    engagement = apps * 3 + views + record.shares_count * 5 + (apps / max(views, 1)) * 100
    return engagement * math.exp(-max(days, 0.0) / 2)


def distance_km(record: CandidateRecord, ctx: ScoringContext) -> float:
    """Flat-earth approximation, good enough for ordering nearby jobs."""
    lat1, lng1 = ctx.sort.user_lat, ctx.sort.user_lng
    lat2, lng2 = record.location.lat, record.location.lng
    if lat1 is None or lng1 is None:
        raise ComputationError(record.job_id, "distance", "no user coordinates")
    if lat2 is None or lng2 is None:
        raise ComputationError(record.job_id, "distance", "job has no coordinates")
    dx = (lat1 - lat2) * KM_PER_DEGREE
    dy = (lng1 - lng2) * KM_PER_DEGREE * math.cos(lat1 * math.pi / 180)
    return math.sqrt(dx * dx + dy * dy)


def urgency_score(record: CandidateRecord, ctx: ScoringContext) -> float:
    hours = hours_to_deadline(record, ctx.now)
    if hours is None:
        raise ComputationError(record.job_id, "urgency", "no application deadline")
    if hours <= 0:
        raise ComputationError(record.job_id, "urgency", "deadline has passed")
    for ceiling, score in URGENCY_BUCKETS:
        if hours <= ceiling:
            return score
    return URGENCY_DEFAULT


def match_score(record: CandidateRecord, ctx: ScoringContext) -> float:
    """Share of the job's skills the user has, as a percentage."""
    user = {s.lower() for s in ctx.sort.user_skills}
    if not user:
        return MATCH_NO_USER_SKILLS
    job = {s.lower() for s in record.skills}
    return len(job & user) / max(len(job), 1) * 100


def experience_match_score(record: CandidateRecord, ctx: ScoringContext) -> float:
    years = ctx.sort.user_experience
    exp = record.experience
    if years is None or (exp.min is None and exp.max is None):
        return EXPERIENCE_NO_DATA
    lo = exp.min if exp.min is not None else 0.0
    hi = exp.max if exp.max is not None else math.inf
    if lo <= years <= hi:
        return EXPERIENCE_IN_RANGE
    if years > hi:
        return EXPERIENCE_ABOVE
    return EXPERIENCE_BELOW


def _recency(record: CandidateRecord, now: datetime) -> float:
    days = days_since_posted(record, now)
    if days is None:
        raise ComputationError(record.job_id, "custom", "no posting date")
    return -days


# Closed registry; unknown fields contribute 0.
CUSTOM_NORMALIZERS: dict[str, Callable[[CandidateRecord, datetime], float]] = {
    "salary": lambda r, now: (r.salary.max or r.salary.min or 0.0) / 10_000_000,
    "recency": _recency,
    "rating": lambda r, now: (r.company.rating or 0.0) / 5,
    "applications": lambda r, now: r.applications_count / 1_000,
    "views": lambda r, now: r.views_count / 10_000,
}


def custom_score(record: CandidateRecord, ctx: ScoringContext) -> float:
    total = 0.0
    for criterion in ctx.sort.criteria:
        normalizer = CUSTOM_NORMALIZERS.get(criterion.field)
        if normalizer is not None:
            total += criterion.weight * normalizer(record, ctx.now)
    return total


# ---------------------------------------------------------------------------
# Strategy registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Strategy:
    """How one sort strategy is executed.

    Store-ordered strategies carry ``store_keys`` (best-first); computed ones
    carry a ``scorer`` and whether a higher score ranks first.
    """

    name: str
    description: str
    store_keys: tuple[SortKey, ...] = ()
    scorer: Scorer | None = None
    higher_is_better: bool = True

    @property
    def computed(self) -> bool:
        return self.scorer is not None


TIEBREAK_KEYS = (SortKey("posted_at", descending=True), SortKey("job_id", descending=False))

STRATEGIES: dict[str, Strategy] = {
    s.name: s
    for s in (
        Strategy("relevance", "Search relevance and recency",
                 store_keys=(SortKey("text_score"),)),
        Strategy("date", "Most recent first", store_keys=(SortKey("posted_at"),)),
        Strategy("salary-high", "Highest salary first", store_keys=(SortKey("salary.max"),)),
        Strategy("salary-low", "Lowest salary first",
                 store_keys=(SortKey("salary.min", descending=False),)),
        Strategy("company-rating", "Best rated companies first",
                 store_keys=(SortKey("company.rating"),)),
        Strategy("applications", "Most applied jobs first",
                 store_keys=(SortKey("applications_count"),)),
        Strategy("views", "Most viewed jobs first", store_keys=(SortKey("views_count"),)),
        Strategy("alphabetical", "Alphabetical by title",
                 store_keys=(SortKey("title", descending=False, ignore_case=True),)),
        Strategy("featured", "Featured jobs first",
                 store_keys=(SortKey("featured"), SortKey("urgent"))),
        Strategy("trending", "Trending based on engagement", scorer=trending_score),
        Strategy("match-score", "Best match for your profile", scorer=match_score),
        Strategy("distance", "Closest to your location", scorer=distance_km,
                 higher_is_better=False),
        Strategy("urgency", "Urgent deadlines first", scorer=urgency_score),
        Strategy("experience-match", "Best match for your experience",
                 scorer=experience_match_score),
        Strategy("custom", "Custom weighted ranking", scorer=custom_score),
    )
}


def get_strategy(name: str) -> Strategy:
    try:
        return STRATEGIES[name]
    except KeyError:
        msg = f"Unknown sort strategy: {name}"
        raise ValueError(msg) from None


def sort_description(name: str) -> str:
    strategy = STRATEGIES.get(name)
    return strategy.description if strategy else "Default sorting"

"""Compile normalized FilterCriteria into a store-agnostic predicate tree."""

import logging
from datetime import datetime, timedelta, timezone

from src.core.schemas import FilterCriteria, UserSignal, as_utc
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
    describe,
)

logger = logging.getLogger(__name__)

TEXT_FIELDS = ("title", "description", "skills", "company.name")
EXCLUDE_FIELDS = ("title", "description")

SALARY_PRESETS: dict[str, tuple[int, int | None]] = {
    "0-3L": (0, 300_000),
    "3L-6L": (300_000, 600_000),
    "6L-10L": (600_000, 1_000_000),
    "10L-15L": (1_000_000, 1_500_000),
    "15L-25L": (1_500_000, 2_500_000),
    "25L-50L": (2_500_000, 5_000_000),
    "50L+": (5_000_000, None),
}

DATE_POSTED_DAYS = {
    "past-24h": 1,
    "past-week": 7,
    "past-month": 30,
    "past-3-months": 90,
}

PERSONALIZATION_BOOST = 25.0


def query_terms(query: str, exact_phrase: bool) -> list[str]:
    query = query.strip()
    if not query:
        return []
    return [query] if exact_phrase else query.split()


def compile_criteria(
    criteria: FilterCriteria,
    hint: UserSignal | None = None,
    now: datetime | None = None,
) -> Predicate:
    """Build the conjunctive predicate for ``criteria``.

    ``hint`` contributes an optional clause on preferred skills that raises
    the text score of matching jobs but never filters any out.
    """
    now = as_utc(now) or datetime.now(timezone.utc)
    clauses: list[Predicate] = [
        Eq("status", "active"),
        Eq("is_deleted", False),
    ]
    if not criteria.include_expired:
        # No deadline means the posting never expires.
        clauses.append(Or((Range("expires_at", gt=now), Not(Range("expires_at")))))

    terms = query_terms(criteria.query, criteria.exact_phrase)
    if terms:
        matches = tuple(TextMatch(TEXT_FIELDS, term) for term in terms)
        clauses.append(matches[0] if len(matches) == 1 else Or(matches))
    for word in criteria.exclude_words.split():
        clauses.append(Not(TextMatch(EXCLUDE_FIELDS, word)))

    clauses.extend(_location_clauses(criteria))
    clauses.extend(_salary_clauses(criteria))

    if criteria.job_types:
        clauses.append(AnyOf("job_type", criteria.job_types, ignore_case=True))

    exp = criteria.experience
    if exp.min is not None:
        clauses.append(Range("experience.min", gte=exp.min))
    if exp.max is not None:
        clauses.append(Range("experience.max", lte=exp.max))
    if exp.levels:
        clauses.append(AnyOf("experience.level", exp.levels, ignore_case=True))

    company = criteria.company
    if company.ids:
        clauses.append(AnyOf("company.id", company.ids))
    if company.sizes:
        clauses.append(AnyOf("company.size", company.sizes, ignore_case=True))
    if company.types:
        clauses.append(AnyOf("company.type", company.types, ignore_case=True))
    if company.min_rating is not None:
        clauses.append(Range("company.rating", gte=company.min_rating))

    if criteria.skills:
        clauses.append(AnyOf("skills", criteria.skills, ignore_case=True))

    days = DATE_POSTED_DAYS.get(criteria.date_posted)
    if days is not None:
        clauses.append(Range("posted_at", gte=now - timedelta(days=days)))

    if criteria.benefits:
        clauses.append(AnyOf("benefits", criteria.benefits, ignore_case=True))
    if criteria.features:
        clauses.append(AnyOf("features", criteria.features, ignore_case=True))
    if criteria.diversity_tags:
        clauses.append(AnyOf("diversity_tags", criteria.diversity_tags, ignore_case=True))

    if hint is not None and hint.top_skills:
        clauses.append(Should(
            AnyOf("skills", tuple(s.lower() for s in hint.top_skills), ignore_case=True),
            boost=PERSONALIZATION_BOOST,
        ))

    predicate = And(tuple(clauses))
    logger.debug("Compiled predicate: %s", describe(predicate))
    return predicate


def _location_clauses(criteria: FilterCriteria) -> list[Predicate]:
    loc = criteria.location
    clauses: list[Predicate] = []
    if loc.cities:
        clauses.append(AnyOf("location.city", loc.cities, ignore_case=True))
    if loc.states:
        clauses.append(AnyOf("location.state", loc.states, ignore_case=True))
    if loc.country:
        clauses.append(Eq("location.country", loc.country, ignore_case=True))
    if loc.remote is not None:
        clauses.append(Eq("location.remote", loc.remote))
    if loc.work_modes:
        clauses.append(AnyOf("location.work_mode", loc.work_modes, ignore_case=True))
    if loc.near is not None:
        clauses.append(GeoWithin(loc.near.lat, loc.near.lng, loc.near.radius_km))
    return clauses


def _salary_clauses(criteria: FilterCriteria) -> list[Predicate]:
    salary = criteria.salary
    lo, hi = salary.min, salary.max
    if salary.preset is not None:
        lo, hi = SALARY_PRESETS[salary.preset]

    clauses: list[Predicate] = []
    if lo is not None:
        clauses.append(Range("salary.min", gte=lo))
    if hi is not None:
        clauses.append(Range("salary.max", lte=hi))
    # Currency only narrows results once an amount is being compared.
    if clauses:
        clauses.append(Eq("salary.currency", salary.currency, ignore_case=True))
    if salary.disclosed_only:
        clauses.append(Eq("salary.disclosed", True))
    return clauses

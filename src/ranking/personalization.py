"""Personalization blender: advisory per-user score and reasons for a job."""

from collections.abc import Sequence
from datetime import datetime

from src.core.schemas import CandidateRecord, PersonalizationResult, RankedItem, UserSignal
from src.ranking.scoring import days_since_posted

BASE_SCORE = 50.0
SKILL_WEIGHT = 30.0
LOCATION_BONUS = 15.0
JOB_TYPE_BONUS = 10.0
FRESH_BONUS = 10.0
RECENT_BONUS = 5.0

DEFAULT_REASON = "Recommended based on your profile"


def personalize(record: CandidateRecord, signal: UserSignal, now: datetime) -> PersonalizationResult:
    """Score ``record`` for a user in [0, 100] and explain why."""
    score = BASE_SCORE
    reasons: list[str] = []

    user_skills = [s.lower() for s in signal.top_skills]
    if user_skills:
        matching = [
            skill for skill in record.skills
            if any(u in skill.lower() for u in user_skills)
        ]
        score += SKILL_WEIGHT * len(matching) / len(user_skills)
        if matching:
            reasons.append(f"Matches your skills: {', '.join(matching[:2])}")

    city = record.location.city
    if city and city.lower() in {loc.lower() for loc in signal.top_locations}:
        score += LOCATION_BONUS
        reasons.append(f"In your preferred location: {city}")

    job_type = record.job_type
    if job_type and job_type.lower() in {t.lower() for t in signal.preferred_job_types}:
        score += JOB_TYPE_BONUS
        reasons.append(f"Matches your job type preference: {job_type}")

    days = days_since_posted(record, now)
    if days is not None:
        if days < 7:
            score += FRESH_BONUS
        elif days < 30:
            score += RECENT_BONUS
        if days < 3:
            reasons.append("Recently posted")

    if not reasons:
        reasons.append(DEFAULT_REASON)
    return PersonalizationResult(score=min(max(score, 0.0), 100.0), reasons=tuple(reasons))


def annotate(items: Sequence[RankedItem], signal: UserSignal, now: datetime) -> list[RankedItem]:
    return [
        item.model_copy(update={"personalization": personalize(item.job, signal, now)})
        for item in items
    ]


def rerank(items: Sequence[RankedItem]) -> list[RankedItem]:
    """Stable re-order within a page by personalization score, best first."""
    return sorted(
        items,
        key=lambda item: item.personalization.score if item.personalization else 0.0,
        reverse=True,
    )

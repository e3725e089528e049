"""Reference text relevance score assigned by the job stores.

Both stores compute ``text_score`` through this module so relevance ordering
is identical whichever backend serves the query.
"""

from dataclasses import dataclass, field
from datetime import datetime

from src.core.schemas import CandidateRecord
from src.query.evaluate import matches
from src.query.predicate import Predicate, should_clauses

TITLE_HIT = 50.0
SKILL_HIT = 30.0
COMPANY_HIT = 20.0
DESCRIPTION_HIT = 10.0
EXACT_TITLE = 100.0
FRESHNESS_DAYS = 20.0


@dataclass(frozen=True)
class TextScoring:
    """Query terms plus the snapshot time used for the freshness bonus."""

    query: str = ""
    exact_phrase: bool = False
    now: datetime | None = None
    terms: tuple[str, ...] = field(init=False)

    def __post_init__(self) -> None:
        query = self.query.strip().lower()
        if not query:
            terms: tuple[str, ...] = ()
        elif self.exact_phrase:
            terms = (query,)
        else:
            terms = tuple(query.split())
        object.__setattr__(self, "terms", terms)

    def score(self, record: CandidateRecord) -> float:
        title = record.title.lower()
        description = record.description.lower()
        skills = [s.lower() for s in record.skills]
        query = self.query.strip().lower()

        total = 0.0
        for term in self.terms:
            if term in title:
                total += TITLE_HIT
            if any(term in skill for skill in skills):
                total += SKILL_HIT
            if term in description:
                total += DESCRIPTION_HIT
        if query:
            if query in record.company.name.lower():
                total += COMPANY_HIT
            if title == query:
                total += EXACT_TITLE

        if self.now is not None and record.posted_at is not None:
            days_old = (self.now - record.posted_at).total_seconds() / 86400
            total += max(0.0, FRESHNESS_DAYS - days_old)
        return total


def relevance_score(
    record: CandidateRecord,
    scoring: TextScoring,
    predicate: Predicate | None = None,
) -> float:
    """Text score plus the boost of every optional clause the record matches."""
    total = scoring.score(record)
    if predicate is not None:
        for clause in should_clauses(predicate):
            if matches(clause.clause, record):
                total += clause.boost
    return total

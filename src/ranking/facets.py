"""Facet counts over the records matching a predicate."""

from collections import Counter
from collections.abc import Iterable

from src.core.schemas import CandidateRecord, FacetBucket
from src.query.compiler import SALARY_PRESETS


def salary_bucket(record: CandidateRecord) -> str | None:
    """Preset bucket containing the lower end of the job's salary range."""
    amount = record.salary.min if record.salary.min is not None else record.salary.max
    if amount is None:
        return None
    for name, (lo, hi) in SALARY_PRESETS.items():
        if amount >= lo and (hi is None or amount < hi):
            return name
    return None


def compute_facets(
    records: Iterable[CandidateRecord],
    top_n: int = 10,
) -> dict[str, tuple[FacetBucket, ...]]:
    counters: dict[str, Counter[str]] = {
        "cities": Counter(),
        "companies": Counter(),
        "jobTypes": Counter(),
        "experienceLevels": Counter(),
        "salaryRanges": Counter(),
        "benefits": Counter(),
        "diversityTags": Counter(),
    }
    for r in records:
        if r.location.city:
            counters["cities"][r.location.city] += 1
        if r.company.name:
            counters["companies"][r.company.name] += 1
        if r.job_type:
            counters["jobTypes"][r.job_type] += 1
        if r.experience.level:
            counters["experienceLevels"][r.experience.level] += 1
        bucket = salary_bucket(r)
        if bucket:
            counters["salaryRanges"][bucket] += 1
        counters["benefits"].update(set(r.benefits))
        counters["diversityTags"].update(set(r.diversity_tags))

    return {
        name: tuple(
            FacetBucket(value=value, count=count)
            for value, count in sorted(counter.items(), key=lambda kv: (-kv[1], kv[0]))[:top_n]
        )
        for name, counter in counters.items()
    }

"""Tests for the ranking coordinator: ordering, pagination, exclusions."""

from datetime import datetime, timedelta, timezone

import pytest

from src.core.config import RankingConfig
from src.core.schemas import (
    CandidateRecord,
    JobLocation,
    RankedPage,
    SalaryInfo,
    ScoreResult,
    SortSpec,
    WeightedCriterion,
)
from src.query.predicate import MATCH_ALL
from src.query.text import TextScoring
from src.ranking.coordinator import (
    RankingCoordinator,
    order_scores,
    pagination_meta,
    store_sort_keys,
)
from src.ranking.scoring import get_strategy
from src.storage.memory import InMemoryJobStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _job(job_id: str, days_old: float = 1, **kw: object) -> CandidateRecord:
    defaults: dict[str, object] = {
        "job_id": job_id,
        "title": f"Engineer {job_id}",
        "posted_at": NOW - timedelta(days=days_old),
    }
    defaults.update(kw)
    return CandidateRecord(**defaults)  # type: ignore[arg-type]


def _rank(
    jobs: list[CandidateRecord],
    page: int = 1,
    limit: int = 20,
    config: RankingConfig | None = None,
    text: TextScoring | None = None,
    **sort: object,
) -> RankedPage:
    coordinator = RankingCoordinator(InMemoryJobStore(jobs), config)
    return coordinator.rank(MATCH_ALL, SortSpec(**sort), page, limit, NOW, text)  # type: ignore[arg-type]


def _ids(result: RankedPage) -> list[str]:
    return [item.job.job_id for item in result.items]


class TestPaginationMeta:
    def test_pages_rounded_up(self) -> None:
        meta = pagination_meta(1, 20, 45)
        assert meta.total_pages == 3
        assert meta.has_next is True
        assert meta.has_prev is False

    def test_last_page(self) -> None:
        meta = pagination_meta(3, 20, 45)
        assert meta.has_next is False
        assert meta.has_prev is True

    def test_empty(self) -> None:
        meta = pagination_meta(1, 20, 0)
        assert meta.total_pages == 0
        assert meta.has_next is False


class TestStoreSortKeys:
    def test_desc_keeps_natural_direction(self) -> None:
        keys = store_sort_keys(get_strategy("salary-low"), "desc")
        assert keys[0].field == "salary.min"
        assert keys[0].descending is False

    def test_asc_flips_primary_only(self) -> None:
        keys = store_sort_keys(get_strategy("date"), "asc")
        assert keys[0].descending is False
        assert [(k.field, k.descending) for k in keys[1:]] == [("posted_at", True), ("job_id", False)]


# ---------------------------------------------------------------------------
# Store-ordered strategies
# ---------------------------------------------------------------------------


class TestStoreOrdered:
    def test_date_newest_first(self) -> None:
        jobs = [_job("a", 3), _job("b", 1), _job("c", 2)]
        assert _ids(_rank(jobs, strategy="date")) == ["b", "c", "a"]

    def test_date_ascending(self) -> None:
        jobs = [_job("a", 3), _job("b", 1), _job("c", 2)]
        assert _ids(_rank(jobs, strategy="date", order="asc")) == ["a", "c", "b"]

    def test_salary_ties_break_by_date_then_id(self) -> None:
        salary = SalaryInfo(min=100, max=200)
        jobs = [
            _job("b", 2, salary=salary),
            _job("a", 2, salary=salary),
            _job("c", 1, salary=salary),
            _job("d", 5, salary=SalaryInfo(min=100, max=900)),
        ]
        assert _ids(_rank(jobs, strategy="salary-high")) == ["d", "c", "a", "b"]

    def test_page_slice_and_total(self) -> None:
        jobs = [_job(str(i), i) for i in range(1, 8)]
        result = _rank(jobs, page=2, limit=3, strategy="date")
        assert _ids(result) == ["4", "5", "6"]
        assert result.pagination.total == 7
        assert result.pagination.total_pages == 3

    def test_page_past_end(self) -> None:
        result = _rank([_job("a")], page=5, limit=10, strategy="date")
        assert result.items == ()
        assert result.pagination.total == 1

    def test_no_scores_for_plain_sorts(self) -> None:
        result = _rank([_job("a")], strategy="views")
        assert result.items[0].score is None

    def test_relevance_carries_text_score(self) -> None:
        jobs = [_job("a", 5, title="Go Developer"), _job("b", 1, title="Python Developer")]
        text = TextScoring("python", now=NOW)
        result = _rank(jobs, text=text)
        assert _ids(result) == ["b", "a"]
        assert result.items[0].score == pytest.approx(50.0 + 19.0)

    def test_relevance_without_query_is_freshness(self) -> None:
        jobs = [_job("a", 5), _job("b", 1)]
        assert _ids(_rank(jobs)) == ["b", "a"]


# ---------------------------------------------------------------------------
# Computed strategies
# ---------------------------------------------------------------------------


class TestComputed:
    def test_urgency_excludes_unscorable(self) -> None:
        jobs = [
            _job("soon", expires_at=NOW + timedelta(hours=10)),
            _job("later", expires_at=NOW + timedelta(days=20)),
            _job("none"),
            _job("gone", expires_at=NOW - timedelta(hours=1)),
        ]
        result = _rank(jobs, strategy="urgency")
        assert _ids(result) == ["soon", "later"]
        assert result.excluded == 2
        assert result.pagination.total == 2

    def test_distance_nearest_first(self) -> None:
        jobs = [
            _job("far", location=JobLocation(lat=13.5, lng=77.59)),
            _job("near", location=JobLocation(lat=12.98, lng=77.59)),
            _job("unknown"),
        ]
        result = _rank(jobs, strategy="distance", user_lat=12.97, user_lng=77.59)
        assert _ids(result) == ["near", "far"]
        assert result.excluded == 1

    def test_distance_ascending_order_reverses(self) -> None:
        jobs = [
            _job("far", location=JobLocation(lat=13.5, lng=77.59)),
            _job("near", location=JobLocation(lat=12.98, lng=77.59)),
        ]
        result = _rank(jobs, strategy="distance", order="asc", user_lat=12.97, user_lng=77.59)
        assert _ids(result) == ["far", "near"]

    def test_match_score_ties_break_by_date(self) -> None:
        jobs = [
            _job("old", 5, skills=("go",)),
            _job("new", 1, skills=("go",)),
            _job("other", 1, skills=("java",)),
        ]
        result = _rank(jobs, strategy="match-score", user_skills=("go",))
        assert _ids(result) == ["new", "old", "other"]
        assert result.items[0].score == pytest.approx(100.0)

    def test_custom_results_capped(self) -> None:
        jobs = [_job(str(i), i, applications_count=i) for i in range(1, 6)]
        criteria = (WeightedCriterion(field="applications", weight=1),)
        result = _rank(
            jobs, limit=2, config=RankingConfig(custom_result_cap=3),
            strategy="custom", criteria=criteria,
        )
        assert _ids(result) == ["5", "4"]
        assert result.pagination.total == 3
        assert result.pagination.total_pages == 2

    def test_custom_recency_excludes_undated(self) -> None:
        jobs = [_job("dated", 1), _job("undated", posted_at=None)]
        criteria = (WeightedCriterion(field="recency", weight=1),)
        result = _rank(jobs, strategy="custom", criteria=criteria)
        assert _ids(result) == ["dated"]
        assert result.excluded == 1

    def test_computed_pagination(self) -> None:
        jobs = [_job(str(i), i, views_count=i * 10) for i in range(1, 6)]
        result = _rank(jobs, page=2, limit=2, strategy="trending")
        assert len(result.items) == 2
        assert result.pagination.has_prev is True


class TestOrderScores:
    def test_ties_by_timestamp_then_id(self) -> None:
        t1 = NOW - timedelta(days=1)
        t2 = NOW - timedelta(days=2)
        scores = [
            ScoreResult(job_id="b", primary_score=1.0, tiebreak_timestamp=t2),
            ScoreResult(job_id="a", primary_score=1.0, tiebreak_timestamp=t2),
            ScoreResult(job_id="c", primary_score=1.0, tiebreak_timestamp=t1),
            ScoreResult(job_id="d", primary_score=1.0),
            ScoreResult(job_id="e", primary_score=2.0),
        ]
        assert [s.job_id for s in order_scores(scores, descending=True)] == ["e", "c", "a", "b", "d"]

    def test_ascending_keeps_tiebreak_direction(self) -> None:
        scores = [
            ScoreResult(job_id="x", primary_score=5.0, tiebreak_timestamp=NOW - timedelta(days=3)),
            ScoreResult(job_id="y", primary_score=5.0, tiebreak_timestamp=NOW),
            ScoreResult(job_id="z", primary_score=1.0),
        ]
        assert [s.job_id for s in order_scores(scores, descending=False)] == ["z", "y", "x"]

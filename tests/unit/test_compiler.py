"""Tests for predicate compilation and in-process evaluation."""

from datetime import datetime, timedelta, timezone

import pytest

from src.core.schemas import (
    CandidateRecord,
    CompanySummary,
    ExperienceInfo,
    JobLocation,
    SalaryInfo,
    UserSignal,
)
from src.filters.normalizer import normalize
from src.query.compiler import compile_criteria
from src.query.evaluate import haversine_km, matches
from src.query.predicate import (
    And,
    AnyOf,
    Eq,
    GeoWithin,
    Not,
    Or,
    Range,
    Should,
    TextMatch,
    describe,
    should_clauses,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _job(job_id: str = "1", **kw: object) -> CandidateRecord:
    defaults: dict[str, object] = {
        "job_id": job_id,
        "title": "Senior Python Engineer",
        "description": "Build APIs with FastAPI and PostgreSQL",
        "company": CompanySummary(id="c1", name="Acme Labs", rating=4.1, size="51-200", type="startup"),
        "location": JobLocation(city="Bengaluru", state="Karnataka", country="India",
                                work_mode="hybrid", lat=12.97, lng=77.59),
        "salary": SalaryInfo(min=1_200_000, max=1_800_000, currency="INR"),
        "job_type": "full-time",
        "experience": ExperienceInfo(min=3, max=6, level="senior-level"),
        "skills": ("Python", "FastAPI", "PostgreSQL"),
        "benefits": ("health-insurance", "esop"),
        "posted_at": NOW - timedelta(days=2),
        "expires_at": NOW + timedelta(days=20),
    }
    defaults.update(kw)
    return CandidateRecord(**defaults)  # type: ignore[arg-type]


def _compiled(raw: dict, **kw: object):  # type: ignore[no-untyped-def]
    return compile_criteria(normalize(raw), now=NOW, **kw)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Always-on clauses
# ---------------------------------------------------------------------------


class TestBaseClauses:
    def test_default_job_matches(self) -> None:
        assert matches(_compiled({}), _job())

    def test_inactive_excluded(self) -> None:
        assert not matches(_compiled({}), _job(status="closed"))

    def test_deleted_excluded(self) -> None:
        assert not matches(_compiled({}), _job(is_deleted=True))

    def test_expired_excluded_by_default(self) -> None:
        assert not matches(_compiled({}), _job(expires_at=NOW - timedelta(hours=1)))

    def test_expired_included_on_request(self) -> None:
        p = _compiled({"includeExpired": True})
        assert matches(p, _job(expires_at=NOW - timedelta(hours=1)))

    def test_no_deadline_never_expires(self) -> None:
        assert matches(_compiled({}), _job(expires_at=None))

    def test_home_country_applied(self) -> None:
        other = _job(location=JobLocation(city="Berlin", country="Germany"))
        assert not matches(_compiled({}), other)
        assert matches(_compiled({"country": "germany"}), other)


# ---------------------------------------------------------------------------
# Filter clauses
# ---------------------------------------------------------------------------


class TestTextClauses:
    def test_any_term_matches(self) -> None:
        assert matches(_compiled({"q": "golang python"}), _job())

    def test_matches_skills_and_company(self) -> None:
        assert matches(_compiled({"q": "postgresql"}), _job(description=""))
        assert matches(_compiled({"q": "acme"}), _job())

    def test_no_term_matches(self) -> None:
        assert not matches(_compiled({"q": "golang"}), _job())

    def test_exact_phrase_is_one_term(self) -> None:
        assert matches(_compiled({"q": "python engineer", "exactPhrase": True}), _job())
        assert not matches(_compiled({"q": "engineer python", "exactPhrase": True}), _job())

    def test_exclude_words(self) -> None:
        assert not matches(_compiled({"excludeWords": "fastapi"}), _job())
        assert matches(_compiled({"excludeWords": "php"}), _job())


class TestFieldClauses:
    @pytest.mark.parametrize("raw,expected", [
        ({"city": ["BENGALURU", "Pune"]}, True),
        ({"city": ["Pune"]}, False),
        ({"state": ["karnataka"]}, True),
        ({"workMode": ["remote"]}, False),
        ({"workMode": ["hybrid", "remote"]}, True),
        ({"remote": True}, False),
        ({"jobType": ["full-time"]}, True),
        ({"jobType": ["contract"]}, False),
        ({"minExperience": 3}, True),
        ({"minExperience": 4}, False),
        ({"maxExperience": 5}, False),
        ({"experienceLevel": ["senior-level"]}, True),
        ({"companyIds": ["c1"]}, True),
        ({"companyIds": ["c2"]}, False),
        ({"companyRating": 4}, True),
        ({"companyRating": 4.5}, False),
        ({"companySize": ["51-200"]}, True),
        ({"companyType": ["mnc"]}, False),
        ({"skills": ["fastapi", "django"]}, True),
        ({"skills": ["django"]}, False),
        ({"benefits": ["esop"]}, True),
        ({"diversityTags": ["women-led"]}, False),
    ])
    def test_clause(self, raw: dict, expected: bool) -> None:
        assert matches(_compiled(raw), _job()) is expected

    def test_salary_bounds(self) -> None:
        assert matches(_compiled({"minSalary": 1_000_000, "maxSalary": 2_000_000}), _job())
        assert not matches(_compiled({"minSalary": 1_500_000}), _job())

    def test_salary_currency_only_with_amounts(self) -> None:
        usd = _job(salary=SalaryInfo(min=100_000, max=150_000, currency="USD"))
        assert matches(_compiled({"currency": "INR"}), usd)
        assert not matches(_compiled({"currency": "INR", "minSalary": 1}), usd)

    def test_salary_preset(self) -> None:
        assert matches(_compiled({"salaryRange": "10L-15L"}), _job(salary=SalaryInfo(min=1_100_000, max=1_400_000)))
        assert not matches(_compiled({"salaryRange": "10L-15L"}), _job())

    def test_missing_salary_fails_range(self) -> None:
        assert not matches(_compiled({"minSalary": 1}), _job(salary=SalaryInfo()))

    def test_show_salary(self) -> None:
        hidden = _job(salary=SalaryInfo(disclosed=False))
        assert not matches(_compiled({"showSalary": True}), hidden)

    def test_date_posted(self) -> None:
        p = _compiled({"datePosted": "past-24h"})
        assert not matches(p, _job())
        assert matches(p, _job(posted_at=NOW - timedelta(hours=3)))

    def test_near_me(self) -> None:
        # 0.16 degrees of longitude at this latitude is about 17 km
        p_close = _compiled({"nearMe": "12.97,77.75,20"})
        p_far = _compiled({"nearMe": "12.97,77.75,5"})
        assert matches(p_close, _job())
        assert not matches(p_far, _job())

    def test_near_me_without_coordinates(self) -> None:
        job = _job(location=JobLocation(city="Bengaluru", country="India"))
        assert not matches(_compiled({"nearMe": "12.97,77.59,50"}), job)


class TestHint:
    def test_should_never_filters(self) -> None:
        hint = UserSignal(top_skills=("Rust",))
        p = _compiled({}, hint=hint)
        assert matches(p, _job())
        assert len(should_clauses(p)) == 1

    def test_no_hint_no_should(self) -> None:
        assert should_clauses(_compiled({})) == []


# ---------------------------------------------------------------------------
# Evaluation primitives
# ---------------------------------------------------------------------------


class TestEvaluate:
    def test_not_of_missing_range_is_true(self) -> None:
        assert matches(Not(Range("salary.min", gte=1)), _job(salary=SalaryInfo()))

    def test_empty_and_or(self) -> None:
        assert matches(And(()), _job())
        assert not matches(Or(()), _job())

    def test_anyof_substring(self) -> None:
        p = AnyOf("title", ("python",), ignore_case=True, substring=True)
        assert matches(p, _job())

    def test_eq_ignore_case(self) -> None:
        assert matches(Eq("location.city", "BENGALURU", ignore_case=True), _job())
        assert not matches(Eq("location.city", "BENGALURU"), _job())

    def test_text_match_list_field(self) -> None:
        assert matches(TextMatch(("skills",), "postgres"), _job())

    def test_should_always_true(self) -> None:
        assert matches(Should(Eq("title", "nope")), _job())

    def test_geo(self) -> None:
        assert matches(GeoWithin(12.97, 77.59, 0.1), _job())

    def test_unknown_field(self) -> None:
        with pytest.raises(ValueError):
            matches(Eq("colour", "blue"), _job())

    def test_haversine_known_distance(self) -> None:
        assert haversine_km(12.97, 77.59, 13.02, 77.60) == pytest.approx(5.6, abs=0.5)


class TestDescribe:
    def test_renders_tree(self) -> None:
        text = describe(_compiled({"q": "python", "minSalary": 100}))
        assert "status = 'active'" in text
        assert "TEXT(title,description,skills,company.name) ~ 'python'" in text
        assert "salary.min >= 100" in text

    def test_match_all(self) -> None:
        assert describe(And(())) == "TRUE"

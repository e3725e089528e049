"""Tests for the filter normalizer: validation, defaults, canonical form."""

import pytest

from src.core.config import FilterConfig
from src.core.errors import FilterValidationError
from src.filters.normalizer import (
    normalize,
    normalize_options,
    normalize_sort,
    split_request,
)


def _fields(exc: pytest.ExceptionInfo[FilterValidationError]) -> set[str]:
    return {v["field"] for v in exc.value.violations}


# ---------------------------------------------------------------------------
# Defaults and canonical form
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_empty_request(self) -> None:
        c = normalize({})
        assert c.location.country == "India"
        assert c.page == 1
        assert c.limit == 20
        assert c.include_expired is False
        assert c.salary.currency == "INR"
        assert c.date_posted == "any"

    def test_home_country_from_config(self) -> None:
        c = normalize({}, FilterConfig(home_country="Germany", default_limit=10))
        assert c.location.country == "Germany"
        assert c.limit == 10

    def test_explicit_country_kept(self) -> None:
        assert normalize({"country": "  United States "}).location.country == "United States"


class TestCanonicalForm:
    def test_lists_deduplicated_case_insensitive_and_sorted(self) -> None:
        c = normalize({"skills": ["Rust", "go", "GO", " python "]})
        assert c.skills == ("go", "python", "rust")

    def test_comma_separated_lists(self) -> None:
        c = normalize({"city": "Pune, Bengaluru", "jobType": "Full-Time,contract"})
        assert c.location.cities == ("bengaluru", "pune")
        assert c.job_types == ("contract", "full-time")

    def test_input_order_does_not_matter(self) -> None:
        a = normalize({"skills": ["go", "rust"], "city": ["Pune", "Delhi"]})
        b = normalize({"city": ["delhi", "PUNE"], "skills": ["rust", "go"]})
        assert a == b
        assert a.canonical_json() == b.canonical_json()

    def test_query_whitespace_collapsed(self) -> None:
        assert normalize({"q": "  senior   python  "}).query == "senior python"

    def test_company_ids_exact_dedup(self) -> None:
        c = normalize({"companyIds": ["c2", "c1", "c2"]})
        assert c.company.ids == ("c1", "c2")

    def test_near_me_parsed(self) -> None:
        c = normalize({"nearMe": "12.97,77.59,10"})
        assert c.location.near is not None
        assert c.location.near.lat == 12.97
        assert c.location.near.radius_km == 10.0

    def test_string_numbers_and_booleans(self) -> None:
        c = normalize({"minSalary": "500000", "includeExpired": "true", "page": "2"})
        assert c.salary.min == 500000
        assert c.include_expired is True
        assert c.page == 2


class TestIdempotence:
    @pytest.mark.parametrize("raw", [
        {},
        {"q": "python  developer", "skills": ["Go", "rust"], "city": "Pune,Delhi"},
        {"nearMe": "12.97,77.59,10", "workMode": ["Remote", "hybrid"], "remote": True},
        {"salaryRange": "10L-15L", "currency": "USD", "showSalary": True},
        {"minExperience": 2, "maxExperience": 5, "experienceLevel": ["mid-level"]},
        {"companyIds": ["b", "a"], "companyRating": 4.2, "companySize": ["51-200"]},
        {"datePosted": "past-week", "benefits": ["esop"], "diversityTags": ["women-led"],
         "jobFeatures": ["easy-apply"], "page": 3, "limit": 10, "includeExpired": True},
        {"excludeWords": "  php  intern ", "exactPhrase": True, "q": "data engineer"},
    ])
    def test_normalize_twice_is_noop(self, raw: dict) -> None:
        once = normalize(raw)
        assert normalize(once.to_raw()) == once
        assert normalize(once) == once


# ---------------------------------------------------------------------------
# Violations
# ---------------------------------------------------------------------------


class TestViolations:
    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize({"colour": "blue"})
        assert _fields(exc) == {"colour"}

    def test_snake_case_keys_rejected(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize({"job_type": ["contract"]})
        assert "job_type" in _fields(exc)

    def test_all_violations_reported(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize({
                "q": "x" * 201,
                "workMode": ["office"],
                "page": 0,
                "companyRating": 6,
                "city": ["a", "b", "c", "d", "e", "f"],
            })
        assert {"q", "workMode[0]", "page", "companyRating", "city"} <= _fields(exc)

    def test_salary_min_above_max(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize({"minSalary": 900000, "maxSalary": 100000})
        assert _fields(exc) == {"maxSalary"}

    def test_salary_bounds(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize({"maxSalary": 10_000_001})
        assert "maxSalary" in _fields(exc)

    def test_salary_range_with_explicit_bounds(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize({"salaryRange": "3L-6L", "minSalary": 100})
        assert "salaryRange" in _fields(exc)

    def test_experience_min_above_max(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize({"minExperience": 8, "maxExperience": 3})
        assert _fields(exc) == {"maxExperience"}

    @pytest.mark.parametrize("near", [
        "12.9,77.5",
        "abc,77.5,10",
        "91,77.5,10",
        "12.9,181,10",
        "12.9,77.5,0",
        "12.9,77.5,501",
    ])
    def test_bad_near_me(self, near: str) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize({"nearMe": near})
        assert _fields(exc) == {"nearMe"}

    def test_limit_ceiling(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize({"limit": 51})
        assert _fields(exc) == {"limit"}

    def test_page_ceiling(self) -> None:
        with pytest.raises(FilterValidationError):
            normalize({"page": 1001})

    def test_bad_enum(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize({"datePosted": "yesterday", "currency": "JPY"})
        assert _fields(exc) == {"datePosted", "currency"}

    def test_error_message_and_dict(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize({"minSalary": -1})
        assert "minSalary" in str(exc.value)
        body = exc.value.to_dict()
        assert body["error"] == "validation_error"
        assert body["violations"][0]["field"] == "minSalary"


# ---------------------------------------------------------------------------
# Sort input
# ---------------------------------------------------------------------------


class TestNormalizeSort:
    def test_defaults(self) -> None:
        s = normalize_sort({})
        assert s.strategy == "relevance"
        assert s.order == "desc"
        assert s.explicit is False

    def test_explicit_strategy(self) -> None:
        s = normalize_sort({"sortBy": "Date", "sortOrder": "ASC"})
        assert s.strategy == "date"
        assert s.order == "asc"
        assert s.explicit is True

    def test_unknown_strategy(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize_sort({"sortBy": "popularity"})
        assert _fields(exc) == {"sortBy"}

    def test_distance_requires_coordinates(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize_sort({"sortBy": "distance", "userLat": 12.9})
        assert _fields(exc) == {"userLng"}

    def test_custom_requires_criteria(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize_sort({"sortBy": "custom"})
        assert _fields(exc) == {"criteria"}

    def test_custom_unknown_field(self) -> None:
        with pytest.raises(FilterValidationError) as exc:
            normalize_sort({"sortBy": "custom", "criteria": [
                {"field": "salary", "weight": 1},
                {"field": "karma", "weight": 2},
            ]})
        assert _fields(exc) == {"criteria[1].field"}

    def test_custom_criteria_parsed(self) -> None:
        s = normalize_sort({"sortBy": "custom", "criteria": [{"field": " Rating ", "weight": 2.5}]})
        assert s.criteria[0].field == "rating"
        assert s.criteria[0].weight == 2.5

    def test_user_skills_canonical(self) -> None:
        s = normalize_sort({"sortBy": "match-score", "userSkills": "Go, rust,go"})
        assert s.user_skills == ("go", "rust")


class TestSplitRequest:
    def test_split(self) -> None:
        filters, sort, options = split_request({
            "q": "python", "sortBy": "date", "userLat": 1.0, "includeFacets": True,
        })
        assert filters == {"q": "python"}
        assert sort == {"sortBy": "date", "userLat": 1.0}
        assert options == {"includeFacets": True}

    def test_options(self) -> None:
        assert normalize_options({"includeFacets": "true"}).include_facets is True
        assert normalize_options({}).include_facets is False
        with pytest.raises(FilterValidationError):
            normalize_options({"includeFacets": "maybe"})

"""Orchestrator: wires normalizer, compiler, cache, coordinator, and blender.

Data flow for one request:
  1. Split and normalize filter / sort / option input
  2. Fetch user signals (optional)
  3. Compile the predicate (signals become an optional boost clause)
  4. Cache check; on miss rank through the coordinator
  5. Personalization annotation (and re-rank for default relevance)
  6. Analytics event and search-run bookkeeping
"""

import json
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from src.cache.policy import CachePolicy
from src.cache.store import CacheStore, InMemoryCacheStore, SqliteCacheStore
from src.core.config import Settings
from src.core.db import ThreadLocalConnections, insert_search_run
from src.core.errors import FilterValidationError
from src.core.schemas import (
    AppliedFilters,
    FilterCriteria,
    PageResult,
    SortMeta,
    SortSpec,
    UserSignal,
    as_utc,
)
from src.events.publisher import EventPublisher, NullEventPublisher, build_publisher
from src.filters.normalizer import (
    RequestOptions,
    normalize,
    normalize_options,
    normalize_sort,
    split_request,
)
from src.profile.signals import UserProfileProvider, YamlProfileProvider
from src.query.compiler import compile_criteria
from src.query.predicate import Predicate
from src.query.text import TextScoring
from src.ranking.coordinator import RankingCoordinator
from src.ranking.personalization import annotate, rerank
from src.ranking.scoring import sort_description
from src.storage.base import JobStore, RetryingJobStore
from src.storage.sqlite import SqliteJobStore

logger = logging.getLogger(__name__)

SEARCH_EVENT = "analytics:search"
JOBS_CHANGED_EVENT = "jobs.changed"


class SearchRequest:
    """A validated request: criteria, sort, options, and the compiled predicate."""

    def __init__(
        self,
        criteria: FilterCriteria,
        sort: SortSpec,
        options: RequestOptions,
        predicate: Predicate,
        signal: UserSignal | None,
        now: datetime,
    ) -> None:
        self.criteria = criteria
        self.sort = sort
        self.options = options
        self.predicate = predicate
        self.signal = signal
        self.now = now


class JobSearchService:
    """Runs ranked job searches against a JobStore."""

    def __init__(
        self,
        store: JobStore,
        settings: Settings | None = None,
        cache_store: CacheStore | None = None,
        publisher: EventPublisher | None = None,
        profiles: UserProfileProvider | None = None,
        run_log: ThreadLocalConnections | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._store = store
        self._coordinator = RankingCoordinator(store, self._settings.ranking)
        self._cache = CachePolicy(cache_store, self._settings.cache)
        self._publisher = publisher if publisher is not None else NullEventPublisher()
        self._profiles = profiles
        self._run_log = run_log

    @property
    def cache(self) -> CachePolicy:
        return self._cache

    def prepare(
        self,
        raw: Mapping[str, Any],
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> SearchRequest:
        """Validate a combined request and compile its predicate.

        Raises:
            FilterValidationError: with the violations of filters, sort, and
                options together.
        """
        now = as_utc(now) or datetime.now(timezone.utc)
        filter_raw, sort_raw, options_raw = split_request(raw)

        violations: list[dict[str, str]] = []
        criteria = sort = options = None
        try:
            criteria = normalize(filter_raw, self._settings.filters)
        except FilterValidationError as e:
            violations.extend(e.violations)
        try:
            sort = normalize_sort(sort_raw)
        except FilterValidationError as e:
            violations.extend(e.violations)
        try:
            options = normalize_options(options_raw)
        except FilterValidationError as e:
            violations.extend(e.violations)
        if criteria is None or sort is None or options is None:
            raise FilterValidationError(violations)

        signal = self._signals(user_id)
        predicate = compile_criteria(criteria, hint=signal, now=now)
        return SearchRequest(criteria, sort, options, predicate, signal, now)

    def search(
        self,
        raw: Mapping[str, Any],
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> PageResult:
        """Run one search request end to end and return the response page."""
        started_at = datetime.now(timezone.utc)
        request = self.prepare(raw, user_id=user_id, now=now)
        criteria, sort = request.criteria, request.sort

        page = self._cache.with_cache(
            sort,
            criteria,
            user_id,
            lambda: self._compute(request),
            variant={"facets": request.options.include_facets},
        )

        if request.signal is not None:
            items = annotate(page.items, request.signal, request.now)
            if (
                self._settings.ranking.personalization_rerank
                and sort.strategy == "relevance"
                and not sort.explicit
            ):
                items = rerank(items)
            page = page.model_copy(update={"items": tuple(items)})

        finished_at = datetime.now(timezone.utc)
        self._publisher.publish(SEARCH_EVENT, {
            "userId": user_id,
            "query": criteria.query,
            "strategy": sort.strategy,
            "order": sort.order,
            "filters": page.applied_filters.count,
            "total": page.pagination.total,
            "page": criteria.page,
            "cached": page.sort_meta.cached,
        })
        if self._run_log is not None:
            insert_search_run(
                self._run_log.get(),
                strategy=sort.strategy,
                user_id=user_id,
                filters_json=criteria.canonical_json(),
                result_count=page.pagination.total,
                cached=page.sort_meta.cached,
                started_at=started_at,
                finished_at=finished_at,
            )

        logger.info(
            "Search '%s' by %s: %d results, page %d/%d%s",
            criteria.query, sort.strategy, page.pagination.total,
            criteria.page, page.pagination.total_pages,
            " (cached)" if page.sort_meta.cached else "",
        )
        return page

    def notify_jobs_changed(self, job_ids: Iterable[str] = ()) -> None:
        """Announce a job write; the cache reacts per its invalidation mode."""
        ids = list(job_ids)
        self._publisher.publish(JOBS_CHANGED_EVENT, {"jobIds": ids, "count": len(ids)})
        self._cache.on_jobs_changed()

    def close(self) -> None:
        self._publisher.close()
        self._store.close()

    def _compute(self, request: SearchRequest) -> PageResult:
        criteria, sort = request.criteria, request.sort
        text = TextScoring(criteria.query, criteria.exact_phrase, request.now)
        ranked = self._coordinator.rank(
            request.predicate, sort, criteria.page, criteria.limit, request.now, text,
        )
        facets = self._store.facet_counts(request.predicate) if request.options.include_facets else None
        active = criteria.active_filters()
        return PageResult(
            items=ranked.items,
            pagination=ranked.pagination,
            sort_meta=SortMeta(
                strategy=sort.strategy,
                order=sort.order,
                description=sort_description(sort.strategy),
            ),
            applied_filters=AppliedFilters(count=len(active), active=active),
            facets=facets,
        )

    def _signals(self, user_id: str | None) -> UserSignal | None:
        if user_id is None or self._profiles is None:
            return None
        try:
            return self._profiles.get_signals(user_id)
        except Exception as e:
            # Signals only personalize; a lookup failure must not fail the search.
            logger.warning("Profile lookup failed for %s: %s", user_id, e)
            return None


def build_service(settings: Settings) -> JobSearchService:
    """Wire a service from settings: SQLite jobs, configured cache and analytics."""
    connections = ThreadLocalConnections(settings.database.path)
    store = RetryingJobStore(SqliteJobStore(connections), settings.storage)

    cache_store: CacheStore | None = None
    if settings.cache.enabled:
        cache_store = SqliteCacheStore(connections) if settings.cache.backend == "sqlite" else InMemoryCacheStore()

    profiles = YamlProfileProvider(settings.profiles.path) if settings.profiles.path else None

    return JobSearchService(
        store,
        settings=settings,
        cache_store=cache_store,
        publisher=build_publisher(settings.analytics),
        profiles=profiles,
        run_log=connections,
    )


def export_page_json(page: PageResult) -> str:
    """Export a response page as a JSON string."""
    return json.dumps(page.to_response(), indent=2, ensure_ascii=False)

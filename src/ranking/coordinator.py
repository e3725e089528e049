"""Ranking coordinator: order, slice, and count one page of candidates.

Store-ordered strategies push ordering and pagination into the store with a
single ``find_page`` read. Computed strategies read every match once via
``find_enriched``, score in process, and slice here.

``order="desc"`` means best-first in the strategy's natural direction and
``order="asc"`` reverses the primary key only. Ties always break by posting
date (newest first), then ``job_id``.
"""

import logging
import math
from dataclasses import replace
from datetime import datetime

from src.core.config import RankingConfig
from src.core.errors import ComputationError
from src.core.schemas import (
    CandidateRecord,
    PaginationMeta,
    RankedItem,
    RankedPage,
    ScoreResult,
    SortSpec,
)
from src.query.fields import SortKey
from src.query.predicate import Predicate
from src.query.text import TextScoring
from src.ranking.scoring import TIEBREAK_KEYS, Scorer, ScoringContext, Strategy, get_strategy
from src.storage.base import JobStore

logger = logging.getLogger(__name__)


def pagination_meta(page: int, limit: int, total: int) -> PaginationMeta:
    total_pages = math.ceil(total / limit) if total else 0
    return PaginationMeta(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def store_sort_keys(strategy: Strategy, order: str) -> list[SortKey]:
    """Primary keys for ``strategy`` in the requested order, then tie-breaks."""
    primary = list(strategy.store_keys)
    if order == "asc":
        primary = [replace(key, descending=not key.descending) for key in primary]
    return primary + list(TIEBREAK_KEYS)


def order_scores(scores: list[ScoreResult], descending: bool) -> list[ScoreResult]:
    """Sort by primary score, then posting date desc, then job_id asc."""
    ordered = sorted(scores, key=lambda s: s.job_id)
    ordered.sort(
        key=lambda s: (s.tiebreak_timestamp is not None,
                       s.tiebreak_timestamp.timestamp() if s.tiebreak_timestamp else 0.0),
        reverse=True,
    )
    ordered.sort(key=lambda s: s.primary_score, reverse=descending)
    return ordered


class RankingCoordinator:
    """Produces RankedPage values from a compiled predicate and a SortSpec."""

    def __init__(self, store: JobStore, config: RankingConfig | None = None) -> None:
        self._store = store
        self._config = config or RankingConfig()

    def rank(
        self,
        predicate: Predicate,
        sort: SortSpec,
        page: int,
        limit: int,
        now: datetime,
        text: TextScoring | None = None,
    ) -> RankedPage:
        strategy = get_strategy(sort.strategy)
        skip = (page - 1) * limit
        if strategy.scorer is not None:
            return self._rank_computed(strategy, strategy.scorer, predicate, sort, page, limit, now)

        scoring = None
        if strategy.name == "relevance":
            scoring = text or TextScoring(now=now)
        keys = store_sort_keys(strategy, sort.order)
        records, total = self._store.find_page(predicate, keys, skip, limit, scoring)
        items = tuple(
            RankedItem(job=r, score=r.text_score if scoring is not None else None)
            for r in records
        )
        logger.debug("Store-ordered %s: %d of %d", strategy.name, len(items), total)
        return RankedPage(items=items, pagination=pagination_meta(page, limit, total))

    def _rank_computed(
        self,
        strategy: Strategy,
        scorer: Scorer,
        predicate: Predicate,
        sort: SortSpec,
        page: int,
        limit: int,
        now: datetime,
    ) -> RankedPage:
        records, matched = self._store.find_enriched(predicate)
        ctx = ScoringContext(sort=sort, now=now)

        by_id: dict[str, CandidateRecord] = {}
        scores: list[ScoreResult] = []
        excluded = 0
        for record in records:
            try:
                value = scorer(record, ctx)
            except ComputationError as e:
                excluded += 1
                logger.debug("Excluded: %s", e)
                continue
            by_id[record.job_id] = record
            scores.append(ScoreResult(
                job_id=record.job_id,
                primary_score=value,
                tiebreak_timestamp=record.posted_at,
            ))

        descending = (sort.order == "desc") == strategy.higher_is_better
        ranked = order_scores(scores, descending)
        if strategy.name == "custom":
            ranked = ranked[: self._config.custom_result_cap]

        total = len(ranked)
        skip = (page - 1) * limit
        items = tuple(
            RankedItem(job=by_id[s.job_id], score=s.primary_score)
            for s in ranked[skip:skip + limit]
        )
        logger.debug(
            "Computed %s: %d matched, %d excluded, %d ranked",
            strategy.name, matched, excluded, total,
        )
        return RankedPage(
            items=items,
            pagination=pagination_meta(page, limit, total),
            excluded=excluded,
        )

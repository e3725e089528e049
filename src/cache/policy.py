"""Result cache policy: key derivation, TTL selection, and fail-open reads.

The cache is a disposable accelerant. Any failure to read, decode, or write
an entry is logged and the page is computed from the store instead.
"""

import hashlib
import json
import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ValidationError

from src.cache.store import CacheStore
from src.core.config import CacheConfig
from src.core.schemas import FilterCriteria, PageResult, SortSpec

logger = logging.getLogger(__name__)

VOLATILE_STRATEGIES = frozenset({"trending", "urgency"})
VOLATILE_DATE_PRESETS = frozenset({"past-24h"})

GENERATION_TTL_SECONDS = 365 * 24 * 3600


class CachePolicy:
    """Wraps page computation with a read-through cache."""

    def __init__(self, store: CacheStore | None, config: CacheConfig | None = None) -> None:
        self._store = store
        self._config = config or CacheConfig()

    @property
    def enabled(self) -> bool:
        return self._store is not None and self._config.enabled

    @property
    def generation_key(self) -> str:
        return f"{self._config.namespace}:generation"

    def key_for(
        self,
        sort: SortSpec,
        criteria: FilterCriteria,
        identity: str | None,
        variant: Mapping[str, Any] | None = None,
    ) -> str:
        """Deterministic key over strategy, sort parameters, criteria, and identity.

        ``variant`` holds response-shaping options (facets) that change the
        cached payload without changing the ranking.
        """
        material = {
            "strategy": sort.strategy,
            "sort": sort.cache_params(),
            "criteria": criteria.model_dump(mode="json"),
            "identity": identity or "anonymous",
            "variant": dict(variant or {}),
        }
        canonical = json.dumps(material, sort_keys=True, separators=(",", ":"))
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()[: self._config.key_length]
        if self._config.invalidation == "publish":
            return f"{self._config.namespace}:g{self._generation()}:{digest}"
        return f"{self._config.namespace}:{digest}"

    def ttl_for(self, sort: SortSpec, criteria: FilterCriteria) -> int:
        if sort.strategy in VOLATILE_STRATEGIES or criteria.date_posted in VOLATILE_DATE_PRESETS:
            return self._config.volatile_ttl_seconds
        return self._config.default_ttl_seconds

    def with_cache(
        self,
        sort: SortSpec,
        criteria: FilterCriteria,
        identity: str | None,
        compute: Callable[[], PageResult],
        variant: Mapping[str, Any] | None = None,
    ) -> PageResult:
        """Return the cached page for this request, computing it on a miss."""
        store = self._store
        if store is None or not self._config.enabled:
            return compute().with_cached(False)

        try:
            key = self.key_for(sort, criteria, identity, variant)
            payload = store.get(key)
        except Exception as e:
            logger.warning("Cache read failed, computing page: %s", e)
            return compute().with_cached(False)

        if payload is not None:
            try:
                cached = PageResult.model_validate_json(payload)
            except ValidationError as e:
                logger.warning("Discarding corrupt cache entry %s: %s", key, e)
            else:
                logger.debug("Cache hit: %s", key)
                return cached.with_cached(True)
        else:
            logger.debug("Cache miss: %s", key)

        result = compute().with_cached(False)
        ttl = self.ttl_for(sort, criteria)
        try:
            store.set(key, result.model_dump_json(by_alias=True).encode("utf-8"), ttl)
        except Exception as e:
            logger.warning("Cache write failed for %s: %s", key, e)
        return result

    def invalidate(self, key: str) -> None:
        if self._store is None:
            return
        try:
            self._store.delete(key)
        except Exception as e:
            logger.warning("Cache delete failed for %s: %s", key, e)

    def on_jobs_changed(self) -> None:
        """React to a job write according to the configured invalidation mode.

        ``ttl``: entries age out on their own. ``publish``: bump the namespace
        generation so keys derived before the write are never read again.
        """
        store = self._store
        if store is None or not self._config.enabled or self._config.invalidation != "publish":
            logger.debug("Job change ignored by cache (invalidation=%s)", self._config.invalidation)
            return
        try:
            generation = self._generation() + 1
            store.set(self.generation_key, str(generation).encode(), GENERATION_TTL_SECONDS)
        except Exception as e:
            logger.warning("Cache generation bump failed: %s", e)
            return
        logger.info("Cache generation advanced to %d", generation)

    def _generation(self) -> int:
        if self._store is None:
            return 0
        raw = self._store.get(self.generation_key)
        if raw is None:
            return 0
        try:
            return int(raw.decode())
        except ValueError:
            logger.warning("Ignoring malformed cache generation %r", raw)
            return 0

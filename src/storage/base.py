"""Abstract job store interface and the retrying wrapper."""

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TypeVar

from src.core.config import StorageConfig
from src.core.errors import DependencyError, StorageUnavailableError
from src.core.schemas import CandidateRecord, FacetBucket
from src.query.fields import SortKey
from src.query.predicate import Predicate
from src.query.text import TextScoring
from src.ranking.facets import compute_facets

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JobStore(ABC):
    """Read-only query interface over job postings.

    When ``text`` is given, every returned record carries a ``text_score``
    computed by ``src.query.text.relevance_score``.
    """

    @abstractmethod
    def find(
        self,
        predicate: Predicate,
        sort_keys: list[SortKey],
        skip: int,
        limit: int,
        text: TextScoring | None = None,
    ) -> list[CandidateRecord]:
        """Return one ordered slice of matching records."""

    @abstractmethod
    def count(self, predicate: Predicate) -> int:
        """Return the number of matching records."""

    @abstractmethod
    def find_enriched(
        self,
        predicate: Predicate,
        text: TextScoring | None = None,
    ) -> tuple[list[CandidateRecord], int]:
        """Return every matching record and the total, from one read."""

    def find_page(
        self,
        predicate: Predicate,
        sort_keys: list[SortKey],
        skip: int,
        limit: int,
        text: TextScoring | None = None,
    ) -> tuple[list[CandidateRecord], int]:
        """Return ``(slice, total)``. Stores override this with a single read."""
        return self.find(predicate, sort_keys, skip, limit, text), self.count(predicate)

    def facet_counts(self, predicate: Predicate, top_n: int = 10) -> dict[str, tuple[FacetBucket, ...]]:
        records, _ = self.find_enriched(predicate)
        return compute_facets(records, top_n)

    def close(self) -> None:
        """Release resources. Default: nothing to release."""


class RetryingJobStore(JobStore):
    """Retries transient store failures with exponential backoff.

    Raises DependencyError once ``max_attempts`` reads have failed.
    """

    def __init__(
        self,
        inner: JobStore,
        config: StorageConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._inner = inner
        self._config = config or StorageConfig()
        self._sleep = sleep

    @property
    def inner(self) -> JobStore:
        return self._inner

    def find(self, predicate, sort_keys, skip, limit, text=None):  # type: ignore[no-untyped-def]
        return self._call("find", lambda: self._inner.find(predicate, sort_keys, skip, limit, text))

    def count(self, predicate):  # type: ignore[no-untyped-def]
        return self._call("count", lambda: self._inner.count(predicate))

    def find_page(self, predicate, sort_keys, skip, limit, text=None):  # type: ignore[no-untyped-def]
        return self._call(
            "find_page", lambda: self._inner.find_page(predicate, sort_keys, skip, limit, text),
        )

    def find_enriched(self, predicate, text=None):  # type: ignore[no-untyped-def]
        return self._call("find_enriched", lambda: self._inner.find_enriched(predicate, text))

    def facet_counts(self, predicate, top_n=10):  # type: ignore[no-untyped-def]
        return self._call("facet_counts", lambda: self._inner.facet_counts(predicate, top_n))

    def close(self) -> None:
        self._inner.close()

    def _call(self, operation: str, fn: Callable[[], T]) -> T:
        attempts = self._config.max_attempts
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                return fn()
            except (StorageUnavailableError, TimeoutError) as e:
                last_error = e
                if attempt < attempts - 1:
                    wait = self._config.backoff_seconds * (2 ** attempt)
                    logger.warning(
                        "Job store %s failed: %s, retrying in %.2fs (attempt %d/%d)",
                        operation, e, wait, attempt + 1, attempts,
                    )
                    self._sleep(wait)

        logger.error("All %d attempts failed for job store %s: %s", attempts, operation, last_error)
        raise DependencyError("job store", str(last_error), retryable=True) from last_error

"""Exception taxonomy for the ranking engine."""

from typing import Any


class RankingError(Exception):
    """Base exception for ranking engine errors."""


class FilterValidationError(RankingError):
    """Raised when filter or sort input violates one or more constraints.

    Carries every violation, not just the first, so a client can fix all of
    them in one round trip.
    """

    def __init__(self, violations: list[dict[str, str]]) -> None:
        self.violations = violations
        summary = "; ".join(f"{v['field']}: {v['message']}" for v in violations)
        super().__init__(f"Invalid search input: {summary}")

    def to_dict(self) -> dict[str, Any]:
        return {"error": "validation_error", "violations": list(self.violations)}


class DependencyError(RankingError):
    """Raised when a collaborator (storage, cache) stays unreachable after retries."""

    def __init__(self, dependency: str, reason: str, retryable: bool = True) -> None:
        self.dependency = dependency
        self.reason = reason
        self.retryable = retryable
        super().__init__(f"{dependency} unavailable: {reason}")


class StorageUnavailableError(RankingError):
    """Raised by a job store for a transient failure (timeout, locked database)."""


class ComputationError(RankingError):
    """Raised when a candidate cannot be scored under a strategy.

    The coordinator excludes the candidate from that strategy's ranking.
    """

    def __init__(self, job_id: str, strategy: str, reason: str) -> None:
        self.job_id = job_id
        self.strategy = strategy
        self.reason = reason
        super().__init__(f"Cannot score job '{job_id}' by {strategy}: {reason}")

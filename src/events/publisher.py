"""Fire-and-forget analytics events with explicit batching.

``publish`` never raises into the request path: a full buffer drops its
oldest event and sink failures are logged and the batch discarded.
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from src.core.config import AnalyticsConfig

logger = logging.getLogger(__name__)


class EventSink(ABC):
    """Destination for flushed event batches."""

    @abstractmethod
    def write(self, events: list[dict[str, Any]]) -> None:
        """Deliver one batch. May raise; the publisher logs the failure."""


class LoggingEventSink(EventSink):
    def write(self, events: list[dict[str, Any]]) -> None:
        for event in events:
            logger.info("event %s %s", event["name"], json.dumps(event["payload"], default=str))


class JsonlEventSink(EventSink):
    """Appends one JSON object per line."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, events: list[dict[str, Any]]) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            for event in events:
                f.write(json.dumps(event, default=str) + "\n")


class EventPublisher(ABC):
    @abstractmethod
    def publish(self, name: str, payload: dict[str, Any]) -> None:
        """Queue an event for delivery. Never raises."""

    def flush(self) -> int:
        return 0

    def close(self) -> None:
        self.flush()


class NullEventPublisher(EventPublisher):
    def publish(self, name: str, payload: dict[str, Any]) -> None:
        logger.debug("Analytics disabled, dropping event %s", name)


class BatchingEventPublisher(EventPublisher):
    """Bounded buffer flushed by size, by elapsed time, or explicitly.

    The interval is checked on each ``publish``; there is no background
    thread.
    """

    def __init__(
        self,
        sink: EventSink,
        config: AnalyticsConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sink = sink
        self._config = config or AnalyticsConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._buffer: deque[dict[str, Any]] = deque(maxlen=self._config.max_buffer)
        self._last_flush = clock()
        self.dropped = 0
        self.delivered = 0

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def publish(self, name: str, payload: dict[str, Any]) -> None:
        event = {
            "name": name,
            "payload": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            if len(self._buffer) == self._buffer.maxlen:
                self.dropped += 1
                logger.warning("Analytics buffer full (%d), dropping oldest event", len(self._buffer))
            self._buffer.append(event)
            due = (
                len(self._buffer) >= self._config.flush_threshold
                or self._clock() - self._last_flush >= self._config.flush_interval_seconds
            )
        if due:
            self.flush()

    def flush(self) -> int:
        """Deliver buffered events. Returns how many were handed to the sink."""
        with self._lock:
            batch = list(self._buffer)
            self._buffer.clear()
            self._last_flush = self._clock()
        if not batch:
            return 0
        try:
            self._sink.write(batch)
        except Exception as e:
            logger.warning("Analytics sink failed, discarding %d events: %s", len(batch), e)
            return 0
        self.delivered += len(batch)
        logger.debug("Flushed %d analytics events", len(batch))
        return len(batch)

    def close(self) -> None:
        self.flush()


def build_publisher(config: AnalyticsConfig) -> EventPublisher:
    if not config.enabled:
        return NullEventPublisher()
    sink: EventSink = JsonlEventSink(config.events_path) if config.events_path else LoggingEventSink()
    return BatchingEventPublisher(sink, config)

"""In-process job store backed by a dict of records."""

import threading
from collections.abc import Iterable
from typing import Any

from src.core.schemas import CandidateRecord
from src.query.evaluate import matches
from src.query.fields import SortKey, get_value
from src.query.predicate import Predicate
from src.query.text import TextScoring, relevance_score
from src.storage.base import JobStore


def sort_records(records: list[CandidateRecord], sort_keys: Iterable[SortKey]) -> list[CandidateRecord]:
    """Stable multi-key sort with missing values last for every key."""
    ordered = list(records)
    for key in reversed(list(sort_keys)):
        present: list[tuple[Any, CandidateRecord]] = []
        missing: list[CandidateRecord] = []
        for record in ordered:
            value = get_value(record, key.field)
            if value is None:
                missing.append(record)
            else:
                present.append((value.lower() if key.ignore_case and isinstance(value, str) else value, record))
        present.sort(key=lambda pair: pair[0], reverse=key.descending)
        ordered = [record for _, record in present] + missing
    return ordered


class InMemoryJobStore(JobStore):
    """Holds records in memory; reads take a snapshot under a lock."""

    def __init__(self, records: Iterable[CandidateRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, CandidateRecord] = {r.job_id: r for r in records}

    def upsert(self, record: CandidateRecord) -> bool:
        """Insert or replace a record. Returns True if it was new."""
        with self._lock:
            is_new = record.job_id not in self._records
            self._records[record.job_id] = record
        return is_new

    def delete(self, job_id: str) -> bool:
        with self._lock:
            return self._records.pop(job_id, None) is not None

    def __len__(self) -> int:
        return len(self._records)

    def find(self, predicate, sort_keys, skip, limit, text=None):  # type: ignore[no-untyped-def]
        records, _ = self.find_page(predicate, sort_keys, skip, limit, text)
        return records

    def count(self, predicate: Predicate) -> int:
        return len(self._matching(predicate, None))

    def find_page(self, predicate, sort_keys, skip, limit, text=None):  # type: ignore[no-untyped-def]
        matching = self._matching(predicate, text)
        ordered = sort_records(matching, sort_keys)
        return ordered[skip:skip + limit], len(matching)

    def find_enriched(self, predicate, text=None):  # type: ignore[no-untyped-def]
        matching = self._matching(predicate, text)
        return matching, len(matching)

    def _matching(self, predicate: Predicate, text: TextScoring | None) -> list[CandidateRecord]:
        with self._lock:
            snapshot = list(self._records.values())
        result = [r for r in snapshot if matches(predicate, r)]
        if text is not None:
            result = [
                r.model_copy(update={"text_score": relevance_score(r, text, predicate)})
                for r in result
            ]
        return result

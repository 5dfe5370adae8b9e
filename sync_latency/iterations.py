"""Iteration records and the shared store they live in."""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

from .errors import DuplicateIdError, WaitTimeoutError


class IterationRecord:
    """Timing record for one tracked file.

    Timestamp fields are kept in insertion order (the report prints them in
    that order) and are write-once: ``stamp`` never overwrites a set field.
    """

    def __init__(self, iteration_id: int):
        self.id = int(iteration_id)
        self._timestamps: Dict[str, float] = {}
        self._lock = threading.Lock()

    def stamp(self, field: str, value: float) -> bool:
        with self._lock:
            if field in self._timestamps:
                return False
            self._timestamps[field] = value
            return True

    def get(self, field: str) -> Optional[float]:
        with self._lock:
            return self._timestamps.get(field)

    def has(self, field: str) -> bool:
        with self._lock:
            return field in self._timestamps

    def timestamps(self) -> Dict[str, float]:
        with self._lock:
            return dict(self._timestamps)

    def fields(self) -> List[str]:
        return ["id"] + list(self.timestamps().keys())

    def duration(self, start_field: str, end_field: str) -> Optional[float]:
        with self._lock:
            start, end = self._timestamps.get(start_field), self._timestamps.get(end_field)
        if start is None or end is None:
            return None
        return end - start

    def __repr__(self) -> str:
        return f"IterationRecord(id={self.id}, timestamps={self.timestamps()})"


class IterationStore:
    """Process-lifetime collection of iteration records keyed by id.

    Appends and snapshots go through one coarse lock; each record guards its
    own fields. ``notify`` wakes anyone blocked in ``wait_until_complete`` and
    is called by the correlation engines after every successful stamp.
    """

    def __init__(self):
        self._records: List[IterationRecord] = []
        self._by_id: Dict[int, IterationRecord] = {}
        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)

    def append(self, record: IterationRecord) -> IterationRecord:
        with self._changed:
            if record.id in self._by_id:
                raise DuplicateIdError(record.id)
            self._records.append(record)
            self._by_id[record.id] = record
            self._changed.notify_all()
        return record

    def find_by_id(self, iteration_id: int) -> Optional[IterationRecord]:
        with self._lock:
            return self._by_id.get(iteration_id)

    def snapshot(self) -> List[IterationRecord]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def all_satisfy(self, predicate: Callable[[IterationRecord], bool]) -> bool:
        return all(predicate(r) for r in self.snapshot())

    def records_for(self, ids: Iterable[int]) -> List[IterationRecord]:
        with self._lock:
            return [self._by_id[i] for i in ids if i in self._by_id]

    def is_complete(self, ids: Iterable[int], field: str) -> bool:
        ids = list(ids)
        records = self.records_for(ids)
        # a missing record means the phase is not done, even if the rest are
        if len(records) != len(ids):
            return False
        return all(r.has(field) for r in records)

    def pending(self, ids: Iterable[int], field: str) -> List[int]:
        out = []
        for i in ids:
            record = self.find_by_id(i)
            if record is None or not record.has(field):
                out.append(i)
        return out

    def notify(self):
        with self._changed:
            self._changed.notify_all()

    def wait_until_complete(self, ids: Iterable[int], field: str, timeout: Optional[float] = None,
                            poll_interval: float = 1.0) -> None:
        ids = list(ids)
        deadline = None if not timeout else time.monotonic() + timeout
        while not self.is_complete(ids, field):
            wait_for = poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    pending = self.pending(ids, field)
                    raise WaitTimeoutError(f"'{field}' on iterations {pending}", timeout)
                wait_for = min(wait_for, remaining)
            with self._changed:
                self._changed.wait(wait_for)

"""Match inbound "file visible" / "file gone" signals to iteration records."""

from __future__ import annotations

import logging
import re
from typing import Optional, Pattern

from .errors import CorrelationError, MalformedSignalError, UnknownIterationError
from .iterations import IterationStore

DEFAULT_PREFIX = "iteration"


def iteration_pattern(prefix: str = DEFAULT_PREFIX) -> Pattern[str]:
    return re.compile(r"^\s*" + re.escape(prefix) + r"-(\d+)")


def parse_iteration_id(name: Optional[str], pattern: Pattern[str]) -> Optional[int]:
    if not name:
        return None
    m = pattern.match(name)
    return int(m.group(1)) if m else None


class CorrelationEngine:
    """Stamps ``observed_field`` on the record a signal refers to.

    One engine per observed field; several engines may share a store. The
    stamp itself happens under the record's lock, so racing signals for the
    same id produce a single winner and the losers are no-ops.
    """

    def __init__(self, store: IterationStore, observed_field: str, prefix: str = DEFAULT_PREFIX,
                 started_field: Optional[str] = None, description: str = "synced"):
        self.store = store
        self.observed_field = observed_field
        self.started_field = started_field
        self.description = description
        self.pattern = iteration_pattern(prefix)

    def correlate(self, raw_identifier: Optional[str], observed_at: Optional[float]) -> bool:
        """Returns True if this call set the timestamp, False if it was already set."""
        iteration_id = parse_iteration_id(raw_identifier, self.pattern)
        if iteration_id is None:
            raise MalformedSignalError(raw_identifier, observed_at, "identifier does not match")
        if observed_at is None or observed_at <= 0:
            raise MalformedSignalError(raw_identifier, observed_at, "timestamp missing or not positive")
        record = self.store.find_by_id(iteration_id)
        if record is None:
            raise UnknownIterationError(iteration_id)
        if not record.stamp(self.observed_field, observed_at):
            logging.debug(f"Iteration {iteration_id} already has {self.observed_field}; ignoring repeat signal")
            return False
        self.store.notify()
        if self.started_field:
            elapsed = record.duration(self.started_field, self.observed_field)
            if elapsed is not None:
                logging.info(f" ✓ Iteration {iteration_id} {self.description} {elapsed:.2f}s after {self.started_field}")
        return True

    def handle(self, raw_identifier: Optional[str], observed_at: Optional[float]) -> bool:
        """Adapter entry point: bad or stray signals are logged and dropped."""
        try:
            return self.correlate(raw_identifier, observed_at)
        except CorrelationError as e:
            logging.warning(f"Error! {e}")
            return False

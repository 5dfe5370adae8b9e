"""Sequential test phases: timed actions, completion wait, per-phase report."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from .aggregator import Aggregator
from .iterations import IterationRecord, IterationStore


@dataclass(frozen=True)
class Phase:
    name: str
    title: str
    started_field: str
    completed_field: str
    observed_field: str
    creates_records: bool = True
    action_verb: str = "Uploaded"
    start_label: Optional[str] = None
    completion_label: Optional[str] = None


API_TO_WEB = Phase(
    name="api_to_web",
    title="API to web performance test",
    started_field="upload_started_at",
    completed_field="upload_completed_at",
    observed_field="web_sync_at",
    action_verb="Uploaded",
    start_label="Average web sync time from start of API upload",
    completion_label="Average web sync time from API upload complete",
)

LOCAL_DRIVE_TO_WEB = Phase(
    name="local_drive_to_web",
    title="Local drive file to web performance test",
    started_field="upload_started_at",
    completed_field="upload_completed_at",
    observed_field="web_sync_at",
    action_verb="Created",
    completion_label="Average web sync time from local drive write",
)

API_TO_LOCAL_DRIVE = Phase(
    name="api_to_local_drive",
    title="API to local drive test",
    started_field="api_delete_started_at",
    completed_field="api_delete_completed_at",
    observed_field="local_deleted_at",
    creates_records=False,
    action_verb="Deleted",
    start_label="Average local drive sync time from start of API delete",
    completion_label="Average local drive sync time from API delete complete",
)

PHASES = (API_TO_WEB, LOCAL_DRIVE_TO_WEB, API_TO_LOCAL_DRIVE)
PHASES_BY_NAME = {p.name: p for p in PHASES}

# (iteration id, action target) pairs
Plan = Iterable[Tuple[int, str]]


def format_timestamp(ts: Optional[float]) -> str:
    if ts is None:
        return ""
    return datetime.fromtimestamp(ts).astimezone().isoformat(timespec="milliseconds")


class PhaseDriver:
    def __init__(self, store: IterationStore, aggregator: Aggregator, pause_range: int = 15,
                 wait_interval: float = 1.0, phase_timeout: Optional[float] = None,
                 rng: Optional[random.Random] = None, sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.time, out: Callable[[str], None] = print):
        self.store = store
        self.aggregator = aggregator
        self.pause_range = pause_range
        self.wait_interval = wait_interval
        self.phase_timeout = phase_timeout
        self.rng = rng or random.Random()
        self.sleep = sleep
        self.clock = clock
        self.out = out

    def next_pause(self) -> int:
        if self.pause_range <= 0:
            return 0
        return self.rng.randrange(self.pause_range)

    def _record_for(self, phase: Phase, iteration_id: int) -> Optional[IterationRecord]:
        if phase.creates_records:
            # the record must exist before the action starts so that an early
            # signal can always be correlated
            return self.store.append(IterationRecord(iteration_id))
        record = self.store.find_by_id(iteration_id)
        if record is None:
            logging.error(f"Error! No iteration {iteration_id} to run '{phase.name}' against; skipping")
        return record

    def perform(self, phase: Phase, plan: Plan, action: Callable[[str], object]) -> List[int]:
        """Run the timed actions; returns the ids that were acted on."""
        ids: List[int] = []
        for iteration_id, target in plan:
            record = self._record_for(phase, iteration_id)
            if record is None:
                continue
            record.stamp(phase.started_field, self.clock())
            action(target)
            record.stamp(phase.completed_field, self.clock())
            ids.append(iteration_id)
            pause = self.next_pause()
            took = record.duration(phase.started_field, phase.completed_field) or 0.0
            logging.info(f"{phase.action_verb} test file with index {iteration_id} successfully in {took:.2f}s. "
                         f"Pausing {pause}s before the next one.")
            self.sleep(pause)
        return ids

    def wait_for_completion(self, phase: Phase, ids: List[int]):
        logging.info(f"Waiting for {len(ids)} iteration(s) to report {phase.observed_field}...")
        self.store.wait_until_complete(ids, phase.observed_field, timeout=self.phase_timeout,
                                       poll_interval=self.wait_interval)

    def report(self, phase: Phase, ids: List[int]) -> List[str]:
        records = self.store.records_for(ids)
        if not records:
            return []
        observed = phase.observed_field
        own = (phase.started_field, phase.completed_field, observed)
        # this phase's columns last, in a fixed order
        columns = [f for f in records[0].timestamps() if f not in own] + list(own)
        header = ["id"] + columns + [f"{observed}_duration_from_start", f"{observed}_duration_from_complete"]
        lines = [",".join(header)]
        for record in records:
            from_start = record.duration(phase.started_field, observed)
            from_completion = record.duration(phase.completed_field, observed)
            self.aggregator.add(phase.name, from_start, from_completion)
            values = [str(record.id)] + [format_timestamp(record.get(f)) for f in columns]
            values += [f"{from_start:.3f}", f"{from_completion:.3f}"]
            lines.append(",".join(values))
        return lines

    def run(self, phase: Phase, plan: Plan, action: Callable[[str], object]) -> List[str]:
        ids = self.perform(phase, plan, action)
        self.wait_for_completion(phase, ids)
        lines = self.report(phase, ids)
        self.out(f"\n\n{phase.title} complete:\n")
        for line in lines:
            self.out(line)
        return lines

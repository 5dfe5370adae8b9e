"""Running duration totals per phase."""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import TYPE_CHECKING, Dict, Iterable, List

if TYPE_CHECKING:  # pragma: no cover
    from .phases import Phase  # noqa: F401


class Aggregator:
    def __init__(self):
        self._from_start: Dict[str, float] = defaultdict(float)
        self._from_completion: Dict[str, float] = defaultdict(float)
        self._counts: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def add(self, phase_name: str, duration_from_start: float, duration_from_completion: float):
        with self._lock:
            self._from_start[phase_name] += duration_from_start
            self._from_completion[phase_name] += duration_from_completion
            self._counts[phase_name] += 1

    def count(self, phase_name: str) -> int:
        with self._lock:
            return self._counts.get(phase_name, 0)

    def average_from_start(self, phase_name: str) -> float:
        with self._lock:
            n = self._counts.get(phase_name, 0)
            return round(self._from_start[phase_name] / n, 2) if n else 0.0

    def average_from_completion(self, phase_name: str) -> float:
        with self._lock:
            n = self._counts.get(phase_name, 0)
            return round(self._from_completion[phase_name] / n, 2) if n else 0.0

    def summary_lines(self, phases: Iterable["Phase"]) -> List[str]:
        lines: List[str] = []
        for phase in phases:
            if not self.count(phase.name):
                continue
            if lines:
                lines.append("")
            if phase.start_label:
                lines.append(f"{phase.start_label}: {self.average_from_start(phase.name)}s")
            if phase.completion_label:
                lines.append(f"{phase.completion_label}: {self.average_from_completion(phase.name)}s")
        return lines

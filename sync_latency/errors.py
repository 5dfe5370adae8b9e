"""Error taxonomy for the latency harness.

Signal-level errors (``CorrelationError`` and subclasses) are always absorbed
by the adapter that received the signal. Everything else aborts the run.
"""

from __future__ import annotations

from typing import Optional


class LatencyHarnessError(Exception):
    """Base class for all harness errors."""
    pass


class CorrelationError(LatencyHarnessError):
    """An inbound signal could not be matched to an iteration."""
    pass


class MalformedSignalError(CorrelationError):
    def __init__(self, raw_identifier: Optional[str], observed_at: Optional[float], reason: str):
        super().__init__(f"Malformed signal ({reason}): identifier={raw_identifier!r} observed_at={observed_at!r}")
        self.raw_identifier = raw_identifier
        self.observed_at = observed_at
        self.reason = reason


class UnknownIterationError(CorrelationError):
    def __init__(self, iteration_id: int):
        super().__init__(f"Invalid iteration ID {iteration_id}, missing from iteration history")
        self.iteration_id = iteration_id


class DuplicateIdError(LatencyHarnessError):
    """Raised when the driver tries to track the same iteration id twice."""
    def __init__(self, iteration_id: int):
        super().__init__(f"Iteration {iteration_id} is already tracked")
        self.iteration_id = iteration_id


class ProviderError(LatencyHarnessError):
    """A storage action (API call or local filesystem write) failed."""
    def __init__(self, provider: str, operation: str, path: str, message: str):
        super().__init__(f"{provider} {operation} failed for '{path}': {message}")
        self.provider = provider
        self.operation = operation
        self.path = path


class ReachabilityError(LatencyHarnessError):
    """The callback endpoint is not reachable through the public tunnel."""
    pass


class WaitTimeoutError(LatencyHarnessError, TimeoutError):
    """An optional max wait expired before the awaited condition held."""
    def __init__(self, what: str, timeout: float):
        super().__init__(f"Timed out after {timeout:.1f}s waiting for {what}")
        self.what = what
        self.timeout = timeout

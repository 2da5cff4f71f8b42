# chuk_ai_browser_agent/agent/diagnostics.py
"""
Diagnostics sink.

Best-effort subsystems (summarization, snapshots, host callbacks) report
non-fatal problems here instead of raising. Repeated warnings for the same
context key are throttled, and the last few records are kept for the host
to display. One sink is created per process (or per test) and passed into
the orchestrator.

Usage::

    sink = DiagnosticsSink(throttle_seconds=10.0)
    sink.warn("summary", err)
    sink.records  # most recent first-in order, bounded
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from chuk_ai_browser_agent.config import DEFAULT_WARN_THROTTLE_SECONDS

logger = logging.getLogger(__name__)


class TelemetryRecord(BaseModel):
    """One diagnostic record."""

    context: str
    message: str
    level: str = "warning"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DiagnosticsSink:
    """Throttled warning sink with a bounded telemetry buffer."""

    def __init__(
        self,
        throttle_seconds: float = DEFAULT_WARN_THROTTLE_SECONDS,
        max_records: int = 30,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.throttle_seconds = throttle_seconds
        self._clock = clock
        self._last_emitted: dict[str, float] = {}
        self._records: deque[TelemetryRecord] = deque(maxlen=max_records)
        self.suppressed = 0

    def warn(self, context: str, error: BaseException | str) -> bool:
        """Record a warning; returns False when throttled."""
        now = self._clock()
        last = self._last_emitted.get(context)
        if last is not None and now - last < self.throttle_seconds:
            self.suppressed += 1
            return False
        self._last_emitted[context] = now
        message = str(error) or type(error).__name__
        self._records.append(TelemetryRecord(context=context, message=message))
        logger.warning("[%s] %s", context, message)
        return True

    def info(self, context: str, message: str) -> None:
        self._records.append(TelemetryRecord(context=context, message=message, level="info"))
        logger.info("[%s] %s", context, message)

    @property
    def records(self) -> list[TelemetryRecord]:
        return list(self._records)

    def clear(self) -> None:
        self._last_emitted.clear()
        self._records.clear()
        self.suppressed = 0

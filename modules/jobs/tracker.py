"""
Cycle tracking for the auto-management engine.
Keeps the last evaluation cycle and counts triggers dropped while one was running.
"""

import threading
from datetime import datetime
from typing import Dict, Optional

from core.logger import get_logger
from core.state import EvaluationOutcome

logger = get_logger(__name__)


class CycleTracker:
    """In-process bookkeeping of evaluation cycles."""

    def __init__(self):
        """Initialize cycle tracker."""
        self._lock = threading.Lock()
        self._current: Optional[Dict] = None
        self._last: Optional[Dict] = None
        self.cycles_completed = 0
        self.cycles_failed = 0
        self.triggers_skipped = 0

    def start_cycle(self, trigger: str):
        """
        Mark a cycle as started.

        Args:
            trigger: What caused the cycle (timer, network_change, manual, ...)
        """
        with self._lock:
            self._current = {
                "status": "running",
                "trigger": trigger,
                "started_at": datetime.now(),
            }

    def complete_cycle(self, outcome: EvaluationOutcome):
        """Mark the running cycle as completed with its outcome."""
        with self._lock:
            job = self._finish("completed")
            job["outcome"] = outcome.to_dict()
            self.cycles_completed += 1

        logger.debug(
            "Completed evaluation cycle",
            trigger=job.get("trigger"),
            duration_seconds=job.get("duration_seconds")
        )

    def fail_cycle(self, error: Exception):
        """Mark the running cycle as failed."""
        with self._lock:
            job = self._finish("failed")
            job["error"] = str(error)
            job["error_type"] = type(error).__name__
            self.cycles_failed += 1

    def record_skipped(self, trigger: str):
        """Count a trigger that was dropped because a cycle was in flight."""
        with self._lock:
            self.triggers_skipped += 1

    def _finish(self, status: str) -> Dict:
        job = self._current or {"trigger": "unknown", "started_at": datetime.now()}
        job["status"] = status
        job["completed_at"] = datetime.now()
        job["duration_seconds"] = (job["completed_at"] - job["started_at"]).total_seconds()
        self._last = job
        self._current = None
        return job

    @property
    def is_running(self) -> bool:
        return self._current is not None

    def get_status(self) -> Dict:
        """
        Get tracker status.

        Returns:
            Dictionary with counters and the last cycle (timestamps as ISO strings)
        """
        with self._lock:
            last = None
            if self._last:
                last = {
                    key: value.isoformat() if isinstance(value, datetime) else value
                    for key, value in self._last.items()
                }
            return {
                "running": self._current is not None,
                "cycles_completed": self.cycles_completed,
                "cycles_failed": self.cycles_failed,
                "triggers_skipped": self.triggers_skipped,
                "last_cycle": last,
            }

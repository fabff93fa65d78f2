"""
Scheduler for automatic evaluation cycles.
Uses APScheduler for the periodic timer, the network watcher and the one-shot
re-check after a cycle leaves the tunnel in a transitional state.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from core.config import Config, get_config
from core.logger import get_logger
from core.state import EvaluationOutcome
from modules.engine.auto_manager import AutoManagementEngine
from modules.network.watcher import NetworkChangeWatcher

logger = get_logger(__name__)

TIMER_JOB_ID = "evaluate_timer"
WATCH_JOB_ID = "network_watch"
RECHECK_JOB_ID = "transition_recheck"
STARTUP_JOB_ID = "startup_cycle"

RECHECK_TRIGGER = "transition_recheck"


class TunnelScheduler:
    """Schedules evaluation cycles for the long-lived instance."""

    def __init__(
        self,
        engine: AutoManagementEngine,
        watcher: Optional[NetworkChangeWatcher] = None,
        config_provider: Callable[[], Config] = get_config,
    ):
        """
        Initialize scheduler.

        Args:
            engine: Engine whose evaluate() the jobs call
            watcher: Network change watcher, polled by its own job
            config_provider: Returns the current Config
        """
        self.engine = engine
        self.watcher = watcher
        self.config_provider = config_provider
        self.scheduler = AsyncIOScheduler()
        self._running = False

        self.engine.on_transitional = self.request_recheck

        logger.info("Initialized TunnelScheduler")

    async def run_cycle(self, trigger: str = "timer") -> Optional[EvaluationOutcome]:
        """Run one evaluation cycle in a worker thread."""
        return await asyncio.to_thread(self.engine.evaluate, trigger)

    async def check_network(self) -> bool:
        """Poll the network watcher in a worker thread."""
        if self.watcher is None:
            return False
        try:
            return await asyncio.to_thread(self.watcher.check)
        except Exception as e:
            logger.error(
                "Network watch failed",
                error=str(e),
                error_type=type(e).__name__
            )
            return False

    def request_recheck(self, outcome: EvaluationOutcome):
        """
        Schedule one extra cycle after a cycle ended in a transitional status.

        A re-check cycle never schedules another one, and at most one re-check is pending.
        """
        delay = self.config_provider().transition_recheck_seconds
        if delay <= 0 or outcome.trigger == RECHECK_TRIGGER or not self._running:
            return

        run_date = datetime.now() + timedelta(seconds=delay)
        self.scheduler.add_job(
            self.run_cycle,
            trigger=DateTrigger(run_date=run_date),
            args=[RECHECK_TRIGGER],
            id=RECHECK_JOB_ID,
            name="Re-check transitional tunnel status",
            replace_existing=True
        )
        logger.info(
            "Scheduled transition re-check",
            status=outcome.new_status.value,
            delay_seconds=delay
        )

    def _schedule_jobs(self):
        config = self.config_provider()

        if config.timer_enabled:
            self.scheduler.add_job(
                self.run_cycle,
                trigger=IntervalTrigger(seconds=config.timer_interval_seconds),
                args=["timer"],
                id=TIMER_JOB_ID,
                name="Periodic tunnel evaluation",
                replace_existing=True,
                max_instances=1,
                coalesce=True
            )
        elif self.scheduler.get_job(TIMER_JOB_ID):
            self.scheduler.remove_job(TIMER_JOB_ID)

        if config.network_watch_enabled and self.watcher is not None:
            self.scheduler.add_job(
                self.check_network,
                trigger=IntervalTrigger(seconds=config.network_watch_interval_seconds),
                id=WATCH_JOB_ID,
                name="Network change watch",
                replace_existing=True,
                max_instances=1,
                coalesce=True
            )
        elif self.scheduler.get_job(WATCH_JOB_ID):
            self.scheduler.remove_job(WATCH_JOB_ID)

        logger.info(
            "Scheduled evaluation jobs",
            timer_enabled=config.timer_enabled,
            timer_interval_seconds=config.timer_interval_seconds,
            network_watch_enabled=config.network_watch_enabled,
            network_watch_interval_seconds=config.network_watch_interval_seconds
        )

    def start(self):
        """Start the scheduler. Must be called with a running event loop."""
        if self._running:
            logger.warning("Scheduler is already running")
            return

        self._schedule_jobs()
        # Evaluate once right away instead of waiting a full interval
        self.scheduler.add_job(
            self.run_cycle,
            trigger=DateTrigger(run_date=datetime.now()),
            args=["startup"],
            id=STARTUP_JOB_ID,
            name="Startup evaluation",
            replace_existing=True
        )

        self.scheduler.start()
        self._running = True

        logger.info("Started scheduler")

    def reschedule(self):
        """Re-read the config and update job intervals."""
        if not self._running:
            return
        if self.watcher is not None:
            self.watcher.reset()
        self._schedule_jobs()

    def stop(self):
        """Stop the scheduler. An in-flight cycle finishes in its worker thread."""
        if not self._running:
            return

        self.scheduler.shutdown(wait=False)
        self._running = False

        logger.info("Stopped scheduler")

    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

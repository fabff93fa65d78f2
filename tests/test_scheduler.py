"""
Tests for TunnelScheduler jobs and CycleTracker bookkeeping.
"""

import asyncio

import pytest

from core.state import ActionTaken, EvaluationOutcome, TunnelStatus
from modules.jobs.tracker import CycleTracker
from modules.network.watcher import NetworkChangeWatcher
from modules.scheduler.scheduler import (
    RECHECK_JOB_ID,
    RECHECK_TRIGGER,
    STARTUP_JOB_ID,
    TIMER_JOB_ID,
    WATCH_JOB_ID,
    TunnelScheduler
)


def outcome(new_status=TunnelStatus.CONNECTING, trigger="timer"):
    return EvaluationOutcome(
        previous_status=TunnelStatus.DISCONNECTED,
        is_trusted=False,
        manually_disabled=False,
        action_taken=ActionTaken.STARTED,
        new_status=new_status,
        trigger=trigger,
    )


@pytest.fixture
def settings(config):
    """Mutable holder so a test can swap the config the scheduler reads."""
    return {"config": config}


@pytest.fixture
def scheduler(engine, observer, settings):
    watcher = NetworkChangeWatcher(observer, lambda: None)
    return TunnelScheduler(engine, watcher=watcher, config_provider=lambda: settings["config"])


def run_started(scheduler, body):
    """Run `body(scheduler)` while the scheduler is started inside an event loop."""
    async def scenario():
        scheduler.start()
        try:
            return body(scheduler)
        finally:
            scheduler.stop()
    return asyncio.run(scenario())


def job_ids(scheduler):
    return {job.id for job in scheduler.scheduler.get_jobs()}


def test_wires_engine_recheck_hook(scheduler, engine):
    assert engine.on_transitional == scheduler.request_recheck


def test_start_schedules_all_jobs(scheduler):
    ids = run_started(scheduler, job_ids)

    assert ids == {TIMER_JOB_ID, WATCH_JOB_ID, STARTUP_JOB_ID}
    assert not scheduler.is_running()


def test_disabled_triggers_are_not_scheduled(scheduler, settings, make_config):
    settings["config"] = make_config(timer_enabled=False, network_watch_enabled=False)

    assert run_started(scheduler, job_ids) == {STARTUP_JOB_ID}


def test_reschedule_removes_disabled_timer(scheduler, settings, make_config):
    def body(s):
        settings["config"] = make_config(timer_enabled=False)
        s.reschedule()
        return job_ids(s)

    ids = run_started(scheduler, body)

    assert TIMER_JOB_ID not in ids
    assert WATCH_JOB_ID in ids


def test_reschedule_applies_new_interval(scheduler, settings, make_config):
    def body(s):
        settings["config"] = make_config(timer_interval_seconds=600)
        s.reschedule()
        return s.scheduler.get_job(TIMER_JOB_ID).trigger.interval.total_seconds()

    assert run_started(scheduler, body) == 600


def test_transitional_outcome_schedules_one_recheck(scheduler):
    def body(s):
        s.request_recheck(outcome())
        s.request_recheck(outcome(TunnelStatus.UNKNOWN))
        return [job.id for job in s.scheduler.get_jobs() if job.id == RECHECK_JOB_ID]

    assert run_started(scheduler, body) == [RECHECK_JOB_ID]


def test_recheck_does_not_chain(scheduler):
    def body(s):
        s.request_recheck(outcome(trigger=RECHECK_TRIGGER))
        return job_ids(s)

    assert RECHECK_JOB_ID not in run_started(scheduler, body)


def test_recheck_disabled_by_zero_delay(scheduler, settings, make_config):
    settings["config"] = make_config(transition_recheck_seconds=0)

    def body(s):
        s.request_recheck(outcome())
        return job_ids(s)

    assert RECHECK_JOB_ID not in run_started(scheduler, body)


def test_recheck_ignored_when_not_running(scheduler):
    scheduler.request_recheck(outcome())

    assert scheduler.scheduler.get_job(RECHECK_JOB_ID) is None


def test_run_cycle_evaluates_in_worker_thread(scheduler, backend):
    result = asyncio.run(scheduler.run_cycle("timer"))

    assert result.trigger == "timer"
    assert result.action_taken == ActionTaken.STARTED
    assert backend.status == TunnelStatus.CONNECTED


def test_check_network_survives_watcher_error(scheduler, observer):
    observer.error = RuntimeError("adapter vanished")

    assert asyncio.run(scheduler.check_network()) is False


def test_check_network_without_watcher(engine, config):
    scheduler = TunnelScheduler(engine, config_provider=lambda: config)

    assert asyncio.run(scheduler.check_network()) is False


class TestCycleTracker:

    def test_completed_cycle(self):
        tracker = CycleTracker()
        tracker.start_cycle("timer")
        assert tracker.is_running

        tracker.complete_cycle(outcome(TunnelStatus.CONNECTED))

        status = tracker.get_status()
        assert not tracker.is_running
        assert status["cycles_completed"] == 1
        assert status["last_cycle"]["status"] == "completed"
        assert status["last_cycle"]["trigger"] == "timer"
        assert status["last_cycle"]["outcome"]["new_status"] == "Connected"
        assert isinstance(status["last_cycle"]["started_at"], str)

    def test_failed_cycle(self):
        tracker = CycleTracker()
        tracker.start_cycle("network_change")

        tracker.fail_cycle(RuntimeError("boom"))

        status = tracker.get_status()
        assert status["cycles_failed"] == 1
        assert status["last_cycle"]["error"] == "boom"
        assert status["last_cycle"]["error_type"] == "RuntimeError"

    def test_skipped_triggers_counted(self):
        tracker = CycleTracker()
        tracker.record_skipped("timer")
        tracker.record_skipped("network_change")

        assert tracker.get_status()["triggers_skipped"] == 2
        assert tracker.get_status()["last_cycle"] is None

"""
Auto-management engine.

Ties network observation, manual intent and the tunnel service state into one
decision per evaluation cycle, and serializes manual actions with cycles.
"""

import threading
from pathlib import Path
from typing import Callable, Optional

from core.config import Config, get_config
from core.logger import get_logger
from core.state import ActionTaken, ControlResult, EvaluationOutcome, TunnelStatus
from modules.engine.status_file import StatusRecordFile
from modules.jobs.tracker import CycleTracker
from modules.network.observer import NetworkObserver
from modules.override.store import ManualOverrideStore
from modules.trust.evaluator import evaluate_trust
from modules.tunnel.controller import TunnelController
from modules.tunnel.exceptions import error_for_result

logger = get_logger(__name__)


def decide(status: TunnelStatus, trusted: bool, manually_disabled: bool) -> ActionTaken:
    """
    Decide the single command for one cycle.

    Args:
        status: Tunnel status observed at the start of the cycle
        trusted: Whether the current network is trusted
        manually_disabled: Whether the user stopped the tunnel by hand

    Returns:
        ActionTaken.STARTED, STOPPED or NONE
    """
    if status == TunnelStatus.CONNECTED and trusted:
        return ActionTaken.STOPPED
    if status == TunnelStatus.DISCONNECTED and not trusted and not manually_disabled:
        return ActionTaken.STARTED
    return ActionTaken.NONE


class AutoManagementEngine:
    """Evaluation cycle plus the manual entry points."""

    def __init__(
        self,
        controller: TunnelController,
        observer: NetworkObserver,
        override: ManualOverrideStore,
        status_file: StatusRecordFile,
        config_provider: Callable[[], Config] = get_config,
        tracker: Optional[CycleTracker] = None,
    ):
        """
        Initialize auto-management engine.

        Args:
            controller: Tunnel controller
            observer: Network observer
            override: Manual override store
            status_file: Status record owner
            config_provider: Returns the current Config; called once per cycle
            tracker: Cycle bookkeeping
        """
        self.controller = controller
        self.observer = observer
        self.override = override
        self.status_file = status_file
        self.config_provider = config_provider
        self.tracker = tracker or CycleTracker()
        self.on_transitional: Optional[Callable[[EvaluationOutcome], None]] = None
        self._lock = threading.Lock()

    def evaluate(self, trigger: str = "manual") -> Optional[EvaluationOutcome]:
        """
        Run one evaluation cycle.

        Args:
            trigger: What caused the cycle, for logs

        Returns:
            EvaluationOutcome, or None if the trigger was dropped or the cycle failed
        """
        if not self._lock.acquire(blocking=False):
            logger.info("Evaluation skipped, another cycle is in progress", trigger=trigger)
            self.tracker.record_skipped(trigger)
            return None

        try:
            self.tracker.start_cycle(trigger)
            outcome = self._run_cycle(trigger)
            self.tracker.complete_cycle(outcome)
        except Exception as e:
            logger.error(
                "Evaluation cycle failed",
                trigger=trigger,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True
            )
            self.tracker.fail_cycle(e)
            return None
        finally:
            self._lock.release()

        if outcome.new_status.is_transitional and self.on_transitional is not None:
            self.on_transitional(outcome)
        return outcome

    def _run_cycle(self, trigger: str) -> EvaluationOutcome:
        trust = self.config_provider().trust_config()

        previous = self.controller.get_status()
        snapshot = self.observer.snapshot(trust.excluded_adapters)
        decision = evaluate_trust(snapshot, trust)
        disabled = self.override.reload()

        action = decide(previous, decision.trusted, disabled)

        logger.info(
            "Evaluating tunnel",
            trigger=trigger,
            status=previous.value,
            ssid=snapshot.ssid.display,
            addresses=snapshot.local_ipv4_addresses,
            trusted=decision.trusted,
            matched_range=decision.matched_range,
            manually_disabled=disabled,
            action=action.value
        )

        if previous == TunnelStatus.NOT_INSTALLED:
            logger.warning("Tunnel service not installed, skipping auto-management", tunnel=self.controller.tunnel_name)
        elif action == ActionTaken.STARTED:
            self._log_result("Auto-start", self.controller.start())
        elif action == ActionTaken.STOPPED:
            self._log_result("Auto-stop", self.controller.stop())
        elif previous == TunnelStatus.DISCONNECTED and not decision.trusted and disabled:
            logger.info("Untrusted network but auto-start is manually disabled")

        new_status = self.controller.get_status()
        self.status_file.write(snapshot.ssid.display, new_status, disabled)

        return EvaluationOutcome(
            previous_status=previous,
            is_trusted=decision.trusted,
            manually_disabled=disabled,
            action_taken=action,
            new_status=new_status,
            ssid=snapshot.ssid.display,
            trigger=trigger,
        )

    def _log_result(self, name: str, result: ControlResult):
        if result.ok:
            logger.info(f"{name} completed", status=result.status.value if result.status else None)
        else:
            logger.error(f"{name} failed", outcome=result.outcome.value, message=result.message)

    # Manual entry points

    def manual_start(self, interactive: bool = True) -> ControlResult:
        """Clear the manual override and start the tunnel, regardless of trust."""
        def action():
            self.override.set_disabled(False)
            return self.controller.start()
        return self._manual("start", action, interactive)

    def manual_stop(self, interactive: bool = True) -> ControlResult:
        """Set the manual override and stop the tunnel, regardless of trust."""
        def action():
            self.override.set_disabled(True)
            return self.controller.stop()
        return self._manual("stop", action, interactive)

    def install(self, config_path: Optional[str] = None, interactive: bool = True) -> ControlResult:
        """
        Install the tunnel service. Clears the manual override on success.

        Args:
            config_path: Tunnel config file, defaults to `tunnel_config_path`
            interactive: Raise TunnelError on failure instead of returning it
        """
        def action():
            path = config_path or self.config_provider().tunnel_config_path
            if not path:
                return ControlResult.failure("No tunnel config path configured")
            result = self.controller.install(Path(path))
            if result.ok:
                self.override.set_disabled(False)
            return result
        return self._manual("install", action, interactive)

    def uninstall(self, interactive: bool = True) -> ControlResult:
        """Remove the tunnel service."""
        return self._manual("uninstall", self.controller.uninstall, interactive)

    def _manual(self, name: str, action: Callable[[], ControlResult], interactive: bool) -> ControlResult:
        timeout = self.config_provider().manual_action_lock_timeout
        if not self._lock.acquire(timeout=timeout):
            result = ControlResult.failure(f"Another tunnel operation did not finish within {timeout}s")
            return self._finish_manual(name, result, interactive)

        try:
            logger.info(f"Manual {name} requested", interactive=interactive)
            result = action()
            self.write_status_record()
        finally:
            self._lock.release()

        return self._finish_manual(name, result, interactive)

    def _finish_manual(self, name: str, result: ControlResult, interactive: bool) -> ControlResult:
        if result.ok:
            logger.info(f"Manual {name} completed", status=result.status.value if result.status else None)
            return result

        logger.error(f"Manual {name} failed", outcome=result.outcome.value, message=result.message)
        if interactive:
            raise error_for_result(name, result)
        return result

    # Status

    def write_status_record(self) -> bool:
        """Re-query everything and rewrite the status record."""
        ssid = self.observer.get_ssid()
        return self.status_file.write(ssid.display, self.controller.get_status(), self.override.reload())

    def ensure_status_record(self) -> bool:
        return self.status_file.ensure_exists()

    def status_report(self) -> dict:
        """
        Current state without deciding anything.

        Returns:
            Dictionary for the status API and CLI
        """
        trust = self.config_provider().trust_config()
        snapshot = self.observer.snapshot(trust.excluded_adapters)
        decision = evaluate_trust(snapshot, trust)
        tunnels = self.controller.list_tunnel_services()
        return {
            "tunnel": self.controller.tunnel_name,
            "status": self.controller.get_status().value,
            "ssid": snapshot.ssid.display,
            "local_ipv4_addresses": snapshot.local_ipv4_addresses,
            "is_trusted": decision.trusted,
            "matched_range": decision.matched_range,
            "manually_disabled": self.override.reload(),
            "other_tunnels": [name for name in tunnels if name != self.controller.tunnel_name],
            "cycles": self.tracker.get_status(),
        }

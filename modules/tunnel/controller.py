"""
Tunnel controller: status queries and idempotent start/stop/install/uninstall.

Status queries never raise; any failure reads as UNKNOWN. Control actions
return ControlResult values and retry once with elevation when the backend
reports missing privileges.
"""

import time
from pathlib import Path
from typing import Callable, List, Optional

from tenacity import Retrying, retry_if_result, stop_after_attempt, stop_after_delay, wait_fixed

from core.logger import get_logger
from core.process import CommandError
from core.state import ControlOutcome, ControlResult, TunnelStatus
from modules.tunnel.backends import ServiceBackend

logger = get_logger(__name__)

INSTALL_WAIT_SECONDS = 5.0
INSTALL_CONSECUTIVE_CHECKS = 2


class TunnelController:
    """Drives the one managed tunnel through a ServiceBackend."""

    def __init__(
        self,
        backend: ServiceBackend,
        command_timeout: float = 10.0,
        poll_interval: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize tunnel controller.

        Args:
            backend: Service backend for the current platform
            command_timeout: Max seconds to wait for a target status
            poll_interval: Seconds between status polls while waiting
            sleep: Sleep function used between polls
        """
        self.backend = backend
        self.command_timeout = command_timeout
        self.poll_interval = poll_interval
        self._sleep = sleep

    @property
    def tunnel_name(self) -> str:
        return self.backend.tunnel_name

    def get_status(self) -> TunnelStatus:
        """
        Query the tunnel status.

        Returns:
            TunnelStatus; UNKNOWN if the query failed or timed out
        """
        try:
            status = self.backend.query_status()
        except CommandError as e:
            logger.warning("Tunnel status query failed", tunnel=self.tunnel_name, error=str(e))
            return TunnelStatus.UNKNOWN
        except Exception as e:
            logger.error(
                "Unexpected error querying tunnel status",
                tunnel=self.tunnel_name,
                error=str(e),
                error_type=type(e).__name__
            )
            return TunnelStatus.UNKNOWN

        logger.debug("Tunnel status", tunnel=self.tunnel_name, status=status.value)
        return status

    def is_installed(self) -> bool:
        return self.get_status() != TunnelStatus.NOT_INSTALLED

    def start(self) -> ControlResult:
        """Start the tunnel unless it is already connected or connecting."""
        return self._transition(
            "start",
            action=self.backend.start,
            target=TunnelStatus.CONNECTED,
            already=(TunnelStatus.CONNECTED, TunnelStatus.CONNECTING),
        )

    def stop(self) -> ControlResult:
        """Stop the tunnel unless it is already disconnected or disconnecting."""
        return self._transition(
            "stop",
            action=self.backend.stop,
            target=TunnelStatus.DISCONNECTED,
            already=(TunnelStatus.DISCONNECTED, TunnelStatus.DISCONNECTING),
        )

    def _transition(self, name, action, target, already) -> ControlResult:
        status = self.get_status()
        if status == TunnelStatus.NOT_INSTALLED:
            logger.warning(f"Cannot {name} tunnel: service not installed", tunnel=self.tunnel_name)
            return ControlResult(ControlOutcome.NOT_INSTALLED, "Tunnel service is not installed", status)
        if status in already:
            logger.info(f"Tunnel {name} skipped", tunnel=self.tunnel_name, status=status.value)
            return ControlResult.success(f"Tunnel already {status.value.lower()}", status)

        result = self._with_elevation(name, action)
        if not result.ok:
            logger.error(
                f"Tunnel {name} failed",
                tunnel=self.tunnel_name,
                outcome=result.outcome.value,
                message=result.message
            )
            result.status = self.get_status()
            return result

        result.status = self.wait_for_status(target)
        logger.info(f"Tunnel {name} completed", tunnel=self.tunnel_name, status=result.status.value)
        return result

    def _with_elevation(self, name: str, action: Callable[..., ControlResult]) -> ControlResult:
        """Run action unprivileged; on NEEDS_ELEVATION retry exactly once elevated."""
        try:
            result = action(elevated=False)
            if result.outcome != ControlOutcome.NEEDS_ELEVATION:
                return result

            logger.info(f"Tunnel {name} requires elevation, requesting it", tunnel=self.tunnel_name)
            result = action(elevated=True)
        except CommandError as e:
            return ControlResult.failure(str(e))

        if result.outcome == ControlOutcome.NEEDS_ELEVATION:
            return ControlResult.failure(f"Tunnel {name} still denied after elevation")
        return result

    def wait_for_status(self, target: TunnelStatus, timeout: Optional[float] = None) -> TunnelStatus:
        """
        Poll until the tunnel reaches `target` or the timeout expires.

        Args:
            target: Desired status
            timeout: Seconds to wait, defaults to command_timeout

        Returns:
            The last observed status
        """
        timeout = self.command_timeout if timeout is None else timeout
        max_attempts = max(1, int(timeout / self.poll_interval) + 1) if self.poll_interval > 0 else 1

        retryer = Retrying(
            stop=stop_after_attempt(max_attempts) | stop_after_delay(timeout),
            wait=wait_fixed(self.poll_interval),
            retry=retry_if_result(lambda status: status != target),
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
            sleep=self._sleep,
        )
        return retryer(self.get_status)

    def _wait_for_installed(self, installed: bool) -> bool:
        """Wait until the installed state matches on consecutive checks."""
        consecutive = 0

        def check() -> bool:
            nonlocal consecutive
            if self.is_installed() == installed:
                consecutive += 1
            else:
                consecutive = 0
            return consecutive >= INSTALL_CONSECUTIVE_CHECKS

        max_attempts = max(INSTALL_CONSECUTIVE_CHECKS, int(INSTALL_WAIT_SECONDS / max(self.poll_interval, 0.01)) + 1)
        retryer = Retrying(
            stop=stop_after_attempt(max_attempts) | stop_after_delay(INSTALL_WAIT_SECONDS),
            wait=wait_fixed(self.poll_interval),
            retry=retry_if_result(lambda confirmed: not confirmed),
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
            sleep=self._sleep,
        )
        return retryer(check)

    def install(self, config_path: Path) -> ControlResult:
        """
        Install the tunnel service from a config file.

        Args:
            config_path: WireGuard config for the tunnel

        Returns:
            ControlResult; OK once the service is confirmed installed
        """
        try:
            result = self.backend.install(Path(config_path))
        except CommandError as e:
            result = ControlResult.failure(str(e))

        if not result.ok:
            logger.error("Tunnel install failed", tunnel=self.tunnel_name, outcome=result.outcome.value, message=result.message)
            result.status = self.get_status()
            return result

        if not self._wait_for_installed(True):
            return ControlResult.failure("Install command finished but the service did not appear", self.get_status())

        result.status = self.get_status()
        logger.info("Tunnel service installed", tunnel=self.tunnel_name, status=result.status.value)
        return result

    def uninstall(self) -> ControlResult:
        """Remove the tunnel service. Uninstalling a missing service is a no-op success."""
        if not self.is_installed():
            return ControlResult.success("Tunnel service is not installed", TunnelStatus.NOT_INSTALLED)

        try:
            result = self.backend.uninstall()
        except CommandError as e:
            result = ControlResult.failure(str(e))

        if not result.ok:
            logger.error("Tunnel uninstall failed", tunnel=self.tunnel_name, outcome=result.outcome.value, message=result.message)
            result.status = self.get_status()
            return result

        if not self._wait_for_installed(False):
            return ControlResult.failure("Uninstall command finished but the service is still present", self.get_status())

        result.status = TunnelStatus.NOT_INSTALLED
        logger.info("Tunnel service uninstalled", tunnel=self.tunnel_name)
        return result

    def list_tunnel_services(self) -> List[str]:
        """Names of installed tunnel services; empty if the listing failed."""
        try:
            return self.backend.list_tunnel_services()
        except CommandError as e:
            logger.warning("Listing tunnel services failed", error=str(e))
            return []

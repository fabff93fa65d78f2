"""
Service backends for the tunnel.

A backend knows how to query and drive the OS service that carries the
tunnel. It reports results as ControlResult values; elevation retries and
waiting for a target status live in the controller.
"""

import re
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from core.logger import get_logger
from core.process import CommandNotFoundError, CommandResult, run_command
from core.state import ControlOutcome, ControlResult, TunnelStatus
from modules.tunnel.commands import SystemdCommandFactory, WindowsCommandFactory

logger = get_logger(__name__)

# Windows service control error codes
ERROR_ACCESS_DENIED = 5
ERROR_SERVICE_ALREADY_RUNNING = 1056
ERROR_SERVICE_DOES_NOT_EXIST = 1060
ERROR_SERVICE_NOT_ACTIVE = 1062
ERROR_CANCELLED = 1223

# pkexec exit codes
PKEXEC_DISMISSED = 126
PKEXEC_NOT_AUTHORIZED = 127

SC_STATE_PATTERN = re.compile(r"^\s*STATE\s*:\s*(\d+)", re.MULTILINE)
SC_SERVICE_NAME_PATTERN = re.compile(r"^\s*SERVICE_NAME:\s*WireGuardTunnel\$(\S+)", re.MULTILINE)

SC_STATES = {
    1: TunnelStatus.DISCONNECTED,   # STOPPED
    2: TunnelStatus.CONNECTING,     # START_PENDING
    3: TunnelStatus.DISCONNECTING,  # STOP_PENDING
    4: TunnelStatus.CONNECTED,      # RUNNING
}

SYSTEMD_ACTIVE_STATES = {
    "active": TunnelStatus.CONNECTED,
    "reloading": TunnelStatus.CONNECTING,
    "activating": TunnelStatus.CONNECTING,
    "deactivating": TunnelStatus.DISCONNECTING,
    "inactive": TunnelStatus.DISCONNECTED,
    "failed": TunnelStatus.DISCONNECTED,
}

ELEVATION_DECLINED_MARKERS = ("canceled by the user", "cancelled by the user")
POLKIT_DENIED_MARKERS = ("access denied", "interactive authentication required")


def parse_sc_query(result: CommandResult) -> TunnelStatus:
    """Map `sc query <service>` output to a TunnelStatus."""
    if result.returncode == ERROR_SERVICE_DOES_NOT_EXIST:
        return TunnelStatus.NOT_INSTALLED
    if not result.succeeded:
        return TunnelStatus.UNKNOWN

    match = SC_STATE_PATTERN.search(result.stdout)
    if not match:
        return TunnelStatus.UNKNOWN
    return SC_STATES.get(int(match.group(1)), TunnelStatus.UNKNOWN)


def parse_systemctl_show(output: str) -> Dict[str, str]:
    """Parse `systemctl show --property=...` key=value lines."""
    properties = {}
    for line in (output or "").splitlines():
        key, sep, value = line.partition("=")
        if sep:
            properties[key.strip()] = value.strip()
    return properties


def systemd_status(properties: Dict[str, str]) -> TunnelStatus:
    """Map unit properties to a TunnelStatus. A disabled unit counts as not installed."""
    load_state = properties.get("LoadState", "")
    if load_state == "not-found" or properties.get("UnitFileState") == "disabled":
        return TunnelStatus.NOT_INSTALLED
    if load_state != "loaded":
        return TunnelStatus.UNKNOWN
    return SYSTEMD_ACTIVE_STATES.get(properties.get("ActiveState", ""), TunnelStatus.UNKNOWN)


class ServiceBackend(ABC):
    """Base interface for tunnel service backends."""

    def __init__(self, tunnel_name: str, status_timeout: float = 5.0, command_timeout: float = 10.0):
        """
        Initialize service backend.

        Args:
            tunnel_name: Name of the managed tunnel
            status_timeout: Timeout for status queries
            command_timeout: Timeout for control commands
        """
        self.tunnel_name = tunnel_name
        self.status_timeout = status_timeout
        self.command_timeout = command_timeout

    @property
    @abstractmethod
    def service_name(self) -> str:
        """OS-level name of the tunnel service."""
        pass

    @abstractmethod
    def query_status(self) -> TunnelStatus:
        """
        Query the service state.

        Raises:
            CommandError: If the query could not be run
        """
        pass

    @abstractmethod
    def start(self, elevated: bool = False) -> ControlResult:
        """Start the service; NEEDS_ELEVATION when privileges are missing."""
        pass

    @abstractmethod
    def stop(self, elevated: bool = False) -> ControlResult:
        """Stop the service; NEEDS_ELEVATION when privileges are missing."""
        pass

    @abstractmethod
    def install(self, config_path: Path) -> ControlResult:
        """Install the service from a tunnel config file (always elevated)."""
        pass

    @abstractmethod
    def uninstall(self) -> ControlResult:
        """Remove the service (always elevated)."""
        pass

    @abstractmethod
    def list_tunnel_services(self) -> List[str]:
        """Names of all tunnels installed as services."""
        pass

    def _run(self, cmd: List[str], timeout: Optional[float] = None) -> CommandResult:
        result = run_command(cmd, timeout=timeout or self.command_timeout)
        logger.debug(
            "Service command finished",
            command=cmd[0],
            returncode=result.returncode,
            output=result.output[:500]
        )
        return result


class WindowsServiceBackend(ServiceBackend):
    """WireGuard for Windows tunnel service (`WireGuardTunnel$<name>`)."""

    def __init__(
        self,
        tunnel_name: str,
        wireguard_exe: Optional[str] = None,
        staging_dir: Optional[Path] = None,
        status_timeout: float = 5.0,
        command_timeout: float = 10.0,
    ):
        """
        Initialize Windows backend.

        Args:
            tunnel_name: Name of the managed tunnel
            wireguard_exe: Path to wireguard.exe
            staging_dir: Directory the config is copied to before install
            status_timeout: Timeout for status queries
            command_timeout: Timeout for control commands
        """
        super().__init__(tunnel_name, status_timeout, command_timeout)
        self.wireguard_exe = Path(wireguard_exe) if wireguard_exe else Path(
            r"C:\Program Files\WireGuard\wireguard.exe"
        )
        self.staging_dir = Path(staging_dir) if staging_dir else Path("data")

    @property
    def service_name(self) -> str:
        return WindowsCommandFactory.service_name(self.tunnel_name)

    def query_status(self) -> TunnelStatus:
        result = self._run(WindowsCommandFactory.query(self.service_name), timeout=self.status_timeout)
        return parse_sc_query(result)

    def start(self, elevated: bool = False) -> ControlResult:
        return self._control("start", elevated)

    def stop(self, elevated: bool = False) -> ControlResult:
        return self._control("stop", elevated)

    def _control(self, action: str, elevated: bool) -> ControlResult:
        cmd = WindowsCommandFactory.control(action, self.service_name)
        if elevated:
            return self._run_elevated(cmd)

        result = self._run(cmd)
        if result.succeeded or result.returncode in (ERROR_SERVICE_ALREADY_RUNNING, ERROR_SERVICE_NOT_ACTIVE):
            return ControlResult.success(f"sc {action} accepted")
        if result.returncode == ERROR_ACCESS_DENIED:
            return ControlResult(ControlOutcome.NEEDS_ELEVATION, f"sc {action}: access denied")
        if result.returncode == ERROR_SERVICE_DOES_NOT_EXIST:
            return ControlResult(ControlOutcome.NOT_INSTALLED, f"{self.service_name} does not exist")
        return ControlResult.failure(f"sc {action} exited with {result.returncode}: {result.output}")

    def _run_elevated(self, cmd: List[str]) -> ControlResult:
        """Run through the UAC prompt and classify the result."""
        result = self._run(WindowsCommandFactory.elevated(cmd))
        output = result.output.lower()
        if result.returncode == ERROR_CANCELLED or any(m in output for m in ELEVATION_DECLINED_MARKERS):
            return ControlResult(ControlOutcome.ELEVATION_DECLINED, "UAC prompt was declined")
        if result.succeeded or result.returncode in (ERROR_SERVICE_ALREADY_RUNNING, ERROR_SERVICE_NOT_ACTIVE):
            return ControlResult.success(f"{Path(cmd[0]).name} completed elevated")
        if result.returncode == ERROR_SERVICE_DOES_NOT_EXIST:
            return ControlResult(ControlOutcome.NOT_INSTALLED, f"{self.service_name} does not exist")
        return ControlResult.failure(f"Elevated {Path(cmd[0]).name} exited with {result.returncode}: {result.output}")

    def stage_config(self, config_path: Path) -> Path:
        """
        Copy the config to `<staging_dir>/<tunnel_name>.conf`.

        WireGuard names the service after the config file, so the staged copy
        is what makes the installed service match the tunnel name.
        """
        self.staging_dir.mkdir(parents=True, exist_ok=True)
        staged = self.staging_dir / f"{self.tunnel_name}.conf"
        if Path(config_path).resolve() != staged.resolve():
            shutil.copyfile(config_path, staged)
        return staged.resolve()

    def install(self, config_path: Path) -> ControlResult:
        if not self.wireguard_exe.exists():
            return ControlResult.failure(f"WireGuard executable not found at {self.wireguard_exe}")
        if not Path(config_path).exists():
            return ControlResult.failure(f"Tunnel config not found at {config_path}")

        try:
            staged = self.stage_config(Path(config_path))
        except OSError as e:
            return ControlResult.failure(f"Could not stage tunnel config: {e}")

        logger.info("Installing tunnel service", tunnel=self.tunnel_name, config=str(staged))
        return self._run_elevated(WindowsCommandFactory.install(self.wireguard_exe, staged))

    def uninstall(self) -> ControlResult:
        if not self.wireguard_exe.exists():
            return ControlResult.failure(f"WireGuard executable not found at {self.wireguard_exe}")
        logger.info("Uninstalling tunnel service", tunnel=self.tunnel_name)
        return self._run_elevated(WindowsCommandFactory.uninstall(self.wireguard_exe, self.tunnel_name))

    def list_tunnel_services(self) -> List[str]:
        result = self._run(WindowsCommandFactory.list_services(), timeout=self.status_timeout)
        return SC_SERVICE_NAME_PATTERN.findall(result.stdout)


class SystemdServiceBackend(ServiceBackend):
    """wg-quick@<name> systemd unit, elevated through pkexec."""

    @property
    def service_name(self) -> str:
        return SystemdCommandFactory.unit_name(self.tunnel_name)

    def query_status(self) -> TunnelStatus:
        result = self._run(SystemdCommandFactory.show(self.service_name), timeout=self.status_timeout)
        if not result.succeeded:
            return TunnelStatus.UNKNOWN
        return systemd_status(parse_systemctl_show(result.stdout))

    def start(self, elevated: bool = False) -> ControlResult:
        return self._control("start", elevated)

    def stop(self, elevated: bool = False) -> ControlResult:
        return self._control("stop", elevated)

    def _control(self, action: str, elevated: bool) -> ControlResult:
        cmd = SystemdCommandFactory.control(action, self.service_name)
        if elevated:
            return self._run_elevated(cmd)

        result = self._run(cmd)
        if result.succeeded:
            return ControlResult.success(f"systemctl {action} accepted")
        output = result.output.lower()
        if any(m in output for m in POLKIT_DENIED_MARKERS):
            return ControlResult(ControlOutcome.NEEDS_ELEVATION, f"systemctl {action}: access denied")
        if "not found" in output or "not loaded" in output:
            return ControlResult(ControlOutcome.NOT_INSTALLED, f"{self.service_name} does not exist")
        return ControlResult.failure(f"systemctl {action} exited with {result.returncode}: {result.output}")

    def _run_elevated(self, cmd: List[str]) -> ControlResult:
        try:
            result = self._run(SystemdCommandFactory.elevated(cmd))
        except CommandNotFoundError:
            return ControlResult.failure("pkexec is not available; run as root instead")

        if result.returncode == PKEXEC_DISMISSED:
            return ControlResult(ControlOutcome.ELEVATION_DECLINED, "Authentication dialog was dismissed")
        if result.returncode == PKEXEC_NOT_AUTHORIZED:
            return ControlResult.failure("Not authorized to manage the tunnel service")
        if result.succeeded:
            return ControlResult.success(f"{cmd[0]} completed elevated")
        return ControlResult.failure(f"Elevated {cmd[0]} exited with {result.returncode}: {result.output}")

    def install(self, config_path: Path) -> ControlResult:
        if not Path(config_path).exists():
            return ControlResult.failure(f"Tunnel config not found at {config_path}")
        logger.info("Installing tunnel service", unit=self.service_name, config=str(config_path))
        return self._run_elevated(SystemdCommandFactory.install(Path(config_path).resolve(), self.tunnel_name))

    def uninstall(self) -> ControlResult:
        logger.info("Uninstalling tunnel service", unit=self.service_name)
        return self._run_elevated(SystemdCommandFactory.uninstall(self.tunnel_name))

    def list_tunnel_services(self) -> List[str]:
        result = self._run(SystemdCommandFactory.list_units(), timeout=self.status_timeout)
        names = []
        for line in result.stdout.splitlines():
            unit = line.split()[0] if line.strip() else ""
            if unit.startswith("wg-quick@") and unit.endswith(".service"):
                names.append(unit[len("wg-quick@"):-len(".service")])
        return names


def create_backend(config) -> ServiceBackend:
    """
    Create the service backend selected by configuration.

    Args:
        config: Config instance

    Returns:
        ServiceBackend for the current platform
    """
    if config.resolved_backend == "windows":
        return WindowsServiceBackend(
            tunnel_name=config.tunnel_name,
            wireguard_exe=config.tunnel_exe,
            staging_dir=config.data_path,
            status_timeout=config.status_query_timeout,
            command_timeout=config.command_timeout,
        )
    return SystemdServiceBackend(
        tunnel_name=config.tunnel_name,
        status_timeout=config.status_query_timeout,
        command_timeout=config.command_timeout,
    )

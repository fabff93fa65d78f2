"""Factories for the command lines used to control the tunnel service."""

from pathlib import Path
from typing import List


def _ps_quote(value: str) -> str:
    """Single-quote a value for PowerShell."""
    return "'" + str(value).replace("'", "''") + "'"


class WindowsCommandFactory:
    """Commands for the WireGuard tunnel service on Windows."""

    @staticmethod
    def service_name(tunnel_name: str) -> str:
        return f"WireGuardTunnel${tunnel_name}"

    @staticmethod
    def query(service: str) -> List[str]:
        """Create service status query command."""
        return ["sc.exe", "query", service]

    @staticmethod
    def control(action: str, service: str) -> List[str]:
        """Create service start/stop command."""
        return ["sc.exe", action, service]

    @staticmethod
    def list_services() -> List[str]:
        """Create command listing all services."""
        return ["sc.exe", "query", "type=", "service", "state=", "all"]

    @staticmethod
    def install(wg_exe: Path, config_path: Path) -> List[str]:
        """Create tunnel service install command."""
        return [str(wg_exe), "/installtunnelservice", str(config_path)]

    @staticmethod
    def uninstall(wg_exe: Path, tunnel_name: str) -> List[str]:
        """Create tunnel service uninstall command."""
        return [str(wg_exe), "/uninstalltunnelservice", tunnel_name]

    @staticmethod
    def elevated(cmd: List[str]) -> List[str]:
        """Wrap a command so it runs through the UAC prompt and propagates its exit code."""
        exe, args = cmd[0], cmd[1:]
        arg_list = ",".join(_ps_quote(a) for a in args) if args else "@()"
        script = (
            f"$p = Start-Process -FilePath {_ps_quote(exe)} -ArgumentList {arg_list} "
            f"-Verb RunAs -Wait -PassThru -WindowStyle Hidden; exit $p.ExitCode"
        )
        return ["powershell.exe", "-NoProfile", "-NonInteractive", "-Command", script]


class SystemdCommandFactory:
    """Commands for a wg-quick systemd unit on Linux."""

    WIREGUARD_DIR = Path("/etc/wireguard")

    @staticmethod
    def unit_name(tunnel_name: str) -> str:
        return f"wg-quick@{tunnel_name}"

    @staticmethod
    def show(unit: str) -> List[str]:
        """Create unit state query command."""
        return ["systemctl", "show", unit, "--property=LoadState,ActiveState,UnitFileState"]

    @staticmethod
    def control(action: str, unit: str) -> List[str]:
        """Create unit start/stop command that fails instead of prompting."""
        return ["systemctl", "--no-ask-password", action, unit]

    @staticmethod
    def list_units() -> List[str]:
        """Create command listing wg-quick units."""
        return ["systemctl", "list-units", "--all", "--plain", "--no-legend", "wg-quick@*"]

    @classmethod
    def install(cls, config_path: Path, tunnel_name: str) -> List[str]:
        """
        Create install command: copy the config with mode 600 and enable the unit, one prompt.

        The unit is not started here; the next evaluation decides.
        """
        dest = cls.WIREGUARD_DIR / f"{tunnel_name}.conf"
        return [
            "sh", "-c",
            'install -m 600 "$1" "$2" && systemctl enable "$3"',
            "sh", str(config_path), str(dest), cls.unit_name(tunnel_name),
        ]

    @classmethod
    def uninstall(cls, tunnel_name: str) -> List[str]:
        """Create uninstall command: disable and stop the unit, remove the config."""
        dest = cls.WIREGUARD_DIR / f"{tunnel_name}.conf"
        return [
            "sh", "-c",
            'systemctl disable --now "$1"; rm -f "$2"',
            "sh", cls.unit_name(tunnel_name), str(dest),
        ]

    @staticmethod
    def elevated(cmd: List[str]) -> List[str]:
        """Wrap a command with pkexec (graphical polkit prompt)."""
        return ["pkexec"] + list(cmd)

"""
Network observation: current WiFi SSID and local IPv4 addresses.

Query failures never raise. They degrade to a failed SSID reading or an empty
address list, which the trust evaluator treats as untrusted.
"""

import ipaddress
import re
import socket
import sys
from typing import Iterable, List, Optional

import psutil

from core.logger import get_logger
from core.process import CommandError, CommandNotFoundError, run_command
from core.state import NetworkSnapshot, SsidReading
from modules.trust.evaluator import adapter_excluded

logger = get_logger(__name__)

NETSH_SSID_PATTERN = re.compile(r"^\s*SSID\s*:\s*(.+)$", re.MULTILINE)
AIRPORT_PATTERN = re.compile(r"Current Wi-Fi Network:\s*(.+)$", re.MULTILINE)


def parse_netsh_output(output: str) -> SsidReading:
    """Parse `netsh wlan show interfaces`."""
    match = NETSH_SSID_PATTERN.search(output or "")
    if match:
        return SsidReading.associated(match.group(1).strip())
    return SsidReading.not_associated()


def parse_nmcli_output(output: str) -> SsidReading:
    """Parse `nmcli -t -f active,ssid dev wifi` (lines like 'yes:HomeNet')."""
    for line in (output or "").splitlines():
        active, _, ssid = line.partition(":")
        if active.strip().lower() == "yes" and ssid.strip():
            # nmcli terse mode escapes colons inside values
            return SsidReading.associated(ssid.replace("\\:", ":").strip())
    return SsidReading.not_associated()


def parse_networksetup_output(output: str) -> SsidReading:
    """Parse `networksetup -getairportnetwork <iface>`."""
    match = AIRPORT_PATTERN.search(output or "")
    if match:
        return SsidReading.associated(match.group(1).strip())
    return SsidReading.not_associated()


class NetworkObserver:
    """Reads the machine's current network identity."""

    def __init__(self, query_timeout: float = 2.0, platform: Optional[str] = None, wifi_interface: str = "en0"):
        """
        Initialize network observer.

        Args:
            query_timeout: Timeout in seconds for each external query
            platform: sys.platform override (tests)
            wifi_interface: WiFi device name for macOS queries
        """
        self.query_timeout = query_timeout
        self.platform = platform or sys.platform
        self.wifi_interface = wifi_interface

    def get_ssid(self) -> SsidReading:
        """
        Get the current WiFi SSID.

        Returns:
            SsidReading; NOT_ASSOCIATED on wired-only machines, QUERY_FAILED on errors
        """
        try:
            if self.platform == "win32":
                reading = self._query_windows()
            elif self.platform == "darwin":
                reading = self._query_macos()
            else:
                reading = self._query_linux()
        except CommandError as e:
            logger.warning("SSID query failed", error=str(e), error_type=type(e).__name__)
            return SsidReading.failed()

        logger.debug("SSID query completed", state=reading.state.value, ssid=reading.display)
        return reading

    def _query_windows(self) -> SsidReading:
        result = run_command(["netsh", "wlan", "show", "interfaces"], timeout=self.query_timeout)
        if not result.succeeded and not result.stdout:
            # WLAN AutoConfig service not running: wired-only machine
            logger.debug("netsh reported no wireless interface", returncode=result.returncode)
            return SsidReading.not_associated()
        return parse_netsh_output(result.stdout)

    def _query_linux(self) -> SsidReading:
        try:
            result = run_command(["iwgetid", "-r"], timeout=self.query_timeout)
        except CommandNotFoundError:
            result = run_command(
                ["nmcli", "-t", "-f", "active,ssid", "dev", "wifi"],
                timeout=self.query_timeout,
            )
            if not result.succeeded:
                raise CommandError(f"nmcli exited with {result.returncode}: {result.stderr.strip()}")
            return parse_nmcli_output(result.stdout)

        ssid = result.stdout.strip()
        if result.succeeded and ssid:
            return SsidReading.associated(ssid)
        return SsidReading.not_associated()

    def _query_macos(self) -> SsidReading:
        result = run_command(
            ["networksetup", "-getairportnetwork", self.wifi_interface],
            timeout=self.query_timeout,
        )
        return parse_networksetup_output(result.stdout)

    def get_local_ipv4_addresses(self, excluded_adapters: Iterable[str] = ()) -> List[str]:
        """
        Collect IPv4 addresses of link-up, non-loopback adapters.

        Args:
            excluded_adapters: Case-insensitive substrings of adapter names to skip

        Returns:
            List of dotted-quad addresses; empty on failure
        """
        excluded = list(excluded_adapters)
        try:
            stats = psutil.net_if_stats()
            all_addrs = psutil.net_if_addrs()
        except Exception as e:
            logger.warning("Adapter enumeration failed", error=str(e), error_type=type(e).__name__)
            return []

        addresses = []
        for adapter, addrs in all_addrs.items():
            adapter_stats = stats.get(adapter)
            if adapter_stats is None or not adapter_stats.isup:
                continue
            if adapter_excluded(adapter, excluded):
                logger.debug("Skipping excluded adapter", adapter=adapter)
                continue
            for addr in addrs:
                if addr.family != socket.AF_INET:
                    continue
                try:
                    if ipaddress.IPv4Address(addr.address).is_loopback:
                        continue
                except ValueError:
                    continue
                addresses.append(addr.address)

        logger.debug("Collected local IPv4 addresses", count=len(addresses), addresses=addresses)
        return addresses

    def snapshot(self, excluded_adapters: Iterable[str] = ()) -> NetworkSnapshot:
        """Take a NetworkSnapshot for one evaluation cycle."""
        return NetworkSnapshot(
            ssid=self.get_ssid(),
            local_ipv4_addresses=self.get_local_ipv4_addresses(excluded_adapters),
        )

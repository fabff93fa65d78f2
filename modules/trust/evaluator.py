"""
Trust evaluation: decides whether the current network is one where the
tunnel should stay down. Either a trusted SSID or a local address inside a
trusted IPv4 range is sufficient.
"""

import ipaddress
from dataclasses import dataclass
from typing import Iterable, Optional, Set

from core.logger import get_logger
from core.state import NetworkSnapshot, TrustConfig, WifiState

logger = get_logger(__name__)

# Bad CIDR strings already reported, so a reload-free daemon warns once per value
_reported_bad_ranges: Set[str] = set()


@dataclass(frozen=True)
class TrustDecision:
    """Why a network was (or was not) considered trusted."""

    ssid_match: bool
    ip_match: bool
    matched_address: Optional[str] = None
    matched_range: Optional[str] = None

    @property
    def trusted(self) -> bool:
        return self.ssid_match or self.ip_match


def _warn_bad_range(cidr: str, reason: str) -> None:
    if cidr in _reported_bad_ranges:
        return
    _reported_bad_ranges.add(cidr)
    logger.warning("Ignoring malformed trusted IP range", cidr=cidr, reason=reason)


def parse_ipv4_range(cidr: str) -> Optional[ipaddress.IPv4Network]:
    """
    Parse a CIDR string like '192.168.1.0/24'.

    Host bits in the address part are masked off rather than rejected.

    Returns:
        The network, or None if the string is not a valid IPv4 CIDR
    """
    if cidr is None or not str(cidr).strip():
        return None

    text = str(cidr).strip()
    parts = text.split("/")
    if len(parts) != 2:
        _warn_bad_range(text, "expected format address/prefix, e.g. 192.168.1.0/24")
        return None

    address, prefix = parts
    try:
        ipaddress.IPv4Address(address)
    except ValueError:
        _warn_bad_range(text, f"invalid network address '{address}'")
        return None

    if not prefix.isdigit() or not 0 <= int(prefix) <= 32:
        _warn_bad_range(text, f"invalid prefix length '{prefix}', must be 0-32")
        return None

    return ipaddress.IPv4Network(f"{address}/{int(prefix)}", strict=False)


def ip_in_range(address: str, cidr: str) -> bool:
    """Check if an IPv4 address lies inside a CIDR range. Malformed input never matches."""
    network = parse_ipv4_range(cidr)
    if network is None:
        return False
    try:
        ip = ipaddress.IPv4Address(str(address).strip())
    except ValueError:
        logger.warning("Ignoring malformed local address", address=address)
        return False
    return ip in network


def adapter_excluded(adapter_name: str, excluded_substrings: Iterable[str]) -> bool:
    """Case-insensitive substring match of an adapter name against the exclusion list."""
    name = (adapter_name or "").lower()
    return any(sub and sub.lower() in name for sub in excluded_substrings)


def ssid_matches(snapshot: NetworkSnapshot, trusted_ssids: Iterable[str]) -> bool:
    """Only a real association can match; the no-WiFi and failed-query readings never do."""
    reading = snapshot.ssid
    if reading.state != WifiState.ASSOCIATED or not reading.ssid:
        return False
    current = reading.ssid.strip().casefold()
    return any(current == s.strip().casefold() for s in trusted_ssids if s)


def evaluate_trust(snapshot: NetworkSnapshot, config: TrustConfig) -> TrustDecision:
    """
    Evaluate both trust rules for a snapshot.

    Args:
        snapshot: Current SSID reading and local IPv4 addresses
        config: Trust rules for this cycle

    Returns:
        TrustDecision carrying which rule matched
    """
    ssid_match = ssid_matches(snapshot, config.trusted_ssids)

    for address in snapshot.local_ipv4_addresses:
        for cidr in config.trusted_ip_ranges:
            if ip_in_range(address, cidr):
                return TrustDecision(
                    ssid_match=ssid_match,
                    ip_match=True,
                    matched_address=address,
                    matched_range=cidr,
                )

    return TrustDecision(ssid_match=ssid_match, ip_match=False)


def is_trusted(snapshot: NetworkSnapshot, config: TrustConfig) -> bool:
    """True when the SSID or any local address matches a trust rule."""
    return evaluate_trust(snapshot, config).trusted

"""
State models for tunnel-autopilot.
Value objects passed between the observer, evaluator, controller and engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple


class TunnelStatus(str, Enum):
    """Runtime state of the tunnel service, as shown to users."""

    NOT_INSTALLED = "Not Installed"
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    DISCONNECTING = "Disconnecting"
    CONNECTED = "Connected"
    UNKNOWN = "Unknown"

    @property
    def is_transitional(self) -> bool:
        return self in (TunnelStatus.CONNECTING, TunnelStatus.DISCONNECTING, TunnelStatus.UNKNOWN)


class WifiState(str, Enum):
    """Result class of a WiFi association query."""

    ASSOCIATED = "associated"
    NOT_ASSOCIATED = "not_associated"
    QUERY_FAILED = "query_failed"


NO_WIFI_LABEL = "Ethernet/Unknown"
QUERY_FAILED_LABEL = "Unknown"


@dataclass(frozen=True)
class SsidReading:
    """SSID query result. `ssid` is only set when associated."""

    state: WifiState
    ssid: Optional[str] = None

    @classmethod
    def associated(cls, ssid: str) -> "SsidReading":
        return cls(WifiState.ASSOCIATED, ssid)

    @classmethod
    def not_associated(cls) -> "SsidReading":
        return cls(WifiState.NOT_ASSOCIATED)

    @classmethod
    def failed(cls) -> "SsidReading":
        return cls(WifiState.QUERY_FAILED)

    @property
    def display(self) -> str:
        if self.state == WifiState.ASSOCIATED and self.ssid is not None:
            return self.ssid
        if self.state == WifiState.NOT_ASSOCIATED:
            return NO_WIFI_LABEL
        return QUERY_FAILED_LABEL


@dataclass(frozen=True)
class TrustConfig:
    """Trust rules, immutable for the duration of one evaluation cycle."""

    trusted_ssids: Tuple[str, ...] = ()
    trusted_ip_ranges: Tuple[str, ...] = ()
    excluded_adapters: Tuple[str, ...] = ()


@dataclass(frozen=True)
class NetworkSnapshot:
    """What the machine's network looked like at one instant."""

    ssid: SsidReading
    local_ipv4_addresses: List[str] = field(default_factory=list)


class ActionTaken(str, Enum):
    """Command issued by one evaluation cycle."""

    NONE = "none"
    STARTED = "started"
    STOPPED = "stopped"


@dataclass
class EvaluationOutcome:
    """Result of one evaluation cycle."""

    previous_status: TunnelStatus
    is_trusted: bool
    manually_disabled: bool
    action_taken: ActionTaken
    new_status: TunnelStatus

    ssid: str = QUERY_FAILED_LABEL
    trigger: str = "manual"
    evaluated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "previous_status": self.previous_status.value,
            "is_trusted": self.is_trusted,
            "manually_disabled": self.manually_disabled,
            "action_taken": self.action_taken.value,
            "new_status": self.new_status.value,
            "ssid": self.ssid,
            "trigger": self.trigger,
            "evaluated_at": self.evaluated_at.isoformat(),
        }


class ControlOutcome(str, Enum):
    """Tagged result of a tunnel service command."""

    OK = "ok"
    NEEDS_ELEVATION = "needs_elevation"
    ELEVATION_DECLINED = "elevation_declined"
    NOT_INSTALLED = "not_installed"
    FAILED = "failed"


@dataclass
class ControlResult:
    """Outcome of start/stop/install/uninstall plus the status observed afterwards."""

    outcome: ControlOutcome
    message: str = ""
    status: Optional[TunnelStatus] = None

    @property
    def ok(self) -> bool:
        return self.outcome == ControlOutcome.OK

    @classmethod
    def success(cls, message: str = "", status: Optional[TunnelStatus] = None) -> "ControlResult":
        return cls(ControlOutcome.OK, message, status)

    @classmethod
    def failure(cls, message: str, status: Optional[TunnelStatus] = None) -> "ControlResult":
        return cls(ControlOutcome.FAILED, message, status)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "outcome": self.outcome.value,
            "message": self.message,
            "status": self.status.value if self.status else None,
        }

"""
Pydantic schemas for API requests and responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.state import ControlResult, EvaluationOutcome


# Tunnel Schemas

class EvaluationResponse(BaseModel):
    """Result of one evaluation cycle requested over the API."""

    evaluated: bool = Field(..., description="False if a cycle was already running or the cycle failed")
    previous_status: Optional[str] = None
    is_trusted: Optional[bool] = None
    manually_disabled: Optional[bool] = None
    action_taken: Optional[str] = None
    new_status: Optional[str] = None
    ssid: Optional[str] = None
    trigger: Optional[str] = None
    evaluated_at: Optional[datetime] = None

    @classmethod
    def from_outcome(cls, outcome: Optional[EvaluationOutcome]) -> "EvaluationResponse":
        if outcome is None:
            return cls(evaluated=False)
        return cls(evaluated=True, **outcome.to_dict())


class ControlResponse(BaseModel):
    """Result of a manual start/stop/install/uninstall."""

    outcome: str = Field(..., description="ok, needs_elevation, elevation_declined, not_installed or failed")
    message: str = ""
    status: Optional[str] = Field(None, description="Tunnel status observed after the action")

    @classmethod
    def from_result(cls, result: ControlResult) -> "ControlResponse":
        return cls(**result.to_dict())


class InstallRequest(BaseModel):
    """Schema for installing the tunnel service."""

    config_path: Optional[str] = Field(
        None,
        description="WireGuard config to install; defaults to TUNNEL_CONFIG_PATH"
    )


class TunnelStatusResponse(BaseModel):
    """Current tunnel and network state."""

    tunnel: str
    status: str
    ssid: str
    local_ipv4_addresses: List[str] = Field(default_factory=list)
    is_trusted: bool
    matched_range: Optional[str] = None
    manually_disabled: bool
    other_tunnels: List[str] = Field(default_factory=list)
    cycles: Dict[str, Any] = Field(default_factory=dict)
    status_record: Optional[str] = Field(None, description="Content of the status record file")


class ConfigReloadResponse(BaseModel):
    """Effective trigger and trust settings after a reload."""

    reloaded: bool
    trusted_ssids: List[str]
    trusted_ip_ranges: List[str]
    timer_enabled: bool
    timer_interval_seconds: int
    network_watch_enabled: bool

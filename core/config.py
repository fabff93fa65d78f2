"""
Configuration management for tunnel-autopilot.
Settings come from the environment and an optional .env file.
"""

import sys
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.state import TrustConfig


# Substrings matching the tunnel's own virtual adapter and other common VPN adapters.
DEFAULT_EXCLUDED_ADAPTERS = [
    "wireguard",
    "wintun",
    "wg",
    "tun",
    "tap",
    "vpn",
    "tailscale",
    "zerotier",
]

DEFAULT_TIMER_INTERVAL_SECONDS = 30


class Config(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Tunnel
    tunnel_name: str = Field(default="autopilot_tunnel", description="Name of the managed tunnel")
    tunnel_config_path: Optional[str] = Field(
        default=None,
        description="Path to the WireGuard config used when installing the tunnel service"
    )
    tunnel_exe: Optional[str] = Field(
        default=None,
        description="Path to wireguard.exe (Windows backend only)"
    )
    service_backend: str = Field(
        default="auto",
        description="'auto', 'windows' or 'systemd'"
    )

    # Trust rules
    trusted_ssids: List[str] = Field(default_factory=list)
    trusted_ip_ranges: List[str] = Field(default_factory=list)
    excluded_adapters: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_ADAPTERS))

    # Persistent state (override flag, status record, pid file)
    data_dir: str = Field(default="data")

    # Triggers
    timer_enabled: bool = Field(default=True)
    timer_interval_seconds: int = Field(default=DEFAULT_TIMER_INTERVAL_SECONDS)
    network_watch_enabled: bool = Field(default=True)
    network_watch_interval_seconds: float = Field(default=5.0)
    transition_recheck_seconds: float = Field(
        default=5.0,
        description="Delay before re-evaluating a tunnel left in a transitional state (0 disables)"
    )

    # Timeouts (seconds)
    status_query_timeout: float = Field(default=5.0)
    command_timeout: float = Field(default=10.0)
    network_query_timeout: float = Field(default=2.0)
    manual_action_lock_timeout: float = Field(default=30.0)

    # Local control API
    api_enabled: bool = Field(default=True)
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8765)
    api_key: Optional[str] = Field(default=None)

    # Application Settings
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default="logs/autopilot.log")
    environment: str = Field(default="development")

    @field_validator("timer_interval_seconds")
    @classmethod
    def validate_timer_interval(cls, v):
        """Out-of-range intervals fall back to the default."""
        if v < 10 or v > 3600:
            return DEFAULT_TIMER_INTERVAL_SECONDS
        return v

    @field_validator("service_backend")
    @classmethod
    def validate_service_backend(cls, v):
        """Validate service backend name."""
        v = v.lower()
        if v not in ("auto", "windows", "systemd"):
            raise ValueError("service_backend must be 'auto', 'windows' or 'systemd'")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def resolved_backend(self) -> str:
        """Backend name with 'auto' resolved for the current platform."""
        if self.service_backend != "auto":
            return self.service_backend
        return "windows" if sys.platform == "win32" else "systemd"

    @property
    def data_path(self) -> Path:
        """Get data directory path."""
        path = Path(self.data_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def trust_config(self) -> TrustConfig:
        """
        Snapshot the trust rules for one evaluation cycle.

        wg-quick and WireGuard for Windows name the tunnel adapter after the
        tunnel, so the tunnel name is always excluded.
        """
        excluded = list(self.excluded_adapters)
        if self.tunnel_name and self.tunnel_name.lower() not in (name.lower() for name in excluded):
            excluded.append(self.tunnel_name)
        return TrustConfig(
            trusted_ssids=tuple(self.trusted_ssids),
            trusted_ip_ranges=tuple(self.trusted_ip_ranges),
            excluded_adapters=tuple(excluded),
        )


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config() -> Config:
    """Re-read the environment and .env file, replacing the global instance."""
    global _config
    _config = Config()
    return _config

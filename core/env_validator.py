"""
Configuration validator for tunnel-autopilot.
Reports problems with the tunnel paths, trust rules and local API up front.
"""

import ipaddress
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import ValidationError

from core.config import Config


# Settings worth showing in the report
CONFIG_ENV_VARS = {
    "TUNNEL_NAME": "Name of the managed tunnel (defaults to 'autopilot_tunnel')",
    "TUNNEL_CONFIG_PATH": "WireGuard config used by install",
    "TUNNEL_EXE": "Path to wireguard.exe (Windows only)",
    "SERVICE_BACKEND": "auto, windows or systemd (defaults to 'auto')",
    "TRUSTED_SSIDS": "JSON list of trusted WiFi names",
    "TRUSTED_IP_RANGES": "JSON list of trusted IPv4 CIDR ranges",
    "EXCLUDED_ADAPTERS": "JSON list of adapter name substrings to ignore",
    "DATA_DIR": "Directory for the override flag, status record and pid file (defaults to 'data')",
    "TIMER_INTERVAL_SECONDS": "Periodic evaluation interval, 10..3600 (defaults to 30)",
    "NETWORK_WATCH_INTERVAL_SECONDS": "Network change poll interval (defaults to 5)",
    "API_ENABLED": "Serve the local control API (defaults to 'true')",
    "API_HOST": "Local control API bind address (defaults to '127.0.0.1')",
    "API_PORT": "Local control API port (defaults to 8765)",
    "API_KEY": "Key required in the X-API-Key header (optional on loopback)",
    "LOG_LEVEL": "Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL (defaults to 'INFO')",
    "LOG_FILE": "Log file path (defaults to 'logs/autopilot.log')",
}

LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "::1")


def load_config() -> Tuple[Optional[Config], List[str]]:
    """
    Load configuration, collecting pydantic validation errors.

    Returns:
        Tuple of (config_or_None, list_of_errors)
    """
    try:
        return Config(), []
    except ValidationError as e:
        return None, [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]


def invalid_ip_ranges(ranges: List[str]) -> List[str]:
    """Return the trusted ranges that are not IPv4 CIDR notation with an explicit prefix."""
    invalid = []
    for cidr in ranges:
        if "/" not in cidr:
            invalid.append(cidr)
            continue
        try:
            ipaddress.IPv4Network(cidr.strip(), strict=False)
        except ValueError:
            invalid.append(cidr)
    return invalid


def validate_tunnel_config(config: Config) -> Tuple[List[str], List[str]]:
    """
    Validate tunnel paths and backend.

    Returns:
        Tuple of (errors, warnings)
    """
    errors, warnings = [], []

    if config.tunnel_config_path and not Path(config.tunnel_config_path).exists():
        warnings.append(f"TUNNEL_CONFIG_PATH does not exist: {config.tunnel_config_path} (install will fail)")
    elif not config.tunnel_config_path:
        warnings.append("TUNNEL_CONFIG_PATH is not set (install is unavailable)")

    if config.resolved_backend == "windows":
        if config.tunnel_exe and not Path(config.tunnel_exe).exists():
            warnings.append(f"TUNNEL_EXE does not exist: {config.tunnel_exe}")
        if sys.platform != "win32":
            warnings.append("SERVICE_BACKEND is 'windows' but this is not a Windows machine")
    elif sys.platform == "win32":
        warnings.append("SERVICE_BACKEND is 'systemd' on a Windows machine")

    try:
        data_path = config.data_path
        if not os.access(data_path, os.W_OK):
            errors.append(f"DATA_DIR is not writable: {data_path}")
    except OSError as e:
        errors.append(f"DATA_DIR cannot be created: {e}")

    return errors, warnings


def validate_trust_rules(config: Config) -> Tuple[List[str], List[str]]:
    """
    Validate trusted SSIDs and IP ranges.

    Returns:
        Tuple of (errors, warnings)
    """
    warnings = []
    for cidr in invalid_ip_ranges(config.trusted_ip_ranges):
        warnings.append(f"TRUSTED_IP_RANGES entry is not valid IPv4 CIDR and will never match: {cidr!r}")
    if not config.trusted_ssids and not config.trusted_ip_ranges:
        warnings.append("No trusted SSIDs or IP ranges: every network is untrusted")
    return [], warnings


def validate_api_config(config: Config) -> Tuple[List[str], List[str]]:
    """
    Validate the local control API settings.

    Returns:
        Tuple of (errors, warnings)
    """
    errors = []
    if config.api_enabled and config.api_host not in LOOPBACK_HOSTS and not config.api_key:
        errors.append(f"API_HOST {config.api_host} is not loopback; API_KEY is required")
    return errors, []


def validate_all(config: Optional[Config] = None) -> Tuple[bool, List[str], List[str]]:
    """
    Validate the whole configuration.

    Args:
        config: Config to check; loaded from the environment when None

    Returns:
        Tuple of (is_valid, errors, warnings)
    """
    if config is None:
        config, load_errors = load_config()
        if config is None:
            return False, load_errors, []

    all_errors, all_warnings = [], []
    for check in (validate_tunnel_config, validate_trust_rules, validate_api_config):
        errors, warnings = check(config)
        all_errors.extend(errors)
        all_warnings.extend(warnings)

    return len(all_errors) == 0, all_errors, all_warnings


def describe_config(config: Config) -> Dict[str, str]:
    """Effective values for the report, with the API key masked."""
    return {
        "backend": config.resolved_backend,
        "tunnel": config.tunnel_name,
        "trusted_ssids": ", ".join(config.trusted_ssids) or "(none)",
        "trusted_ip_ranges": ", ".join(config.trusted_ip_ranges) or "(none)",
        "timer_interval_seconds": str(config.timer_interval_seconds),
        "api": f"{config.api_host}:{config.api_port}" if config.api_enabled else "disabled",
        "api_key": "***MASKED***" if config.api_key else "(not set)",
    }


def print_validation_report(verbose: bool = False) -> None:
    """
    Print a validation report of the configuration.

    Args:
        verbose: If True, show all settings and whether they are set
    """
    print("=" * 60)
    print("tunnel-autopilot Configuration Validation")
    print("=" * 60)
    print()

    config, load_errors = load_config()
    if config is not None:
        print("Effective Configuration:")
        print("-" * 60)
        for key, value in describe_config(config).items():
            print(f"  {key:28} {value}")
        print()

    if verbose:
        print("Settings:")
        print("-" * 60)
        for var, description in CONFIG_ENV_VARS.items():
            status = "✓ SET" if os.getenv(var) else "○ NOT SET (using default)"
            print(f"  {status:12} {var:30} - {description}")
        print()

    print("Validation Summary:")
    print("-" * 60)
    if config is None:
        is_valid, errors, warnings = False, load_errors, []
    else:
        is_valid, errors, warnings = validate_all(config)

    for warning in warnings:
        print(f"  ⚠ {warning}")
    if is_valid:
        print("  ✓ Configuration is valid!")
    else:
        print("  ✗ Invalid configuration:")
        for error in errors:
            print(f"    - {error}")
        print()
        print("  Please fix the settings in your .env file or environment.")

    print("=" * 60)


def validate_and_exit(exit_on_error: bool = True) -> bool:
    """
    Validate configuration and optionally exit on error.

    Args:
        exit_on_error: If True, exit with code 1 on validation failure

    Returns:
        True if valid, False otherwise
    """
    is_valid, errors, _ = validate_all()

    if not is_valid:
        print("\n❌ Configuration validation failed!")
        print("\nInvalid settings:")
        for error in errors:
            print(f"  - {error}")
        print("\nPlease check your .env file or environment variables.")
        print("Run 'python scripts/validate_env.py' for a detailed report.")

        if exit_on_error:
            sys.exit(1)

    return is_valid

"""Exceptions surfaced to interactive callers of tunnel control actions."""

from typing import Optional

from core.state import ControlOutcome, ControlResult


class TunnelError(Exception):
    """Base exception for tunnel control errors."""

    def __init__(self, message: str, result: Optional[ControlResult] = None):
        self.message = message
        self.result = result
        super().__init__(message)


class ServiceNotInstalledError(TunnelError):
    """Raised when the tunnel service is not installed"""
    pass


class ElevationDeclinedError(TunnelError):
    """Raised when the user dismissed the privilege elevation prompt"""
    pass


class TunnelControlError(TunnelError):
    """Raised when a start/stop/install/uninstall command failed"""
    pass


def error_for_result(action: str, result: ControlResult) -> TunnelError:
    """Map a non-OK ControlResult to the exception an interactive caller sees."""
    if result.outcome == ControlOutcome.NOT_INSTALLED:
        return ServiceNotInstalledError(
            "The tunnel service is not installed. Install it first.",
            result,
        )
    if result.outcome == ControlOutcome.ELEVATION_DECLINED:
        return ElevationDeclinedError(
            f"Administrator approval was declined; the tunnel {action} was not performed.",
            result,
        )
    detail = f": {result.message}" if result.message else ""
    return TunnelControlError(f"Unexpected error during tunnel {action}{detail}", result)

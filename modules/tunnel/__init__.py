"""
Tunnel service control.
"""

from modules.tunnel.backends import (
    ServiceBackend,
    SystemdServiceBackend,
    WindowsServiceBackend,
    create_backend
)
from modules.tunnel.controller import TunnelController
from modules.tunnel.exceptions import (
    ElevationDeclinedError,
    ServiceNotInstalledError,
    TunnelControlError,
    TunnelError,
    error_for_result
)

__all__ = [
    "ServiceBackend",
    "SystemdServiceBackend",
    "WindowsServiceBackend",
    "create_backend",
    "TunnelController",
    "TunnelError",
    "ServiceNotInstalledError",
    "ElevationDeclinedError",
    "TunnelControlError",
    "error_for_result"
]

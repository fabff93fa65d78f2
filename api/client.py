"""
HTTP client for the long-lived instance's local control API.
Used by tunnelctl to hand a command off to the running daemon.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from core.config import Config
from core.logger import get_logger
from modules.jobs.instance_lock import InstanceLock

logger = get_logger(__name__)

CONNECT_TIMEOUT = 2.0
# Manual actions can wait on an elevation prompt
READ_TIMEOUT = 120.0


class DaemonUnavailableError(Exception):
    """Raised when the daemon cannot be reached; the caller may run the command locally."""
    pass


@dataclass
class DaemonResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def error_code(self) -> Optional[str]:
        return (self.body.get("error") or {}).get("error_code")

    @property
    def error_message(self) -> str:
        return (self.body.get("error") or {}).get("message", f"HTTP {self.status_code}")


class DaemonClient:
    """Synchronous client for /api/v1."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize daemon client.

        Args:
            base_url: e.g. http://127.0.0.1:8765
            api_key: Value for the X-API-Key header
            transport: httpx transport override (tests)
        """
        headers = {"X-API-Key": api_key} if api_key else {}
        self.base_url = base_url
        self.client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(READ_TIMEOUT, connect=CONNECT_TIMEOUT),
            transport=transport
        )

    @classmethod
    def discover(cls, config: Config) -> Optional["DaemonClient"]:
        """
        Find the live daemon through the instance lock.

        Returns:
            DaemonClient, or None if no live daemon publishes an API port
        """
        if not config.api_enabled:
            return None
        owner = InstanceLock(config.data_path).read_owner()
        if not owner or not owner.get("api_port"):
            return None

        host = config.api_host if config.api_host not in ("0.0.0.0", "::") else "127.0.0.1"
        return cls(f"http://{host}:{owner['api_port']}", api_key=config.api_key)

    def request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> DaemonResponse:
        """
        Send a request to the daemon.

        Raises:
            DaemonUnavailableError: If the connection could not be established
            httpx.HTTPError: On failures after the request reached the daemon
        """
        try:
            response = self.client.request(method, path, json=json)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            logger.info("Daemon not reachable", url=self.base_url, error=str(e))
            raise DaemonUnavailableError(str(e)) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        return DaemonResponse(response.status_code, body if isinstance(body, dict) else {})

    def evaluate(self, trigger: str = "task") -> DaemonResponse:
        return self.request("POST", f"/api/v1/tunnel/evaluate?trigger={trigger}")

    def status(self) -> DaemonResponse:
        return self.request("GET", "/api/v1/tunnel/status")

    def start(self) -> DaemonResponse:
        return self.request("POST", "/api/v1/tunnel/start")

    def stop(self) -> DaemonResponse:
        return self.request("POST", "/api/v1/tunnel/stop")

    def install(self, config_path: Optional[str] = None) -> DaemonResponse:
        return self.request("POST", "/api/v1/tunnel/install", json={"config_path": config_path})

    def uninstall(self) -> DaemonResponse:
        return self.request("POST", "/api/v1/tunnel/uninstall")

    def close(self):
        """Close HTTP client."""
        self.client.close()

"""
Shared fixtures: fake service backend, fake observer, config factory.
"""

from pathlib import Path
from typing import List, Optional

import pytest

from core.config import Config
from core.state import ControlResult, NetworkSnapshot, SsidReading, TunnelStatus
from modules.engine.auto_manager import AutoManagementEngine
from modules.engine.status_file import StatusRecordFile
from modules.override.store import ManualOverrideStore
from modules.tunnel.backends import ServiceBackend
from modules.tunnel.controller import TunnelController


class FakeBackend(ServiceBackend):
    """In-memory service whose status follows the commands it receives."""

    def __init__(self, status: TunnelStatus = TunnelStatus.DISCONNECTED, tunnel_name: str = "test_tunnel"):
        super().__init__(tunnel_name)
        self.status = status
        self.calls: List = []
        self.start_results: List[ControlResult] = []
        self.stop_results: List[ControlResult] = []
        self.install_result: Optional[ControlResult] = None
        self.uninstall_result: Optional[ControlResult] = None
        self.query_error: Optional[Exception] = None
        self.services = [tunnel_name]

    @property
    def service_name(self) -> str:
        return f"fake@{self.tunnel_name}"

    def query_status(self) -> TunnelStatus:
        if self.query_error is not None:
            raise self.query_error
        return self.status

    def start(self, elevated: bool = False) -> ControlResult:
        self.calls.append(("start", elevated))
        result = self.start_results.pop(0) if self.start_results else ControlResult.success()
        if result.ok:
            self.status = TunnelStatus.CONNECTED
        return result

    def stop(self, elevated: bool = False) -> ControlResult:
        self.calls.append(("stop", elevated))
        result = self.stop_results.pop(0) if self.stop_results else ControlResult.success()
        if result.ok:
            self.status = TunnelStatus.DISCONNECTED
        return result

    def install(self, config_path: Path) -> ControlResult:
        self.calls.append(("install", Path(config_path)))
        result = self.install_result or ControlResult.success()
        if result.ok:
            self.status = TunnelStatus.DISCONNECTED
        return result

    def uninstall(self) -> ControlResult:
        self.calls.append(("uninstall",))
        result = self.uninstall_result or ControlResult.success()
        if result.ok:
            self.status = TunnelStatus.NOT_INSTALLED
        return result

    def list_tunnel_services(self) -> List[str]:
        return list(self.services)

    @property
    def commands(self) -> List[str]:
        """Command names issued, without the elevation flag."""
        return [call[0] for call in self.calls]


class FakeObserver:
    """Returns whatever network the test sets."""

    def __init__(self, ssid: Optional[str] = None, addresses: Optional[List[str]] = None):
        self.reading = SsidReading.associated(ssid) if ssid else SsidReading.not_associated()
        self.addresses = list(addresses or [])
        self.error: Optional[Exception] = None

    def move_to(self, ssid: Optional[str] = None, addresses: Optional[List[str]] = None):
        self.reading = SsidReading.associated(ssid) if ssid else SsidReading.not_associated()
        self.addresses = list(addresses or [])

    def get_ssid(self) -> SsidReading:
        if self.error is not None:
            raise self.error
        return self.reading

    def snapshot(self, excluded_adapters=()) -> NetworkSnapshot:
        return NetworkSnapshot(ssid=self.get_ssid(), local_ipv4_addresses=list(self.addresses))


@pytest.fixture
def data_dir(tmp_path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def make_config(tmp_path, data_dir):
    """Build a Config that ignores the developer's .env file."""
    def factory(**overrides) -> Config:
        values = {
            "data_dir": str(data_dir),
            "log_file": str(tmp_path / "logs" / "test.log"),
            "tunnel_name": "test_tunnel",
            "trusted_ssids": ["HomeNet"],
            "trusted_ip_ranges": ["192.168.1.0/24"],
            "manual_action_lock_timeout": 1.0,
            "transition_recheck_seconds": 5.0,
        }
        values.update(overrides)
        return Config(_env_file=None, **values)
    return factory


@pytest.fixture
def config(make_config) -> Config:
    return make_config()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def controller(backend) -> TunnelController:
    return TunnelController(backend, command_timeout=1.0, poll_interval=0.0, sleep=lambda seconds: None)


@pytest.fixture
def observer() -> FakeObserver:
    """Starts on an untrusted coffee-shop network."""
    return FakeObserver(ssid="CoffeeShop", addresses=["10.20.30.40"])


@pytest.fixture
def override(data_dir) -> ManualOverrideStore:
    return ManualOverrideStore(data_dir)


@pytest.fixture
def status_file(data_dir) -> StatusRecordFile:
    return StatusRecordFile(data_dir)


@pytest.fixture
def engine(controller, observer, override, status_file, config) -> AutoManagementEngine:
    return AutoManagementEngine(
        controller=controller,
        observer=observer,
        override=override,
        status_file=status_file,
        config_provider=lambda: config,
    )

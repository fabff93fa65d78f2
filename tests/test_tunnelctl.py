"""
Tests for tunnelctl: daemon hand-off, local fallback and exit codes.
"""

import json

import httpx
import pytest

import tunnelctl
from api.client import DaemonClient
from core.context import AppContext
from core.state import ControlOutcome, ControlResult, TunnelStatus
from modules.jobs.instance_lock import InstanceLock


@pytest.fixture(autouse=True)
def quiet(monkeypatch, config):
    monkeypatch.setattr(tunnelctl, "get_config", lambda: config)
    monkeypatch.setattr(tunnelctl, "setup_logging", lambda **kwargs: None)


@pytest.fixture
def local_context(controller, observer, override, status_file, engine, config):
    return AppContext(
        config_provider=lambda: config,
        controller=controller,
        observer=observer,
        override=override,
        status_file=status_file,
        engine=engine,
    )


@pytest.fixture
def run(local_context):
    """Invoke tunnelctl.main with a daemon handler (or none) and the local context."""
    def invoke(argv, handler=None):
        def client_factory(config):
            if handler is None:
                return None
            return DaemonClient("http://daemon.test", transport=httpx.MockTransport(handler))

        def context_factory(config_provider, with_scheduler=True):
            assert with_scheduler is False
            return local_context

        return tunnelctl.main(argv, client_factory=client_factory, context_factory=context_factory)
    return invoke


def daemon(status_code=200, body=None, requests=None):
    def handler(request):
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, json=body or {})
    return handler


def daemon_error(status_code, error_code):
    return daemon(status_code, {"error": {"message": "daemon said no", "error_code": error_code}})


def unreachable(request):
    raise httpx.ConnectError("Connection refused", request=request)


class TestRemote:

    def test_cycle_hands_off(self, run, backend):
        requests = []

        code = run(["cycle"], daemon(body={"evaluated": True, "new_status": "Connected"}, requests=requests))

        assert code == tunnelctl.EXIT_OK
        assert requests[0].method == "POST"
        assert requests[0].url.path == "/api/v1/tunnel/evaluate"
        assert requests[0].url.params["trigger"] == "task"
        assert backend.calls == []

    def test_cycle_already_running_is_success(self, run, capsys):
        code = run(["cycle"], daemon(body={"evaluated": False}))

        assert code == tunnelctl.EXIT_OK
        assert "already running" in capsys.readouterr().out

    @pytest.mark.parametrize("status_code,error_code,expected", [
        (409, "service_not_installed", tunnelctl.EXIT_NOT_INSTALLED),
        (403, "elevation_declined", tunnelctl.EXIT_ELEVATION_DECLINED),
        (502, "tunnel_control_failed", tunnelctl.EXIT_FAILED),
        (401, "http_401", tunnelctl.EXIT_FAILED),
    ])
    def test_error_codes_map_to_exit_codes(self, run, status_code, error_code, expected, capsys):
        code = run(["start"], daemon_error(status_code, error_code))

        assert code == expected
        assert "daemon said no" in capsys.readouterr().err

    def test_install_sends_config_path(self, run):
        requests = []

        run(["install", "--config", "C:/vpn/office.conf"], daemon(body={"outcome": "ok"}, requests=requests))

        assert json.loads(requests[0].content) == {"config_path": "C:/vpn/office.conf"}

    def test_json_output(self, run, capsys):
        run(["--json", "status"], daemon(body={"tunnel": "test_tunnel", "status": "Connected"}))

        assert json.loads(capsys.readouterr().out)["status"] == "Connected"


class TestLocalFallback:

    def test_unreachable_daemon_runs_locally(self, run, backend):
        code = run(["cycle"], unreachable)

        assert code == tunnelctl.EXIT_OK
        assert backend.commands == ["start"]

    def test_no_daemon_runs_locally(self, run, status_file):
        code = run(["cycle"])

        assert code == tunnelctl.EXIT_OK
        assert status_file.read() == "SSID: CoffeeShop\nVPN: Connected"

    def test_read_timeout_does_not_run_twice(self, run, backend):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        code = run(["start"], slow)

        assert code == tunnelctl.EXIT_FAILED
        assert backend.calls == []

    def test_local_flag_skips_daemon(self, run, backend):
        def must_not_be_called(request):
            raise AssertionError("daemon contacted")

        code = run(["--local", "stop"], must_not_be_called)

        assert code == tunnelctl.EXIT_OK
        assert backend.calls == []

    def test_local_not_installed(self, run, backend):
        backend.status = TunnelStatus.NOT_INSTALLED

        assert run(["start"]) == tunnelctl.EXIT_NOT_INSTALLED

    def test_local_elevation_declined(self, run, backend, override):
        backend.status = TunnelStatus.CONNECTED
        backend.stop_results = [
            ControlResult(ControlOutcome.NEEDS_ELEVATION),
            ControlResult(ControlOutcome.ELEVATION_DECLINED),
        ]

        assert run(["stop"]) == tunnelctl.EXIT_ELEVATION_DECLINED
        assert override.is_disabled is True

    def test_local_cycle_failure(self, run, observer):
        observer.error = RuntimeError("adapter query crashed")

        assert run(["cycle"]) == tunnelctl.EXIT_FAILED

    def test_local_status(self, run, capsys):
        assert run(["--json", "status"]) == tunnelctl.EXIT_OK

        report = json.loads(capsys.readouterr().out)
        assert report["tunnel"] == "test_tunnel"
        assert report["is_trusted"] is False


class TestDiscover:

    @pytest.fixture
    def running_daemon(self, data_dir):
        lock = InstanceLock(data_dir)
        lock.acquire(api_port=9100)
        yield lock
        lock.release()

    def test_finds_live_daemon(self, make_config, running_daemon):
        client = DaemonClient.discover(make_config(api_host="0.0.0.0", api_key="k"))

        assert client.base_url == "http://127.0.0.1:9100"
        assert client.client.headers["X-API-Key"] == "k"
        client.close()

    def test_no_lock_file(self, config):
        assert DaemonClient.discover(config) is None

    def test_headless_daemon_publishes_no_port(self, config, data_dir):
        with InstanceLock(data_dir):
            assert DaemonClient.discover(config) is None

    def test_api_disabled(self, make_config, running_daemon):
        assert DaemonClient.discover(make_config(api_enabled=False)) is None

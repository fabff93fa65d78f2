"""
Tests for the local control API.
"""

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from core import config as config_module
from core.context import AppContext
from core.state import ControlOutcome, ControlResult, TunnelStatus


@pytest.fixture
def settings(config):
    return {"config": config}


@pytest.fixture
def context(controller, observer, override, status_file, engine, settings):
    engine.config_provider = lambda: settings["config"]
    return AppContext(
        config_provider=lambda: settings["config"],
        controller=controller,
        observer=observer,
        override=override,
        status_file=status_file,
        engine=engine,
    )


@pytest.fixture
def client(context):
    with TestClient(create_app(context, run_scheduler=False)) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["tunnel"] == "test_tunnel"
    assert body["scheduler_running"] is None


def test_startup_writes_initial_status_record(client, status_file):
    assert status_file.read() == "SSID: Unknown\nVPN: Unknown"


def test_status(client, backend):
    backend.services = ["test_tunnel", "office"]

    response = client.get("/api/v1/tunnel/status")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "Disconnected"
    assert body["ssid"] == "CoffeeShop"
    assert body["is_trusted"] is False
    assert body["other_tunnels"] == ["office"]
    assert body["status_record"].startswith("SSID:")


def test_evaluate_runs_cycle(client, backend):
    response = client.post("/api/v1/tunnel/evaluate?trigger=task")

    assert response.status_code == 200
    body = response.json()
    assert body["evaluated"] is True
    assert body["trigger"] == "task"
    assert body["action_taken"] == "started"
    assert body["new_status"] == "Connected"
    assert backend.commands == ["start"]


def test_evaluate_while_cycle_running(client, engine):
    engine._lock.acquire()
    try:
        response = client.post("/api/v1/tunnel/evaluate")
    finally:
        engine._lock.release()

    assert response.status_code == 200
    assert response.json()["evaluated"] is False
    assert response.json()["action_taken"] is None
    assert engine.tracker.triggers_skipped == 1


def test_manual_stop_sets_override(client, backend, override):
    backend.status = TunnelStatus.CONNECTED

    response = client.post("/api/v1/tunnel/stop")

    assert response.status_code == 200
    assert response.json()["outcome"] == "ok"
    assert response.json()["status"] == "Disconnected"
    assert override.is_disabled is True


def test_manual_start_clears_override(client, override):
    override.set_disabled(True)

    response = client.post("/api/v1/tunnel/start")

    assert response.status_code == 200
    assert response.json()["status"] == "Connected"
    assert override.is_disabled is False


def test_start_not_installed_is_conflict(client, backend):
    backend.status = TunnelStatus.NOT_INSTALLED

    response = client.post("/api/v1/tunnel/start")

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["error_code"] == "service_not_installed"
    assert error["details"]["outcome"] == "not_installed"


def test_elevation_declined_is_forbidden(client, backend):
    backend.start_results = [
        ControlResult(ControlOutcome.NEEDS_ELEVATION),
        ControlResult(ControlOutcome.ELEVATION_DECLINED, "prompt dismissed"),
    ]

    response = client.post("/api/v1/tunnel/start")

    assert response.status_code == 403
    assert response.json()["error"]["error_code"] == "elevation_declined"


def test_command_failure_is_bad_gateway(client, backend):
    backend.status = TunnelStatus.CONNECTED
    backend.stop_results = [ControlResult.failure("service did not respond")]

    response = client.post("/api/v1/tunnel/stop")

    assert response.status_code == 502
    error = response.json()["error"]
    assert error["error_code"] == "tunnel_control_failed"
    assert "service did not respond" in error["message"]


def test_install_with_explicit_config(client, backend, override, tmp_path):
    backend.status = TunnelStatus.NOT_INSTALLED
    override.set_disabled(True)
    conf = tmp_path / "office.conf"

    response = client.post("/api/v1/tunnel/install", json={"config_path": str(conf)})

    assert response.status_code == 200
    assert backend.calls == [("install", conf)]
    assert override.is_disabled is False


def test_install_without_config_path_fails(client, backend):
    backend.status = TunnelStatus.NOT_INSTALLED

    response = client.post("/api/v1/tunnel/install")

    assert response.status_code == 502
    assert "No tunnel config path" in response.json()["error"]["message"]


def test_uninstall(client, backend):
    response = client.post("/api/v1/tunnel/uninstall")

    assert response.status_code == 200
    assert response.json()["status"] == "Not Installed"
    assert backend.commands == ["uninstall"]


class TestApiKey:

    @pytest.fixture(autouse=True)
    def require_key(self, settings, make_config):
        settings["config"] = make_config(api_key="s3cret")

    def test_missing_key_rejected(self, client):
        response = client.get("/api/v1/tunnel/status")

        assert response.status_code == 401
        assert response.json()["error"]["error_code"] == "http_401"

    def test_wrong_key_rejected(self, client):
        response = client.post("/api/v1/tunnel/start", headers={"X-API-Key": "nope"})

        assert response.status_code == 401

    def test_correct_key_accepted(self, client):
        response = client.get("/api/v1/tunnel/status", headers={"X-API-Key": "s3cret"})

        assert response.status_code == 200

    def test_health_needs_no_key(self, client):
        assert client.get("/health").status_code == 200


class TestConfigReload:

    @pytest.fixture(autouse=True)
    def isolated_env(self, monkeypatch, tmp_path, data_dir):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(config_module, "_config", None)
        monkeypatch.setenv("DATA_DIR", str(data_dir))

    def test_reload_applies_new_trust_rules(self, client, monkeypatch):
        monkeypatch.setenv("TRUSTED_SSIDS", '["Office"]')
        monkeypatch.setenv("TIMER_INTERVAL_SECONDS", "120")

        response = client.post("/api/v1/config/reload")

        assert response.status_code == 200
        body = response.json()
        assert body["trusted_ssids"] == ["Office"]
        assert body["timer_interval_seconds"] == 120
        assert config_module.get_config().trusted_ssids == ["Office"]

    def test_invalid_config_keeps_previous(self, client, monkeypatch):
        monkeypatch.setenv("SERVICE_BACKEND", "launchd")

        response = client.post("/api/v1/config/reload")

        assert response.status_code == 422
        assert response.json()["error"]["error_code"] == "invalid_config"
        assert config_module._config is None

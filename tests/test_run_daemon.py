"""
Tests for the daemon entry point: instance lock and API hand-off port.
"""

import json

import pytest

import run_daemon
from modules.jobs import instance_lock as instance_lock_module
from modules.jobs.instance_lock import InstanceLock


@pytest.fixture
def served(monkeypatch, config):
    """Patch out validation, logging and uvicorn; collect what would be served."""
    calls = []

    def fake_run(app, **kwargs):
        calls.append({
            "app": app,
            "owner": InstanceLock(config.data_path).read_owner(),
            **kwargs,
        })

    monkeypatch.setattr(run_daemon, "validate_and_exit", lambda exit_on_error=True: True)
    monkeypatch.setattr(run_daemon, "get_config", lambda: config)
    monkeypatch.setattr(run_daemon, "setup_logging", lambda **kwargs: None)
    monkeypatch.setattr(run_daemon, "build_context", lambda config_provider: "context")
    monkeypatch.setattr(run_daemon, "create_app", lambda context: ("app", context))
    monkeypatch.setattr(run_daemon.uvicorn, "run", fake_run)
    return calls


def test_serves_api_while_holding_lock(served, config):
    assert run_daemon.main([]) == 0

    assert served[0]["app"] == ("app", "context")
    assert served[0]["port"] == config.api_port
    assert served[0]["owner"]["api_port"] == config.api_port
    assert InstanceLock(config.data_path).read_owner() is None


def test_second_instance_exits(served, config, monkeypatch):
    lock_path = config.data_path / instance_lock_module.PID_FILENAME
    lock_path.write_text(json.dumps({"pid": 4242, "api_port": 8765}))
    monkeypatch.setattr(instance_lock_module.psutil, "pid_exists", lambda pid: True)

    assert run_daemon.main([]) == 1
    assert served == []
    assert lock_path.exists()

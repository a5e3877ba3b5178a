"""
Pytest configuration and fixtures for the self-healing monitors.

This module provides:
- Test client fixture for the FastAPI app (monitors disabled by default)
- Settings fixtures pointing every file path at tmp_path
- A scripted process runner so no real commands ever run
"""
import dataclasses
import logging
import os

import pytest
from fastapi.testclient import TestClient

from self_healing.commands import CommandRunner
from self_healing.config import DatabaseValidatorSettings, NetworkMonitorSettings
from self_healing.events import EventSink, RecentEvents
from self_healing.types import RegistryMirror

from fakes import FakeProcessRunner, ManualTicker, RecordingSleep

# Keep the background monitors off unless a test turns them on
os.environ["ENABLE_SELF_HEALING"] = "false"

from main import app  # noqa: E402


@pytest.fixture
def test_app():
    return app


@pytest.fixture
def client(test_app):
    """
    Test client for the FastAPI app. Using it as a context manager runs the
    lifespan, so app.state is populated the same way as in production.
    """
    with TestClient(test_app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def runner() -> FakeProcessRunner:
    return FakeProcessRunner()


@pytest.fixture
def commands(runner) -> CommandRunner:
    return CommandRunner(runner, privileged_prefix=("sudo", "-n"), system="Linux")


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def ticker() -> ManualTicker:
    return ManualTicker()


@pytest.fixture
def events():
    sink = EventSink()
    recent = RecentEvents()
    sink.subscribe(recent)
    return sink, recent


@pytest.fixture
def test_logger() -> logging.Logger:
    return logging.getLogger("self_healing.tests")


@pytest.fixture
def network_settings(tmp_path) -> NetworkMonitorSettings:
    return dataclasses.replace(
        NetworkMonitorSettings(),
        connectivity_endpoints=("https://one.example", "https://two.example"),
        dns_hosts=("registry.example",),
        registry_endpoints=("https://registry.example/v2/",),
        mirrors=(
            RegistryMirror(url="https://mirror-a.example", name="Mirror A", priority=1),
            RegistryMirror(url="https://mirror-b.example", name="Mirror B", priority=2),
        ),
        resolver_path=tmp_path / "resolv.conf",
        daemon_config_path=tmp_path / "etc" / "daemon.json",
        user_daemon_config_path=tmp_path / "home" / ".docker" / "daemon.json",
        restart_settle_seconds=10.0,
    )


@pytest.fixture
def database_settings(tmp_path) -> DatabaseValidatorSettings:
    return dataclasses.replace(
        DatabaseValidatorSettings(),
        config_path=tmp_path / "app.env",
        database_ready_retries=3,
        app_ready_retries=2,
    )

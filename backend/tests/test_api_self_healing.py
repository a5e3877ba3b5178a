from __future__ import annotations

import pytest

from self_healing.catalog import build_services
from self_healing.config import SelfHealingSettings
from self_healing.events import EventType

from fakes import FakeProcessRunner


@pytest.fixture
def services(tmp_path, network_settings, database_settings):
    settings = SelfHealingSettings(
        enabled=True,
        log_dir=tmp_path / "logs",
        network=network_settings,
        database=database_settings,
    )
    return build_services(settings, runner=FakeProcessRunner(), sleep=lambda s: None)


def test_root(client):
    res = client.get("/")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_endpoints_report_disabled_by_default(client):
    assert client.get("/self-healing/status").json() == {"enabled": False, "network": None, "database": None}
    assert client.get("/self-healing/network").json() == {"enabled": False, "health": None}
    assert client.get("/self-healing/database").json() == {"enabled": False, "validation": None}
    assert client.get("/self-healing/events").json() == {"enabled": False, "events": []}
    assert client.post("/self-healing/database/validate").status_code == 409


def test_status_reports_both_monitors(client, test_app, services):
    test_app.state.self_healing = services
    body = client.get("/self-healing/status").json()
    assert body["enabled"] is True
    assert body["network"]["name"] == "network"
    assert body["database"]["name"] == "database"
    assert body["network"]["state"]["phase"] is None
    assert client.get("/self-healing/network").json() == {"enabled": True, "health": None}


def test_validate_on_demand_records_result_and_events(client, test_app, services):
    test_app.state.self_healing = services
    res = client.post("/self-healing/database/validate")
    assert res.status_code == 200
    assert res.json()["validation"]["is_valid"] is False

    last = client.get("/self-healing/database").json()["validation"]
    assert last["configuration_valid"] is False

    events = client.get("/self-healing/events", params={"source": "database"}).json()["events"]
    assert [e["event_type"] for e in events] == [
        EventType.VALIDATION_COMPLETE.value,
        EventType.VALIDATION_FAILED.value,
    ]


def test_detailed_network_status(client, test_app, services):
    test_app.state.self_healing = services
    body = client.get("/self-healing/network/detailed").json()
    assert body["enabled"] is True
    assert body["health"]["internet_connected"] is False
    assert "diagnostics" in body
    assert client.get("/self-healing/network").json()["health"] is not None


def test_build_services_shares_network_repair_with_puller(services):
    assert services.retry_puller._repair is services.network_monitor.repair
    assert services.network_monitor.repair.step_names[0] == "repair_dns"
    assert services.config_validator.repair.target == "database"

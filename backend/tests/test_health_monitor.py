from __future__ import annotations

import pytest

from self_healing.events import EventType
from self_healing.health_monitor import HealthMonitor
from self_healing.probes import ProbeSet
from self_healing.repair import RepairOrchestrator, RepairStep
from self_healing.types import MonitorPhase


def _monitor(commands, network_settings, events, test_logger, ticker, repairs):
    sink, _ = events
    probes = ProbeSet(commands, network_settings, environ={})
    orch = RepairOrchestrator("network", [RepairStep("record", lambda: repairs.append("repair"))])
    return HealthMonitor(
        probes,
        orch,
        commands=commands,
        settings=network_settings,
        events=sink,
        logger=test_logger,
        ticker=ticker,
        environ={"HTTP_PROXY": "http://proxy:3128"},
    )


def _heal(runner):
    runner.reset()
    runner.on("curl")
    runner.on("nslookup")


def _types(recent):
    return [e.event_type for e in recent.list(limit=200)]


@pytest.mark.asyncio
async def test_three_failed_ticks_emit_one_critical_and_one_repair(
    runner, commands, network_settings, events, test_logger, ticker
):
    _, recent = events
    repairs: list[str] = []
    monitor = _monitor(commands, network_settings, events, test_logger, ticker, repairs)
    monitor.start_monitoring()

    await ticker.fire(3)

    assert _types(recent).count(EventType.CRITICAL) == 1
    assert _types(recent).count(EventType.DEGRADED) == 3
    assert repairs == ["repair"]
    assert monitor.state.repairs_run == 1
    assert monitor.state.consecutive_failures == 3


@pytest.mark.asyncio
async def test_repair_runs_once_per_threshold_crossing(runner, commands, network_settings, events, test_logger, ticker):
    _, recent = events
    repairs: list[str] = []
    monitor = _monitor(commands, network_settings, events, test_logger, ticker, repairs)
    monitor.start_monitoring()

    await ticker.fire(8)

    assert repairs == ["repair"]
    assert _types(recent).count(EventType.CRITICAL) == 1
    assert _types(recent).count(EventType.UNRECOVERABLE) == 1
    assert monitor.state.phase == MonitorPhase.CRITICAL
    assert monitor.state.consecutive_failures == 8


@pytest.mark.asyncio
async def test_clean_tick_restores_and_resets_counter(runner, commands, network_settings, events, test_logger, ticker):
    _, recent = events
    repairs: list[str] = []
    monitor = _monitor(commands, network_settings, events, test_logger, ticker, repairs)
    monitor.start_monitoring()

    await ticker.fire(2)
    assert monitor.state.phase == MonitorPhase.DEGRADED

    _heal(runner)
    await ticker.fire()

    assert monitor.state.consecutive_failures == 0
    assert monitor.state.phase == MonitorPhase.HEALTHY
    assert _types(recent)[-1] == EventType.RESTORED
    assert repairs == []


@pytest.mark.asyncio
async def test_new_crossing_after_recovery_repairs_again(runner, commands, network_settings, events, test_logger, ticker):
    repairs: list[str] = []
    monitor = _monitor(commands, network_settings, events, test_logger, ticker, repairs)
    monitor.start_monitoring()
    await ticker.fire(3)

    _heal(runner)
    await ticker.fire()
    assert monitor.state.consecutive_failures == 0

    runner.reset()

    await ticker.fire(3)
    assert repairs == ["repair", "repair"]


def test_no_status_before_first_tick(runner, commands, network_settings, events, test_logger, ticker):
    monitor = _monitor(commands, network_settings, events, test_logger, ticker, [])
    assert monitor.get_last_health_status() is None
    assert monitor.state.phase is None
    assert monitor.snapshot()["state"]["phase"] is None


def test_run_repair_emits_failure_event(commands, network_settings, events, test_logger, ticker):
    sink, recent = events

    def _broken():
        raise RuntimeError("no daemon")

    monitor = HealthMonitor(
        ProbeSet(commands, network_settings, environ={}),
        RepairOrchestrator("network", [RepairStep("restart_runtime", _broken)]),
        commands=commands,
        settings=network_settings,
        events=sink,
        logger=test_logger,
        ticker=ticker,
    )
    res = monitor.run_repair()
    assert res.ok is False
    assert _types(recent) == [EventType.REPAIR_FAILED]
    assert "restart_runtime" in recent.list()[0].message


def test_detailed_status_includes_diagnostics(runner, commands, network_settings, events, test_logger, ticker):
    network_settings.resolver_path.write_text("nameserver 1.1.1.1\n\nsearch lan\n")
    runner.on("docker", "info", "--format", "{{json .}}", stdout='{"ServerVersion": "27.0"}')
    monitor = _monitor(commands, network_settings, events, test_logger, ticker, [])

    status = monitor.get_detailed_network_status()

    env = status["diagnostics"]["environment"]
    assert env["proxy"] == {"http_proxy": "http://proxy:3128", "https_proxy": "not set"}
    assert env["dns"] == {"resolv_conf": ["nameserver 1.1.1.1", "search lan"]}
    assert env["runtime"] == {"ServerVersion": "27.0"}
    assert status["diagnostics"]["connectivity"]["registry_mirrors"] == []
    assert status["health"]["internet_connected"] is False
    assert monitor.get_last_health_status() is not None


def test_detailed_status_tolerates_unreadable_sources(commands, network_settings, events, test_logger, ticker):
    monitor = _monitor(commands, network_settings, events, test_logger, ticker, [])
    env = monitor.get_detailed_network_status()["diagnostics"]["environment"]
    assert env["dns"] == {"error": "Could not read DNS configuration"}
    assert env["runtime"] == {"error": "Could not get container runtime configuration"}


@pytest.mark.asyncio
async def test_repair_skipped_while_target_busy_is_retried_next_tick(
    runner, commands, network_settings, events, test_logger, ticker
):
    _, recent = events
    repairs: list[str] = []
    monitor = _monitor(commands, network_settings, events, test_logger, ticker, repairs)
    monitor.start_monitoring()

    monitor.repair._lock.acquire()
    try:
        await ticker.fire(3)
    finally:
        monitor.repair._lock.release()

    assert repairs == []
    assert monitor.state.repairs_run == 0
    assert monitor.state.repair_pending is True
    assert monitor.state.phase == MonitorPhase.DEGRADED
    assert EventType.UNRECOVERABLE not in _types(recent)

    await ticker.fire(1)

    assert repairs == ["repair"]
    assert monitor.state.repairs_run == 1
    assert monitor.state.repair_pending is False
    assert _types(recent).count(EventType.CRITICAL) == 1
    assert EventType.UNRECOVERABLE not in _types(recent)

    await ticker.fire(1)

    assert repairs == ["repair"]
    assert _types(recent).count(EventType.UNRECOVERABLE) == 1


def test_detailed_status_reads_resolver_with_undecodable_bytes(commands, network_settings, events, test_logger, ticker):
    network_settings.resolver_path.write_bytes(b"nameserver 1.1.1.1\n# caf\xe9\n")
    monitor = _monitor(commands, network_settings, events, test_logger, ticker, [])

    dns = monitor.get_detailed_network_status()["diagnostics"]["environment"]["dns"]

    assert dns["resolv_conf"][0] == "nameserver 1.1.1.1"
    assert len(dns["resolv_conf"]) == 2

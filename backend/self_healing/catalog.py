from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from .commands import CommandRunner
from .config import SelfHealingSettings
from .config_validator import ConfigValidator
from .database_repair import DatabaseRepair
from .events import EventSink, RecentEvents, log_event
from .health_monitor import HealthMonitor
from .monitor_log import get_monitor_logger
from .network_repair import NetworkRepair
from .probes import ProbeSet
from .process_runner import ProcessRunner
from .retry_puller import RetryPuller


@dataclass
class SelfHealingServices:
    settings: SelfHealingSettings
    events: EventSink
    recent_events: RecentEvents
    commands: CommandRunner
    network_monitor: HealthMonitor
    config_validator: ConfigValidator
    retry_puller: RetryPuller

    def start(self) -> None:
        self.network_monitor.start_monitoring()
        self.config_validator.start_monitoring()

    async def stop(self) -> None:
        await self.network_monitor.stop_monitoring()
        await self.config_validator.stop_monitoring()


def build_services(
    settings: SelfHealingSettings,
    *,
    runner: Optional[ProcessRunner] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SelfHealingServices:
    """Wire both monitors, their repair pipelines and the puller around one process runner."""
    commands = CommandRunner(runner or ProcessRunner(), privileged_prefix=settings.privileged_prefix)
    events = EventSink()
    recent = RecentEvents()
    events.subscribe(log_event)
    events.subscribe(recent)

    network_logger = get_monitor_logger("network-health", settings.log_dir)
    probes = ProbeSet(commands, settings.network)
    network_repair = NetworkRepair(commands, probes, settings.network, logger=network_logger, sleep=sleep)
    network_orchestrator = network_repair.orchestrator()
    network_monitor = HealthMonitor(
        probes,
        network_orchestrator,
        commands=commands,
        settings=settings.network,
        events=events,
        logger=network_logger,
    )

    database_logger = get_monitor_logger("database-validator", settings.log_dir)
    database_repair = DatabaseRepair(commands, settings.database, logger=database_logger, sleep=sleep)
    config_validator = ConfigValidator(
        commands,
        database_repair.orchestrator(),
        settings=settings.database,
        events=events,
        logger=database_logger,
    )

    retry_puller = RetryPuller(
        commands,
        network_orchestrator,
        base_delay_seconds=settings.network.pull_backoff_base_seconds,
        timeout_seconds=settings.network.pull_timeout_seconds,
        platform_name=settings.network.pull_platform,
        sleep=sleep,
    )

    return SelfHealingServices(
        settings=settings,
        events=events,
        recent_events=recent,
        commands=commands,
        network_monitor=network_monitor,
        config_validator=config_validator,
        retry_puller=retry_puller,
    )

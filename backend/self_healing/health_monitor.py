from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from .commands import CommandRunner
from .config import NetworkMonitorSettings
from .control_loop import ControlLoop, TickOutcome
from .events import EventSink, EventType
from .probes import ProbeSet
from .repair import RepairOrchestrator
from .scheduler import IntervalTicker
from .types import HealthStatus, RepairResult


class HealthMonitor(ControlLoop):
    """Network and image-registry health monitor with automatic repair."""

    label = "Network connectivity"

    def __init__(
        self,
        probes: ProbeSet,
        repair: RepairOrchestrator,
        *,
        commands: CommandRunner,
        settings: NetworkMonitorSettings,
        events: EventSink,
        logger: logging.Logger,
        ticker: Optional[IntervalTicker] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(
            name="network",
            events=events,
            ticker=ticker or IntervalTicker(settings.interval_seconds, name="network-health"),
            threshold=settings.failure_threshold,
            logger=logger,
        )
        self.probes = probes
        self.repair = repair
        self._commands = commands
        self._settings = settings
        self._environ = environ if environ is not None else os.environ
        self._last_health: Optional[HealthStatus] = None

    def check_network_health(self) -> HealthStatus:
        try:
            health = self.probes.run()
        except Exception as e:
            health = HealthStatus(errors=[f"Network health check failed: {e}"], last_error=str(e))
        self._last_health = health
        return health

    def get_last_health_status(self) -> Optional[HealthStatus]:
        return self._last_health

    def _probe(self) -> TickOutcome:
        health = self.check_network_health()
        return TickOutcome(errors=list(health.errors), warnings=list(health.warnings), payload=health.to_dict())

    def run_repair(self) -> RepairResult:
        result = self.repair.repair()
        if result.skipped:
            return result
        if result.ok:
            self._emit(EventType.REPAIR_SUCCESS, "Network repair completed successfully", result.to_dict())
        else:
            self._emit(
                EventType.REPAIR_FAILED,
                f"Network repair steps failed: {', '.join(result.failed_steps)}",
                result.to_dict(),
            )
        return result

    def _repair(self) -> Optional[bool]:
        result = self.run_repair()
        return None if result.skipped else result.ok

    def _dns_configuration(self) -> Dict[str, Any]:
        try:
            text = self._settings.resolver_path.read_text(errors="replace")
        except OSError:
            return {"error": "Could not read DNS configuration"}
        return {"resolv_conf": [line for line in text.splitlines() if line.strip()]}

    def _runtime_configuration(self) -> Dict[str, Any]:
        try:
            return self._commands.daemon_info_json(timeout=self._settings.registry_timeout_seconds)
        except Exception:
            return {"error": "Could not get container runtime configuration"}

    def get_detailed_network_status(self) -> Dict[str, Any]:
        """Fresh health check plus environment, resolver and runtime diagnostics."""
        health = self.check_network_health()
        try:
            mirrors = [m.url for m in self.probes.reachable_mirrors()]
        except Exception as e:
            self._logger.warning("Mirror enumeration failed: %s", e)
            mirrors = []
        diagnostics = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": {
                "proxy": {
                    "http_proxy": self._environ.get("HTTP_PROXY") or "not set",
                    "https_proxy": self._environ.get("HTTPS_PROXY") or "not set",
                },
                "dns": self._dns_configuration(),
                "runtime": self._runtime_configuration(),
            },
            "connectivity": {
                "registry_mirrors": mirrors,
                "latency_ms": health.latency_ms,
            },
        }
        return {"health": health.to_dict(), "diagnostics": diagnostics}

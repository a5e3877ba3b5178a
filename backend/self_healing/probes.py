from __future__ import annotations

import logging
import os
import time
from typing import Callable, Iterable, Mapping, Optional

from .commands import CommandRunner
from .config import NetworkMonitorSettings
from .errors import ProcessFailed
from .types import HealthStatus, RegistryMirror

logger = logging.getLogger("self_healing.probes")

PROXY_ENV_VARS = ("HTTP_PROXY", "HTTPS_PROXY", "http_proxy", "https_proxy")

ERROR_NO_INTERNET = "No internet connectivity detected"
ERROR_DNS = "DNS resolution failed"
ERROR_REGISTRY = "Container registry unreachable"
WARNING_PROXY = "Proxy configuration detected"


def _first_success(items: Iterable[str], probe: Callable[[str], bool]) -> bool:
    for item in items:
        if probe(item):
            return True
    return False


class ProbeSet:
    """Ordered, independent network and registry checks feeding one HealthStatus."""

    def __init__(
        self,
        commands: CommandRunner,
        settings: NetworkMonitorSettings,
        *,
        environ: Optional[Mapping[str, str]] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._commands = commands
        self._settings = settings
        self._environ = environ if environ is not None else os.environ
        self._clock = clock

    def check_connectivity(self) -> bool:
        timeout = self._settings.probe_timeout_seconds
        return _first_success(
            self._settings.connectivity_endpoints,
            lambda url: self._commands.http_probe(url, timeout=timeout),
        )

    def check_dns(self) -> bool:
        timeout = self._settings.probe_timeout_seconds
        return _first_success(
            self._settings.dns_hosts,
            lambda host: self._commands.resolve_host(host, timeout=timeout),
        )

    def check_proxy(self) -> bool:
        for name in PROXY_ENV_VARS:
            if self._environ.get(name):
                return True
        try:
            return bool(self._commands.runtime_proxy(timeout=self._settings.probe_timeout_seconds))
        except (ProcessFailed, OSError):
            # Runtime unavailable; registry check reports that separately.
            return False

    def check_registry(self) -> bool:
        timeout = self._settings.registry_timeout_seconds
        if _first_success(
            self._settings.registry_endpoints,
            lambda url: self._commands.http_probe(url, timeout=timeout),
        ):
            return True
        try:
            self._commands.daemon_info(timeout=timeout)
            return True
        except ProcessFailed:
            return False

    def reachable_mirrors(self) -> list[RegistryMirror]:
        """Probe every configured mirror; unlike the other checks this never stops early."""
        timeout = self._settings.probe_timeout_seconds
        return [m for m in self._settings.mirrors if self._commands.http_probe(m.url, timeout=timeout)]

    def run(self) -> HealthStatus:
        start = self._clock()
        health = HealthStatus()
        try:
            health.internet_connected = self.check_connectivity()
            if not health.internet_connected:
                health.errors.append(ERROR_NO_INTERNET)

            health.dns_resolution = self.check_dns()
            if not health.dns_resolution:
                health.errors.append(ERROR_DNS)

            health.proxy_detected = self.check_proxy()
            if health.proxy_detected:
                health.warnings.append(WARNING_PROXY)

            health.registry_reachable = self.check_registry()
            if not health.registry_reachable:
                health.errors.append(ERROR_REGISTRY)

            names: list[str] = []
            for mirror in self.reachable_mirrors():
                if mirror.name not in names:
                    names.append(mirror.name)
            health.registry_mirrors = names
        except Exception as e:
            logger.warning("network probe run failed: %s", e)
            health.errors.append(f"Network health check failed: {e}")
            health.last_error = str(e)
        health.latency_ms = int((self._clock() - start) * 1000)
        return health

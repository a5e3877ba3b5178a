from __future__ import annotations

import json
import logging
import os
import shutil
import time
from pathlib import Path
from typing import Any, Callable, Dict, MutableMapping, Optional

from .commands import CommandRunner
from .config import NetworkMonitorSettings
from .errors import ProcessFailed
from .probes import ProbeSet
from .repair import RepairOrchestrator, RepairStep

MIRRORS_ENV_VAR = "DOCKER_REGISTRY_MIRRORS"


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def _read_json_object(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


class NetworkRepair:
    """Remediation steps for the network/registry target."""

    def __init__(
        self,
        commands: CommandRunner,
        probes: ProbeSet,
        settings: NetworkMonitorSettings,
        *,
        logger: logging.Logger,
        sleep: Callable[[float], None] = time.sleep,
        environ: Optional[MutableMapping[str, str]] = None,
        timestamp: Callable[[], int] = _timestamp_ms,
    ) -> None:
        self._commands = commands
        self._probes = probes
        self._settings = settings
        self._logger = logger
        self._sleep = sleep
        self._environ = environ if environ is not None else os.environ
        self._timestamp = timestamp

    def repair_dns(self) -> None:
        self._logger.info("Repairing DNS configuration")
        try:
            self._commands.flush_resolver()
        except ProcessFailed as e:
            self._logger.warning("Resolver flush failed on every fallback: %s", e)

        resolver = self._settings.resolver_path
        existing = ""
        if resolver.exists():
            existing = resolver.read_text(errors="replace")
            backup = resolver.with_name(f"{resolver.name}.backup.{self._timestamp()}")
            try:
                shutil.copy2(resolver, backup)
            except PermissionError:
                self._commands.copy_file_privileged(resolver, backup)

        present = {
            line.split()[1]
            for line in existing.splitlines()
            if line.strip().startswith("nameserver") and len(line.split()) > 1
        }
        missing = [ns for ns in self._settings.resolver_nameservers if ns not in present]
        if not missing:
            self._logger.info("Resolver already lists %s", ", ".join(self._settings.resolver_nameservers))
            return

        text = "".join(f"nameserver {ns}\n" for ns in missing)
        if existing and not existing.endswith("\n"):
            text = "\n" + text
        try:
            with resolver.open("a") as f:
                f.write(text)
        except PermissionError:
            self._commands.append_file_privileged(resolver, text)
        self._logger.info("Added nameservers to %s: %s", resolver, ", ".join(missing))

    def _write_daemon_config(self, path: Path, managed: Dict[str, Any]) -> None:
        config = _read_json_object(path)
        config.update(managed)
        path.write_text(json.dumps(config, indent=2) + "\n")

    def optimize_daemon_config(self) -> Path:
        self._logger.info("Optimizing container runtime daemon configuration")
        mirror_urls = [m.url for m in self._probes.reachable_mirrors()]
        managed = {
            "dns": list(self._settings.daemon_dns),
            "registry-mirrors": mirror_urls,
            "max-concurrent-downloads": 3,
            "max-concurrent-uploads": 5,
            "default-runtime": "runc",
        }
        path = self._settings.daemon_config_path
        try:
            self._write_daemon_config(path, managed)
        except OSError as e:
            self._logger.info("Cannot write %s (%s); using user daemon config", path, e)
            path = self._settings.user_daemon_config_path
            path.parent.mkdir(parents=True, exist_ok=True)
            self._write_daemon_config(path, managed)
        self._logger.info("Wrote daemon config %s with %d registry mirrors", path, len(mirror_urls))
        return path

    def export_registry_mirrors(self) -> None:
        self._logger.info("Configuring registry mirrors")
        mirror_urls = [m.url for m in self._probes.reachable_mirrors()]
        if mirror_urls:
            self._environ[MIRRORS_ENV_VAR] = ",".join(mirror_urls)
            self._logger.info("Configured %d working registry mirrors", len(mirror_urls))
        else:
            self._logger.warning("No registry mirrors reachable; leaving %s unchanged", MIRRORS_ENV_VAR)

    def restart_runtime(self) -> None:
        self._logger.info("Restarting container runtime daemon")
        self._commands.restart_runtime()
        self._sleep(self._settings.restart_settle_seconds)
        self._commands.daemon_info(timeout=self._settings.registry_timeout_seconds)
        self._logger.info("Container runtime daemon restarted successfully")

    def steps(self) -> list[RepairStep]:
        return [
            RepairStep("repair_dns", self.repair_dns),
            RepairStep("optimize_daemon_config", self.optimize_daemon_config),
            RepairStep("export_registry_mirrors", self.export_registry_mirrors),
            RepairStep("restart_runtime", self.restart_runtime),
        ]

    def orchestrator(self) -> RepairOrchestrator:
        return RepairOrchestrator("network", self.steps(), logger=self._logger)

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .commands import CommandRunner
from .config import DatabaseValidatorSettings
from .env_file import DATABASE_URL_KEY, PLUGINS_KEY, EnvFile, split_plugins, valid_database_url
from .errors import DependencyStartTimeout, ProcessFailed
from .repair import RepairOrchestrator, RepairStep


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


class DatabaseRepair:
    """Remediation steps for the dependent application and its database."""

    def __init__(
        self,
        commands: CommandRunner,
        settings: DatabaseValidatorSettings,
        *,
        logger: logging.Logger,
        sleep: Callable[[float], None] = time.sleep,
        timestamp: Callable[[], int] = _timestamp_ms,
    ) -> None:
        self._commands = commands
        self._settings = settings
        self._logger = logger
        self._sleep = sleep
        self._timestamp = timestamp

    def find_running_database(self) -> Optional[str]:
        return self._commands.first_running(
            self._settings.database_containers, timeout=self._settings.command_timeout_seconds
        )

    def database_ready(self, container: str) -> bool:
        try:
            self._commands.exec_in_container(
                container,
                ["pg_isready", "-U", self._settings.database_user],
                timeout=self._settings.command_timeout_seconds,
            )
            return True
        except ProcessFailed:
            return False

    def repair_config_file(self) -> bool:
        env = EnvFile.load(self._settings.config_path)
        changed = False

        current_url = env.get(DATABASE_URL_KEY)
        if current_url is None:
            changed |= env.set(DATABASE_URL_KEY, self._settings.default_database_url, comment="Fixed DATABASE_URL")
        elif not valid_database_url(current_url):
            changed |= env.set(DATABASE_URL_KEY, self._settings.default_database_url)

        if PLUGINS_KEY in env:
            plugins = split_plugins(env.get(PLUGINS_KEY))
            safe = [p for p in plugins if p not in self._settings.plugin_denylist]
            if safe != plugins:
                removed = sorted(set(plugins) - set(safe))
                changed |= env.set(PLUGINS_KEY, '"' + ",".join(safe) + '"')
                self._logger.info("Removed deny-listed plugins: %s", ", ".join(removed))

        if changed:
            backup = env.save(timestamp=self._timestamp)
            self._logger.info("Configuration file %s updated (backup: %s)", env.path, backup)
        return changed

    def _compose_up(self, service: str) -> None:
        self._commands.compose_up(
            service,
            compose_command=self._settings.compose_command,
            compose_file=self._settings.compose_file,
            timeout=self._settings.repair_command_timeout_seconds,
        )

    def _wait_until(self, ready: Callable[[], bool], retries: int, what: str) -> None:
        for attempt in range(1, retries + 1):
            if ready():
                self._logger.info("%s is ready (poll %d/%d)", what, attempt, retries)
                return
            if attempt < retries:
                self._sleep(self._settings.ready_poll_seconds)
        raise DependencyStartTimeout(f"{what} failed to start within {retries} polls")

    def ensure_database_running(self) -> None:
        running = self.find_running_database()
        if running is not None:
            self._commands.exec_in_container(
                running,
                ["pg_isready", "-U", self._settings.database_user],
                timeout=self._settings.command_timeout_seconds,
            )
            self._logger.info("Database container %s is responsive", running)
            return

        primary = self._settings.database_containers[0]
        self._logger.info("Starting database service %s", self._settings.database_service)
        self._compose_up(self._settings.database_service)
        self._wait_until(lambda: self.database_ready(primary), self._settings.database_ready_retries, "database")

    def ensure_app_running(self) -> None:
        app = self._settings.app_container
        if self._commands.container_running(app, timeout=self._settings.command_timeout_seconds):
            return
        self._logger.info("Starting application service %s", self._settings.app_service)
        self._compose_up(self._settings.app_service)
        self._wait_until(
            lambda: self._commands.container_running(app, timeout=self._settings.command_timeout_seconds),
            self._settings.app_ready_retries,
            f"application container {app}",
        )

    def run_migrations(self) -> None:
        self._logger.info("Running application migrations")
        self._commands.exec_in_container(
            self._settings.app_container,
            ["python", "manage.py", "migrate", "--run-syncdb"],
            timeout=self._settings.repair_command_timeout_seconds,
        )

    def run_self_check(self) -> None:
        self._logger.info("Running application database self-check")
        self._commands.exec_in_container(
            self._settings.app_container,
            ["python", "manage.py", "check", "--database", "default"],
            timeout=self._settings.repair_command_timeout_seconds,
        )

    def steps(self) -> list[RepairStep]:
        return [
            RepairStep("repair_config_file", self.repair_config_file),
            RepairStep("ensure_database_running", self.ensure_database_running),
            RepairStep("ensure_app_running", self.ensure_app_running),
            RepairStep("run_migrations", self.run_migrations),
            RepairStep("run_self_check", self.run_self_check),
        ]

    def orchestrator(self) -> RepairOrchestrator:
        return RepairOrchestrator("database", self.steps(), logger=self._logger)

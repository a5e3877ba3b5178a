"""
Named container-runtime and host operations.

Every external command the probes and repairs need is built here, including
the OS-specific fallback chains. All of them go through one ProcessRunner.
"""
from __future__ import annotations

import json
import logging
import os
import platform
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence

from .errors import ProcessFailed
from .process_runner import CommandResult, ProcessRunner

logger = logging.getLogger("self_healing.commands")

PULL_VARIANTS = ("plain", "no-content-trust", "platform")


class CommandRunner:
    def __init__(
        self,
        runner: ProcessRunner,
        *,
        privileged_prefix: Sequence[str] = ("sudo", "-n"),
        system: Optional[str] = None,
        docker: str = "docker",
    ) -> None:
        self.runner = runner
        self.privileged_prefix = list(privileged_prefix)
        self.system = system or platform.system()
        self.docker = docker

    def privileged(self, argv: Sequence[str]) -> list[str]:
        return [*self.privileged_prefix, *argv]

    def first_success(self, chain: Iterable[Sequence[str]], *, timeout: float) -> CommandResult:
        """Run each command in turn until one exits 0; re-raise the last failure."""
        last_error: Optional[ProcessFailed] = None
        for argv in chain:
            try:
                return self.runner.run(argv, timeout=timeout)
            except ProcessFailed as e:
                last_error = e
                logger.debug("fallback after failure: %s", e)
        if last_error is None:
            raise ValueError("empty command chain")
        raise last_error

    # ------------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------------

    def http_probe(self, url: str, *, timeout: float) -> bool:
        try:
            self.runner.run(
                ["curl", "-s", "-f", "-o", os.devnull, "--max-time", f"{timeout:g}", url],
                timeout=timeout + 1,
            )
            return True
        except ProcessFailed:
            return False

    def resolve_host(self, host: str, *, timeout: float) -> bool:
        try:
            self.runner.run(["nslookup", host], timeout=timeout)
            return True
        except ProcessFailed:
            return False

    def runtime_proxy(self, *, timeout: float) -> str:
        result = self.runner.run([self.docker, "info", "--format", "{{.HTTPProxy}}"], timeout=timeout)
        return result.stdout.strip()

    def daemon_info(self, *, timeout: float) -> CommandResult:
        return self.runner.run([self.docker, "info"], timeout=timeout)

    def daemon_info_json(self, *, timeout: float) -> Dict[str, Any]:
        result = self.runner.run([self.docker, "info", "--format", "{{json .}}"], timeout=timeout)
        return json.loads(result.stdout)

    # ------------------------------------------------------------------
    # Host repairs
    # ------------------------------------------------------------------

    def flush_resolver(self, *, timeout: float = 30.0) -> CommandResult:
        if self.system == "Darwin":
            chain = [
                self.privileged(["dscacheutil", "-flushcache"]),
                self.privileged(["killall", "-HUP", "mDNSResponder"]),
            ]
        elif self.system == "Windows":
            chain = [["ipconfig", "/flushdns"]]
        else:
            chain = [
                self.privileged(["systemctl", "restart", "systemd-resolved"]),
                self.privileged(["/etc/init.d/dns-clean", "restart"]),
                self.privileged(["resolvectl", "flush-caches"]),
            ]
        return self.first_success(chain, timeout=timeout)

    def restart_runtime(self, *, timeout: float = 120.0) -> CommandResult:
        if self.system == "Darwin":
            chain = [["osascript", "-e", 'quit app "Docker"'], ["open", "-a", "Docker"]]
            # Quit then relaunch Docker Desktop; both must succeed.
            for argv in chain:
                result = self.runner.run(argv, timeout=timeout)
            return result
        chain = [
            self.privileged(["systemctl", "restart", "docker"]),
            self.privileged(["service", "docker", "restart"]),
        ]
        return self.first_success(chain, timeout=timeout)

    def copy_file_privileged(self, src: Path, dst: Path, *, timeout: float = 10.0) -> CommandResult:
        return self.runner.run(self.privileged(["cp", str(src), str(dst)]), timeout=timeout)

    def append_file_privileged(self, path: Path, text: str, *, timeout: float = 10.0) -> CommandResult:
        return self.runner.run(self.privileged(["tee", "-a", str(path)]), timeout=timeout, input_text=text)

    # ------------------------------------------------------------------
    # Images and containers
    # ------------------------------------------------------------------

    def pull_variant(self, image: str, variant: str, *, timeout: float, platform_name: str = "linux/amd64") -> CommandResult:
        argv = [self.docker, "pull", image]
        if variant == "no-content-trust":
            argv.append("--disable-content-trust")
        elif variant == "platform":
            argv.extend(["--platform", platform_name])
        elif variant != "plain":
            raise ValueError(f"unknown pull variant: {variant}")
        return self.runner.run(argv, timeout=timeout)

    def container_running(self, name: str, *, timeout: float = 10.0) -> bool:
        try:
            result = self.runner.run(
                [self.docker, "ps", "--filter", f"name={name}", "--format", "{{.Names}}"],
                timeout=timeout,
                check=False,
            )
        except ProcessFailed:
            return False
        # The name filter is a substring match; require an exact name.
        return name in [line.strip() for line in result.stdout.splitlines()]

    def first_running(self, names: Iterable[str], *, timeout: float = 10.0) -> Optional[str]:
        for name in names:
            if self.container_running(name, timeout=timeout):
                return name
        return None

    def compose_up(
        self,
        service: str,
        *,
        compose_command: Sequence[str] = ("docker-compose",),
        compose_file: Optional[Path] = None,
        timeout: float = 120.0,
    ) -> CommandResult:
        argv = list(compose_command)
        if compose_file is not None:
            argv.extend(["-f", str(compose_file)])
        argv.extend(["up", "-d", service])
        return self.first_success([argv, self.privileged(argv)], timeout=timeout)

    def exec_in_container(
        self,
        container: str,
        argv: Sequence[str],
        *,
        timeout: float,
        check: bool = True,
    ) -> CommandResult:
        return self.runner.run([self.docker, "exec", container, *argv], timeout=timeout, check=check)

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from .types import RepairResult, StepResult

StepFn = Callable[[], Any]


@dataclass(frozen=True)
class RepairStep:
    """One remediation action; it signals failure by raising."""

    name: str
    fn: StepFn


class RepairOrchestrator:
    """
    Runs a fixed, ordered list of remediation steps for one monitored target.

    Steps are best-effort: a failing step is logged as a warning and the
    remaining steps still run. Only one repair runs at a time per target; a
    concurrent call returns a skipped result instead of waiting.
    """

    def __init__(
        self,
        target: str,
        steps: Sequence[RepairStep],
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.target = target
        self._steps = list(steps)
        self._lock = threading.Lock()
        self._logger = logger or logging.getLogger(f"self_healing.repair.{target}")

    @property
    def step_names(self) -> list[str]:
        return [s.name for s in self._steps]

    @property
    def in_repair(self) -> bool:
        return self._lock.locked()

    def _run_step(self, step: RepairStep) -> StepResult:
        start = time.perf_counter()
        self._logger.info("Repair step %s started", step.name)
        try:
            step.fn()
        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            self._logger.warning("Repair step %s failed: %s", step.name, e)
            return StepResult(step=step.name, ok=False, duration_ms=duration_ms, error=str(e))
        duration_ms = int((time.perf_counter() - start) * 1000)
        return StepResult(step=step.name, ok=True, duration_ms=duration_ms)

    def repair(self) -> RepairResult:
        started_at = datetime.now(timezone.utc).isoformat()
        if not self._lock.acquire(blocking=False):
            self._logger.warning("Repair for %s already in progress; skipping", self.target)
            return RepairResult(target=self.target, ok=False, started_at=started_at, duration_ms=0, skipped=True)
        try:
            t0 = time.perf_counter()
            self._logger.info("Starting %s repair process", self.target)
            steps = [self._run_step(step) for step in self._steps]
            duration_ms = int((time.perf_counter() - t0) * 1000)
            result = RepairResult(
                target=self.target,
                ok=all(s.ok for s in steps),
                started_at=started_at,
                duration_ms=duration_ms,
                steps=steps,
            )
            if result.ok:
                self._logger.info("%s repair completed successfully in %sms", self.target, duration_ms)
            else:
                self._logger.warning(
                    "%s repair finished with failed steps: %s", self.target, ",".join(result.failed_steps)
                )
            return result
        finally:
            self._lock.release()

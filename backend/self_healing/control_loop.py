"""
Escalation state machine shared by the network monitor and the config validator.

    None -> HEALTHY -> DEGRADED -> REPAIRING -> HEALTHY | CRITICAL

A failing tick increments the consecutive-failure counter. The tick on which the
counter reaches the threshold emits CRITICAL and runs the repair once; the
counter keeps counting after that, so later failing ticks do not repeat the
repair until a clean tick resets it to zero. A repair that was skipped because
the target was already being repaired is retried on the next failing tick. The
first failing tick after a repair marks the target CRITICAL and emits
UNRECOVERABLE.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .events import EventSink, EventType
from .scheduler import IntervalTicker
from .types import MonitorPhase, MonitorState


@dataclass
class TickOutcome:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    payload: Dict[str, Any] = field(default_factory=dict)


class ControlLoop:
    label = "Dependency"

    def __init__(
        self,
        *,
        name: str,
        events: EventSink,
        ticker: IntervalTicker,
        threshold: int,
        logger: logging.Logger,
        auto_repair: bool = True,
    ) -> None:
        self.name = name
        self.events = events
        self.state = MonitorState(threshold=max(1, int(threshold)))
        self.auto_repair = auto_repair
        self._ticker = ticker
        self._logger = logger

    # Subclasses supply the probe and the repair; both run in a worker thread.
    def _probe(self) -> TickOutcome:
        raise NotImplementedError

    def _repair(self) -> Optional[bool]:
        """Return the repair outcome, or None when the repair was skipped."""
        raise NotImplementedError

    @property
    def monitoring(self) -> bool:
        return self._ticker.running

    def start_monitoring(self) -> None:
        """Start ticking (one immediate check, then every interval). Requires a running event loop."""
        self._logger.info("Starting %s monitoring (every %ss)", self.name, self._ticker.interval_seconds)
        self._ticker.start(self.tick)

    async def stop_monitoring(self) -> None:
        await self._ticker.stop()
        self._logger.info("%s monitoring stopped", self.name)

    def snapshot(self) -> Dict[str, Any]:
        return {"name": self.name, "monitoring": self.monitoring, "state": self.state.to_dict()}

    async def tick(self) -> None:
        outcome = await asyncio.to_thread(self._probe)
        await self.handle_outcome(outcome)

    def _emit(self, event_type: EventType, message: str, payload: Optional[Dict[str, Any]] = None) -> None:
        self.events.emit(event_type, source=self.name, message=message, payload=payload)

    async def handle_outcome(self, outcome: TickOutcome) -> None:
        state = self.state
        if outcome.errors:
            state.consecutive_failures += 1
            summary = ", ".join(outcome.errors)
            self._logger.error(
                "%s check failed (%d/%d): %s",
                self.label,
                state.consecutive_failures,
                state.threshold,
                summary,
            )
            self._emit(EventType.DEGRADED, summary, outcome.payload)

            if state.awaiting_confirmation:
                state.awaiting_confirmation = False
                state.phase = MonitorPhase.CRITICAL
                self._logger.error("%s failure persists after repair; operator attention required", self.label)
                self._emit(EventType.UNRECOVERABLE, summary, outcome.payload)
            elif state.phase != MonitorPhase.CRITICAL:
                state.phase = MonitorPhase.DEGRADED

            crossed = state.consecutive_failures == state.threshold
            if crossed:
                self._logger.error("%s critical, attempting repair", self.label)
                self._emit(EventType.CRITICAL, summary, outcome.payload)
            if crossed or state.repair_pending:
                if self.auto_repair:
                    await self._run_repair()
                else:
                    self._logger.warning("Automatic repair disabled for %s", self.name)
        else:
            if state.consecutive_failures > 0:
                self._logger.info("%s restored", self.label)
                self._emit(EventType.RESTORED, f"{self.label} restored", outcome.payload)
            state.consecutive_failures = 0
            state.awaiting_confirmation = False
            state.repair_pending = False
            state.phase = MonitorPhase.HEALTHY

        if outcome.warnings:
            self._logger.warning("%s warnings: %s", self.label, ", ".join(outcome.warnings))

    async def _run_repair(self) -> None:
        state = self.state
        state.phase = MonitorPhase.REPAIRING
        state.in_repair = True
        repaired: Optional[bool] = False
        try:
            repaired = await asyncio.to_thread(self._repair)
        except Exception as e:
            self._logger.error("%s repair raised: %s", self.label, e, exc_info=True)
        finally:
            state.in_repair = False
        if repaired is None:
            self._logger.warning("%s repair skipped, already in progress; retrying next tick", self.label)
            state.phase = MonitorPhase.DEGRADED
            state.repair_pending = True
            return
        state.repair_pending = False
        state.repairs_run += 1
        # Recovery is only confirmed by the next tick.
        state.awaiting_confirmation = True

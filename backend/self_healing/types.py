from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class MonitorPhase(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    REPAIRING = "repairing"
    CRITICAL = "critical"


@dataclass(frozen=True)
class RegistryMirror:
    url: str
    name: str
    priority: int


@dataclass
class HealthStatus:
    internet_connected: bool = False
    dns_resolution: bool = False
    proxy_detected: bool = False
    registry_reachable: bool = False
    registry_mirrors: list[str] = field(default_factory=list)
    latency_ms: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    last_error: Optional[str] = None
    checked_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "internet_connected": self.internet_connected,
            "dns_resolution": self.dns_resolution,
            "proxy_detected": self.proxy_detected,
            "registry_reachable": self.registry_reachable,
            "registry_mirrors": list(self.registry_mirrors),
            "latency_ms": self.latency_ms,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "last_error": self.last_error,
            "checked_at": self.checked_at,
        }


@dataclass
class StageResult:
    ok: bool = False
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def problem(self, issue: str, recommendation: Optional[str] = None) -> None:
        self.issues.append(issue)
        if recommendation:
            self.recommendations.append(recommendation)


@dataclass
class ValidationResult:
    configuration_valid: bool = False
    connection_working: bool = False
    schema_valid: bool = False
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    validated_at: str = field(default_factory=_now_iso)

    @property
    def is_valid(self) -> bool:
        return self.configuration_valid and self.connection_working and self.schema_valid

    def absorb(self, stage: StageResult) -> None:
        self.issues.extend(stage.issues)
        self.recommendations.extend(stage.recommendations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "configuration_valid": self.configuration_valid,
            "connection_working": self.connection_working,
            "schema_valid": self.schema_valid,
            "issues": list(self.issues),
            "recommendations": list(self.recommendations),
            "validated_at": self.validated_at,
        }


@dataclass(frozen=True)
class StepResult:
    step: str
    ok: bool
    duration_ms: int
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"step": self.step, "ok": self.ok, "duration_ms": self.duration_ms, "error": self.error}


@dataclass(frozen=True)
class RepairResult:
    target: str
    ok: bool
    started_at: str
    duration_ms: int
    steps: list[StepResult] = field(default_factory=list)
    skipped: bool = False

    @property
    def failed_steps(self) -> list[str]:
        return [s.step for s in self.steps if not s.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "ok": self.ok,
            "skipped": self.skipped,
            "started_at": self.started_at,
            "duration_ms": self.duration_ms,
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass
class MonitorState:
    threshold: int = 3
    consecutive_failures: int = 0
    in_repair: bool = False
    phase: Optional[MonitorPhase] = None
    repairs_run: int = 0
    # Set when a repair ran and the following tick has not confirmed recovery yet.
    awaiting_confirmation: bool = False
    # Set when the threshold was reached but the target was already being repaired.
    repair_pending: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "threshold": self.threshold,
            "consecutive_failures": self.consecutive_failures,
            "in_repair": self.in_repair,
            "phase": self.phase.value if self.phase else None,
            "repairs_run": self.repairs_run,
            "repair_pending": self.repair_pending,
        }

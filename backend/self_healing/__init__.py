"""Self-healing dependency health (backend/self_healing).

Two env-gated control loops watch the host's external dependencies:
- a network monitor probing connectivity, DNS, proxies and image registries
- a configuration validator for the database-backed application container

Each loop escalates after consecutive failures and runs a best-effort repair
pipeline. Both are disabled unless `ENABLE_SELF_HEALING=true`.
"""

from .catalog import SelfHealingServices, build_services
from .config import SelfHealingSettings, load_env_files
from .config_validator import ConfigValidator
from .events import EventSink, EventType, HealthEvent
from .health_monitor import HealthMonitor
from .repair import RepairOrchestrator, RepairStep
from .retry_puller import RetryPuller

__all__ = [
    "ConfigValidator",
    "EventSink",
    "EventType",
    "HealthEvent",
    "HealthMonitor",
    "RepairOrchestrator",
    "RepairStep",
    "RetryPuller",
    "SelfHealingServices",
    "SelfHealingSettings",
    "build_services",
    "load_env_files",
]

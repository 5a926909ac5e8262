"""Health Gate — liveness checks before and after promotion."""

from shipyard.health.gate import CheckResult, HealthGate, asset_url, health_url
from shipyard.health.process import ScopedServer, ServerStartError, find_free_port

__all__ = [
    "CheckResult",
    "HealthGate",
    "ScopedServer",
    "ServerStartError",
    "asset_url",
    "find_free_port",
    "health_url",
]

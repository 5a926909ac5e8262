"""Process supervisor adapters."""

from shipyard.supervisor.base import ProcessSupervisor
from shipyard.supervisor.ecosystem import render_ecosystem, write_ecosystem
from shipyard.supervisor.pm2 import Pm2Supervisor

__all__ = [
    "Pm2Supervisor",
    "ProcessSupervisor",
    "render_ecosystem",
    "write_ecosystem",
]

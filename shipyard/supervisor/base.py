"""Process supervisor interface."""

from __future__ import annotations

import abc
from pathlib import Path


class ProcessSupervisor(abc.ABC):
    """The external process manager that runs live services."""

    @abc.abstractmethod
    def reload(self, name: str) -> None:
        """Gracefully reload *name*.

        Raises :class:`~shipyard.errors.SupervisorCommandError` if the
        service is unknown.
        """

    @abc.abstractmethod
    def start(self, name: str, config_path: str | Path) -> None:
        """Start *name* from the supervisor config file."""

    @abc.abstractmethod
    def describe(self, name: str) -> str:
        """Return the supervisor's status text for *name*."""

    def status(self, name: str) -> str:
        """Short status word; ``online`` when the service is running."""
        try:
            text = self.describe(name)
        except Exception:
            return "not found"
        return "online" if "online" in text else "offline"

    def is_online(self, name: str) -> bool:
        return self.status(name) == "online"

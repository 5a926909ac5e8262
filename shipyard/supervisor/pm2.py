"""Pm2Supervisor — drive pm2 through :func:`subprocess.run`."""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path

from shipyard.errors import SupervisorCommandError
from shipyard.supervisor.base import ProcessSupervisor

logger = logging.getLogger(__name__)


class Pm2Supervisor(ProcessSupervisor):
    """pm2-backed supervisor.

    Parameters
    ----------
    binary:
        pm2 executable name or path.
    timeout:
        Per-command timeout in seconds.
    """

    def __init__(self, binary: str = "pm2", timeout: float = 60.0) -> None:
        self.binary = binary
        self.timeout = timeout

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        cmd = [self.binary, *args]
        logger.debug("%s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired, OSError) as exc:
            raise SupervisorCommandError(f"{' '.join(cmd)} failed: {exc}") from exc
        if result.returncode != 0:
            raise SupervisorCommandError(
                f"{' '.join(cmd)} failed (rc={result.returncode}): "
                f"{(result.stderr or result.stdout).strip()}"
            )
        return result

    def reload(self, name: str) -> None:
        self._run("reload", name)

    def start(self, name: str, config_path: str | Path) -> None:
        self._run("start", str(config_path), "--only", name)

    def describe(self, name: str) -> str:
        return self._run("describe", name).stdout

    def status(self, name: str) -> str:
        """Status from ``pm2 jlist``; ``not found`` when unknown."""
        try:
            services = json.loads(self._run("jlist").stdout or "[]")
        except (SupervisorCommandError, json.JSONDecodeError) as exc:
            logger.debug("Failed to get pm2 status: %s", exc)
            return "not found"
        for service in services:
            if service.get("name") == name:
                return (service.get("pm2_env") or {}).get("status") or "unknown"
        return "not found"

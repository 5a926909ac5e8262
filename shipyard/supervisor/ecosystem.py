"""pm2 ecosystem files — one per environment, one app per package."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from shipyard.config import ENVIRONMENTS, PACKAGES, Settings
from shipyard.models.target import DeploymentTarget
from shipyard.release.paths import package_dir, resolve_target

logger = logging.getLogger(__name__)


def render_ecosystem(settings: Settings, environment: str) -> dict[str, Any]:
    """Build the pm2 ecosystem document for *environment*.

    Every app runs from the target's ``current`` pointer, so a pointer swap
    plus ``pm2 reload`` is all a promotion needs.
    """
    apps: list[dict[str, Any]] = []
    logs = settings.deployments_dir / environment / "logs"
    for package in PACKAGES:
        target = DeploymentTarget.of(environment, package)
        paths = resolve_target(settings, target)
        port = settings.port_for(environment, package)
        apps.append({
            "name": target.service_name,
            "cwd": str(package_dir(paths.current, package)),
            "script": settings.health.start_command[0],
            "args": " ".join(settings.health.start_command[1:]),
            "instances": 1,
            "exec_mode": "fork",
            "env": {
                "DEPLOY_ENV": environment,
                "NODE_ENV": "production",
                "PORT": port,
            },
            "error_file": str(logs / f"{package}-error.log"),
            "out_file": str(logs / f"{package}-out.log"),
            "log_file": str(logs / f"{package}-combined.log"),
            "time": True,
            "autorestart": True,
            "watch": False,
            "max_memory_restart": "1G",
        })
    return {"apps": apps}


def write_ecosystem(settings: Settings, environments: list[str] | None = None) -> list[Path]:
    """Write ecosystem files; returns the paths written."""
    written: list[Path] = []
    for environment in environments or list(ENVIRONMENTS):
        target = DeploymentTarget.of(environment, PACKAGES[0])
        path = resolve_target(settings, target).supervisor_config
        path.parent.mkdir(parents=True, exist_ok=True)
        (path.parent / "logs").mkdir(exist_ok=True)
        path.write_text(
            json.dumps(render_ecosystem(settings, environment), indent=2),
            encoding="utf-8",
        )
        logger.info("Wrote %s", path)
        written.append(path)
    return written

"""Release path resolution.  Pure functions, no filesystem access.

Layout under the base path::

    deployments/<env>/<package>/current                  -> live release
    deployments/<env>/<package>/releases/<short>/<attempt>/
    deployments/<env>/ecosystem.config.json              (pm2)
    versions/<env>-<package>.json                         (ledger)
    dotenv/<package>/.env.<env>                           (environment file)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from shipyard.config import ATTEMPT_FORMAT, SHORT_COMMIT_LENGTH, Settings
from shipyard.errors import InvalidTarget
from shipyard.models.target import DeploymentTarget


@dataclass(frozen=True)
class TargetPaths:
    """Every fixed location belonging to one deployment target."""

    root: Path
    current: Path
    releases: Path
    ledger_file: Path
    supervisor_config: Path
    env_file: Path


def short_commit(commit: str) -> str:
    """Return the directory form of *commit* (first 7 characters)."""
    commit = (commit or "").strip()
    if not commit or "/" in commit or commit in (".", ".."):
        raise InvalidTarget(f"Invalid commit: {commit!r}")
    return commit[:SHORT_COMMIT_LENGTH]


def attempt_stamp(moment: datetime | None = None) -> str:
    """Format *moment* (default: now, UTC) as an attempt directory name."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime(ATTEMPT_FORMAT)


def resolve_target(settings: Settings, target: DeploymentTarget) -> TargetPaths:
    env_root = settings.deployments_dir / target.environment
    root = env_root / target.package
    return TargetPaths(
        root=root,
        current=root / "current",
        releases=root / "releases",
        ledger_file=settings.versions_dir / f"{target.label}.json",
        supervisor_config=env_root / "ecosystem.config.json",
        env_file=settings.dotenv_dir / target.package / f".env.{target.environment}",
    )


def resolve_release(
    settings: Settings,
    target: DeploymentTarget,
    commit: str,
    attempt: str,
) -> Path:
    """Return the release directory for *commit* staged at *attempt*."""
    if not attempt or "/" in attempt or attempt in (".", ".."):
        raise InvalidTarget(f"Invalid attempt: {attempt!r}")
    return resolve_target(settings, target).releases / short_commit(commit) / attempt


def package_dir(release_path: str | Path, package: str) -> Path:
    """Directory of *package* inside an unpacked release."""
    return Path(release_path) / "packages" / package


def version_label(commit: str, attempt: str) -> str:
    return f"{attempt}-{short_commit(commit)}"

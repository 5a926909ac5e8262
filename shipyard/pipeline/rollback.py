"""Rollback — re-promote a release that is still on disk.

Selection never mutates anything; the first mutation is the environment
file re-injection that precedes the pointer swap.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from shipyard.config import MANIFEST_NAME
from shipyard.errors import (
    AttemptNotFound,
    CommitNotFound,
    DeployError,
    NoRollbackTarget,
    StaleRollbackTarget,
)
from shipyard.models.ledger import LedgerEntry
from shipyard.models.target import DeploymentTarget
from shipyard.notify.providers import DEPLOYING, FAILURE, SUCCESS
from shipyard.pipeline.engine import ReleaseEngine, Run, State, iso_timestamp
from shipyard.release.artifact import load_manifest_file
from shipyard.release.envfile import apply_asset_prefix, copy_environment_file
from shipyard.release.paths import package_dir, resolve_target

logger = logging.getLogger(__name__)


class RollbackCandidate(BaseModel):
    """An inactive ledger entry offered as a rollback target."""

    version: str
    commit: str
    timestamp: str
    age: str
    release_path: str


class RollbackResult(BaseModel):
    environment: str
    package: str
    version: str
    commit: str
    release_path: str
    previous_version: str | None = None
    states: list[str] = Field(default_factory=list)


def release_intact(entry: LedgerEntry, package: str) -> bool:
    """True if *entry*'s release directory still holds the package."""
    release = Path(entry.release_path)
    return release.is_dir() and package_dir(release, package).is_dir()


def validate_rollback_target(entry: LedgerEntry, package: str) -> None:
    """Raise :class:`StaleRollbackTarget` if the release was pruned."""
    release = Path(entry.release_path)
    if not release.is_dir():
        raise StaleRollbackTarget(
            f"Release directory for {entry.version} no longer exists: {release}"
        )
    if not package_dir(release, package).is_dir():
        raise StaleRollbackTarget(
            f"Release {entry.version} has no packages/{package} directory"
        )


def select_rollback_target(
    history: list[LedgerEntry],
    package: str,
    commit: str | None = None,
    attempt: str | None = None,
) -> LedgerEntry:
    """Pick the ledger entry to roll back to.

    Parameters
    ----------
    history:
        Ledger entries of the target (any order).
    package:
        Package name, used to check that default candidates are intact.
    commit:
        Full commit or prefix.  The newest matching entry wins.
    attempt:
        Exact attempt directory name (last release path component).

    Raises
    ------
    NoRollbackTarget, CommitNotFound, AttemptNotFound, StaleRollbackTarget
    """
    if not history:
        raise NoRollbackTarget("No deployment history found")
    newest_first = sorted(history, key=lambda e: e.deployed_at, reverse=True)

    if commit:
        matches = [e for e in newest_first if e.commit == commit or e.commit.startswith(commit)]
        if not matches:
            raise CommitNotFound(f"Commit {commit} not found in deployment history")
        if attempt:
            exact = [e for e in matches if e.attempt == attempt]
            if not exact:
                raise AttemptNotFound(f"Attempt {attempt} not found for commit {commit}")
            return exact[0]
        return matches[0]

    if attempt:
        exact = [e for e in newest_first if e.attempt == attempt]
        if not exact:
            raise AttemptNotFound(f"Attempt {attempt} not found in deployment history")
        return exact[0]

    active = next((e for e in newest_first if e.is_active), None)
    candidates = [
        e for e in newest_first
        if not e.is_active and (active is None or e.release_path != active.release_path)
    ]
    if not candidates:
        raise NoRollbackTarget("No previous version available for rollback")

    for entry in candidates:
        if release_intact(entry, package):
            return entry
        logger.debug("Skipping pruned release %s", entry.release_path)
    raise StaleRollbackTarget(
        f"Every previous release has been pruned; newest was {candidates[0].version} "
        f"at {candidates[0].release_path}"
    )


def rollback_candidates(
    history: list[LedgerEntry],
    limit: int = 5,
    now: datetime | None = None,
) -> list[RollbackCandidate]:
    """Inactive entries, newest first, with a human relative age."""
    now = now or datetime.now(timezone.utc)
    inactive = sorted(
        (e for e in history if not e.is_active), key=lambda e: e.deployed_at, reverse=True,
    )
    return [
        RollbackCandidate(
            version=e.version,
            commit=e.commit,
            timestamp=e.timestamp,
            age=relative_age(e.deployed_at, now),
            release_path=e.release_path,
        )
        for e in inactive[: max(0, limit)]
    ]


def relative_age(moment: datetime, now: datetime) -> str:
    seconds = int((now - moment).total_seconds())
    if seconds < 60:
        return "just now"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


class RollbackEngine(ReleaseEngine):
    """Re-promote a previously deployed release of a target."""

    def select(
        self,
        target: DeploymentTarget,
        commit: str | None = None,
        attempt: str | None = None,
    ) -> LedgerEntry:
        """Select and validate the rollback target without mutating anything."""
        entry = select_rollback_target(self.ledger.history(target), target.package, commit, attempt)
        validate_rollback_target(entry, target.package)
        return entry

    def rollback(
        self,
        target: DeploymentTarget,
        commit: str | None = None,
        attempt: str | None = None,
    ) -> RollbackResult:
        run = Run(target)
        previous = self.ledger.active(target)
        event: dict = {
            "package": target.package,
            "environment": target.environment,
            "trigger": "rollback",
        }

        try:
            # 1. Select and validate
            entry = self.select(target, commit, attempt)
            event.update(commit=entry.commit, version=entry.version)
            logger.info("Rolling back %s to %s (%s)", target, entry.version, entry.short_commit)
            self.notifier.emit(DEPLOYING, **event)

            # 2. Refresh the environment file, then run the promotion tail
            release = Path(entry.release_path)
            manifest = load_manifest_file(release / MANIFEST_NAME)
            copy_environment_file(resolve_target(self.settings, target).env_file, release, target.package)
            apply_asset_prefix(release, target.package, manifest)

            new_entry = LedgerEntry(
                version=entry.version,
                commit=entry.commit,
                timestamp=iso_timestamp(self.clock()),
                packages=entry.packages or [target.package],
                release_path=entry.release_path,
            )
            self.promote(run, target, release, new_entry, manifest)
        except DeployError as exc:
            run.annotate(exc)
            self.notifier.emit(FAILURE, error=exc.summary(), **event)
            raise
        except OSError as exc:
            err = run.annotate(DeployError(f"{run.state.value} failed: {exc}"))
            self.notifier.emit(FAILURE, error=err.summary(), **event)
            raise err from exc

        run.advance(State.DONE)
        self.notifier.emit(SUCCESS, **event)
        logger.info("Rolled back %s to %s", target, entry.version)
        return RollbackResult(
            environment=target.environment,
            package=target.package,
            version=entry.version,
            commit=entry.commit,
            release_path=entry.release_path,
            previous_version=previous.version if previous else None,
            states=[s.value for s in run.visited],
        )

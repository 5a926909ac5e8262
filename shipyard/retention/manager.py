"""RetentionManager — bounded history of release directories."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from pydantic import BaseModel, Field

from shipyard.config import Settings
from shipyard.models.ledger import LedgerEntry
from shipyard.models.target import DeploymentTarget
from shipyard.release.paths import resolve_target

logger = logging.getLogger(__name__)


class RetentionReport(BaseModel):
    """What a retention sweep removed and what it failed to remove."""

    removed: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    kept_commits: list[str] = Field(default_factory=list)


class RetentionManager:
    """Prune old commit and attempt directories of a target.

    Commit level is driven by ledger history (newest distinct commits are
    kept); attempt level by directory creation time.  Releases in
    *protected* are never removed.  Deletion is best effort: failures are
    logged and collected, never raised.

    Parameters
    ----------
    settings:
        Resolved settings; ``settings.retention`` supplies the defaults.
    keep_commits, keep_attempts:
        Overrides for the configured limits.
    """

    def __init__(
        self,
        settings: Settings,
        keep_commits: int | None = None,
        keep_attempts: int | None = None,
    ) -> None:
        self._settings = settings
        self.keep_commits = settings.retention.keep_commits if keep_commits is None else keep_commits
        self.keep_attempts = settings.retention.keep_attempts if keep_attempts is None else keep_attempts

    def apply(
        self,
        target: DeploymentTarget,
        history: list[LedgerEntry],
        protected: list[str | Path] | None = None,
    ) -> RetentionReport:
        """Run both retention levels for *target*."""
        report = RetentionReport()
        releases = resolve_target(self._settings, target).releases
        if not releases.is_dir():
            logger.debug("No releases directory for %s, skipping cleanup", target)
            return report

        keep_paths = {_norm(p) for p in (protected or [])}
        active = next((e for e in history if e.is_active), None)
        if active is not None:
            keep_paths.add(_norm(active.release_path))

        keep = self.commits_to_keep(history)
        keep.update(
            Path(p).parent.name for p in keep_paths
            if _norm(Path(p).parent.parent) == _norm(releases)
        )
        report.kept_commits = sorted(keep)

        self._sweep_commits(releases, keep, report)
        self._sweep_attempts(releases, keep_paths, report)

        if report.removed:
            logger.info("Retention removed %d directories for %s", len(report.removed), target)
        return report

    def commits_to_keep(self, history: list[LedgerEntry]) -> set[str]:
        """Newest ``keep_commits`` distinct short commits from *history*."""
        ordered = sorted(history, key=lambda e: e.deployed_at, reverse=True)
        seen: list[str] = []
        for entry in ordered:
            if entry.short_commit not in seen:
                seen.append(entry.short_commit)
        return set(seen[: max(0, self.keep_commits)])

    def _sweep_commits(self, releases: Path, keep: set[str], report: RetentionReport) -> None:
        for commit_dir in _list_dirs(releases, report):
            if commit_dir.name in keep:
                continue
            logger.debug("Removing old commit directory: %s", commit_dir.name)
            _remove(commit_dir, report)

    def _sweep_attempts(self, releases: Path, protected: set[str], report: RetentionReport) -> None:
        for commit_dir in _list_dirs(releases, report):
            attempts = _list_dirs(commit_dir, report)
            if len(attempts) <= self.keep_attempts:
                continue
            attempts.sort(key=lambda p: (_created(p), p.name), reverse=True)
            for attempt in attempts[max(0, self.keep_attempts):]:
                if _norm(attempt) in protected:
                    continue
                logger.debug("Removing old attempt: %s/%s", commit_dir.name, attempt.name)
                _remove(attempt, report)


def _norm(path: str | Path) -> str:
    return os.path.normpath(os.path.abspath(path))


def _created(path: Path) -> float:
    st = path.stat()
    return getattr(st, "st_birthtime", st.st_ctime)


def _list_dirs(parent: Path, report: RetentionReport) -> list[Path]:
    try:
        return [p for p in parent.iterdir() if p.is_dir() and not p.is_symlink()]
    except OSError as exc:
        logger.warning("Could not list %s: %s", parent, exc)
        report.errors.append(f"{parent}: {exc}")
        return []


def _remove(path: Path, report: RetentionReport) -> None:
    try:
        shutil.rmtree(path)
        report.removed.append(str(path))
    except OSError as exc:
        logger.warning("Failed to remove %s: %s", path, exc)
        report.errors.append(f"{path}: {exc}")

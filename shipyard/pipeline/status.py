"""Read-only status and history queries for a deployment target."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field

from shipyard.config import Settings
from shipyard.health.gate import HealthGate, health_url
from shipyard.ledger.store import VersionLedger
from shipyard.models.ledger import LedgerEntry
from shipyard.models.target import DeploymentTarget
from shipyard.release.paths import resolve_target
from shipyard.release.pointer import CurrentPointer
from shipyard.supervisor.base import ProcessSupervisor

logger = logging.getLogger(__name__)


class StatusReport(BaseModel):
    """Current state of one target as seen by pointer, ledger and supervisor."""

    environment: str
    package: str
    found: bool = True
    active: LedgerEntry | None = None
    pointer_target: str | None = None
    consistent: bool = True
    release_exists: bool = False
    supervisor_status: str = "unknown"
    healthy: bool | None = None
    health_url: str = ""
    problems: list[str] = Field(default_factory=list)


class HistoryListing(BaseModel):
    entries: list[LedgerEntry] = Field(default_factory=list)
    total: int = 0
    active_count: int = 0

    @property
    def summary(self) -> str:
        return (
            f"Total: {self.total} deployments | Active: {self.active_count} | "
            f"Inactive: {self.total - self.active_count}"
        )


def _same_path(a: str | Path, b: str | Path) -> bool:
    return os.path.normpath(os.path.abspath(a)) == os.path.normpath(os.path.abspath(b))


def describe_status(
    settings: Settings,
    target: DeploymentTarget,
    *,
    ledger: VersionLedger | None = None,
    supervisor: ProcessSupervisor | None = None,
    gate: HealthGate | None = None,
) -> StatusReport:
    """Collect the status of *target*.

    The health endpoint is probed once (no retries) when a gate is given.
    A pointer naming a release other than the active ledger entry is
    reported in ``problems`` rather than hidden.
    """
    ledger = ledger or VersionLedger(settings)
    port = settings.port_for(target.environment, target.package)
    report = StatusReport(
        environment=target.environment,
        package=target.package,
        health_url=health_url(target, port),
    )

    active = ledger.active(target)
    pointer = CurrentPointer(resolve_target(settings, target).current).read()
    report.active = active
    report.pointer_target = str(pointer) if pointer is not None else None

    if active is None and pointer is None:
        report.found = False
        report.problems.append(f"No deployment found for {target}")
        return report

    if active is not None:
        report.release_exists = Path(active.release_path).is_dir()
        if not report.release_exists:
            report.problems.append(f"Release directory missing: {active.release_path}")

    if pointer is None:
        report.consistent = False
        report.problems.append("Ledger records an active release but no current pointer exists")
    elif active is None:
        report.consistent = False
        report.problems.append(f"Current pointer names {pointer} but the ledger has no active entry")
    elif not _same_path(pointer, active.release_path):
        report.consistent = False
        report.problems.append(
            f"Current pointer names {pointer} but the ledger's active release is {active.release_path}"
        )

    if supervisor is not None:
        report.supervisor_status = supervisor.status(target.service_name)

    if gate is not None:
        report.healthy = gate.probe(report.health_url, retries=1)

    return report


def list_history(
    settings: Settings,
    target: DeploymentTarget,
    limit: int = 10,
    *,
    ledger: VersionLedger | None = None,
) -> HistoryListing:
    """Newest-first ledger entries of *target*, at most *limit* of them."""
    ledger = ledger or VersionLedger(settings)
    history = ledger.history(target)
    return HistoryListing(
        entries=history[: max(0, limit)],
        total=len(history),
        active_count=sum(1 for e in history if e.is_active),
    )

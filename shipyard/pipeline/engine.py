"""Shared machinery for the promotion and rollback engines.

Both engines end with the same tail: swap the pointer, reload the
service, re-check it in production, optionally check assets, and record
the new active entry.  That tail lives here together with the run
bookkeeping that stamps every escaping error with the state it hit.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable

from shipyard.config import Settings
from shipyard.errors import DeployError, ServiceReloadFailed, SupervisorCommandError
from shipyard.health.gate import HealthGate
from shipyard.ledger.store import VersionLedger
from shipyard.models.ledger import LedgerEntry
from shipyard.models.manifest import ArtifactManifest
from shipyard.models.target import DeploymentTarget
from shipyard.notify.dispatcher import NotificationDispatcher
from shipyard.release.paths import resolve_target
from shipyard.release.pointer import CurrentPointer
from shipyard.supervisor.base import ProcessSupervisor
from shipyard.supervisor.pm2 import Pm2Supervisor

logger = logging.getLogger(__name__)


class State(str, Enum):
    """Pipeline states, in execution order."""

    VALIDATING = "Validating"
    STAGING = "Staging"
    DEPENDENCY_INSTALL = "DependencyInstall"
    ISOLATED_HEALTH_CHECK = "IsolatedHealthCheck"
    PROMOTING = "Promoting"
    SERVICE_RELOAD = "ServiceReload"
    PRODUCTION_HEALTH_CHECK = "ProductionHealthCheck"
    ASSET_HEALTH_CHECK = "AssetHealthCheck"
    LEDGER_RECORD = "LedgerRecord"
    RETENTION = "Retention"
    DONE = "Done"


class Run:
    """Progress of a single engine run for one target."""

    def __init__(self, target: DeploymentTarget | None = None) -> None:
        self.target = target
        self.state = State.VALIDATING
        self.visited: list[State] = [State.VALIDATING]
        self.pointer_swapped = False

    def advance(self, state: State) -> None:
        self.state = state
        self.visited.append(state)
        logger.info("Step: %s%s", state.value, f" ({self.target})" if self.target else "")

    def annotate(self, exc: DeployError) -> DeployError:
        """Stamp *exc* with the state reached and the pointer flag."""
        if exc.state is None:
            exc.state = self.state.value
        exc.pointer_swapped = self.pointer_swapped
        return exc


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    """Ledger timestamp: ISO 8601 UTC with a trailing ``Z``."""
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class ReleaseEngine:
    """Collaborators and the promotion tail shared by both engines.

    Every collaborator defaults to its production implementation built
    from *settings*; tests pass fakes.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        ledger: VersionLedger | None = None,
        gate: HealthGate | None = None,
        supervisor: ProcessSupervisor | None = None,
        notifier: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.ledger = ledger or VersionLedger(settings)
        self.gate = gate or HealthGate(settings)
        self.supervisor = supervisor or Pm2Supervisor(
            settings.supervisor.binary, timeout=settings.supervisor.command_timeout
        )
        self.notifier = notifier or NotificationDispatcher.from_settings(settings)
        self.clock = clock or utc_now
        self._sleep = sleep

    def pointer(self, target: DeploymentTarget) -> CurrentPointer:
        return CurrentPointer(resolve_target(self.settings, target).current)

    def reload_service(self, target: DeploymentTarget) -> None:
        """Reload the target's service and wait until it reports online.

        Falls back to starting the service from the environment's
        ecosystem file when the supervisor does not know it yet.
        """
        name = target.service_name
        try:
            self.supervisor.reload(name)
            logger.debug("Reloaded %s", name)
        except SupervisorCommandError:
            config_path = resolve_target(self.settings, target).supervisor_config
            logger.info("Service %s not running, starting from %s", name, config_path)
            try:
                self.supervisor.start(name, config_path)
            except SupervisorCommandError as exc:
                raise ServiceReloadFailed(f"Could not start {name}: {exc.message}") from exc

        cfg = self.settings.supervisor
        for _ in range(max(1, cfg.online_checks)):
            self._sleep(cfg.online_interval)
            if self.supervisor.is_online(name):
                return
        raise ServiceReloadFailed(f"Service {name} is not online after reload")

    def promote(
        self,
        run: Run,
        target: DeploymentTarget,
        release_path: Path,
        entry: LedgerEntry,
        manifest: ArtifactManifest | None,
    ) -> None:
        """Promoting -> ServiceReload -> ProductionHealthCheck ->
        AssetHealthCheck -> LedgerRecord."""
        run.advance(State.PROMOTING)
        self.pointer(target).atomic_set(release_path)
        run.pointer_swapped = True

        run.advance(State.SERVICE_RELOAD)
        self.reload_service(target)

        run.advance(State.PRODUCTION_HEALTH_CHECK)
        self.gate.production(target)

        if manifest is not None and manifest.has_external_assets and self.settings.assets.enabled:
            run.advance(State.ASSET_HEALTH_CHECK)
            self.gate.assets(manifest)

        run.advance(State.LEDGER_RECORD)
        self.ledger.record(target, entry)

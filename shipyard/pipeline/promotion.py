"""PromotionEngine — the deploy state machine.

A run moves strictly forward through the states of :class:`State` and
stops at the first failure.  Until the pointer is swapped every failure
removes the staged release, leaving the live release and the ledger
exactly as they were.  From the swap on, nothing is undone: the error
carries ``pointer_swapped=True`` and ``status`` reports the gap between
pointer and ledger until the next successful deploy or rollback.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Callable

import requests
from pydantic import BaseModel, Field

from shipyard.config import PACKAGES, Settings
from shipyard.errors import ArtifactDownloadError, DeployError, InvalidTarget, ManifestMismatch
from shipyard.health.gate import HealthGate
from shipyard.ledger.store import VersionLedger
from shipyard.models.ledger import LedgerEntry
from shipyard.models.manifest import ArtifactManifest
from shipyard.models.target import DeploymentTarget
from shipyard.notify.dispatcher import NotificationDispatcher
from shipyard.notify.github import GitHubClient
from shipyard.notify.providers import DEPLOYING, FAILURE, IN_PROGRESS, SUCCESS
from shipyard.pipeline.engine import ReleaseEngine, Run, State, iso_timestamp
from shipyard.pipeline.installer import DependencyInstaller
from shipyard.release.artifact import check_manifest, extract_artifact, read_manifest
from shipyard.release.envfile import apply_asset_prefix, copy_environment_file
from shipyard.release.paths import attempt_stamp, resolve_release, resolve_target, version_label
from shipyard.retention.manager import RetentionManager, RetentionReport
from shipyard.supervisor.base import ProcessSupervisor

logger = logging.getLogger(__name__)


class PromotionResult(BaseModel):
    """Outcome of a successful (or dry) deploy."""

    environment: str
    package: str
    commit: str
    version: str | None = None
    release_path: str | None = None
    dry_run: bool = False
    deployment_id: int | str | None = None
    states: list[str] = Field(default_factory=list)
    retention: RetentionReport | None = None


class PromotionEngine(ReleaseEngine):
    """Validate, stage, gate and promote artifacts.

    Parameters
    ----------
    settings:
        Resolved settings.
    installer, retention, github:
        Optional collaborators; defaults are built from *settings*.
        ``github`` stays None unless GitHub credentials are configured.

    Remaining keyword arguments are those of :class:`ReleaseEngine`.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        ledger: VersionLedger | None = None,
        gate: HealthGate | None = None,
        supervisor: ProcessSupervisor | None = None,
        installer: DependencyInstaller | None = None,
        retention: RetentionManager | None = None,
        notifier: NotificationDispatcher | None = None,
        github: GitHubClient | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(
            settings,
            ledger=ledger,
            gate=gate,
            supervisor=supervisor,
            notifier=notifier,
            clock=clock,
            sleep=sleep,
        )
        self.installer = installer or DependencyInstaller(
            settings.install_command, timeout=settings.install_timeout
        )
        self.retention = retention or RetentionManager(settings)
        if github is None and settings.github_configured:
            github = GitHubClient(settings)
        self.github = github

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def deploy(
        self,
        artifact_path: str | Path,
        *,
        target: DeploymentTarget | None = None,
        package: str | None = None,
        dry_run: bool = False,
        deployment_id: int | str | None = None,
        run_id: str | None = None,
        trigger: str = "manual",
    ) -> PromotionResult:
        """Deploy the artifact at *artifact_path*.

        Parameters
        ----------
        target:
            Expected target; the manifest must name it.  When None the
            manifest decides.
        package:
            Expected package only (used when the environment is unknown).
        dry_run:
            Stop successfully after validation.

        Raises
        ------
        DeployError
            Any fatal error, with ``state`` set to the failing state.
        """
        run = Run(target)
        staged: Path | None = None
        event: dict = {
            "package": target.package if target else package,
            "environment": target.environment if target else None,
            "deployment_id": deployment_id,
            "run_id": run_id,
            "trigger": trigger,
        }

        try:
            # 1. Validate the manifest against the request
            manifest = read_manifest(artifact_path)
            resolved = check_manifest(manifest, target)
            if package is not None and resolved.package != package:
                raise ManifestMismatch(
                    f"Artifact is for {resolved}, but package {package!r} was requested"
                )
            run.target = resolved
            event.update(
                package=resolved.package, environment=resolved.environment, commit=manifest.commit,
            )
            logger.info("Artifact %s is %s at %s", Path(artifact_path).name, resolved, manifest.commit[:7])

            if dry_run:
                logger.info("Dry run: validation passed for %s", resolved)
                return PromotionResult(
                    environment=resolved.environment,
                    package=resolved.package,
                    commit=manifest.commit,
                    dry_run=True,
                    deployment_id=deployment_id,
                    states=[s.value for s in run.visited],
                )

            if deployment_id is None:
                deployment_id = self._open_github_deployment(resolved, manifest, run_id)
                event["deployment_id"] = deployment_id
            self.notifier.emit(DEPLOYING, **event)

            # 2. Stage the release
            run.advance(State.STAGING)
            attempt = attempt_stamp(self.clock())
            release = resolve_release(self.settings, resolved, manifest.commit, attempt)
            release.mkdir(parents=True, exist_ok=False)
            staged = release
            extract_artifact(artifact_path, release)
            copy_environment_file(
                resolve_target(self.settings, resolved).env_file, release, resolved.package,
            )
            if apply_asset_prefix(release, resolved.package, manifest):
                logger.info("Asset prefix set to %s", manifest.asset_prefix)

            # 3. Install and gate it off-line
            run.advance(State.DEPENDENCY_INSTALL)
            self.installer.install(release)

            run.advance(State.ISOLATED_HEALTH_CHECK)
            self.gate.isolated(release, resolved)
            self.notifier.emit(IN_PROGRESS, **event)

            # 4. Go live
            version = version_label(manifest.commit, attempt)
            entry = LedgerEntry(
                version=version,
                commit=manifest.commit,
                timestamp=iso_timestamp(self.clock()),
                packages=[resolved.package],
                release_path=str(release),
            )
            self.promote(run, resolved, release, entry, manifest)
        except DeployError as exc:
            run.annotate(exc)
            self._abort(run, staged)
            self.notifier.emit(FAILURE, error=exc.summary(), **event)
            raise
        except OSError as exc:
            err = run.annotate(DeployError(f"{run.state.value} failed: {exc}"))
            self._abort(run, staged)
            self.notifier.emit(FAILURE, error=err.summary(), **event)
            raise err from exc

        # 5. Retention never fails a deploy
        run.advance(State.RETENTION)
        report = self._retain(resolved, release)

        run.advance(State.DONE)
        self.notifier.emit(SUCCESS, version=version, **event)
        logger.info("Deployed %s as %s", resolved, version)
        return PromotionResult(
            environment=resolved.environment,
            package=resolved.package,
            commit=manifest.commit,
            version=version,
            release_path=str(release),
            deployment_id=deployment_id,
            states=[s.value for s in run.visited],
            retention=report,
        )

    def deploy_from_run(
        self,
        run_id: str,
        package: str,
        *,
        environment: str | None = None,
        deployment_id: int | str | None = None,
        dry_run: bool = False,
        trigger: str = "manual",
    ) -> PromotionResult:
        """Download *package*'s artifact from a CI run and deploy it.

        The download lives in a temporary directory that is removed
        whatever the outcome.
        """
        if package not in PACKAGES:
            raise InvalidTarget(f"Invalid package: {package!r}. Must be one of: {', '.join(PACKAGES)}")
        target = DeploymentTarget.of(environment, package) if environment else None
        if self.github is None or not self.github.configured:
            raise ArtifactDownloadError(
                "GitHub is not configured (GITHUB_TOKEN, GITHUB_OWNER, GITHUB_REPO)",
                state=State.VALIDATING.value,
            )

        workdir = Path(tempfile.mkdtemp(prefix="shipyard-"))
        try:
            try:
                archive = self.github.download_run_artifact(run_id, package, workdir)
            except ArtifactDownloadError as exc:
                exc.state = exc.state or State.VALIDATING.value
                self.notifier.emit(
                    FAILURE,
                    package=package,
                    environment=environment,
                    deployment_id=deployment_id,
                    run_id=run_id,
                    trigger=trigger,
                    error=exc.summary(),
                )
                raise
            return self.deploy(
                archive,
                target=target,
                package=package,
                dry_run=dry_run,
                deployment_id=deployment_id,
                run_id=run_id,
                trigger=trigger,
            )
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _abort(self, run: Run, staged: Path | None) -> None:
        """Compensate a failed run."""
        if run.pointer_swapped:
            logger.error(
                "%s failed after the pointer swap; %s stays live but is not recorded in the ledger",
                run.target,
                staged,
            )
            return
        if staged is not None and staged.exists():
            logger.info("Removing staged release %s", staged)
            try:
                shutil.rmtree(staged)
                # First attempt of a commit leaves an empty commit directory
                if not any(staged.parent.iterdir()):
                    staged.parent.rmdir()
            except OSError as exc:
                logger.warning("Could not remove staged release %s: %s", staged, exc)

    def _retain(self, target: DeploymentTarget, release: Path) -> RetentionReport | None:
        protected: list[str | Path] = [release]
        live = self.pointer(target).read()
        if live is not None:
            protected.append(live)
        try:
            return self.retention.apply(target, self.ledger.history(target), protected=protected)
        except Exception as exc:
            logger.warning("Retention failed for %s: %s", target, exc)
            return None

    def _open_github_deployment(
        self,
        target: DeploymentTarget,
        manifest: ArtifactManifest,
        run_id: str | None,
    ) -> int | None:
        if self.github is None or not self.github.configured:
            return None
        try:
            deployment_id = self.github.create_deployment(target.label, manifest.commit, run_id)
        except requests.RequestException as exc:
            logger.warning("Could not create GitHub deployment: %s", exc)
            return None
        logger.info("Created GitHub deployment %s", deployment_id)
        return deployment_id

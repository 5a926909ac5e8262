"""HealthGate — isolated, production and asset checks for a release."""

from __future__ import annotations

import logging
import random
import time
from pathlib import Path
from typing import Callable

import requests
from pydantic import BaseModel

from shipyard.config import Settings
from shipyard.errors import HealthCheckFailed
from shipyard.health.process import ScopedServer, ServerStartError, find_free_port
from shipyard.models.manifest import ArtifactManifest
from shipyard.models.target import DeploymentTarget
from shipyard.release.paths import package_dir

logger = logging.getLogger(__name__)

ISOLATED = "isolated"
PRODUCTION = "production"
ASSETS = "assets"


class CheckResult(BaseModel):
    """Result of a single passed health phase."""

    name: str = ""
    passed: bool = True
    message: str = ""
    url: str = ""


def health_url(target: DeploymentTarget, port: int) -> str:
    """Liveness endpoint: ``/health`` for servers, the root page for clients."""
    if target.package == "server":
        return f"http://localhost:{port}/health"
    return f"http://localhost:{port}/"


def asset_url(prefix: str, directory: str, filename: str) -> str:
    parts = [prefix.rstrip("/"), directory.strip("/"), filename.lstrip("/")]
    return "/".join(p for p in parts if p)


class HealthGate:
    """Gate a release behind liveness checks.

    The gate only reads release directories; it never touches the pointer
    or the ledger.  Every failed phase raises :class:`HealthCheckFailed`.

    Parameters
    ----------
    settings:
        Resolved settings (ports, retry policy, start command).
    session:
        ``requests`` session used for every probe.
    sleep:
        Sleep function between retries.
    rng:
        Random source for asset sampling.
    """

    def __init__(
        self,
        settings: Settings,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._sleep = sleep
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Liveness polling
    # ------------------------------------------------------------------

    def probe(self, url: str, retries: int | None = None) -> bool:
        """Poll *url* with fixed backoff; True on the first 2xx answer."""
        cfg = self._settings.health
        attempts = max(1, cfg.retries if retries is None else retries)
        for attempt in range(1, attempts + 1):
            try:
                resp = self._session.get(url, timeout=cfg.request_timeout)
                if 200 <= resp.status_code < 300:
                    return True
                logger.debug("%s answered %s (attempt %d/%d)", url, resp.status_code, attempt, attempts)
            except requests.RequestException as exc:
                logger.debug("%s unreachable (attempt %d/%d): %s", url, attempt, attempts, exc)
            if attempt < attempts:
                self._sleep(cfg.interval)
        return False

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def isolated(self, release_path: str | Path, target: DeploymentTarget) -> CheckResult:
        """Run the release's server on a scratch port and probe it."""
        cfg = self._settings.health
        cwd = package_dir(release_path, target.package)
        if not cwd.is_dir():
            raise HealthCheckFailed(ISOLATED, f"Package path not found: {cwd}")

        try:
            port = find_free_port(cfg.port_min, cfg.port_max)
        except ServerStartError as exc:
            raise HealthCheckFailed(ISOLATED, str(exc)) from exc
        url = health_url(target, port)
        logger.debug("Isolated check for %s on port %d", target, port)

        try:
            with ScopedServer(
                cfg.start_command,
                cwd=cwd,
                port=port,
                env={"NODE_ENV": "production"},
                grace_period=cfg.grace_period,
            ) as server:
                server.wait_ready(cfg.startup_timeout)
                if cfg.warmup > 0:
                    self._sleep(cfg.warmup)
                if not self.probe(url):
                    raise HealthCheckFailed(ISOLATED, f"no healthy answer from {url}")
        except ServerStartError as exc:
            raise HealthCheckFailed(ISOLATED, str(exc)) from exc

        return CheckResult(name=ISOLATED, message=f"healthy on port {port}", url=url)

    def production(self, target: DeploymentTarget) -> CheckResult:
        """Probe the live service on its production port."""
        url = health_url(target, self._settings.port_for(target.environment, target.package))
        if not self.probe(url):
            raise HealthCheckFailed(PRODUCTION, f"no healthy answer from {url}")
        return CheckResult(name=PRODUCTION, message="healthy", url=url)

    def assets(self, manifest: ArtifactManifest | None) -> CheckResult | None:
        """Probe a random sample of externally hosted assets.

        Returns None when the manifest declares no external assets or the
        check is disabled.
        """
        cfg = self._settings.assets
        if manifest is None or not manifest.has_external_assets or not cfg.enabled:
            return None

        files = manifest.asset_files()
        sample = self._rng.sample(files, min(cfg.sample_size, len(files)))
        failed: list[str] = []
        for directory, filename in sample:
            url = asset_url(manifest.asset_prefix or "", directory, filename)
            if not self._asset_exists(url):
                failed.append(url)

        if failed:
            raise HealthCheckFailed(
                ASSETS, f"{len(failed)}/{len(sample)} sampled assets unreachable: {', '.join(failed)}"
            )
        logger.info("Asset check passed (%d/%d sampled)", len(sample), len(files))
        return CheckResult(name=ASSETS, message=f"{len(sample)} assets reachable")

    def _asset_exists(self, url: str) -> bool:
        cfg = self._settings.assets
        attempts = max(1, cfg.retries)
        for attempt in range(1, attempts + 1):
            try:
                resp = self._session.head(url, timeout=cfg.timeout, allow_redirects=True)
                if resp.ok:
                    return True
                logger.debug("Asset %s answered %s", url, resp.status_code)
            except requests.RequestException as exc:
                logger.debug("Asset %s unreachable: %s", url, exc)
            if attempt < attempts:
                self._sleep(cfg.interval)
        return False

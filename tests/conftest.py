"""Shared fixtures: settings under tmp_path, artifact builder, fakes."""

from __future__ import annotations

import io
import json
import tarfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from shipyard.config import HealthSettings, Settings, SupervisorSettings
from shipyard.errors import DependencyInstallFailed, HealthCheckFailed, SupervisorCommandError
from shipyard.health.gate import CheckResult
from shipyard.models.target import DeploymentTarget
from shipyard.notify.dispatcher import NotificationDispatcher
from shipyard.pipeline.promotion import PromotionEngine
from shipyard.pipeline.rollback import RollbackEngine
from shipyard.release.paths import resolve_target
from shipyard.supervisor.base import ProcessSupervisor

COMMIT_A = "aaaa1111aaaa1111aaaa1111aaaa1111aaaa1111"
COMMIT_B = "bbbb2222bbbb2222bbbb2222bbbb2222bbbb2222"
COMMIT_C = "cccc3333cccc3333cccc3333cccc3333cccc3333"


# ── Builders ─────────────────────────────────────────────────────────────────

def make_artifact(
    directory: Path,
    environment: str = "prod",
    package: str = "client",
    commit: str = COMMIT_A,
    *,
    asset_prefix: str | None = None,
    cdn_assets: dict[str, list[str]] | None = None,
    manifest: dict[str, Any] | None = None,
    with_manifest: bool = True,
    name: str | None = None,
) -> Path:
    """Build a ``.tar.gz`` artifact with ``metadata.json`` and ``packages/<package>``."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / (name or f"{package}-{environment}-{commit[:7]}.tar.gz")

    meta: dict[str, Any] = manifest if manifest is not None else {
        "environment": environment,
        "package": package,
        "commit": commit,
        "timestamp": "2024-05-01T12:00:00Z",
    }
    if asset_prefix is not None:
        meta["assetPrefix"] = asset_prefix
    if cdn_assets is not None:
        meta["cdnAssets"] = cdn_assets

    files = {
        f"packages/{package}/package.json": json.dumps({"name": package, "version": "1.0.0"}),
        f"packages/{package}/index.js": "console.log('ready');\n",
        "pnpm-lock.yaml": "lockfileVersion: '9.0'\n",
    }
    if with_manifest:
        files["metadata.json"] = json.dumps(meta)

    with tarfile.open(path, "w:gz") as tar:
        for member, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(member)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


def write_env_file(settings: Settings, target: DeploymentTarget, content: str = "API_URL=https://example.test\n") -> Path:
    env_file = resolve_target(settings, target).env_file
    env_file.parent.mkdir(parents=True, exist_ok=True)
    env_file.write_text(content, encoding="utf-8")
    return env_file


# ── Fakes ────────────────────────────────────────────────────────────────────

class FakeClock:
    """Deterministic UTC clock advancing one minute per call."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(minutes=1)) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


class FakeSupervisor(ProcessSupervisor):
    def __init__(self, known: set[str] | None = None, online: bool = True, start_fails: bool = False) -> None:
        self.known = set(known or ())
        self.online = online
        self.start_fails = start_fails
        self.calls: list[tuple[str, str]] = []

    def reload(self, name: str) -> None:
        self.calls.append(("reload", name))
        if name not in self.known:
            raise SupervisorCommandError(f"Process or Namespace {name} not found")

    def start(self, name: str, config_path) -> None:
        self.calls.append(("start", name))
        if self.start_fails:
            raise SupervisorCommandError(f"cannot start {name}")
        self.known.add(name)

    def describe(self, name: str) -> str:
        if name not in self.known:
            raise SupervisorCommandError(f"{name} doesn't exist")
        return f"│ status │ {'online' if self.online else 'stopped'} │"


class FakeInstaller:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[Path] = []

    def install(self, release_path) -> None:
        self.calls.append(Path(release_path))
        if self.fail:
            raise DependencyInstallFailed("ERR_PNPM_OUTDATED_LOCKFILE")


class FakeGate:
    """Health gate stand-in; ``fail`` names the phase that should fail."""

    def __init__(self, fail: str | None = None, healthy: bool = True) -> None:
        self.fail = fail
        self.healthy = healthy
        self.calls: list[str] = []

    def _check(self, phase: str) -> CheckResult:
        self.calls.append(phase)
        if self.fail == phase:
            raise HealthCheckFailed(phase, "simulated")
        return CheckResult(name=phase)

    def isolated(self, release_path, target) -> CheckResult:
        return self._check("isolated")

    def production(self, target) -> CheckResult:
        return self._check("production")

    def assets(self, manifest) -> CheckResult | None:
        return self._check("assets")

    def probe(self, url: str, retries: int | None = None) -> bool:
        return self.healthy


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        base_path=tmp_path / "base",
        health=HealthSettings(interval=0, warmup=0, grace_period=2, startup_timeout=10),
        supervisor=SupervisorSettings(online_interval=0),
    )


@pytest.fixture
def target() -> DeploymentTarget:
    return DeploymentTarget.of("prod", "client")


@pytest.fixture
def artifacts(tmp_path: Path) -> Path:
    return tmp_path / "artifacts"


@pytest.fixture
def engine_parts(settings: Settings) -> dict[str, Any]:
    return {
        "supervisor": FakeSupervisor(known={"client-prod", "server-prod", "client-staging"}),
        "gate": FakeGate(),
        "notifier": NotificationDispatcher(),
        "clock": FakeClock(),
        "sleep": lambda seconds: None,
    }


@pytest.fixture
def engine(settings: Settings, engine_parts: dict[str, Any]) -> PromotionEngine:
    return PromotionEngine(settings, installer=FakeInstaller(), **engine_parts)


@pytest.fixture
def rollback_engine(settings: Settings, engine_parts: dict[str, Any]) -> RollbackEngine:
    return RollbackEngine(settings, **engine_parts)

"""Tests for the pm2 adapter, ecosystem files and the dependency installer."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

from shipyard.config import Settings
from shipyard.errors import DependencyInstallFailed, SupervisorCommandError
from shipyard.pipeline.installer import DependencyInstaller
from shipyard.supervisor.ecosystem import render_ecosystem, write_ecosystem
from shipyard.supervisor.pm2 import Pm2Supervisor


class FakeRun:
    """Replacement for subprocess.run returning scripted results."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "", raises: Exception | None = None):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.raises = raises
        self.calls: list[list[str]] = []
        self.kwargs: list[dict] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        self.kwargs.append(kwargs)
        if self.raises is not None:
            raise self.raises
        return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)


# ── Pm2Supervisor ────────────────────────────────────────────────────────────

class TestPm2Supervisor:

    def test_commands(self, monkeypatch: pytest.MonkeyPatch):
        fake = FakeRun(stdout="│ status │ online │")
        monkeypatch.setattr(subprocess, "run", fake)
        pm2 = Pm2Supervisor()

        pm2.reload("client-prod")
        pm2.start("client-prod", "/base/deployments/prod/ecosystem.config.json")
        assert "online" in pm2.describe("client-prod")
        assert fake.calls == [
            ["pm2", "reload", "client-prod"],
            ["pm2", "start", "/base/deployments/prod/ecosystem.config.json", "--only", "client-prod"],
            ["pm2", "describe", "client-prod"],
        ]

    def test_unknown_service_raises(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(subprocess, "run", FakeRun(returncode=1, stderr="[PM2][ERROR] Process not found"))
        with pytest.raises(SupervisorCommandError, match="not found"):
            Pm2Supervisor().reload("server-main")

    def test_missing_binary(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(subprocess, "run", FakeRun(raises=FileNotFoundError("pm2")))
        with pytest.raises(SupervisorCommandError):
            Pm2Supervisor().describe("client-prod")

    def test_status_from_jlist(self, monkeypatch: pytest.MonkeyPatch):
        services = [
            {"name": "client-prod", "pm2_env": {"status": "online"}},
            {"name": "server-prod", "pm2_env": {"status": "stopped"}},
        ]
        monkeypatch.setattr(subprocess, "run", FakeRun(stdout=json.dumps(services)))
        pm2 = Pm2Supervisor()
        assert pm2.status("client-prod") == "online"
        assert pm2.status("server-prod") == "stopped"
        assert pm2.status("client-main") == "not found"
        assert pm2.is_online("client-prod")


# ── Ecosystem files ──────────────────────────────────────────────────────────

class TestEcosystem:

    def test_render(self, settings: Settings):
        doc = render_ecosystem(settings, "staging")
        apps = {app["name"]: app for app in doc["apps"]}
        assert set(apps) == {"client-staging", "server-staging"}
        server = apps["server-staging"]
        assert server["env"]["PORT"] == 8081
        assert server["cwd"].endswith("deployments/staging/server/current/packages/server")

    def test_write_all_environments(self, settings: Settings):
        written = write_ecosystem(settings)
        assert [p.parent.name for p in written] == ["main", "staging", "prod"]
        assert json.loads(written[2].read_text())["apps"][0]["env"]["PORT"] == 3002


# ── DependencyInstaller ──────────────────────────────────────────────────────

class TestDependencyInstaller:

    def test_runs_in_release_root(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        fake = FakeRun()
        monkeypatch.setattr(subprocess, "run", fake)
        DependencyInstaller(["pnpm", "install", "--prod", "--frozen-lockfile"]).install(tmp_path)
        assert fake.calls == [["pnpm", "install", "--prod", "--frozen-lockfile"]]
        assert fake.kwargs[0]["cwd"] == tmp_path

    def test_non_zero_exit(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setattr(subprocess, "run", FakeRun(returncode=1, stderr="ERR_PNPM_OUTDATED_LOCKFILE"))
        with pytest.raises(DependencyInstallFailed, match="OUTDATED_LOCKFILE"):
            DependencyInstaller(["pnpm", "install"]).install(tmp_path)

    def test_timeout_and_missing_binary(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setattr(subprocess, "run", FakeRun(raises=subprocess.TimeoutExpired("pnpm", 1)))
        with pytest.raises(DependencyInstallFailed, match="timed out"):
            DependencyInstaller(["pnpm"], timeout=1).install(tmp_path)
        monkeypatch.setattr(subprocess, "run", FakeRun(raises=FileNotFoundError("pnpm")))
        with pytest.raises(DependencyInstallFailed, match="not found"):
            DependencyInstaller(["pnpm"]).install(tmp_path)

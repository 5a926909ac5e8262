"""Tests for release path resolution, the current pointer and artifacts."""

from __future__ import annotations

import io
import json
import stat
import tarfile
import warnings
from datetime import datetime, timezone
from pathlib import Path

import pytest

from conftest import COMMIT_A, make_artifact
from shipyard.config import Settings
from shipyard.errors import ArtifactError, InvalidManifest, InvalidTarget, ManifestMismatch, MissingEnvironmentFile
from shipyard.models.target import DeploymentTarget
from shipyard.release.artifact import check_manifest, extract_artifact, load_manifest_file, read_manifest
from shipyard.release.envfile import apply_asset_prefix, copy_environment_file
from shipyard.release.paths import (
    attempt_stamp,
    resolve_release,
    resolve_target,
    short_commit,
    version_label,
)
from shipyard.release.pointer import CurrentPointer


# ── DeploymentTarget ─────────────────────────────────────────────────────────

class TestDeploymentTarget:

    def test_names(self):
        target = DeploymentTarget.of("staging", "server")
        assert target.label == "staging-server"
        assert target.service_name == "server-staging"

    def test_invalid_environment(self):
        with pytest.raises(InvalidTarget, match="Invalid environment"):
            DeploymentTarget.of("qa", "client")

    def test_invalid_package(self):
        with pytest.raises(InvalidTarget, match="Invalid package"):
            DeploymentTarget.of("prod", "worker")

    def test_parse_label(self):
        assert DeploymentTarget.parse("prod-client") == DeploymentTarget.of("prod", "client")
        with pytest.raises(InvalidTarget):
            DeploymentTarget.parse("prod")


# ── Path resolution ──────────────────────────────────────────────────────────

class TestPaths:

    def test_release_layout(self, settings: Settings, target):
        release = resolve_release(settings, target, COMMIT_A, "2024-05-01-12-00-00")
        assert release == (
            settings.base_path / "deployments" / "prod" / "client" / "releases"
            / "aaaa111" / "2024-05-01-12-00-00"
        )

    def test_target_layout(self, settings: Settings, target):
        paths = resolve_target(settings, target)
        assert paths.current == settings.base_path / "deployments/prod/client/current"
        assert paths.ledger_file == settings.base_path / "versions/prod-client.json"
        assert paths.env_file == settings.base_path / "dotenv/client/.env.prod"
        assert paths.supervisor_config == settings.base_path / "deployments/prod/ecosystem.config.json"

    def test_deterministic(self, settings: Settings, target):
        a = resolve_release(settings, target, COMMIT_A, "2024-05-01-12-00-00")
        b = resolve_release(settings, target, COMMIT_A, "2024-05-01-12-00-00")
        assert a == b

    def test_malformed_inputs(self, settings: Settings, target):
        with pytest.raises(InvalidTarget):
            resolve_release(settings, target, "", "2024-05-01-12-00-00")
        with pytest.raises(InvalidTarget):
            resolve_release(settings, target, COMMIT_A, "2024/05")
        with pytest.raises(InvalidTarget):
            short_commit("..")

    def test_attempt_stamp_and_version_label(self):
        moment = datetime(2024, 5, 1, 9, 8, 7, tzinfo=timezone.utc)
        assert attempt_stamp(moment) == "2024-05-01-09-08-07"
        assert version_label(COMMIT_A, "2024-05-01-09-08-07") == "2024-05-01-09-08-07-aaaa111"


# ── CurrentPointer ───────────────────────────────────────────────────────────

class TestCurrentPointer:

    def test_read_missing(self, tmp_path: Path):
        assert CurrentPointer(tmp_path / "current").read() is None

    def test_atomic_set_and_replace(self, tmp_path: Path):
        first = tmp_path / "releases" / "a"
        second = tmp_path / "releases" / "b"
        first.mkdir(parents=True)
        second.mkdir(parents=True)
        pointer = CurrentPointer(tmp_path / "current")

        pointer.atomic_set(first)
        assert pointer.read() == first
        pointer.atomic_set(second)
        assert pointer.read() == second
        assert pointer.resolves()
        # No temporary links left beside the pointer
        assert sorted(p.name for p in tmp_path.iterdir()) == ["current", "releases"]

    def test_relative_target_is_made_absolute(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        release = tmp_path / "base" / "releases" / "a"
        release.mkdir(parents=True)
        monkeypatch.chdir(tmp_path)
        pointer = CurrentPointer(tmp_path / "base" / "current")

        pointer.atomic_set(Path("base") / "releases" / "a")
        assert pointer.read() == release
        assert pointer.resolves()
        assert pointer.link_path.resolve() == release

    def test_resolves_false_for_dangling(self, tmp_path: Path):
        pointer = CurrentPointer(tmp_path / "current")
        pointer.atomic_set(tmp_path / "gone")
        assert pointer.read() == tmp_path / "gone"
        assert not pointer.resolves()


# ── Artifacts ────────────────────────────────────────────────────────────────

class TestArtifact:

    def test_read_manifest(self, artifacts: Path):
        archive = make_artifact(
            artifacts, asset_prefix="https://cdn.example.test/app",
            cdn_assets={"_next/static": ["a.js", "b.css"]},
        )
        manifest = read_manifest(archive)
        assert manifest.commit == COMMIT_A
        assert manifest.target == DeploymentTarget.of("prod", "client")
        assert manifest.has_external_assets
        assert manifest.asset_files() == [("_next/static", "a.js"), ("_next/static", "b.css")]

    def test_missing_manifest(self, artifacts: Path):
        with pytest.raises(InvalidManifest):
            read_manifest(make_artifact(artifacts, with_manifest=False))

    def test_manifest_missing_fields(self, artifacts: Path):
        with pytest.raises(InvalidManifest):
            read_manifest(make_artifact(artifacts, manifest={"environment": "prod"}))

    def test_not_a_tarball(self, tmp_path: Path):
        bogus = tmp_path / "bogus.tar.gz"
        bogus.write_bytes(b"not a real archive")
        with pytest.raises(ArtifactError):
            read_manifest(bogus)
        with pytest.raises(ArtifactError):
            read_manifest(tmp_path / "missing.tar.gz")

    def test_check_manifest_mismatch(self, artifacts: Path):
        manifest = read_manifest(make_artifact(artifacts, environment="staging"))
        with pytest.raises(ManifestMismatch):
            check_manifest(manifest, DeploymentTarget.of("prod", "client"))
        assert check_manifest(manifest, None) == DeploymentTarget.of("staging", "client")

    def test_extract_skips_unsafe_members(self, tmp_path: Path):
        archive = tmp_path / "evil.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            for name in ("ok.txt", "../escape.txt"):
                data = b"x"
                info = tarfile.TarInfo(name)
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))
        dest = tmp_path / "out"
        skipped = extract_artifact(archive, dest)
        assert skipped == ["../escape.txt"]
        assert (dest / "ok.txt").is_file()
        assert not (tmp_path / "escape.txt").exists()

    def test_extract_uses_data_filter(self, tmp_path: Path):
        archive = tmp_path / "modes.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            data = b"#!/bin/sh\n"
            info = tarfile.TarInfo("bin/run")
            info.size = len(data)
            info.mode = 0o4777
            tar.addfile(info, io.BytesIO(data))
        dest = tmp_path / "out"
        with warnings.catch_warnings():
            warnings.simplefilter("error", DeprecationWarning)
            extract_artifact(archive, dest)
        mode = (dest / "bin" / "run").stat().st_mode
        assert not mode & stat.S_ISUID
        assert not mode & stat.S_IWOTH
        assert mode & stat.S_IXUSR

    def test_load_manifest_file(self, tmp_path: Path):
        assert load_manifest_file(tmp_path / "metadata.json") is None
        (tmp_path / "metadata.json").write_text(json.dumps({
            "environment": "prod", "package": "server", "commit": COMMIT_A, "timestamp": "t",
        }))
        assert load_manifest_file(tmp_path / "metadata.json").package == "server"


# ── Environment file ─────────────────────────────────────────────────────────

class TestEnvironmentFile:

    def test_missing_source(self, tmp_path: Path):
        with pytest.raises(MissingEnvironmentFile):
            copy_environment_file(tmp_path / ".env.prod", tmp_path / "release", "client")

    def test_copy_and_asset_prefix(self, tmp_path: Path, artifacts: Path):
        source = tmp_path / ".env.prod"
        source.write_text("API_URL=x\nASSET_PREFIX=stale\n")
        release = tmp_path / "release"
        dest = copy_environment_file(source, release, "client")
        assert dest == release / "packages" / "client" / ".env.local"

        manifest = read_manifest(make_artifact(
            artifacts, asset_prefix="https://cdn.example.test", cdn_assets={"static": ["a.js"]},
        ))
        assert apply_asset_prefix(release, "client", manifest) is True
        lines = dest.read_text().splitlines()
        assert lines == ["API_URL=x", "ASSET_PREFIX=https://cdn.example.test"]

    def test_asset_prefix_cleared_without_assets(self, tmp_path: Path, artifacts: Path):
        source = tmp_path / ".env.prod"
        source.write_text("ASSET_PREFIX=stale\nA=1\n")
        release = tmp_path / "release"
        dest = copy_environment_file(source, release, "client")
        manifest = read_manifest(make_artifact(artifacts))
        assert apply_asset_prefix(release, "client", manifest) is False
        assert dest.read_text() == "A=1\n"

"""Artifact handling — manifest extraction and safe unpacking."""

from __future__ import annotations

import json
import logging
import tarfile
from pathlib import Path

from pydantic import ValidationError

from shipyard.config import MANIFEST_NAME
from shipyard.errors import ArtifactError, InvalidManifest, ManifestMismatch
from shipyard.models.manifest import ArtifactManifest
from shipyard.models.target import DeploymentTarget

logger = logging.getLogger(__name__)


def read_manifest(archive_path: str | Path) -> ArtifactManifest:
    """Read and type-check ``metadata.json`` from the artifact.

    Only the manifest member is read; nothing is written to disk.

    Raises
    ------
    ArtifactError
        If the archive is missing or is not a readable tarball.
    InvalidManifest
        If the manifest is absent, not JSON, or missing required fields.
    """
    archive = Path(archive_path)
    if not archive.is_file():
        raise ArtifactError(f"Artifact not found: {archive}")

    try:
        with tarfile.open(archive, "r:*") as tar:
            member = _find_manifest(tar)
            if member is None:
                raise InvalidManifest(f"Artifact missing {MANIFEST_NAME}: {archive}")
            mf = tar.extractfile(member)
            if mf is None:
                raise InvalidManifest(f"{MANIFEST_NAME} is not a regular file")
            raw = mf.read()
    except (tarfile.TarError, OSError) as exc:
        raise ArtifactError(f"Failed to read artifact {archive}: {exc}") from exc

    try:
        return ArtifactManifest.model_validate(json.loads(raw))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidManifest(f"{MANIFEST_NAME} is not valid JSON: {exc}") from exc
    except ValidationError as exc:
        raise InvalidManifest(f"{MANIFEST_NAME} failed validation: {exc}") from exc


def load_manifest_file(path: str | Path) -> ArtifactManifest | None:
    """Load a manifest already unpacked into a release, if present."""
    path = Path(path)
    if not path.is_file():
        return None
    try:
        return ArtifactManifest.model_validate_json(path.read_text(encoding="utf-8"))
    except (ValidationError, OSError, ValueError):
        logger.warning("Ignoring unreadable manifest at %s", path)
        return None


def check_manifest(
    manifest: ArtifactManifest,
    expected: DeploymentTarget | None,
) -> DeploymentTarget:
    """Return the manifest's target, enforcing a match with *expected*."""
    target = manifest.target
    if expected is not None and target != expected:
        raise ManifestMismatch(
            f"Artifact is for {target}, but {expected} was requested"
        )
    return target


def extract_artifact(archive_path: str | Path, target_dir: str | Path) -> list[str]:
    """Unpack the artifact into *target_dir*.

    Members with absolute paths, parent references or links pointing
    outside the tree are skipped.  Returns the skipped member names.
    """
    archive = Path(archive_path)
    target = Path(target_dir)
    target.mkdir(parents=True, exist_ok=True)
    skipped: list[str] = []

    try:
        with tarfile.open(archive, "r:*") as tar:
            members = []
            for m in tar.getmembers():
                if _is_unsafe(m):
                    skipped.append(m.name)
                    continue
                members.append(m)
            tar.extractall(target, members=members, filter="data")
    except (tarfile.TarError, OSError) as exc:
        raise ArtifactError(f"Extraction failed for {archive}: {exc}") from exc

    for name in skipped:
        logger.warning("Skipped suspicious path in artifact: %s", name)
    return skipped


def _find_manifest(tar: tarfile.TarFile) -> tarfile.TarInfo | None:
    for candidate in (MANIFEST_NAME, f"./{MANIFEST_NAME}"):
        try:
            return tar.getmember(candidate)
        except KeyError:
            continue
    return None


def _is_unsafe(member: tarfile.TarInfo) -> bool:
    name = member.name
    if name.startswith("/") or ".." in Path(name).parts:
        return True
    if member.issym() or member.islnk():
        link = member.linkname
        if link.startswith("/") or ".." in Path(link).parts:
            return True
    return member.isdev()

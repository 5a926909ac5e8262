"""Environment file injection into a staged release."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from shipyard.config import ASSET_PREFIX_ENV, RELEASE_ENV_FILE
from shipyard.errors import MissingEnvironmentFile
from shipyard.models.manifest import ArtifactManifest
from shipyard.release.paths import package_dir

logger = logging.getLogger(__name__)


def copy_environment_file(
    source: str | Path,
    release_path: str | Path,
    package: str,
) -> Path:
    """Copy the per-target environment file into the release.

    Raises
    ------
    MissingEnvironmentFile
        If *source* does not exist.
    """
    source = Path(source)
    if not source.is_file():
        raise MissingEnvironmentFile(f"Environment file not found: {source}")

    dest_dir = package_dir(release_path, package)
    dest_dir.mkdir(parents=True, exist_ok=True)
    dest = dest_dir / RELEASE_ENV_FILE
    shutil.copy2(source, dest)
    logger.debug("Copied environment file %s -> %s", source, dest)
    return dest


def apply_asset_prefix(
    release_path: str | Path,
    package: str,
    manifest: ArtifactManifest | None,
) -> bool:
    """Set or clear ``ASSET_PREFIX`` in the release environment file.

    Returns True when a prefix was written.
    """
    env_path = package_dir(release_path, package) / RELEASE_ENV_FILE
    lines: list[str] = []
    if env_path.is_file():
        lines = [
            line for line in env_path.read_text(encoding="utf-8").splitlines()
            if not line.startswith(f"{ASSET_PREFIX_ENV}=")
        ]

    prefix = manifest.asset_prefix if manifest and manifest.has_external_assets else None
    if prefix:
        lines.append(f"{ASSET_PREFIX_ENV}={prefix}")

    env_path.parent.mkdir(parents=True, exist_ok=True)
    env_path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
    return bool(prefix)

"""Release layout — path resolution, the current pointer, and artifacts."""

from shipyard.release.artifact import (
    check_manifest,
    extract_artifact,
    load_manifest_file,
    read_manifest,
)
from shipyard.release.envfile import apply_asset_prefix, copy_environment_file
from shipyard.release.paths import (
    TargetPaths,
    attempt_stamp,
    package_dir,
    resolve_release,
    resolve_target,
    short_commit,
    version_label,
)
from shipyard.release.pointer import CurrentPointer

__all__ = [
    "CurrentPointer",
    "TargetPaths",
    "apply_asset_prefix",
    "attempt_stamp",
    "check_manifest",
    "copy_environment_file",
    "extract_artifact",
    "load_manifest_file",
    "package_dir",
    "read_manifest",
    "resolve_release",
    "resolve_target",
    "short_commit",
    "version_label",
]

"""DependencyInstaller — locked, production-only install into a release."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Sequence

from shipyard.errors import DependencyInstallFailed

logger = logging.getLogger(__name__)


class DependencyInstaller:
    """Run the install command inside a staged release.

    The command must install from the lockfile without resolving
    versions (``--frozen-lockfile``); a drifted lockfile fails the run.

    Parameters
    ----------
    command:
        Argument vector, e.g. ``["pnpm", "install", "--prod", "--frozen-lockfile"]``.
    timeout:
        Seconds before the install is abandoned.
    """

    def __init__(self, command: Sequence[str], timeout: float = 900.0) -> None:
        self.command = list(command)
        self.timeout = timeout

    def install(self, release_path: str | Path) -> None:
        cwd = Path(release_path)
        logger.debug("%s (cwd=%s)", " ".join(self.command), cwd)
        try:
            result = subprocess.run(
                self.command,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise DependencyInstallFailed(f"Install command not found: {self.command[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            raise DependencyInstallFailed(f"Install timed out after {self.timeout:.0f}s") from exc
        except OSError as exc:
            raise DependencyInstallFailed(f"Install could not run: {exc}") from exc

        if result.returncode != 0:
            tail = "\n".join((result.stderr or result.stdout).strip().splitlines()[-20:])
            raise DependencyInstallFailed(
                f"{' '.join(self.command)} failed (rc={result.returncode}): {tail}"
            )
        logger.debug("Dependencies installed in %s", cwd)

"""CurrentPointer — the symlink naming the live release of a target."""

from __future__ import annotations

import logging
import os
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


class CurrentPointer:
    """Named pointer resource backed by a symlink.

    The pointer is only ever replaced with :func:`os.replace` on a freshly
    created sibling symlink, so readers see either the old or the new
    target and never a missing or half-written link.

    Parameters
    ----------
    link_path:
        Location of the ``current`` symlink.
    """

    def __init__(self, link_path: str | Path) -> None:
        self.link_path = Path(link_path)

    def read(self) -> Path | None:
        """Return the release the pointer names, or None if there is none."""
        if not self.link_path.is_symlink():
            return None
        return Path(os.readlink(self.link_path))

    def resolves(self) -> bool:
        """True when the pointer exists and names an existing directory."""
        target = self.read()
        return target is not None and target.is_dir()

    def atomic_set(self, target: str | Path) -> None:
        """Repoint to *target* (create new link, then rename over the old).

        The link text is always absolute; a relative target would be
        resolved against the link's own directory.
        """
        target = Path(os.path.abspath(target))
        self.link_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.link_path.with_name(
            f".{self.link_path.name}.{os.getpid()}.{uuid.uuid4().hex[:8]}"
        )
        os.symlink(target, tmp, target_is_directory=True)
        try:
            os.replace(tmp, self.link_path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        logger.debug("Pointer %s -> %s", self.link_path, target)

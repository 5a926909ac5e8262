"""VersionLedger — durable per-target deployment history.

Each target owns one JSON file, ``versions/<env>-<package>.json``::

    {"current": "<version label>", "deployments": [<entry>, ...]}

Entries are stored newest first.  The file is rewritten whole on every
change (temp file + rename); it is never edited in place.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from shipyard.config import Settings
from shipyard.errors import LedgerCorrupt
from shipyard.models.ledger import EntryStatus, LedgerDocument, LedgerEntry
from shipyard.models.target import DeploymentTarget
from shipyard.release.paths import resolve_target

logger = logging.getLogger(__name__)


class VersionLedger:
    """Read and append ledger entries for any deployment target.

    Parameters
    ----------
    settings:
        Resolved settings; the ledger lives under ``settings.versions_dir``.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def path_for(self, target: DeploymentTarget) -> Path:
        return resolve_target(self._settings, target).ledger_file

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self, target: DeploymentTarget) -> LedgerDocument:
        """Return the whole ledger document; corrupt or missing -> empty."""
        try:
            return self._read(target)
        except LedgerCorrupt as exc:
            logger.warning("Treating ledger for %s as empty: %s", target, exc)
            return LedgerDocument()

    def history(self, target: DeploymentTarget) -> list[LedgerEntry]:
        """Entries for *target*, newest first."""
        return list(self.load(target).deployments)

    def active(self, target: DeploymentTarget) -> LedgerEntry | None:
        return self.load(target).active()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record(self, target: DeploymentTarget, entry: LedgerEntry) -> LedgerDocument:
        """Append *entry* as the active deployment of *target*.

        Any previously active entry is flipped to inactive.  Recording the
        entry that is already active (same version label and release path)
        is a no-op.
        """
        doc = self.load(target)
        current = doc.active()
        if (
            current is not None
            and current.version == entry.version
            and current.release_path == entry.release_path
        ):
            logger.debug("Ledger for %s already records %s", target, entry.version)
            return doc

        new_entry = entry.model_copy(
            update={
                "status": EntryStatus.ACTIVE,
                "packages": entry.packages or [target.package],
            }
        )
        for existing in doc.deployments:
            if existing.is_active:
                existing.status = EntryStatus.INACTIVE

        doc.deployments.insert(0, new_entry)
        doc.current = new_entry.version
        self._write(target, doc)
        logger.info("Recorded %s as active for %s", new_entry.version, target)
        return doc

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _read(self, target: DeploymentTarget) -> LedgerDocument:
        path = self.path_for(target)
        if not path.is_file():
            return LedgerDocument()
        try:
            return LedgerDocument.model_validate_json(path.read_bytes())
        except (ValidationError, OSError, ValueError) as exc:
            raise LedgerCorrupt(f"{path}: {exc}") from exc

    def _write(self, target: DeploymentTarget, doc: LedgerDocument) -> None:
        path = self.path_for(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(doc.model_dump(mode="json", by_alias=True), indent=2)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

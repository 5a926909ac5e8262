"""Pydantic models shared by the engines."""

from shipyard.models.ledger import EntryStatus, LedgerDocument, LedgerEntry
from shipyard.models.manifest import ArtifactManifest
from shipyard.models.target import DeploymentTarget

__all__ = [
    "ArtifactManifest",
    "DeploymentTarget",
    "EntryStatus",
    "LedgerDocument",
    "LedgerEntry",
]

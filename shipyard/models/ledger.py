"""Ledger models — one entry per successful promotion or rollback."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePath

from pydantic import BaseModel, ConfigDict, Field

from shipyard.config import SHORT_COMMIT_LENGTH


class EntryStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class LedgerEntry(BaseModel):
    """A single deployment record.

    Serialised with the camelCase keys of the on-disk ledger file.
    """

    model_config = ConfigDict(populate_by_name=True)

    version: str
    commit: str
    timestamp: str
    packages: list[str] = Field(default_factory=list)
    status: EntryStatus = EntryStatus.ACTIVE
    release_path: str = Field(alias="releasePath")

    @property
    def is_active(self) -> bool:
        return self.status == EntryStatus.ACTIVE

    @property
    def short_commit(self) -> str:
        return self.commit[:SHORT_COMMIT_LENGTH]

    @property
    def attempt(self) -> str:
        """Trailing component of the release path (the attempt stamp)."""
        return PurePath(self.release_path).name

    @property
    def deployed_at(self) -> datetime:
        """Parsed timestamp; unparseable values sort as the epoch."""
        try:
            value = datetime.fromisoformat(self.timestamp.replace("Z", "+00:00"))
        except ValueError:
            return datetime.fromtimestamp(0, timezone.utc)
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class LedgerDocument(BaseModel):
    """The whole ledger file: ``{current, deployments}``, newest first."""

    current: str | None = None
    deployments: list[LedgerEntry] = Field(default_factory=list)

    def active(self) -> LedgerEntry | None:
        return next((e for e in self.deployments if e.is_active), None)

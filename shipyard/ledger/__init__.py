"""Version Ledger — the source of truth for what is live."""

from shipyard.ledger.store import VersionLedger

__all__ = ["VersionLedger"]

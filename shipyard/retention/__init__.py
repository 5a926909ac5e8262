"""Retention Manager — two-level pruning of release history."""

from shipyard.retention.manager import RetentionManager, RetentionReport

__all__ = ["RetentionManager", "RetentionReport"]

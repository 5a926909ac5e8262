"""Deployment pipeline — promotion, rollback, status and the webhook queue."""

from shipyard.pipeline.engine import ReleaseEngine, Run, State
from shipyard.pipeline.installer import DependencyInstaller
from shipyard.pipeline.promotion import PromotionEngine, PromotionResult
from shipyard.pipeline.queue import DeploymentQueue, accept_webhook, webhook_handler
from shipyard.pipeline.rollback import (
    RollbackCandidate,
    RollbackEngine,
    RollbackResult,
    rollback_candidates,
    select_rollback_target,
    validate_rollback_target,
)
from shipyard.pipeline.status import HistoryListing, StatusReport, describe_status, list_history
from shipyard.pipeline.webhook import DeploymentRequest, parse_webhook_payload

__all__ = [
    "DependencyInstaller",
    "DeploymentQueue",
    "DeploymentRequest",
    "HistoryListing",
    "PromotionEngine",
    "PromotionResult",
    "ReleaseEngine",
    "RollbackCandidate",
    "RollbackEngine",
    "RollbackResult",
    "Run",
    "State",
    "StatusReport",
    "accept_webhook",
    "describe_status",
    "list_history",
    "parse_webhook_payload",
    "rollback_candidates",
    "select_rollback_target",
    "validate_rollback_target",
    "webhook_handler",
]

"""Inbound GitHub ``deployment.created`` payload validation."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel

from shipyard.config import ENVIRONMENTS, PACKAGES
from shipyard.errors import InvalidTarget, InvalidWebhookPayload
from shipyard.models.target import DeploymentTarget

logger = logging.getLogger(__name__)


class DeploymentRequest(BaseModel):
    """A validated request to deploy one CI run's artifact."""

    deployment_id: int | str | None = None
    environment: str
    package: str
    ref: str = ""
    run_id: str

    @property
    def target(self) -> DeploymentTarget:
        return DeploymentTarget.of(self.environment, self.package)


def _inner_payload(deployment: dict[str, Any]) -> dict[str, Any]:
    raw = deployment.get("payload")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            raise InvalidWebhookPayload(f"Invalid JSON in deployment payload: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise InvalidWebhookPayload("Deployment payload must be a JSON object")
    return raw


def parse_webhook_payload(payload: dict[str, Any]) -> DeploymentRequest | None:
    """Validate a ``deployment.created`` event.

    The deployment's own ``payload`` may be an object or a JSON string.
    The environment may be a bare environment (``prod``) or a target label
    (``prod-client``), which is what deployments created by this tool use.

    Returns None when the deployment carries ``skip_webhook``: it was
    created by a deploy that is already running.

    Raises
    ------
    InvalidWebhookPayload
        For any missing or invalid field.
    """
    if not isinstance(payload, dict):
        raise InvalidWebhookPayload("Webhook payload must be a JSON object")
    deployment = payload.get("deployment")
    if not isinstance(deployment, dict):
        raise InvalidWebhookPayload("Missing deployment object in webhook payload")

    inner = _inner_payload(deployment)
    if inner.get("skip_webhook") is True:
        logger.info("Skipping deployment %s: skip_webhook is set", deployment.get("id"))
        return None

    if not payload.get("repository"):
        raise InvalidWebhookPayload("Missing repository object in webhook payload")
    environment = deployment.get("environment")
    if not environment:
        raise InvalidWebhookPayload("Missing environment in deployment payload")
    package = inner.get("package")
    if not package:
        raise InvalidWebhookPayload("Missing package name in deployment payload")
    run_id = inner.get("workflow_run_id")
    if not run_id:
        raise InvalidWebhookPayload("Missing workflow_run_id in deployment payload")

    if environment not in ENVIRONMENTS and "-" in environment:
        try:
            labelled = DeploymentTarget.parse(environment)
        except InvalidTarget as exc:
            raise InvalidWebhookPayload(exc.message) from exc
        if labelled.package != package:
            raise InvalidWebhookPayload(
                f"Environment {environment} does not match package {package}"
            )
        environment = labelled.environment

    if environment not in ENVIRONMENTS:
        raise InvalidWebhookPayload(
            f"Invalid environment: {environment}. Must be one of: {', '.join(ENVIRONMENTS)}"
        )
    if package not in PACKAGES:
        raise InvalidWebhookPayload(
            f"Invalid package: {package}. Must be one of: {', '.join(PACKAGES)}"
        )

    return DeploymentRequest(
        deployment_id=deployment.get("id"),
        environment=environment,
        package=package,
        ref=deployment.get("ref") or "",
        run_id=str(run_id),
    )

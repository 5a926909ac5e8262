"""Notification providers — console, Discord, GitHub deployment statuses."""

from __future__ import annotations

import abc
import logging
from datetime import datetime, timezone
from typing import Any

import requests

logger = logging.getLogger(__name__)

# Event statuses emitted by the engines
DEPLOYING = "deploying"
IN_PROGRESS = "in_progress"
SUCCESS = "success"
FAILURE = "failure"

_COLORS = {
    DEPLOYING: 0x3498DB,
    IN_PROGRESS: 0xF39C12,
    SUCCESS: 0x2ECC71,
    FAILURE: 0xE74C3C,
}

_TITLES = {
    DEPLOYING: ("Deployment Started", "Starting deployment of **{package}** to **{environment}**"),
    IN_PROGRESS: ("Deployment In Progress", "Deploying **{package}** to **{environment}**"),
    SUCCESS: ("Deployment Successful", "Successfully deployed **{package}** to **{environment}**"),
    FAILURE: ("Deployment Failed", "Failed to deploy **{package}** to **{environment}**"),
}


class NotificationProvider(abc.ABC):
    """Abstract notification provider."""

    @abc.abstractmethod
    def notify(self, event: dict[str, Any]) -> bool:
        """Send a notification about a deployment event.

        Parameters
        ----------
        event:
            Event dict with keys: status, package, environment, commit,
            version, error, deployment_id, run_id, trigger, timestamp.

        Returns True if notification was sent successfully.
        """

    @abc.abstractmethod
    def is_available(self) -> bool:
        """Return True if provider is ready to send."""


class ConsoleNotifier(NotificationProvider):
    """Always-available log notification provider."""

    def __init__(self) -> None:
        self._log: list[dict[str, Any]] = []

    def notify(self, event: dict[str, Any]) -> bool:
        self._log.append(event)
        logger.info("[deploy] %s", format_event(event))
        return True

    def is_available(self) -> bool:
        return True

    @property
    def log(self) -> list[dict[str, Any]]:
        """Access the in-memory log for testing."""
        return list(self._log)


class DiscordNotifier(NotificationProvider):
    """Discord webhook provider posting one embed per event."""

    def __init__(
        self,
        webhook_url: str | None = None,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._session = session or requests.Session()

    def is_available(self) -> bool:
        return bool(self._webhook_url)

    def notify(self, event: dict[str, Any]) -> bool:
        if not self.is_available():
            return False
        resp = self._session.post(
            self._webhook_url, json={"embeds": [build_embed(event)]}, timeout=self._timeout,
        )
        if resp.status_code not in (200, 204):
            logger.warning("Discord webhook returned %s", resp.status_code)
            return False
        return True


def build_embed(event: dict[str, Any]) -> dict[str, Any]:
    """Discord embed for a deployment event."""
    status = event.get("status", "")
    package = event.get("package") or "unknown"
    environment = event.get("environment") or "unknown"
    title, description = _TITLES.get(
        status, ("Deployment Update", "Status update for **{package}** deployment to **{environment}**")
    )
    fields: list[dict[str, Any]] = []

    error = event.get("error")
    if status == FAILURE and error:
        text = error if len(error) <= 1000 else error[:997] + "..."
        fields.append({"name": "Error", "value": f"```{text}```", "inline": False})

    fields.append({"name": "Package", "value": package, "inline": True})
    fields.append({"name": "Environment", "value": environment, "inline": True})
    if event.get("commit"):
        fields.append({"name": "Commit", "value": f"`{event['commit'][:7]}`", "inline": True})
    if event.get("version") and status == SUCCESS:
        fields.append({"name": "Version", "value": f"`{event['version']}`", "inline": False})
    if event.get("deployment_id"):
        fields.append({"name": "Deployment ID", "value": f"`{event['deployment_id']}`", "inline": True})
    if event.get("run_id"):
        fields.append({"name": "Source", "value": f"GitHub Actions (run {event['run_id']})", "inline": True})
    else:
        fields.append({"name": "Source", "value": "Local Artifact", "inline": True})
    trigger = "Automated (Webhook)" if event.get("trigger") == "webhook" else "Manual"
    fields.append({"name": "Trigger", "value": trigger, "inline": True})

    return {
        "title": title,
        "description": description.format(package=package, environment=environment),
        "color": _COLORS.get(status, 0x95A5A6),
        "timestamp": event.get("timestamp") or datetime.now(timezone.utc).isoformat(),
        "fields": fields,
        "footer": {"text": "shipyard"},
    }


def format_event(event: dict[str, Any]) -> str:
    """Format an event dict into a one-line message."""
    parts = [str(event.get("status", "unknown"))]
    if event.get("package") or event.get("environment"):
        parts.append(f"{event.get('package')}/{event.get('environment')}")
    if event.get("commit"):
        parts.append(f"commit={event['commit'][:7]}")
    if event.get("version"):
        parts.append(f"version={event['version']}")
    if event.get("error"):
        parts.append(f"error={event['error']}")
    return " ".join(parts)

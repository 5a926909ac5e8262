"""NotificationDispatcher — routes deployment events to every provider."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from shipyard.config import Settings
from shipyard.notify.github import GitHubClient, GitHubStatusReporter
from shipyard.notify.providers import ConsoleNotifier, DiscordNotifier, NotificationProvider

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Dispatch deployment events to all configured providers.

    Always includes a ConsoleNotifier.  Provider failures are logged and
    never reach the caller: notifications cannot change a deployment's
    outcome.
    """

    def __init__(self, providers: list[NotificationProvider] | None = None) -> None:
        self._console = ConsoleNotifier()
        self._providers: list[NotificationProvider] = [self._console]
        if providers:
            self._providers.extend(providers)

    @classmethod
    def from_settings(cls, settings: Settings) -> NotificationDispatcher:
        providers: list[NotificationProvider] = []
        if settings.discord_webhook_url:
            providers.append(DiscordNotifier(settings.discord_webhook_url))
        if settings.github_configured:
            providers.append(GitHubStatusReporter(GitHubClient(settings)))
        return cls(providers)

    def add_provider(self, provider: NotificationProvider) -> None:
        """Register an additional notification provider."""
        self._providers.append(provider)

    @property
    def console(self) -> ConsoleNotifier:
        """Access the built-in console notifier (useful for testing)."""
        return self._console

    def emit(self, status: str, **details: Any) -> None:
        """Build an event and send it to every available provider."""
        event = {"status": status, "timestamp": datetime.now(timezone.utc).isoformat()}
        event.update({k: v for k, v in details.items() if v is not None})
        self._dispatch(event)

    def _dispatch(self, event: dict[str, Any]) -> None:
        for provider in self._providers:
            if provider.is_available():
                try:
                    provider.notify(event)
                except Exception as exc:
                    logger.warning(
                        "Notification provider %s failed: %s",
                        type(provider).__name__,
                        exc,
                    )

"""Outbound notifications — fire-and-forget side effects of deployments."""

from shipyard.notify.dispatcher import NotificationDispatcher
from shipyard.notify.github import GitHubClient, GitHubStatusReporter
from shipyard.notify.providers import (
    DEPLOYING,
    FAILURE,
    IN_PROGRESS,
    SUCCESS,
    ConsoleNotifier,
    DiscordNotifier,
    NotificationProvider,
)

__all__ = [
    "DEPLOYING",
    "FAILURE",
    "IN_PROGRESS",
    "SUCCESS",
    "ConsoleNotifier",
    "DiscordNotifier",
    "GitHubClient",
    "GitHubStatusReporter",
    "NotificationDispatcher",
    "NotificationProvider",
]

"""Exception taxonomy for promotion, rollback and their collaborators."""

from __future__ import annotations


class DeployError(Exception):
    """Base class for every fatal orchestration error.

    ``state`` is the pipeline state that was executing when the error was
    raised; the engines fill it in before propagating.
    """

    exit_code = 1

    def __init__(self, message: str, *, state: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.state = state
        self.pointer_swapped = False

    def summary(self) -> str:
        if self.state:
            return f"[{self.state}] {self.message}"
        return self.message


class InvalidTarget(DeployError):
    """Unknown environment or package name, or malformed path input."""

    exit_code = 2


class InvalidManifest(DeployError):
    """Artifact has no readable ``metadata.json`` or it fails validation."""

    exit_code = 5


class ManifestMismatch(DeployError):
    """Manifest names a different environment/package than requested."""

    exit_code = 5


class ArtifactError(DeployError):
    """Artifact could not be opened or unpacked."""

    exit_code = 3


class ArtifactDownloadError(DeployError):
    """Artifact could not be fetched from the CI run."""

    exit_code = 8


class MissingEnvironmentFile(DeployError):
    exit_code = 3


class DependencyInstallFailed(DeployError):
    exit_code = 6


class HealthCheckFailed(DeployError):
    """A health gate phase did not pass.

    ``phase`` is one of ``isolated``, ``production`` or ``assets``.
    """

    exit_code = 7

    def __init__(self, phase: str, message: str, **kwargs) -> None:
        super().__init__(f"{phase} health check failed: {message}", **kwargs)
        self.phase = phase


class SupervisorCommandError(DeployError):
    """A process supervisor command exited non-zero."""

    exit_code = 9


class ServiceReloadFailed(DeployError):
    exit_code = 9


class StaleRollbackTarget(DeployError):
    """The selected ledger entry's release directory is gone or incomplete."""

    exit_code = 10


class NoRollbackTarget(DeployError):
    exit_code = 10


class CommitNotFound(DeployError):
    exit_code = 10


class AttemptNotFound(DeployError):
    exit_code = 10


class InvalidWebhookPayload(DeployError):
    exit_code = 2


class LedgerCorrupt(Exception):
    """Ledger file exists but cannot be parsed.

    Never surfaced to callers: history reads recover it as empty history.
    """

"""GitHub REST client — deployments, deployment statuses, run artifacts."""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path
from typing import Any

import requests

from shipyard.config import Settings
from shipyard.errors import ArtifactDownloadError
from shipyard.notify.providers import FAILURE, IN_PROGRESS, SUCCESS, NotificationProvider

logger = logging.getLogger(__name__)

# Engine event status -> GitHub deployment state
_STATES = {
    IN_PROGRESS: "in_progress",
    SUCCESS: "success",
    FAILURE: "failure",
}


class GitHubClient:
    """Thin wrapper over the GitHub REST API for one repository.

    Parameters
    ----------
    settings:
        Supplies token, owner, repository and API base URL.
    session:
        Optional ``requests`` session (tests inject a fake).
    """

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._session.headers.update({
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {settings.github_token}",
            "X-GitHub-Api-Version": "2022-11-28",
        })

    @property
    def configured(self) -> bool:
        return self._settings.github_configured

    def _url(self, path: str) -> str:
        s = self._settings
        return f"{s.github_api_url.rstrip('/')}/repos/{s.github_owner}/{s.github_repo}/{path.lstrip('/')}"

    def create_deployment(self, environment: str, ref: str, run_id: str | None = None) -> int:
        """Create a deployment that the webhook listener must ignore."""
        payload: dict[str, Any] = {
            "ref": ref,
            "environment": environment,
            "auto_merge": False,
            "required_contexts": [],
            "payload": {"skip_webhook": True, "workflow_run_id": run_id},
        }
        resp = self._session.post(self._url("deployments"), json=payload, timeout=30)
        resp.raise_for_status()
        return int(resp.json()["id"])

    def update_status(self, deployment_id: int | str, state: str, description: str = "") -> None:
        resp = self._session.post(
            self._url(f"deployments/{deployment_id}/statuses"),
            json={"state": state, "description": description[:140]},
            timeout=30,
        )
        resp.raise_for_status()

    def download_run_artifact(self, run_id: str, package: str, dest_dir: str | Path) -> Path:
        """Download the ``.tar.gz`` artifact for *package* from a CI run.

        Raises
        ------
        ArtifactDownloadError
            If the run has no matching artifact or the download fails.
        """
        dest = Path(dest_dir)
        dest.mkdir(parents=True, exist_ok=True)
        prefix = f"{self._settings.artifact_prefix}{package}-"

        try:
            resp = self._session.get(self._url(f"actions/runs/{run_id}/artifacts"), timeout=30)
            resp.raise_for_status()
            artifacts = resp.json().get("artifacts", [])
            match = next(
                (a for a in artifacts if a["name"].startswith(prefix) and a["name"].endswith(".tar.gz")),
                None,
            )
            if match is None:
                available = ", ".join(a["name"] for a in artifacts) or "none"
                raise ArtifactDownloadError(
                    f"Artifact not found. Expected {prefix}*.tar.gz, available: {available}"
                )

            zip_path = dest / f"{match['name']}.zip"
            with self._session.get(
                self._url(f"actions/artifacts/{match['id']}/zip"), timeout=300, stream=True,
            ) as download:
                download.raise_for_status()
                with zip_path.open("wb") as fh:
                    for chunk in download.iter_content(chunk_size=65536):
                        fh.write(chunk)

            extract_dir = dest / "extracted"
            with zipfile.ZipFile(zip_path) as zf:
                zf.extractall(extract_dir)
        except ArtifactDownloadError:
            raise
        except (requests.RequestException, zipfile.BadZipFile, OSError, KeyError, ValueError) as exc:
            raise ArtifactDownloadError(f"Failed to download artifact: {exc}") from exc

        tarballs = sorted(extract_dir.rglob("*.tar.gz"))
        if not tarballs:
            raise ArtifactDownloadError(f"No .tar.gz file found in artifact {match['name']}")
        logger.info("Downloaded artifact %s from run %s", tarballs[0].name, run_id)
        return tarballs[0]


class GitHubStatusReporter(NotificationProvider):
    """Mirror engine events onto a GitHub deployment's status."""

    def __init__(self, client: GitHubClient) -> None:
        self._client = client

    def is_available(self) -> bool:
        return self._client.configured

    def notify(self, event: dict[str, Any]) -> bool:
        deployment_id = event.get("deployment_id")
        state = _STATES.get(event.get("status", ""))
        if not deployment_id or state is None:
            return False
        package, environment = event.get("package"), event.get("environment")
        if state == "success":
            description = f"Successfully deployed {package} to {environment}"
        elif state == "failure":
            description = f"Deployment failed: {event.get('error', '')}"
        else:
            description = f"Deploying {package} to {environment}"
        self._client.update_status(deployment_id, state, description)
        return True

"""Global configuration: paths, constants, settings.

Settings are merged in order: defaults -> ``config.json`` -> ``.env`` ->
environment variables.  Every layer lives under the deployment base path.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

ENVIRONMENTS = ("main", "staging", "prod")
PACKAGES = ("client", "server")

DEFAULT_BASE_PATH = Path.home() / "shipyard"

# Production ports per environment and package
PORTS: dict[str, dict[str, int]] = {
    "main": {"client": 3000, "server": 8080},
    "staging": {"client": 3001, "server": 8081},
    "prod": {"client": 3002, "server": 8082},
}

# Sub-folder names under the base path
DEPLOYMENTS_DIR = "deployments"
VERSIONS_DIR = "versions"
DOTENV_DIR = "dotenv"

# Name of the manifest file at the artifact root
MANIFEST_NAME = "metadata.json"

# Environment file written inside packages/<package>/
RELEASE_ENV_FILE = ".env.local"
ASSET_PREFIX_ENV = "ASSET_PREFIX"

SHORT_COMMIT_LENGTH = 7
ATTEMPT_FORMAT = "%Y-%m-%d-%H-%M-%S"

READINESS_MARKERS = ("ready", "listening", "started", "server running")


class HealthSettings(BaseModel):
    """Isolated and production liveness checks."""

    startup_timeout: float = 30.0
    port_min: int = 9000
    port_max: int = 9999
    retries: int = 3
    interval: float = 1.0
    request_timeout: float = 5.0
    warmup: float = 2.0
    grace_period: float = 10.0
    start_command: list[str] = Field(default_factory=lambda: ["npm", "start"])


class AssetCheckSettings(BaseModel):
    """Sampled existence probes for externally hosted assets."""

    enabled: bool = True
    sample_size: int = 5
    timeout: float = 10.0
    retries: int = 2
    interval: float = 1.0


class RetentionSettings(BaseModel):
    keep_commits: int = 5
    keep_attempts: int = 2


class SupervisorSettings(BaseModel):
    """pm2 invocation and the bounded wait for ``online``."""

    binary: str = "pm2"
    online_checks: int = 3
    online_interval: float = 3.0
    command_timeout: float = 60.0


class Settings(BaseModel):
    """Resolved configuration for one orchestration host."""

    base_path: Path = DEFAULT_BASE_PATH
    log_level: str = "INFO"
    ports: dict[str, dict[str, int]] = Field(
        default_factory=lambda: {env: dict(p) for env, p in PORTS.items()}
    )
    install_command: list[str] = Field(
        default_factory=lambda: ["pnpm", "install", "--prod", "--frozen-lockfile"]
    )
    install_timeout: float = 900.0
    health: HealthSettings = Field(default_factory=HealthSettings)
    assets: AssetCheckSettings = Field(default_factory=AssetCheckSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    supervisor: SupervisorSettings = Field(default_factory=SupervisorSettings)
    artifact_prefix: str = ""
    discord_webhook_url: str = ""
    github_token: str = ""
    github_owner: str = ""
    github_repo: str = ""
    github_api_url: str = "https://api.github.com"

    @field_validator("base_path")
    @classmethod
    def _absolute_base(cls, value: Path) -> Path:
        return Path(value).expanduser().resolve()

    @property
    def deployments_dir(self) -> Path:
        return self.base_path / DEPLOYMENTS_DIR

    @property
    def versions_dir(self) -> Path:
        return self.base_path / VERSIONS_DIR

    @property
    def dotenv_dir(self) -> Path:
        return self.base_path / DOTENV_DIR

    @property
    def github_configured(self) -> bool:
        return bool(self.github_token and self.github_owner and self.github_repo)

    def port_for(self, environment: str, package: str) -> int:
        return self.ports[environment][package]


# Environment variable -> (settings path, converter)
_ENV_KEYS: dict[str, tuple[tuple[str, ...], Any]] = {
    "SHIPYARD_LOG_LEVEL": (("log_level",), str),
    "SHIPYARD_KEEP_COMMITS": (("retention", "keep_commits"), int),
    "SHIPYARD_KEEP_ATTEMPTS": (("retention", "keep_attempts"), int),
    "SHIPYARD_ASSET_CHECK": (("assets", "enabled"), lambda v: v.lower() in ("1", "true", "yes")),
    "SHIPYARD_ARTIFACT_PREFIX": (("artifact_prefix",), str),
    "DISCORD_WEBHOOK_URL": (("discord_webhook_url",), str),
    "GITHUB_TOKEN": (("github_token",), str),
    "GITHUB_OWNER": (("github_owner",), str),
    "GITHUB_REPO": (("github_repo",), str),
}


def load_settings(base_path: str | Path | None = None) -> Settings:
    """Load merged settings for the orchestration host.

    Parameters
    ----------
    base_path:
        Deployment base path.  Falls back to ``SHIPYARD_BASE_PATH`` and then
        to ``~/shipyard``.
    """
    if base_path is None:
        base_path = os.environ.get("SHIPYARD_BASE_PATH") or DEFAULT_BASE_PATH
    root = Path(base_path).expanduser().resolve()
    data: dict[str, Any] = {"base_path": root}

    # 1. config.json
    config_json = root / "config.json"
    if config_json.is_file():
        try:
            loaded = json.loads(config_json.read_text(encoding="utf-8"))
            for key, value in loaded.items():
                if key != "base_path":
                    data[key] = value
        except (json.JSONDecodeError, OSError, AttributeError):
            logger.debug("Could not read %s", config_json, exc_info=True)

    # 2. .env file
    overrides: dict[str, str] = {}
    env_file = root / ".env"
    if env_file.is_file():
        try:
            for line in env_file.read_text(encoding="utf-8").splitlines():
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                k, v = line.split("=", 1)
                overrides[k.strip()] = v.strip().strip('"').strip("'")
        except OSError:
            logger.debug("Could not read %s", env_file, exc_info=True)

    # 3. Environment variables override all
    for key in _ENV_KEYS:
        env_val = os.environ.get(key)
        if env_val is not None:
            overrides[key] = env_val

    for key, value in overrides.items():
        if key not in _ENV_KEYS:
            continue
        path, convert = _ENV_KEYS[key]
        try:
            _assign(data, path, convert(value))
        except ValueError:
            logger.warning("Ignoring invalid value for %s: %r", key, value)

    return Settings.model_validate(data)


def _assign(data: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    node = data
    for part in path[:-1]:
        node = node.setdefault(part, {})
    node[path[-1]] = value

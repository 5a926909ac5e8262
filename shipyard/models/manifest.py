"""ArtifactManifest — metadata shipped inside every build artifact."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from shipyard.models.target import DeploymentTarget


class ArtifactManifest(BaseModel):
    """Contents of ``metadata.json`` at the artifact root.  Read-only."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    environment: str
    package: str
    commit: str = Field(min_length=1)
    timestamp: str
    asset_prefix: str | None = Field(default=None, alias="assetPrefix")
    cdn_assets: dict[str, list[str]] | None = Field(default=None, alias="cdnAssets")

    @property
    def target(self) -> DeploymentTarget:
        return DeploymentTarget.of(self.environment, self.package)

    @property
    def has_external_assets(self) -> bool:
        """True when static assets are served from ``asset_prefix``."""
        return bool(self.asset_prefix) and bool(self.asset_files())

    def asset_files(self) -> list[tuple[str, str]]:
        """Flatten ``cdnAssets`` into ``(directory, filename)`` pairs."""
        pairs: list[tuple[str, str]] = []
        for directory, names in sorted((self.cdn_assets or {}).items()):
            pairs.extend((directory, name) for name in names)
        return pairs

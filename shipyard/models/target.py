"""DeploymentTarget — the (environment, package) unit of orchestration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from shipyard.config import ENVIRONMENTS, PACKAGES
from shipyard.errors import InvalidTarget


class DeploymentTarget(BaseModel):
    """One environment/package pair.  Immutable once accepted."""

    model_config = ConfigDict(frozen=True)

    environment: str
    package: str

    @classmethod
    def of(cls, environment: str | None, package: str | None) -> DeploymentTarget:
        """Validate names and build a target.

        Raises
        ------
        InvalidTarget
            If either name is not a known environment or package.
        """
        if environment not in ENVIRONMENTS:
            raise InvalidTarget(
                f"Invalid environment: {environment!r}. "
                f"Must be one of: {', '.join(ENVIRONMENTS)}"
            )
        if package not in PACKAGES:
            raise InvalidTarget(
                f"Invalid package: {package!r}. "
                f"Must be one of: {', '.join(PACKAGES)}"
            )
        return cls(environment=environment, package=package)

    @classmethod
    def parse(cls, label: str) -> DeploymentTarget:
        """Parse a ``{environment}-{package}`` label such as ``prod-client``."""
        parts = (label or "").split("-")
        if len(parts) != 2:
            raise InvalidTarget(
                f"Invalid environment format: {label!r}. Expected {{env}}-{{package}}"
            )
        return cls.of(parts[0], parts[1])

    @property
    def label(self) -> str:
        return f"{self.environment}-{self.package}"

    @property
    def service_name(self) -> str:
        return f"{self.package}-{self.environment}"

    def __str__(self) -> str:
        return f"{self.package}/{self.environment}"

"""shipyard — atomic release orchestration for long-lived services."""

__version__ = "0.1.0"

from shipyard.config import Settings, load_settings  # noqa: E402
from shipyard.errors import DeployError  # noqa: E402
from shipyard.models import DeploymentTarget  # noqa: E402

__all__ = [
    "DeployError",
    "DeploymentTarget",
    "Settings",
    "__version__",
    "load_settings",
]

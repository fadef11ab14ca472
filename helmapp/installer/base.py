import abc
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

from helmapp.types.models import ReleaseManifest
from helmapp.utils.errors import RenderError
from helmapp.utils.helpers import merge_values


@dataclass
class InstallRequest:
    """Everything needed to render and apply a chart for one HelmApp."""

    release: str
    namespace: str
    chart: str
    repo_url: str
    version: Optional[str] = None
    overrides: Dict[str, Any] = field(default_factory=dict)
    defaults: Dict[str, Any] = field(default_factory=dict)

    @property
    def values(self) -> Dict[str, Any]:
        """Effective values: overrides deep merged over the chart defaults."""
        return merge_values(self.defaults, self.overrides)


def load_values(text: Optional[str]) -> Dict[str, Any]:
    """Decode a values.yaml document, an empty document being no values.

    Raises:
        RenderError: if the document is not YAML or not a mapping.
    """
    if not text:
        return {}
    try:
        values = yaml.safe_load(text)
    except yaml.YAMLError as ex:
        raise RenderError(f"values.yaml is not valid YAML: {ex}") from ex
    if values is None:
        return {}
    if not isinstance(values, dict):
        raise RenderError("values.yaml must be a mapping")
    return values


class Installer(abc.ABC):
    """Renders charts and applies them to the cluster."""

    @abc.abstractmethod
    async def render(self, request: InstallRequest) -> ReleaseManifest:
        """Render the chart without touching the cluster.

        Raises:
            RenderError: templates or values are invalid.
            ApplyTransient: the chart could not be fetched in time.
        """

    @abc.abstractmethod
    async def install(self, request: InstallRequest) -> ReleaseManifest:
        """Install the release, or upgrade it if it already exists.

        Raises:
            RenderError, ApplyTransient, ApplyFatal
        """

    @abc.abstractmethod
    async def uninstall(self, release: str, namespace: str) -> None:
        """Remove the release; a missing release is not an error.

        Raises:
            UninstallError
        """

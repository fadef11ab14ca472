"""Pre-install validation of a chart and the values it would be installed with."""
import abc
import logging

from helmapp.installer import Installer, InstallRequest, load_values
from helmapp.types.models import ChartContent
from helmapp.utils.errors import (
    ApplyTransient,
    PreInstallFailed,
)

logger = logging.getLogger(__name__)

DRY_RUN = "dry-run"
STATIC = "static"


class PreInstallValidator(abc.ABC):
    """Decides whether a chart can be installed with the given overrides."""

    name: str = ""

    @abc.abstractmethod
    async def validate(self, request: InstallRequest, content: ChartContent) -> None:
        """Raise `PreInstallFailed` if the chart should not be installed."""


class StaticValidator(PreInstallValidator):
    """Checks that the default values decode and merge with the overrides.

    Undecodable default values raise `RenderError`.
    """

    name = STATIC

    async def validate(self, request: InstallRequest, content: ChartContent) -> None:
        request.defaults = load_values(content.default_values)
        if not isinstance(request.values, dict):
            raise PreInstallFailed("merged values are not a mapping")


class DryRunValidator(StaticValidator):
    """Renders the chart through the installer without applying it.

    A `RenderError` is passed through unchanged so the resource waits for a
    spec change instead of being retried.
    """

    name = DRY_RUN

    def __init__(self, installer: Installer):
        self.installer = installer

    async def validate(self, request: InstallRequest, content: ChartContent) -> None:
        await super().validate(request, content)
        try:
            await self.installer.render(request)
        except ApplyTransient as ex:
            raise PreInstallFailed(ex.message) from ex


def build_validator(name: str, installer: Installer) -> PreInstallValidator:
    """Return the validator configured by `PRE_INSTALL_VALIDATION`."""
    name = (name or DRY_RUN).strip().lower()
    if name == STATIC:
        return StaticValidator()
    if name != DRY_RUN:
        logger.warning(f"Unknown pre-install validation `{name}`, using `{DRY_RUN}`")
    return DryRunValidator(installer)

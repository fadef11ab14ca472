import json
import kubernetes_asyncio
from typing import Optional

_NOT_FOUND = "notfound"
_CONFLICT = "conflict"


class HelmAppError(Exception):
    """Base class of every failure recorded on a HelmApp status.

    The class name doubles as the condition reason, so subclasses should be
    named after the machine token they report.
    """

    retryable: bool = True

    def __init__(self, message: str = "", retryable: Optional[bool] = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable

    @property
    def reason(self) -> str:
        return type(self).__name__


# Detecting phase


class RepoUnreachable(HelmAppError):
    """The chart repository could not be reached."""


class IndexMalformed(HelmAppError):
    """The repository index could not be decoded."""


class NoEntries(HelmAppError):
    """The repository index lists no charts."""


class PackageNotFound(HelmAppError):
    """The chart is not listed in the repository index."""

    retryable = False


class VersionNotFound(HelmAppError):
    """The chart exists but not in the requested version."""

    retryable = False


class ContentUnavailable(HelmAppError):
    """The chart archive could not be downloaded or unpacked."""


class PreInstallFailed(HelmAppError):
    """Pre-install validation rejected the chart and its values."""


# Installing phase


class RenderError(HelmAppError):
    """Templates or values are invalid."""

    retryable = False


class ApplyTransient(HelmAppError):
    """The cluster refused the release for a reason that may go away."""


class ApplyFatal(HelmAppError):
    """The cluster rejected the rendered workload."""

    retryable = False


class UninstallError(HelmAppError):
    """The release could not be removed."""


class ReconcileTimeout(HelmAppError):
    """A reconciliation step did not finish in time."""


def _reason(ex: kubernetes_asyncio.client.ApiException) -> str:
    try:
        err = json.loads(ex.body)
    except (TypeError, ValueError):
        return ""
    return err.get("reason", "").lower()


def not_found_error(ex: kubernetes_asyncio.client.ApiException) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    else:
        return ex.status == 404 or _reason(ex) == _NOT_FOUND


def conflict_error(ex: kubernetes_asyncio.client.ApiException) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    else:
        return ex.status == 409 or _reason(ex) == _CONFLICT

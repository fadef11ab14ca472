"""Installer backed by the `helm` binary.

Releases are always applied with `helm upgrade --install`, so calling
`install` repeatedly for the same HelmApp converges on a single release
instead of creating duplicates.
"""
import contextlib
import json
import logging
import os
import tempfile
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional

import yaml

from helmapp.types.models import ReleaseManifest
from helmapp.utils.errors import ApplyFatal, ApplyTransient, RenderError, UninstallError
from .base import InstallRequest, Installer
from .command import Command, CommandException, CommandTimeout, CommandUnavailable, run

logger = logging.getLogger(__name__)

HELM_BIN = "helm"

#: stderr fragments of failures that are expected to go away on retry
TRANSIENT_ERRORS = (
    "timed out",
    "timeout",
    "deadline exceeded",
    "connection refused",
    "kubernetes cluster unreachable",
    "connection reset",
    "no such host",
    "tls handshake",
    "too many requests",
    "service unavailable",
    "etcdserver",
    "the object has been modified",
    "conflict",
    "another operation (install/upgrade/rollback) is in progress",
    "failed to download",
    "looks like \"http",
)

#: stderr of an uninstall of a release that does not exist
RELEASE_NOT_FOUND = "release: not found"

Runner = Callable[[Command], Awaitable[str]]


def is_transient(stderr: str) -> bool:
    lowered = (stderr or "").lower()
    return any(fragment in lowered for fragment in TRANSIENT_ERRORS)


@contextlib.contextmanager
def values_file(values: Dict[str, Any]) -> Iterator[str]:
    """Write values to a temporary YAML file that is removed afterwards."""
    fd, path = tempfile.mkstemp(prefix="helmapp-", suffix=".yaml")
    try:
        with os.fdopen(fd, "w") as f:
            yaml.safe_dump(values, f, default_flow_style=False)
        yield path
    finally:
        with contextlib.suppress(FileNotFoundError):
            os.remove(path)


class HelmInstaller(Installer):
    """Render, install and uninstall releases with helm."""

    def __init__(
        self,
        helm_bin: str = HELM_BIN,
        timeout: float = 300.0,
        runner: Optional[Runner] = None,
        kube_context: Optional[str] = None,
    ) -> None:
        self.helm_bin = helm_bin
        self.timeout = timeout
        self.kube_context = kube_context
        self._runner = runner or run

    def base_args(self, namespace: str) -> List[str]:
        args = ["--namespace", namespace]
        if self.kube_context:
            args.extend(["--kube-context", self.kube_context])
        return args

    def chart_args(self, request: InstallRequest, values_path: str) -> List[str]:
        args = [request.chart, "--repo", request.repo_url, "--values", values_path]
        if request.version:
            args.extend(["--version", request.version])
        return args

    async def _run(self, args: List[str]) -> str:
        return await self._runner(Command([self.helm_bin, *args], timeout=self.timeout))

    async def render(self, request: InstallRequest) -> ReleaseManifest:
        values = request.values
        with values_file(values) as path:
            args = [
                "template",
                request.release,
                *self.chart_args(request, path),
                *self.base_args(request.namespace),
            ]
            try:
                manifest = await self._run(args)
            except (CommandTimeout, CommandUnavailable) as ex:
                raise ApplyTransient(str(ex)) from ex
            except CommandException as ex:
                if is_transient(ex.stderr):
                    raise ApplyTransient(ex.stderr.strip() or str(ex)) from ex
                raise RenderError(ex.stderr.strip() or str(ex)) from ex
        return ReleaseManifest(
            name=request.release,
            namespace=request.namespace,
            revision=None,
            status="rendered",
            chart_version=request.version,
            manifest=manifest,
            values=values,
        )

    async def install(self, request: InstallRequest) -> ReleaseManifest:
        # Rendering first separates invalid templates from cluster rejections.
        await self.render(request)
        values = request.values
        with values_file(values) as path:
            args = [
                "upgrade",
                request.release,
                *self.chart_args(request, path),
                "--install",
                "--output",
                "json",
                *self.base_args(request.namespace),
            ]
            logger.info(
                f"Installing release {request.release} of {request.chart} "
                f"{request.version or 'latest'} in {request.namespace}"
            )
            try:
                out = await self._run(args)
            except (CommandTimeout, CommandUnavailable) as ex:
                raise ApplyTransient(str(ex)) from ex
            except CommandException as ex:
                message = ex.stderr.strip() or str(ex)
                if is_transient(ex.stderr):
                    raise ApplyTransient(message) from ex
                raise ApplyFatal(message) from ex
        return self.parse_release(request, out, values)

    def parse_release(
        self, request: InstallRequest, out: str, values: Dict[str, Any]
    ) -> ReleaseManifest:
        """Build the release manifest from `helm ... --output json`."""
        try:
            release = json.loads(out) if out.strip() else {}
        except ValueError:
            logger.warning(f"helm printed no JSON for release {request.release}")
            release = {}
        info = release.get("info") or {}
        metadata = (release.get("chart") or {}).get("metadata") or {}
        return ReleaseManifest(
            name=release.get("name", request.release),
            namespace=release.get("namespace", request.namespace),
            revision=release.get("version"),
            status=info.get("status"),
            chart_version=metadata.get("version", request.version),
            manifest=release.get("manifest", ""),
            values=values,
        )

    async def uninstall(self, release: str, namespace: str) -> None:
        args = ["uninstall", release, *self.base_args(namespace)]
        logger.info(f"Uninstalling release {release} in {namespace}")
        try:
            await self._run(args)
        except (CommandTimeout, CommandUnavailable) as ex:
            raise UninstallError(str(ex)) from ex
        except CommandException as ex:
            lowered = (ex.stderr or "").lower()
            if RELEASE_NOT_FOUND in lowered:
                logger.info(f"Release {release} in {namespace} is already gone")
                return
            raise UninstallError(ex.stderr.strip() or str(ex)) from ex

"""Handlers of the HelmApp lifecycle phases.

Every handler works on the in-memory status of a single HelmApp and never
persists anything; the reconciler writes the status back once the handler
returns. The lifecycle is

    "" -> Detecting -> Configuring -> Installing -> Installed

and any app returns to Detecting when its chart changes, or from Installed to
Configuring when only its overrides change.
"""
import copy
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from helmapp.installer import Installer, InstallRequest, load_values
from helmapp.sensors import OperatorSensor
from helmapp.types.models import (
    ConditionStatus,
    ConditionType,
    DEFAULT_CONDITION_TYPES,
    DETECTING_CONDITION_TYPES,
    HelmAppResources,
    HelmAppSpec,
    HelmAppStatus,
    Phase,
)
from helmapp.utils.errors import HelmAppError
from helmapp.utils.helpers import deep_compare_dict, digest
from helmapp.web import ChartRepoClient
from .validation import PreInstallValidator

# Condition reasons of successful steps
CHART_FOUND = "ChartFound"
CHART_PARSED = "ChartParsed"
VALIDATED = "Validated"
INSTALL_SUCCEEDED = "InstallSucceeded"
SPEC_CHANGED = "SpecChanged"


@dataclass
class PhaseResult:
    """Outcome of a phase handler.

    With `error` set, `requeue` asks for a retry with backoff. Without an
    error, `requeue` asks for the next phase to run right away.
    """

    requeue: bool = False
    error: Optional[HelmAppError] = None


@dataclass
class PhaseContext:
    """A HelmApp snapshot and the collaborators a phase handler may use."""

    name: str
    namespace: str
    generation: Optional[int]
    spec: HelmAppSpec
    status: HelmAppStatus
    repo_client: ChartRepoClient
    installer: Installer
    validator: PreInstallValidator
    sensor: OperatorSensor
    logger: logging.Logger

    def transition(self, phase: Phase) -> None:
        current = self.status.phase or ""
        if current == phase.value:
            return
        self.logger.info(f"Phase of {self.namespace}/{self.name}: `{current}` -> `{phase.value}`")
        self.status.set_phase(phase)
        self.sensor.on_phase_transition(self.name, self.namespace, current, phase.value)

    def succeed(self, type: ConditionType, reason: str, message: str = "") -> None:
        self.status.set_condition(
            type, ConditionStatus.TRUE, reason, message, self.generation
        )

    def fail(self, type: ConditionType, error: HelmAppError) -> PhaseResult:
        """Record a failure on a condition and in `lastError`."""
        self.status.set_condition(
            type, ConditionStatus.FALSE, error.reason, error.message, self.generation
        )
        self.status.last_error = f"{error.reason}: {error.message}"
        if error.retryable:
            self.logger.warning(f"{type.value} failed with {error.reason}, will retry: {error.message}")
        else:
            self.logger.error(
                f"{type.value} failed with {error.reason}, waiting for a spec change: {error.message}"
            )
        return PhaseResult(requeue=error.retryable, error=error)

    def parked(self, *types: ConditionType) -> bool:
        return any(self.status.parked_on(type, self.generation) for type in types)

    def redetect(self) -> PhaseResult:
        """Forget the detected chart and start over from Detecting."""
        self.status.reset_conditions(DEFAULT_CONDITION_TYPES, SPEC_CHANGED)
        self.status.readme = ""
        self.status.values = {}
        self.status.detected = None
        self.transition(Phase.DETECTING)
        return PhaseResult(requeue=True)

    def install_request(
        self, version: Optional[str] = None, defaults: Optional[Dict[str, Any]] = None
    ) -> InstallRequest:
        return InstallRequest(
            release=HelmAppResources.release_name(self.name),
            namespace=self.namespace,
            chart=self.spec.template_name,
            repo_url=self.spec.app_store.url,
            version=version or self.spec.version or None,
            overrides=copy.deepcopy(self.spec.overrides or {}),
            defaults=defaults or {},
        )


async def handle_new(ctx: PhaseContext) -> PhaseResult:
    """Start the lifecycle of a HelmApp that was never reconciled."""
    ctx.status.init_conditions()
    ctx.transition(Phase.DETECTING)
    return PhaseResult(requeue=True)


async def handle_detecting(ctx: PhaseContext) -> PhaseResult:
    """Find the chart, read its documentation and defaults, and validate it."""
    if ctx.parked(*DETECTING_CONDITION_TYPES):
        ctx.logger.debug(f"{ctx.namespace}/{ctx.name} waits for a spec change")
        return PhaseResult()

    store_url = ctx.spec.app_store.url

    state = ctx.sensor.on_chart_fetch_start(ctx.name, ctx.namespace, "index")
    try:
        index = await ctx.repo_client.fetch_index(store_url)
        chart = index.resolve(ctx.spec.template_name, ctx.spec.version)
    except HelmAppError as ex:
        ctx.sensor.on_chart_fetch_complete(ctx.name, ctx.namespace, "index", state, False, ex)
        return ctx.fail(ConditionType.CHART_READY, ex)
    ctx.sensor.on_chart_fetch_complete(ctx.name, ctx.namespace, "index", state, True)
    ctx.succeed(
        ConditionType.CHART_READY,
        CHART_FOUND,
        f"Chart {chart.name} {chart.version} found in {store_url}",
    )

    state = ctx.sensor.on_chart_fetch_start(ctx.name, ctx.namespace, "content")
    try:
        content = await ctx.repo_client.fetch_content(store_url, chart)
    except HelmAppError as ex:
        ctx.sensor.on_chart_fetch_complete(ctx.name, ctx.namespace, "content", state, False, ex)
        return ctx.fail(ConditionType.CHART_PARSED, ex)
    ctx.sensor.on_chart_fetch_complete(ctx.name, ctx.namespace, "content", state, True)
    ctx.status.readme = content.readme
    ctx.status.values = dict(content.values)
    ctx.status.detected = {
        "repoURL": store_url,
        "chart": ctx.spec.template_name,
        "version": chart.version,
        "requested": ctx.spec.version or "",
    }
    ctx.succeed(ConditionType.CHART_PARSED, CHART_PARSED)

    try:
        await ctx.validator.validate(ctx.install_request(chart.version), content)
    except HelmAppError as ex:
        return ctx.fail(ConditionType.PRE_INSTALLED, ex)
    ctx.succeed(ConditionType.PRE_INSTALLED, VALIDATED, f"Passed {ctx.validator.name} validation")

    if not all(ctx.status.is_condition_true(type) for type in DETECTING_CONDITION_TYPES):
        return PhaseResult()
    ctx.status.last_error = None
    ctx.transition(Phase.CONFIGURING)
    return PhaseResult(requeue=True)


async def handle_configuring(ctx: PhaseContext) -> PhaseResult:
    """Wait until the tenant marks the configuration as complete."""
    if detected_changed(ctx.spec, ctx.status):
        ctx.logger.info(f"Chart of {ctx.namespace}/{ctx.name} changed before install, detecting again")
        return ctx.redetect()
    if not ctx.spec.configured:
        return PhaseResult()
    ctx.transition(Phase.INSTALLING)
    return PhaseResult(requeue=True)


async def handle_installing(ctx: PhaseContext) -> PhaseResult:
    """Install the release with the chart defaults and the tenant overrides."""
    if detected_changed(ctx.spec, ctx.status):
        ctx.logger.info(f"Chart of {ctx.namespace}/{ctx.name} changed before install, detecting again")
        return ctx.redetect()
    if ctx.parked(ConditionType.INSTALLED):
        ctx.logger.debug(f"{ctx.namespace}/{ctx.name} waits for a spec change")
        return PhaseResult()

    try:
        defaults = load_values((ctx.status.values or {}).get("values.yaml"))
    except HelmAppError as ex:
        return ctx.fail(ConditionType.INSTALLED, ex)
    request = ctx.install_request(ctx.status.detected["version"], defaults)

    state = ctx.sensor.on_install_start(ctx.name, ctx.namespace, request.chart)
    try:
        release = await ctx.installer.install(request)
    except HelmAppError as ex:
        ctx.sensor.on_install_complete(ctx.name, ctx.namespace, request.chart, state, False, ex)
        return ctx.fail(ConditionType.INSTALLED, ex)
    ctx.sensor.on_install_complete(ctx.name, ctx.namespace, request.chart, state, True)

    ctx.succeed(
        ConditionType.INSTALLED,
        INSTALL_SUCCEEDED,
        f"Release {release.name} revision {release.revision} is {release.status}",
    )
    ctx.status.current_version = release.chart_version or request.version
    ctx.status.overrides = copy.deepcopy(request.overrides)
    ctx.status.release = {
        **release.summary(digest(release.manifest or "")),
        "chart": request.chart,
        "repoURL": request.repo_url,
    }
    ctx.status.last_error = None
    ctx.transition(Phase.INSTALLED)
    return PhaseResult()


def chart_changed(spec: HelmAppSpec, status: HelmAppStatus) -> bool:
    """True if the spec selects another chart than the installed one.

    An empty spec version follows whatever was newest at install time.
    """
    release = status.release or {}
    identity = spec.chart_identity()
    if identity["url"].rstrip("/") != (release.get("repoURL") or "").rstrip("/"):
        return True
    if identity["templateName"] != release.get("chart"):
        return True
    wanted = identity["version"]
    return bool(wanted) and wanted.lstrip("v") != (status.current_version or "").lstrip("v")


def detected_changed(spec: HelmAppSpec, status: HelmAppStatus) -> bool:
    """True if the spec no longer selects the chart that Detecting resolved.

    A status without a detected chart counts as changed.
    """
    detected = status.detected
    if not detected:
        return True
    identity = spec.chart_identity()
    if identity["url"].rstrip("/") != (detected.get("repoURL") or "").rstrip("/"):
        return True
    if identity["templateName"] != detected.get("chart"):
        return True
    wanted = identity["version"] or ""
    return wanted.lstrip("v") != (detected.get("requested") or "").lstrip("v")


def overrides_changed(spec: HelmAppSpec, status: HelmAppStatus) -> bool:
    return not deep_compare_dict(spec.overrides or {}, status.overrides or {})


async def handle_installed(ctx: PhaseContext) -> PhaseResult:
    """Detect spec changes made after the release was installed."""
    if chart_changed(ctx.spec, ctx.status):
        ctx.logger.info(f"Chart of {ctx.namespace}/{ctx.name} changed, detecting again")
        return ctx.redetect()
    if overrides_changed(ctx.spec, ctx.status):
        ctx.logger.info(f"Overrides of {ctx.namespace}/{ctx.name} changed, configuring again")
        ctx.transition(Phase.CONFIGURING)
        return PhaseResult(requeue=True)
    return PhaseResult()


PhaseHandler = Callable[[PhaseContext], Awaitable[PhaseResult]]

PHASE_HANDLERS: Dict[Phase, PhaseHandler] = {
    Phase.NEW: handle_new,
    Phase.DETECTING: handle_detecting,
    Phase.CONFIGURING: handle_configuring,
    Phase.INSTALLING: handle_installing,
    Phase.INSTALLED: handle_installed,
}

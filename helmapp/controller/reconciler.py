import asyncio
import logging
from typing import Dict, List

from kubernetes_asyncio.client import ApiException
from marshmallow import ValidationError

from helmapp.installer import Installer
from helmapp.resources import HelmApp, HelmAppObject
from helmapp.sensors import OperatorSensor
from helmapp.types.models import ConditionStatus, ConditionType, HelmAppResources, Phase
from helmapp.types.settings import Settings
from helmapp.utils.errors import HelmAppError, ReconcileTimeout, conflict_error, not_found_error
from helmapp.web import ChartRepoClient
from .events import EventRecorder
from .phases import PHASE_HANDLERS, PhaseContext, PhaseResult
from .validation import PreInstallValidator

logger = logging.getLogger(__name__)

INVALID_SPEC = "InvalidSpec"


def changed_fields(before: Dict, after: Dict) -> List[str]:
    """Names of the top level status fields that differ."""
    return sorted(k for k in set(before) | set(after) if before.get(k) != after.get(k))


class Reconciler:
    """Moves a single HelmApp one step towards its desired state.

    The status is written back as the last action of a step and only when it
    changed, so a step that changes nothing does not cause another watch event.
    """

    def __init__(
        self,
        store: HelmApp,
        repo_client: ChartRepoClient,
        installer: Installer,
        validator: PreInstallValidator,
        sensor: OperatorSensor = None,
        settings: Settings = None,
        recorder: EventRecorder = None,
    ):
        self.store = store
        self.repo_client = repo_client
        self.installer = installer
        self.validator = validator
        self.sensor = sensor or OperatorSensor()
        self.settings = settings or Settings()
        self.recorder = recorder or EventRecorder()

    async def reconcile(self, key: str) -> PhaseResult:
        """Reconcile the HelmApp behind a `namespace/name` key."""
        namespace, name = HelmAppResources.split_key(key)
        obj = await self.store.fetch(name, namespace)
        if obj is None:
            logger.info(f"HelmApp {key} no longer exists")
            return PhaseResult()

        if obj.deleting:
            return await self.finalize(obj)

        try:
            await self.store.add_finalizer(obj)
        except ApiException as ex:
            if conflict_error(ex):
                logger.info(f"HelmApp {key} changed while adding the finalizer, retrying")
                return PhaseResult(requeue=True)
            raise

        phase = obj.status.current_phase
        state = self.sensor.on_reconcile_start(name, namespace, obj.generation, phase.value)
        try:
            result = await self.step(obj, phase)
        except Exception as ex:
            self.sensor.on_reconcile_complete(name, namespace, state, False, ex)
            raise
        self.sensor.on_reconcile_complete(
            name, namespace, state, result.error is None, result.error
        )
        return result

    async def step(self, obj: HelmAppObject, phase: Phase) -> PhaseResult:
        """Run the handler of the current phase and persist the status."""
        status = obj.status
        before = status.phase or ""
        try:
            spec = obj.load_spec()
        except ValidationError as ex:
            status.last_error = f"{INVALID_SPEC}: {ex.messages}"
            status.observed_generation = obj.generation
            if await self.persist(obj):
                self.recorder.warning(obj.body, INVALID_SPEC, str(ex.messages))
            return PhaseResult()

        ctx = PhaseContext(
            name=obj.name,
            namespace=obj.namespace,
            generation=obj.generation,
            spec=spec,
            status=status,
            repo_client=self.repo_client,
            installer=self.installer,
            validator=self.validator,
            sensor=self.sensor,
            logger=logger,
        )
        handler = PHASE_HANDLERS[phase]
        try:
            result = await asyncio.wait_for(
                handler(ctx), self.settings.reconcile_timeout_seconds
            )
        except asyncio.TimeoutError:
            error = ReconcileTimeout(
                f"Phase `{before}` did not finish within "
                f"{self.settings.reconcile_timeout_seconds}s"
            )
            status.last_error = f"{error.reason}: {error.message}"
            result = PhaseResult(requeue=True, error=error)

        status.observed_generation = obj.generation
        if await self.persist(obj):
            self.record_events(obj, before, result)
        return result

    def record_events(self, obj: HelmAppObject, before: str, result: PhaseResult) -> None:
        after = obj.status.phase or ""
        if after != before:
            self.recorder.normal(
                obj.body, "PhaseChanged", f"Phase changed from `{before}` to `{after}`"
            )
        if result.error is not None:
            self.recorder.warning(obj.body, result.error.reason, result.error.message)

    async def persist(self, obj: HelmAppObject) -> bool:
        """Write the status back if it changed; returns True if it was written."""
        if not obj.status_changed():
            return False
        status = obj.dump_status()
        await self.store.patch_status(obj, status)
        self.sensor.on_status_update(
            obj.name, obj.namespace, changed_fields(obj.original_status, status)
        )
        obj.original_status = status
        return True

    async def finalize(self, obj: HelmAppObject) -> PhaseResult:
        """Uninstall the release of a HelmApp being deleted, then let it go."""
        if HelmApp.FINALIZER not in obj.finalizers:
            return PhaseResult()

        release = HelmAppResources.release_name(obj.name)
        state = self.sensor.on_uninstall_start(obj.name, obj.namespace)
        try:
            await self.installer.uninstall(release, obj.namespace)
        except HelmAppError as ex:
            self.sensor.on_uninstall_complete(obj.name, obj.namespace, state, False, ex)
            logger.warning(f"Failed to uninstall release {release} in {obj.namespace}: {ex.message}")
            obj.status.set_condition(
                ConditionType.INSTALLED,
                ConditionStatus.FALSE,
                ex.reason,
                ex.message,
                obj.generation,
            )
            obj.status.last_error = f"{ex.reason}: {ex.message}"
            await self.persist(obj)
            self.recorder.warning(obj.body, ex.reason, ex.message)
            return PhaseResult(requeue=True, error=ex)
        self.sensor.on_uninstall_complete(obj.name, obj.namespace, state, True)
        logger.info(f"Release {release} in {obj.namespace} uninstalled")

        try:
            await self.store.remove_finalizer(obj)
        except ApiException as ex:
            if conflict_error(ex):
                return PhaseResult(requeue=True)
            if not_found_error(ex):
                return PhaseResult()
            raise
        return PhaseResult()

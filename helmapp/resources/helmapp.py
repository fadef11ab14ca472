from typing import Any, Dict, List, Optional
from helmapp.resources.base import BaseResource
from helmapp.types.models import HelmAppSpec, HelmAppStatus
from helmapp.types.schemas import HelmAppSpecSchema, HelmAppStatusSchema


class HelmAppObject:
    """Snapshot of a HelmApp as read from the cluster.

    The spec is decoded into a `HelmAppSpec` and the status into a mutable
    `HelmAppStatus`. `original_status` keeps the status as it was read so a
    reconciler can tell whether anything changed.
    """

    def __init__(self, body: Dict[str, Any]):
        self.body = body
        metadata = body.get("metadata") or {}
        self.name: str = metadata.get("name")
        self.namespace: str = metadata.get("namespace")
        self.uid: Optional[str] = metadata.get("uid")
        self.generation: Optional[int] = metadata.get("generation")
        self.resource_version: Optional[str] = metadata.get("resourceVersion")
        self.deletion_timestamp: Optional[str] = metadata.get("deletionTimestamp")
        self.finalizers: List[str] = list(metadata.get("finalizers") or [])
        self.labels: Dict[str, str] = dict(metadata.get("labels") or {})
        self.original_status: Dict[str, Any] = HelmAppStatusSchema().dump(
            self.load_status(body.get("status"))
        )
        self.status: HelmAppStatus = self.load_status(body.get("status"))

    @classmethod
    def load_status(cls, status: Optional[Dict]) -> HelmAppStatus:
        return HelmAppStatusSchema().load(status or {})

    def load_spec(self) -> HelmAppSpec:
        """Decode the spec.

        Raises:
            marshmallow.ValidationError: if the spec is invalid.
        """
        return HelmAppSpecSchema().load(self.body.get("spec") or {})

    @property
    def deleting(self) -> bool:
        return bool(self.deletion_timestamp)

    def dump_status(self) -> Dict[str, Any]:
        return HelmAppStatusSchema().dump(self.status)

    def status_changed(self) -> bool:
        return self.dump_status() != self.original_status


class HelmApp(BaseResource):
    """Access to HelmApp custom resources."""

    KIND = "HelmApp"
    GROUP_NAME = "helmapp.io"
    GROUP_VERSION = "v1alpha1"
    PLURAL_NAME = "helmapps"
    FINALIZER = "helmapp.io/finalizer"

    @classmethod
    def default(cls) -> "HelmApp":
        return cls()

    async def fetch(self, name: str, namespace: str) -> Optional[HelmAppObject]:
        """Fetch actual HelmApp in kubernetes, None if it does not exist."""
        body = await self.get_custom_object(
            self.custom_objects_api,
            namespace=namespace,
            group=self.GROUP_NAME,
            version=self.GROUP_VERSION,
            plural=self.PLURAL_NAME,
            name=name,
        )
        if body is None:
            return None
        return HelmAppObject(body)

    async def patch_status(self, obj: HelmAppObject, status: Dict[str, Any]) -> None:
        """Replace the status subresource."""
        await self.patch_custom_object_status(
            self.custom_objects_api,
            namespace=obj.namespace,
            group=self.GROUP_NAME,
            version=self.GROUP_VERSION,
            plural=self.PLURAL_NAME,
            name=obj.name,
            operations=[{"op": "add", "path": "/status", "value": status}],
        )

    async def add_finalizer(self, obj: HelmAppObject) -> None:
        if self.FINALIZER in obj.finalizers:
            return
        await self._patch_finalizers(obj, [*obj.finalizers, self.FINALIZER])
        obj.finalizers.append(self.FINALIZER)

    async def remove_finalizer(self, obj: HelmAppObject) -> None:
        if self.FINALIZER not in obj.finalizers:
            return
        finalizers = [f for f in obj.finalizers if f != self.FINALIZER]
        await self._patch_finalizers(obj, finalizers)
        obj.finalizers = finalizers

    async def _patch_finalizers(self, obj: HelmAppObject, finalizers: List[str]) -> None:
        # The resourceVersion test turns a concurrent edit into a 409.
        operations = []
        if obj.resource_version:
            operations.append(
                {
                    "op": "test",
                    "path": "/metadata/resourceVersion",
                    "value": obj.resource_version,
                }
            )
        operations.append(
            {"op": "add", "path": "/metadata/finalizers", "value": finalizers}
        )
        await self.patch_custom_object(
            self.custom_objects_api,
            namespace=obj.namespace,
            group=self.GROUP_NAME,
            version=self.GROUP_VERSION,
            plural=self.PLURAL_NAME,
            name=obj.name,
            operations=operations,
        )

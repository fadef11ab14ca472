from typing import Any, Dict, List, Optional
from kubernetes_asyncio.client import ApiException, CustomObjectsApi
from kubernetes_asyncio.client.api_client import ApiClient


class BaseResource:
    """Base class of custom resources read and written by the operator."""

    shared_api_client: ApiClient = None  # Shared across all resource stores

    _api_client: ApiClient = None
    _custom_objects_api: CustomObjectsApi = None

    @property
    def api_client(self) -> ApiClient:
        if self._api_client is None:
            # Use the shared API client if available, otherwise create a new one
            if self.shared_api_client is not None:
                self._api_client = self.shared_api_client
            else:
                self._api_client = ApiClient()
        return self._api_client

    @property
    def custom_objects_api(self) -> CustomObjectsApi:
        if self._custom_objects_api is None:
            self._custom_objects_api = CustomObjectsApi(self.api_client)
        return self._custom_objects_api

    async def get_custom_object(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        name: str,
    ) -> Optional[Dict]:
        try:
            return await custom_objects_api.get_namespaced_custom_object(
                group=group,
                version=version,
                namespace=namespace,
                plural=plural,
                name=name,
            )
        except ApiException as ex:
            if ex.status == 404:
                return None
            raise

    async def patch_custom_object(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        name: str,
        operations: List[Dict[str, Any]],
    ) -> Dict:
        """Apply a JSON patch (a list of operations) to a custom object."""
        return await custom_objects_api.patch_namespaced_custom_object(
            group=group,
            version=version,
            namespace=namespace,
            plural=plural,
            name=name,
            body=operations,
        )

    async def patch_custom_object_status(
        self,
        custom_objects_api: CustomObjectsApi,
        namespace: str,
        group: str,
        version: str,
        plural: str,
        name: str,
        operations: List[Dict[str, Any]],
    ) -> Dict:
        """Apply a JSON patch to the status subresource of a custom object."""
        return await custom_objects_api.patch_namespaced_custom_object_status(
            group=group,
            version=version,
            namespace=namespace,
            plural=plural,
            name=name,
            body=operations,
        )

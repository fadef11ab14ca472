"""Shared fakes for HelmApp unit tests."""

import copy
import io
import tarfile
from typing import Dict, List, Optional

import pytest
import yaml

from helmapp.installer import Installer, InstallRequest
from helmapp.resources import HelmApp, HelmAppObject
from helmapp.sensors import OperatorSensor
from helmapp.types.models import ChartContent, ChartIndex, ReleaseManifest
from helmapp.types.schemas import ChartIndexSchema
from helmapp.utils.errors import RepoUnreachable

STORE_URL = "https://charts.bitnami.com/bitnami"

PHPMYADMIN_VALUES = """\
replicaCount: 1
image:
  registry: docker.io
  repository: bitnami/phpmyadmin
service:
  type: ClusterIP
"""

PHPMYADMIN_INDEX = {
    "apiVersion": "v1",
    "entries": {
        "phpmyadmin": [
            {
                "name": "phpmyadmin",
                "version": "8.2.1",
                "appVersion": "5.1.1",
                "description": "phpMyAdmin is a free software tool written in PHP.",
                "icon": "https://bitnami.com/assets/stacks/phpmyadmin/img/phpmyadmin-stack-220x234.png",
                "keywords": ["mariadb", "mysql", "phpmyadmin"],
                "urls": ["https://charts.bitnami.com/bitnami/phpmyadmin-8.2.1.tgz"],
            },
            {
                "name": "phpmyadmin",
                "version": "8.2.0",
                "appVersion": "5.1.1",
                "description": "phpMyAdmin is a free software tool written in PHP.",
                "icon": "https://bitnami.com/assets/stacks/phpmyadmin/img/phpmyadmin-stack-220x234.png",
                "keywords": ["mariadb", "mysql", "phpmyadmin"],
                "urls": ["https://charts.bitnami.com/bitnami/phpmyadmin-8.2.0.tgz"],
            },
        ]
    },
}


def make_chart_archive(files: Dict[str, str]) -> bytes:
    """Build a gzipped chart archive from a mapping of path -> content."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        for path, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name=path)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def helmapp_body(
    name: str = "phpmyadmin",
    namespace: str = "default",
    generation: int = 1,
    spec: Optional[Dict] = None,
    status: Optional[Dict] = None,
    finalizers: Optional[List[str]] = None,
    deletion_timestamp: Optional[str] = None,
) -> Dict:
    metadata = {
        "name": name,
        "namespace": namespace,
        "uid": f"uid-{name}",
        "generation": generation,
        "resourceVersion": "1",
        "finalizers": list(finalizers or []),
    }
    if deletion_timestamp:
        metadata["deletionTimestamp"] = deletion_timestamp
    body = {
        "apiVersion": "helmapp.io/v1alpha1",
        "kind": "HelmApp",
        "metadata": metadata,
        "spec": spec
        if spec is not None
        else {
            "eid": "tenant-1",
            "appStore": {"name": "bitnami", "url": STORE_URL},
            "templateName": "phpmyadmin",
            "version": "8.2.0",
            "overrides": {},
        },
    }
    if status is not None:
        body["status"] = status
    return body


class FakeStore:
    """In-memory stand-in for the HelmApp resource store."""

    FINALIZER = HelmApp.FINALIZER

    def __init__(self, *bodies: Dict):
        self.bodies: Dict[str, Dict] = {}
        self.status_patches: List[Dict] = []
        for body in bodies:
            self.put(body)

    def put(self, body: Dict) -> None:
        meta = body["metadata"]
        self.bodies[f"{meta['namespace']}/{meta['name']}"] = copy.deepcopy(body)

    def get(self, namespace: str, name: str) -> Optional[Dict]:
        return self.bodies.get(f"{namespace}/{name}")

    def update_spec(self, namespace: str, name: str, **changes) -> None:
        body = self.get(namespace, name)
        body["spec"].update(changes)
        body["metadata"]["generation"] += 1

    async def fetch(self, name: str, namespace: str) -> Optional[HelmAppObject]:
        body = self.get(namespace, name)
        return HelmAppObject(copy.deepcopy(body)) if body is not None else None

    async def patch_status(self, obj: HelmAppObject, status: Dict) -> None:
        self.status_patches.append(copy.deepcopy(status))
        self.get(obj.namespace, obj.name)["status"] = copy.deepcopy(status)

    async def add_finalizer(self, obj: HelmAppObject) -> None:
        if self.FINALIZER in obj.finalizers:
            return
        obj.finalizers.append(self.FINALIZER)
        self.get(obj.namespace, obj.name)["metadata"]["finalizers"] = list(obj.finalizers)

    async def remove_finalizer(self, obj: HelmAppObject) -> None:
        obj.finalizers = [f for f in obj.finalizers if f != self.FINALIZER]
        self.get(obj.namespace, obj.name)["metadata"]["finalizers"] = list(obj.finalizers)


class FakeRepoClient:
    """Chart repository serving a fixed index and archive contents."""

    def __init__(self, index: Optional[Dict] = None, values: str = PHPMYADMIN_VALUES):
        self.index = index if index is not None else PHPMYADMIN_INDEX
        self.values = values
        self.error: Optional[Exception] = None
        self.index_calls = 0
        self.content_calls = 0

    async def fetch_index(self, store_url: str) -> ChartIndex:
        self.index_calls += 1
        if self.error is not None:
            raise self.error
        return ChartIndexSchema().load(copy.deepcopy(self.index))

    async def fetch_content(self, store_url: str, chart) -> ChartContent:
        self.content_calls += 1
        return ChartContent(
            readme=f"# {chart.name} {chart.version}",
            values={"values.yaml": self.values},
        )


class UnreachableRepoClient(FakeRepoClient):
    def __init__(self):
        super().__init__()
        self.error = RepoUnreachable("failed to fetch index.yaml: Connection refused")


class FakeInstaller(Installer):
    """Installer recording requests; `install_error` is raised by install."""

    def __init__(self):
        self.renders: List[InstallRequest] = []
        self.installs: List[InstallRequest] = []
        self.uninstalls: List[tuple] = []
        self.render_error: Optional[Exception] = None
        self.install_error: Optional[Exception] = None
        self.uninstall_error: Optional[Exception] = None

    async def render(self, request: InstallRequest) -> ReleaseManifest:
        self.renders.append(request)
        if self.render_error is not None:
            raise self.render_error
        return self._manifest(request, None, "rendered")

    async def install(self, request: InstallRequest) -> ReleaseManifest:
        self.installs.append(request)
        if self.install_error is not None:
            raise self.install_error
        return self._manifest(request, len(self.installs), "deployed")

    async def uninstall(self, release: str, namespace: str) -> None:
        self.uninstalls.append((release, namespace))
        if self.uninstall_error is not None:
            raise self.uninstall_error

    def _manifest(self, request, revision, status) -> ReleaseManifest:
        values = request.values
        return ReleaseManifest(
            name=request.release,
            namespace=request.namespace,
            revision=revision,
            status=status,
            chart_version=request.version or "8.2.1",
            manifest=yaml.safe_dump({"kind": "Deployment", "spec": values}),
            values=values,
        )


class RecordingSensor(OperatorSensor):
    def __init__(self):
        self.events: List[tuple] = []

    def on_reconcile_complete(self, name, namespace, state, success, error=None):
        self.events.append(("reconcile", name, success, type(error).__name__ if error else None))

    def on_phase_transition(self, name, namespace, from_phase, to_phase):
        self.events.append(("phase", name, from_phase, to_phase))

    def on_status_update(self, name, namespace, update_fields):
        self.events.append(("status", name, tuple(update_fields)))


class FakeRecorder:
    def __init__(self):
        self.events: List[tuple] = []

    def normal(self, body, reason, message):
        self.events.append(("Normal", reason, message))

    def warning(self, body, reason, message):
        self.events.append(("Warning", reason, message))


@pytest.fixture
def store():
    return FakeStore(helmapp_body())


@pytest.fixture
def repo_client():
    return FakeRepoClient()


@pytest.fixture
def installer():
    return FakeInstaller()


@pytest.fixture
def sensor():
    return RecordingSensor()


@pytest.fixture
def recorder():
    return FakeRecorder()

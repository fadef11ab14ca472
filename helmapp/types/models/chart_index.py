from typing import Dict, List, Optional
from helmapp.types.base import BaseModel
from helmapp.utils.errors import PackageNotFound, VersionNotFound


class ChartVersion(BaseModel):
    """One version entry of a chart in a repository index."""

    name: str
    version: str
    app_version: Optional[str]
    description: Optional[str]
    icon: Optional[str]
    keywords: List[str]
    urls: List[str]
    digest: Optional[str]


class ChartIndex(BaseModel):
    """Decoded `index.yaml` of a chart repository."""

    api_version: Optional[str]
    entries: Dict[str, List[ChartVersion]]

    def resolve(self, name: str, version: Optional[str] = None) -> ChartVersion:
        """Find the entry for `name` in `version`.

        An empty version resolves to the first entry, which repositories keep
        as the newest.
        """
        versions = self.entries.get(name)
        if not versions:
            raise PackageNotFound(f"chart `{name}` not found in repository index")
        if not version:
            return versions[0]
        wanted = version.lstrip("v")
        for entry in versions:
            if entry.version == version or entry.version.lstrip("v") == wanted:
                return entry
        raise VersionNotFound(f"version `{version}` of chart `{name}` not found in repository index")


class ChartContent(BaseModel):
    """Documentation and default configuration read from a chart archive."""

    readme: str
    values: Dict[str, str]

    @property
    def default_values(self) -> str:
        return self.values.get("values.yaml", "")


class ReleaseManifest(BaseModel):
    """Outcome of a successful render or install."""

    name: str
    namespace: str
    revision: Optional[int]
    status: Optional[str]
    chart_version: Optional[str]
    manifest: str
    values: Dict

    def summary(self, manifest_digest: str) -> Dict:
        return {
            "name": self.name,
            "revision": self.revision,
            "status": self.status,
            "manifestDigest": manifest_digest,
        }

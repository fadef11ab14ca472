"""Chart repository client.

Reads the `index.yaml` of a Helm chart repository and the archives it points
to. Every failure is translated into the HelmApp error taxonomy so that the
phase handlers can record it on the resource as is.
"""
import asyncio
import hashlib
import io
import logging
import tarfile
import time
from typing import Callable, Dict, Optional, Tuple

import aiohttp
import yaml
from marshmallow import ValidationError
from yarl import URL

from helmapp.types.models import ChartContent, ChartIndex, ChartVersion
from helmapp.types.schemas import ChartIndexSchema
from helmapp.utils.errors import (
    ContentUnavailable,
    IndexMalformed,
    NoEntries,
    RepoUnreachable,
)
from .error import AuthenticationError, NotFoundError
from .session import SessionManager

logger = logging.getLogger(__name__)

INDEX_FILE = "index.yaml"
README_FILES = ("readme.md", "readme.txt", "readme")
VALUES_FILES = ("values.yaml", "values.schema.json")

#: libyaml loader when PyYAML was built with it
YAML_LOADER = getattr(yaml, "CSafeLoader", yaml.SafeLoader)

_TRANSPORT_ERRORS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    NotFoundError,
    AuthenticationError,
)


def index_url(store_url: str) -> URL:
    """Returns the URL of the index document of a repository."""
    return URL(store_url.rstrip("/") + "/" + INDEX_FILE)


def archive_url(store_url: str, chart_url: str) -> URL:
    """Resolve an index `urls` entry, which may be relative to the repository."""
    url = URL(chart_url)
    if url.is_absolute():
        return url
    return URL(store_url.rstrip("/") + "/").join(url)


def decode_index(body: str, url: str) -> ChartIndex:
    """Parse and validate an `index.yaml` document.

    CPU bound on large repositories, so callers run it in a worker thread.
    """
    try:
        document = yaml.load(body, Loader=YAML_LOADER)
    except yaml.YAMLError as ex:
        raise IndexMalformed(f"index {url} is not valid YAML: {ex}") from ex
    if not isinstance(document, dict):
        raise IndexMalformed(f"index {url} is not a mapping")
    try:
        index = ChartIndexSchema().load(document)
    except ValidationError as ex:
        raise IndexMalformed(f"index {url} is invalid: {ex.messages}") from ex
    if not index.entries:
        raise NoEntries(f"index {url} has no entries")
    return index


def read_chart_archive(data: bytes) -> ChartContent:
    """Read the readme and the values files from the root of a chart archive.

    Files of subcharts (`<chart>/charts/...`) are ignored.
    """
    readme = ""
    values: Dict[str, str] = {}
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
            for member in archive.getmembers():
                if not member.isfile():
                    continue
                parts = member.name.strip("/").split("/")
                if len(parts) != 2:
                    continue
                filename = parts[1]
                if filename.lower() in README_FILES and not readme:
                    readme = _read_member(archive, member)
                elif filename in VALUES_FILES:
                    values[filename] = _read_member(archive, member)
    except (tarfile.TarError, EOFError, OSError) as ex:
        raise ContentUnavailable(f"chart archive is corrupt: {ex}") from ex
    if "values.yaml" not in values:
        raise ContentUnavailable("chart archive has no values.yaml")
    return ChartContent(readme=readme, values=values)


def _verified_content(data: bytes, digest: Optional[str], url: str) -> ChartContent:
    if digest and hashlib.sha256(data).hexdigest() != digest:
        raise ContentUnavailable(f"digest of {url} does not match the index")
    return read_chart_archive(data)


def _read_member(archive: tarfile.TarFile, member: tarfile.TarInfo) -> str:
    fileobj = archive.extractfile(member)
    if fileobj is None:
        return ""
    return fileobj.read().decode("utf-8", errors="replace")


class ChartRepoClient(SessionManager):
    """Client for Helm chart repositories."""

    def __init__(
        self,
        index_cache_ttl: float = 0,
        clock: Callable[[], float] = time.monotonic,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.index_cache_ttl = index_cache_ttl
        self._clock = clock
        self._index_cache: Dict[str, Tuple[float, ChartIndex]] = {}

    def _cached_index(self, store_url: str) -> Optional[ChartIndex]:
        if self.index_cache_ttl <= 0:
            return None
        cached = self._index_cache.get(store_url)
        if cached is None:
            return None
        expires, index = cached
        if self._clock() >= expires:
            del self._index_cache[store_url]
            return None
        return index

    def invalidate(self, store_url: Optional[str] = None) -> None:
        """Forget cached indexes, all of them when no URL is given."""
        if store_url is None:
            self._index_cache.clear()
        else:
            self._index_cache.pop(store_url, None)

    async def fetch_index(self, store_url: str) -> ChartIndex:
        """Fetch and decode the repository index.

        Raises:
            RepoUnreachable: transport errors, timeouts and error statuses.
            IndexMalformed: the document is not a valid index.
            NoEntries: the index lists no charts.
        """
        index = self._cached_index(store_url)
        if index is not None:
            return index

        url = index_url(store_url)
        logger.debug(f"Fetching chart index {url}")
        try:
            body = await self.get_text(url)
        except _TRANSPORT_ERRORS as ex:
            raise RepoUnreachable(f"failed to fetch {url}: {ex or type(ex).__name__}") from ex

        index = await asyncio.to_thread(decode_index, body, str(url))

        if self.index_cache_ttl > 0:
            self._index_cache[store_url] = (self._clock() + self.index_cache_ttl, index)
        return index

    async def fetch_content(self, store_url: str, chart: ChartVersion) -> ChartContent:
        """Download a chart archive and read its readme and default values.

        Raises:
            ContentUnavailable: the archive cannot be downloaded, does not match
                its digest or cannot be unpacked.
        """
        if not chart.urls:
            raise ContentUnavailable(
                f"index lists no archive for {chart.name}-{chart.version}"
            )
        url = archive_url(store_url, chart.urls[0])
        logger.debug(f"Fetching chart archive {url}")
        try:
            data = await self.get_bytes(url)
        except _TRANSPORT_ERRORS as ex:
            raise ContentUnavailable(f"failed to fetch {url}: {ex or type(ex).__name__}") from ex

        return await asyncio.to_thread(_verified_content, data, chart.digest, str(url))

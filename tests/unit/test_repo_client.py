"""Unit tests for the chart index model and the chart repository client."""

import asyncio
import hashlib
import time

import aiohttp
import pytest
import yaml
from unittest.mock import AsyncMock

from conftest import PHPMYADMIN_INDEX, PHPMYADMIN_VALUES, STORE_URL, make_chart_archive
from helmapp.types.models import ChartVersion
from helmapp.types.schemas import ChartIndexSchema
from helmapp.utils.errors import (
    ContentUnavailable,
    IndexMalformed,
    NoEntries,
    PackageNotFound,
    RepoUnreachable,
    VersionNotFound,
)
from helmapp.web import ChartRepoClient, archive_url, index_url, read_chart_archive
from helmapp.web.error import NotFoundError
import helmapp.web.client as client_module


def chart_files(readme: str = "# phpMyAdmin", values: str = PHPMYADMIN_VALUES):
    return {
        "phpmyadmin/Chart.yaml": "name: phpmyadmin\nversion: 8.2.0\n",
        "phpmyadmin/README.md": readme,
        "phpmyadmin/values.yaml": values,
        "phpmyadmin/values.schema.json": "{}",
        "phpmyadmin/templates/deployment.yaml": "kind: Deployment\n",
        "phpmyadmin/charts/common/values.yaml": "common: true\n",
    }


class TestChartIndex:
    """Tests for decoding and resolving repository indexes."""

    def test_resolve_version(self):
        index = ChartIndexSchema().load(PHPMYADMIN_INDEX)
        chart = index.resolve("phpmyadmin", "8.2.0")
        assert isinstance(chart, ChartVersion)
        assert chart.version == "8.2.0"
        assert chart.urls == ["https://charts.bitnami.com/bitnami/phpmyadmin-8.2.0.tgz"]

    def test_empty_version_resolves_first_entry(self):
        index = ChartIndexSchema().load(PHPMYADMIN_INDEX)
        assert index.resolve("phpmyadmin", "").version == "8.2.1"
        assert index.resolve("phpmyadmin", None).version == "8.2.1"

    def test_leading_v_is_tolerated(self):
        index = ChartIndexSchema().load(PHPMYADMIN_INDEX)
        assert index.resolve("phpmyadmin", "v8.2.0").version == "8.2.0"

    def test_missing_package(self):
        index = ChartIndexSchema().load(PHPMYADMIN_INDEX)
        with pytest.raises(PackageNotFound) as ex:
            index.resolve("wordpress", "1.0.0")
        assert ex.value.retryable is False

    def test_missing_version(self):
        index = ChartIndexSchema().load(PHPMYADMIN_INDEX)
        with pytest.raises(VersionNotFound) as ex:
            index.resolve("phpmyadmin", "9.9.9")
        assert ex.value.retryable is False

    def test_numeric_versions_and_names_from_keys(self):
        index = ChartIndexSchema().load(
            {"entries": {"demo": [{"version": 1.0, "urls": ["demo-1.0.tgz"]}], "empty": None}}
        )
        chart = index.resolve("demo", "1.0")
        assert chart.name == "demo"
        assert chart.version == "1.0"
        assert index.entries["empty"] == []


class TestUrls:
    def test_index_url(self):
        assert str(index_url(STORE_URL + "/")) == STORE_URL + "/index.yaml"

    def test_relative_archive_url(self):
        url = archive_url(STORE_URL, "phpmyadmin-8.2.0.tgz")
        assert str(url) == STORE_URL + "/phpmyadmin-8.2.0.tgz"

    def test_absolute_archive_url(self):
        url = archive_url(STORE_URL, "https://cdn.example.com/phpmyadmin-8.2.0.tgz")
        assert str(url) == "https://cdn.example.com/phpmyadmin-8.2.0.tgz"


class TestReadChartArchive:
    def test_reads_root_files_only(self):
        content = read_chart_archive(make_chart_archive(chart_files()))
        assert content.readme == "# phpMyAdmin"
        assert content.values == {
            "values.yaml": PHPMYADMIN_VALUES,
            "values.schema.json": "{}",
        }
        assert content.default_values == PHPMYADMIN_VALUES

    def test_missing_values_file(self):
        files = chart_files()
        del files["phpmyadmin/values.yaml"]
        with pytest.raises(ContentUnavailable):
            read_chart_archive(make_chart_archive(files))

    def test_corrupt_archive(self):
        with pytest.raises(ContentUnavailable):
            read_chart_archive(b"not a tarball")


class TestChartRepoClient:
    """Tests for ChartRepoClient with the HTTP layer mocked."""

    async def test_fetch_index(self):
        client = ChartRepoClient()
        client.get_text = AsyncMock(return_value=yaml.safe_dump(PHPMYADMIN_INDEX))
        index = await client.fetch_index(STORE_URL)
        assert index.resolve("phpmyadmin", "8.2.0").version == "8.2.0"
        client.get_text.assert_awaited_once()
        assert str(client.get_text.await_args.args[0]) == STORE_URL + "/index.yaml"

    @pytest.mark.parametrize(
        "error",
        [
            aiohttp.ClientConnectionError("Connection refused"),
            asyncio.TimeoutError(),
            NotFoundError("Not found"),
        ],
    )
    async def test_unreachable_repository(self, error):
        client = ChartRepoClient()
        client.get_text = AsyncMock(side_effect=error)
        with pytest.raises(RepoUnreachable) as ex:
            await client.fetch_index(STORE_URL)
        assert ex.value.retryable is True

    @pytest.mark.parametrize("body", ["entries: [unclosed", "- just\n- a list\n"])
    async def test_malformed_index(self, body):
        client = ChartRepoClient()
        client.get_text = AsyncMock(return_value=body)
        with pytest.raises(IndexMalformed):
            await client.fetch_index(STORE_URL)

    async def test_index_without_entries(self):
        client = ChartRepoClient()
        client.get_text = AsyncMock(return_value="apiVersion: v1\nentries: {}\n")
        with pytest.raises(NoEntries):
            await client.fetch_index(STORE_URL)

    async def test_index_cache(self):
        now = [100.0]
        client = ChartRepoClient(index_cache_ttl=60, clock=lambda: now[0])
        client.get_text = AsyncMock(return_value=yaml.safe_dump(PHPMYADMIN_INDEX))
        await client.fetch_index(STORE_URL)
        await client.fetch_index(STORE_URL)
        assert client.get_text.await_count == 1
        now[0] += 61
        await client.fetch_index(STORE_URL)
        assert client.get_text.await_count == 2
        client.invalidate()
        await client.fetch_index(STORE_URL)
        assert client.get_text.await_count == 3

    async def test_fetch_content(self):
        data = make_chart_archive(chart_files())
        chart = ChartIndexSchema().load(PHPMYADMIN_INDEX).resolve("phpmyadmin", "8.2.0")
        chart.digest = hashlib.sha256(data).hexdigest()
        client = ChartRepoClient()
        client.get_bytes = AsyncMock(return_value=data)
        content = await client.fetch_content(STORE_URL, chart)
        assert content.readme == "# phpMyAdmin"
        assert "values.yaml" in content.values

    async def test_fetch_content_digest_mismatch(self):
        chart = ChartIndexSchema().load(PHPMYADMIN_INDEX).resolve("phpmyadmin", "8.2.0")
        chart.digest = "0" * 64
        client = ChartRepoClient()
        client.get_bytes = AsyncMock(return_value=make_chart_archive(chart_files()))
        with pytest.raises(ContentUnavailable):
            await client.fetch_content(STORE_URL, chart)

    async def test_fetch_content_transport_error(self):
        chart = ChartIndexSchema().load(PHPMYADMIN_INDEX).resolve("phpmyadmin", "8.2.0")
        client = ChartRepoClient()
        client.get_bytes = AsyncMock(side_effect=aiohttp.ClientPayloadError("truncated"))
        with pytest.raises(ContentUnavailable):
            await client.fetch_content(STORE_URL, chart)

    async def test_fetch_content_without_urls(self):
        chart = ChartIndexSchema().load(PHPMYADMIN_INDEX).resolve("phpmyadmin", "8.2.0")
        chart.urls = []
        client = ChartRepoClient()
        with pytest.raises(ContentUnavailable):
            await client.fetch_content(STORE_URL, chart)

    async def test_index_decoding_does_not_block_the_loop(self, monkeypatch):
        decode = client_module.decode_index

        def slow_decode(body, url):
            time.sleep(0.3)
            return decode(body, url)

        monkeypatch.setattr(client_module, "decode_index", slow_decode)
        client = ChartRepoClient()
        client.get_text = AsyncMock(return_value=yaml.safe_dump(PHPMYADMIN_INDEX))

        ticks = []

        async def heartbeat():
            while True:
                ticks.append(time.monotonic())
                await asyncio.sleep(0.01)

        beat = asyncio.create_task(heartbeat())
        try:
            await client.fetch_index(STORE_URL)
        finally:
            beat.cancel()
        gaps = [b - a for a, b in zip(ticks, ticks[1:])]
        assert len(ticks) > 10
        assert max(gaps) < 0.2

    async def test_archive_reading_does_not_block_the_loop(self, monkeypatch):
        read = client_module.read_chart_archive

        def slow_read(data):
            time.sleep(0.3)
            return read(data)

        monkeypatch.setattr(client_module, "read_chart_archive", slow_read)
        chart = ChartIndexSchema().load(PHPMYADMIN_INDEX).resolve("phpmyadmin", "8.2.0")
        client = ChartRepoClient()
        client.get_bytes = AsyncMock(return_value=make_chart_archive(chart_files()))

        started = time.monotonic()
        fetch = asyncio.create_task(client.fetch_content(STORE_URL, chart))
        await asyncio.sleep(0.05)
        assert not fetch.done()
        assert time.monotonic() - started < 0.2
        content = await fetch
        assert content.readme == "# phpMyAdmin"

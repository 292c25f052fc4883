"""Tests for the Cloud Build API client."""

from __future__ import annotations

import base64
import io
import json

import httpx
import pytest

from cloudbuild.api.client import CloudBuildClient
from cloudbuild.config import CloudBuildContext
from cloudbuild.core.exceptions import (
    IntegrityError,
    NotFoundError,
    RateLimitedError,
    ServerError,
    TransportError,
)
from tests.factories import DOWNLOAD_URL, FakeApi, build_record, target_record


class TestClientSetup:
    """Construction and authentication."""

    def test_requires_api_key(self) -> None:
        with pytest.raises(ValueError):
            CloudBuildClient(CloudBuildContext(org_id="acme", project_id="game", api_key=""))

    def test_base_url(self, client: CloudBuildClient) -> None:
        assert client.base_url == (
            "https://build-api.cloud.unity3d.com/api/v1/orgs/acme/projects/game"
        )

    @pytest.mark.asyncio
    async def test_basic_auth_with_empty_user(
        self, client: CloudBuildClient, fake_api: FakeApi
    ) -> None:
        fake_api.add("GET", "buildtargets", json=[])

        await client.list_targets()

        expected = base64.b64encode(b":secret").decode()
        assert fake_api.requests[0].headers["Authorization"] == f"Basic {expected}"

    @pytest.mark.asyncio
    async def test_transport_failure(self, context: CloudBuildContext) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        async with CloudBuildClient(context, http_client=http) as client:
            with pytest.raises(TransportError, match="connection refused"):
                await client.get_build("ios-dev", 1)


class TestEndpoints:
    """Paths, parameters and decoding of each endpoint."""

    @pytest.mark.asyncio
    async def test_list_targets_with_options(
        self, client: CloudBuildClient, fake_api: FakeApi
    ) -> None:
        fake_api.add("GET", "buildtargets", json=[target_record("ios-dev"), target_record("android")])

        targets = await client.list_targets(include_settings=True, include_last_success=True)

        assert [t.id for t in targets] == ["ios-dev", "android"]
        params = fake_api.requests[0].url.params
        assert params["include"] == "settings"
        assert params["include_last_success"] == "true"

    @pytest.mark.asyncio
    async def test_get_build(self, client: CloudBuildClient, fake_api: FakeApi) -> None:
        fake_api.add("GET", "buildtargets/ios-dev/builds/7", json=build_record(number=7))

        build = await client.get_build("ios-dev", 7)

        assert build.key == ("ios-dev", 7)

    @pytest.mark.asyncio
    async def test_get_missing_build(self, client: CloudBuildClient, fake_api: FakeApi) -> None:
        with pytest.raises(NotFoundError):
            await client.get_build("ios-dev", 99)

    @pytest.mark.asyncio
    async def test_list_builds_filters(self, client: CloudBuildClient, fake_api: FakeApi) -> None:
        fake_api.add("GET", "buildtargets/_all/builds", json=[build_record(number=2)])

        builds = await client.list_builds("_all", status="success", platform="standalonewindows64")

        assert len(builds) == 1
        params = fake_api.requests[0].url.params
        assert params["buildStatus"] == "success"
        assert params["platform"] == "standalonewindows64"

    @pytest.mark.asyncio
    async def test_list_builds_rejects_non_list(
        self, client: CloudBuildClient, fake_api: FakeApi
    ) -> None:
        fake_api.add("GET", "buildtargets/ios-dev/builds", json={"build": 1})

        with pytest.raises(IntegrityError):
            await client.list_builds("ios-dev")

    @pytest.mark.asyncio
    async def test_start_builds_sends_clean_flag(
        self, client: CloudBuildClient, fake_api: FakeApi
    ) -> None:
        fake_api.add(
            "POST", "buildtargets/ios-dev/builds", status_code=202, json=[build_record(status="queued")]
        )

        attempts = await client.start_builds("ios-dev", clean=True)

        assert attempts[0].ok
        assert json.loads(fake_api.requests[0].content) == {"clean": True}

    @pytest.mark.asyncio
    async def test_cancel_build(self, client: CloudBuildClient, fake_api: FakeApi) -> None:
        fake_api.add("DELETE", "buildtargets/ios-dev/builds/4", status_code=204)

        await client.cancel_build("ios-dev", 4)

        assert len(fake_api.calls("DELETE")) == 1

    @pytest.mark.asyncio
    async def test_rate_limited(self, client: CloudBuildClient, fake_api: FakeApi) -> None:
        fake_api.add("GET", "buildtargets/ios-dev/builds/4", status_code=429)

        with pytest.raises(RateLimitedError):
            await client.get_build("ios-dev", 4)

    @pytest.mark.asyncio
    async def test_server_error_message(self, client: CloudBuildClient, fake_api: FakeApi) -> None:
        fake_api.add("DELETE", "buildtargets/_all/builds", status_code=500, json={"error": "oops"})

        with pytest.raises(ServerError, match="oops"):
            await client.cancel_target_builds("_all")


class TestDownload:
    """Streaming artifact downloads."""

    @pytest.mark.asyncio
    async def test_streams_without_credentials(
        self, client: CloudBuildClient, fake_api: FakeApi
    ) -> None:
        fake_api.add("GET", "storage.example.com/artifacts/ios-dev-7.zip", content=b"PK\x03\x04data")
        buffer = io.BytesIO()

        await client.download(DOWNLOAD_URL, buffer)

        assert buffer.getvalue() == b"PK\x03\x04data"
        assert "Authorization" not in fake_api.requests[0].headers

    @pytest.mark.asyncio
    async def test_follows_redirects(self, client: CloudBuildClient, fake_api: FakeApi) -> None:
        fake_api.add(
            "GET",
            "storage.example.com/artifacts/ios-dev-7.zip",
            status_code=302,
            headers={"Location": "https://cdn.example.com/blob/1"},
        )
        fake_api.add("GET", "cdn.example.com/blob/1", content=b"payload")
        buffer = io.BytesIO()

        await client.download(DOWNLOAD_URL, buffer)

        assert buffer.getvalue() == b"payload"

    @pytest.mark.asyncio
    async def test_non_200_status(self, client: CloudBuildClient, fake_api: FakeApi) -> None:
        fake_api.add("GET", "storage.example.com/artifacts/ios-dev-7.zip", status_code=403)
        buffer = io.BytesIO()

        with pytest.raises(ServerError, match="Could not download, got status code: 403"):
            await client.download(DOWNLOAD_URL, buffer)
        assert buffer.getvalue() == b""

"""Tests for starting and canceling builds."""

from __future__ import annotations

import json

import pytest

from cloudbuild.api.client import CloudBuildClient
from cloudbuild.builds.control import cancel_all_builds, cancel_build, start_all_builds, start_build
from cloudbuild.core.exceptions import NotFoundError, ServerError
from tests.factories import FakeApi, build_record, target_record


class TestStartBuilds:
    """Starting builds."""

    @pytest.mark.asyncio
    async def test_start_one(self, client: CloudBuildClient, fake_api: FakeApi) -> None:
        fake_api.add(
            "POST",
            "buildtargets/ios-dev/builds",
            status_code=202,
            json=[build_record(number=11, status="queued")],
        )

        attempt = await start_build(client, "ios-dev", clean=True)

        assert attempt.build.number == 11
        assert json.loads(fake_api.requests[0].content) == {"clean": True}

    @pytest.mark.asyncio
    async def test_start_one_reports_target_error(
        self, client: CloudBuildClient, fake_api: FakeApi
    ) -> None:
        fake_api.add(
            "POST",
            "buildtargets/ios-dev/builds",
            status_code=202,
            json=[{"buildtargetid": "ios-dev", "error": "Build target is disabled"}],
        )

        with pytest.raises(ServerError, match="Build target is disabled"):
            await start_build(client, "ios-dev")

    @pytest.mark.asyncio
    async def test_start_all_keeps_partial_failures(
        self, client: CloudBuildClient, fake_api: FakeApi
    ) -> None:
        fake_api.add(
            "POST",
            "buildtargets/_all/builds",
            status_code=202,
            json=[
                build_record("ios-dev", 11, status="queued"),
                {"buildtargetid": "android", "error": "No Unity license"},
            ],
        )

        attempts = await start_all_builds(client)

        assert [a.ok for a in attempts] == [True, False]
        assert attempts[1].error == "No Unity license"

    @pytest.mark.asyncio
    async def test_start_all_nothing_started(
        self, client: CloudBuildClient, fake_api: FakeApi
    ) -> None:
        fake_api.add("POST", "buildtargets/_all/builds", status_code=202, json=[])

        with pytest.raises(ServerError, match="No builds started"):
            await start_all_builds(client)


class TestCancelBuilds:
    """Canceling builds."""

    @pytest.mark.asyncio
    async def test_cancel_one(self, client: CloudBuildClient, fake_api: FakeApi) -> None:
        fake_api.add("DELETE", "buildtargets/ios-dev/builds/3", status_code=204)

        await cancel_build(client, "ios-dev", 3)

        assert len(fake_api.calls("DELETE")) == 1

    @pytest.mark.asyncio
    async def test_cancel_missing(self, client: CloudBuildClient) -> None:
        with pytest.raises(NotFoundError, match="Cannot find ios-dev build #3"):
            await cancel_build(client, "ios-dev", 3)

    @pytest.mark.asyncio
    async def test_cancel_all_goes_target_by_target(
        self, client: CloudBuildClient, fake_api: FakeApi
    ) -> None:
        fake_api.add("GET", "buildtargets", json=[target_record("ios-dev"), target_record("android")])
        fake_api.add("DELETE", "buildtargets/ios-dev/builds", status_code=204)
        fake_api.add("DELETE", "buildtargets/android/builds", status_code=204)

        canceled = await cancel_all_builds(client)

        assert canceled == ["ios-dev", "android"]
        assert fake_api.calls("DELETE", "buildtargets/_all/builds") == []

    @pytest.mark.asyncio
    async def test_cancel_all_for_one_target(
        self, client: CloudBuildClient, fake_api: FakeApi
    ) -> None:
        fake_api.add("GET", "buildtargets", json=[target_record("ios-dev"), target_record("android")])
        fake_api.add("DELETE", "buildtargets/android/builds", status_code=204)

        canceled = await cancel_all_builds(client, target_id="android")

        assert canceled == ["android"]
        assert len(fake_api.calls("DELETE")) == 1

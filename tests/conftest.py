"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import structlog

from cloudbuild.api.client import CloudBuildClient
from cloudbuild.config import CloudBuildContext, get_settings
from tests.factories import FakeApi

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture(autouse=True)
def isolated_settings(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> Generator[None, None, None]:
    """Run every test without UNITY_* variables, .env files or cached settings."""
    for name in ("UNITY_API_KEY", "UNITY_ORG_ID", "UNITY_PROJECT_ID", "UNITY_API_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path_factory.mktemp("cwd"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()


@pytest.fixture
def context() -> CloudBuildContext:
    return CloudBuildContext(org_id="acme", project_id="game", api_key="secret", poll_interval=0)


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def client(fake_api: FakeApi, context: CloudBuildContext) -> CloudBuildClient:
    return fake_api.client(context)

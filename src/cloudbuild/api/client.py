"""Cloud Build API client.

This module provides the authenticated transport to the build service and
one method per endpoint:
- List build targets (optionally with their last successful build)
- Get, list, start and cancel builds
- Stream a build artifact from its pre-signed download URL
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, BinaryIO, TypeVar

import httpx

from cloudbuild.api.classifier import ClassifiedOutcome, classify_response
from cloudbuild.config import CloudBuildContext
from cloudbuild.core.exceptions import IntegrityError, ServerError, TransportError
from cloudbuild.core.models import Build, BuildAttempt, BuildTarget
from cloudbuild.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DOWNLOAD_CHUNK_SIZE = 64 * 1024


def _decode_list(item_decoder: Callable[[dict[str, Any]], T]) -> Callable[[Any], list[T]]:
    """Build a decoder for a JSON array of records."""

    def decode(data: Any) -> list[T]:
        if not isinstance(data, list):
            raise IntegrityError(f"Expected a list, got {type(data).__name__}")
        return [item_decoder(item) for item in data]

    return decode


class CloudBuildClient:
    """Client for the Cloud Build REST API.

    Usage:
        async with CloudBuildClient(context) as client:
            targets = await client.list_targets()
            build = await client.get_build(targets[0].id, 12)
    """

    def __init__(
        self,
        context: CloudBuildContext,
        http_client: httpx.AsyncClient | None = None,
        download_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the client.

        Args:
            context: Resolved credentials and connection settings.
            http_client: Client used for API calls. Created on demand when omitted.
            download_client: Client used for artifact downloads. Defaults to
                ``http_client`` when that is given, otherwise created on demand.
        """
        if not context.api_key:
            raise ValueError("API key is required")
        self.context = context
        self._auth = httpx.BasicAuth("", context.api_key)
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=context.request_timeout)
        if download_client is None and http_client is not None:
            download_client = http_client
        self._owns_download = download_client is None
        self._download_http = download_client or httpx.AsyncClient(
            follow_redirects=True, timeout=context.download_timeout
        )

    @property
    def base_url(self) -> str:
        return (
            f"{self.context.api_url}/orgs/{self.context.org_id}"
            f"/projects/{self.context.project_id}"
        )

    async def __aenter__(self) -> CloudBuildClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP clients this instance created."""
        if self._owns_http:
            await self._http.aclose()
        if self._owns_download and self._download_http is not self._http:
            await self._download_http.aclose()

    async def send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> httpx.Response:
        """Make an authenticated request to the API.

        Args:
            method: HTTP method (GET, POST, DELETE)
            path: Resource path relative to the project (e.g. buildtargets)
            params: Query parameters
            body: JSON body

        Returns:
            The raw response.

        Raises:
            TransportError: If no response was received.
        """
        url = f"{self.base_url}/{path}"
        try:
            response = await self._http.request(
                method,
                url,
                params=params,
                json=body,
                auth=self._auth,
            )
        except httpx.RequestError as e:
            raise TransportError(f"Request failed: {e}") from e

        logger.debug(
            "api_response",
            method=method,
            path=path,
            status_code=response.status_code,
            rate_limit_remaining=response.headers.get("X-RateLimit-Remaining"),
        )
        return response

    async def _call(
        self,
        method: str,
        path: str,
        decode: Callable[[Any], T] | None = None,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> ClassifiedOutcome[T]:
        response = await self.send(method, path, params=params, body=body)
        return classify_response(response.status_code, response.content, decode)

    async def list_targets(
        self,
        include_settings: bool = False,
        include_last_success: bool = False,
    ) -> list[BuildTarget]:
        """List all build targets of the project.

        Args:
            include_settings: Include each target's settings.
            include_last_success: Include each target's last successful build.
        """
        params: dict[str, Any] = {}
        if include_settings:
            params["include"] = "settings"
        if include_last_success:
            params["include_last_success"] = "true"

        outcome = await self._call(
            "GET", "buildtargets", decode=_decode_list(BuildTarget.from_dict), params=params
        )
        return outcome.unwrap() or []

    async def get_build(self, target_id: str, number: int) -> Build:
        """Fetch one build record."""
        outcome = await self._call(
            "GET", f"buildtargets/{target_id}/builds/{number}", decode=Build.from_dict
        )
        build = outcome.unwrap()
        if build is None:
            raise IntegrityError(f"Empty response for build {target_id} #{number}")
        return build

    async def list_builds(
        self,
        target_id: str,
        status: str | None = None,
        platform: str | None = None,
    ) -> list[Build]:
        """List a target's builds, most recent first.

        Args:
            target_id: Build target ID, or ``_all``.
            status: Only builds with this status.
            platform: Only builds for this canonical platform name.
        """
        params: dict[str, Any] = {}
        if status:
            params["buildStatus"] = status
        if platform:
            params["platform"] = platform

        outcome = await self._call(
            "GET",
            f"buildtargets/{target_id}/builds",
            decode=_decode_list(Build.from_dict),
            params=params,
        )
        return outcome.unwrap() or []

    async def start_builds(self, target_id: str, clean: bool = False) -> list[BuildAttempt]:
        """Ask the service to start builds for a target (or ``_all``)."""
        outcome = await self._call(
            "POST",
            f"buildtargets/{target_id}/builds",
            decode=_decode_list(BuildAttempt.from_dict),
            body={"clean": clean},
        )
        return outcome.unwrap() or []

    async def cancel_build(self, target_id: str, number: int) -> None:
        """Cancel one build."""
        outcome = await self._call("DELETE", f"buildtargets/{target_id}/builds/{number}")
        outcome.unwrap()

    async def cancel_target_builds(self, target_id: str) -> None:
        """Cancel every active build of one target."""
        outcome = await self._call("DELETE", f"buildtargets/{target_id}/builds")
        outcome.unwrap()

    async def download(self, url: str, destination: BinaryIO) -> httpx.Headers:
        """Stream a pre-signed artifact URL into an open binary file.

        The request carries no API credentials.

        Returns:
            Response headers of the download.

        Raises:
            ServerError: If the response status is not 200.
            TransportError: If the connection fails before or during the transfer.
        """
        try:
            async with self._download_http.stream("GET", url, follow_redirects=True) as response:
                logger.debug(
                    "download_response",
                    status_code=response.status_code,
                    headers=dict(response.headers),
                )
                if response.status_code != 200:
                    raise ServerError(
                        f"Could not download, got status code: {response.status_code}",
                        status_code=response.status_code,
                    )
                async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                    destination.write(chunk)
                return response.headers
        except httpx.RequestError as e:
            raise TransportError(f"Download failed: {e}") from e

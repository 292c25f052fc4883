"""Build status resolution: single builds, build history and latest builds."""

from __future__ import annotations

from cloudbuild.api.client import CloudBuildClient
from cloudbuild.core.exceptions import NotFoundError
from cloudbuild.core.models import STATUS_SUCCESS, Build, BuildTarget
from cloudbuild.core.platforms import resolve_platform
from cloudbuild.logging import get_logger

logger = get_logger(__name__)

ALL_TARGETS = "_all"


class BuildResolver:
    """Resolves build records through a CloudBuildClient.

    Errors from the client are surfaced unchanged; in particular rate
    limiting is never retried here.
    """

    def __init__(self, client: CloudBuildClient):
        self.client = client

    async def list_targets(self) -> list[BuildTarget]:
        """List build targets along with their settings."""
        return await self.client.list_targets(include_settings=True)

    async def get_build_status(self, target_id: str, number: int) -> Build:
        """Fetch the current record of one build.

        Raises:
            NotFoundError: If the target or build does not exist.
            RateLimitedError: If the service is rate limiting.
        """
        try:
            build = await self.client.get_build(target_id, number)
        except NotFoundError:
            raise NotFoundError(f"Cannot find {target_id} build #{number}") from None
        logger.debug("build_status_resolved", build=build.label, status=build.status)
        return build

    async def list_builds(
        self,
        target_id: str = ALL_TARGETS,
        filter_status: str | None = None,
        filter_platform: str | None = None,
        limit: int = 0,
    ) -> list[Build]:
        """List a target's builds, most recent first.

        Args:
            target_id: Build target ID, or ``_all`` for every target.
            filter_status: Only builds with this status.
            filter_platform: Platform name or alias (e.g. ``win64``).
            limit: Keep only this many most recent builds when > 0.

        Raises:
            ValidationError: If the platform alias is unknown. No request is made.
        """
        platform = resolve_platform(filter_platform)
        builds = await self.client.list_builds(target_id, status=filter_status, platform=platform)
        if limit > 0:
            builds = builds[:limit]
        return builds

    async def latest_successful_build(self, target_id: str) -> Build | None:
        """Most recent successful build of a target, if any."""
        builds = await self.list_builds(target_id, filter_status=STATUS_SUCCESS, limit=1)
        return builds[0] if builds else None

    async def list_latest_builds(
        self,
        only_successful: bool = False,
        only_enabled: bool = False,
    ) -> dict[str, Build | None]:
        """Determine the most recent build of every target.

        The target listing can only include each target's last *successful*
        build. Unless ``only_successful`` is set, a second pass asks each
        target for its newest build of any status, which costs one extra
        request per target.

        Returns:
            Mapping of target ID to its latest build, or None if never built.
        """
        targets = await self.client.list_targets(include_last_success=True)
        if only_enabled:
            targets = [t for t in targets if t.enabled]

        latest: dict[str, Build | None] = {
            target.id: target.builds[0] if target.builds else None for target in targets
        }

        if not only_successful:
            for target in targets:
                builds = await self.list_builds(target.id, limit=1)
                if builds:
                    latest[target.id] = builds[0]

        logger.debug(
            "latest_builds_resolved",
            targets=len(latest),
            only_successful=only_successful,
            only_enabled=only_enabled,
        )
        return latest

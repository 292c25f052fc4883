"""Starting and canceling builds."""

from __future__ import annotations

from cloudbuild.api.client import CloudBuildClient
from cloudbuild.builds.resolver import ALL_TARGETS
from cloudbuild.core.exceptions import NotFoundError, ServerError
from cloudbuild.core.models import BuildAttempt
from cloudbuild.logging import get_logger

logger = get_logger(__name__)


async def start_build(client: CloudBuildClient, target_id: str, clean: bool = False) -> BuildAttempt:
    """Start a build for one target.

    Raises:
        ServerError: If no build was started or the service reported an error
            for the target.
    """
    attempts = await client.start_builds(target_id, clean=clean)
    if not attempts:
        raise ServerError(f"No builds started for target {target_id}")

    attempt = attempts[0]
    if attempt.error:
        raise ServerError(f"Target {target_id}: {attempt.error}")

    logger.info("build_started", target=target_id, clean=clean)
    return attempt


async def start_all_builds(client: CloudBuildClient, clean: bool = False) -> list[BuildAttempt]:
    """Start builds for every enabled target.

    Per-target errors are kept in the returned attempts rather than raised.

    Raises:
        ServerError: If the service started nothing at all.
    """
    attempts = await client.start_builds(ALL_TARGETS, clean=clean)
    if not attempts:
        raise ServerError("No builds started")

    failed = [a.target_id for a in attempts if a.error]
    logger.info("builds_started", started=len(attempts) - len(failed), failed=failed)
    return attempts


async def cancel_build(client: CloudBuildClient, target_id: str, number: int) -> None:
    """Cancel one build.

    Raises:
        NotFoundError: If the build does not exist.
    """
    try:
        await client.cancel_build(target_id, number)
    except NotFoundError:
        raise NotFoundError(f"Cannot find {target_id} build #{number}") from None
    logger.info("build_canceled", target=target_id, number=number)


async def cancel_all_builds(client: CloudBuildClient, target_id: str | None = None) -> list[str]:
    """Cancel all active builds, per target.

    Targets are canceled one by one, not through the project-wide
    ``_all`` endpoint (it answers 500).

    Args:
        client: API client.
        target_id: Only cancel this target's builds.

    Returns:
        IDs of the targets whose builds were canceled.
    """
    targets = await client.list_targets()
    canceled: list[str] = []
    for target in targets:
        if target_id and target.id != target_id:
            continue
        await client.cancel_target_builds(target.id)
        canceled.append(target.id)

    logger.info("builds_canceled", targets=canceled)
    return canceled

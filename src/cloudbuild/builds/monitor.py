"""Completion monitor: polls in-flight builds until they reach a terminal status."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from cloudbuild.builds.events import (
    BuildFinished,
    EventHandler,
    MonitorEvent,
    PollTick,
    RateLimitBackoff,
    StatusChanged,
    WaitCompleted,
    WatchStarted,
)
from cloudbuild.builds.resolver import BuildResolver
from cloudbuild.core.exceptions import BuildFailedError, RateLimitedError, ValidationError
from cloudbuild.core.models import Build
from cloudbuild.logging import get_logger

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 5.0

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class MonitorEntry:
    """Poll state of one watched build."""

    build: Build
    last_status: str
    finished: bool = False

    @classmethod
    def start(cls, build: Build) -> MonitorEntry:
        return cls(build=build, last_status=build.status)

    def observe(self, build: Build) -> str | None:
        """Record a fresh snapshot.

        Returns:
            The previous status if it changed, otherwise None.
        """
        if self.finished:
            raise RuntimeError(f"Build {self.build.label} already finished")

        self.build = build
        previous = self.last_status
        self.last_status = build.status
        if not build.is_active:
            self.finished = True
        return previous if previous != build.status else None


@dataclass(frozen=True)
class WaitResult:
    """Final snapshots of every watched build, in watch order.

    Only returned when every build succeeded; failures raise instead.
    """

    builds: list[Build]


def _emit(handler: EventHandler | None, event: MonitorEvent) -> None:
    """Emit event to handler if present."""
    if handler:
        handler(event)


class CompletionMonitor:
    """Waits for a fixed set of builds to finish.

    Builds are polled round-robin at a fixed interval on a single task. A
    rate-limited status request ends the current round early; the next
    round's delay is the only backoff.
    """

    def __init__(
        self,
        resolver: BuildResolver,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Sleep = asyncio.sleep,
        on_event: EventHandler | None = None,
    ):
        self.resolver = resolver
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._on_event = on_event

    async def collect_builds(
        self,
        target_id: str | None = None,
        number: int | None = None,
        all_targets: bool = False,
    ) -> list[Build]:
        """Resolve which builds to watch.

        Args:
            target_id: Target whose build should be watched.
            number: Explicit build number; when omitted the target's latest
                build is used.
            all_targets: Watch every active latest build of enabled targets.

        Raises:
            ValidationError: If no build matches.
        """
        builds: list[Build] = []

        if all_targets:
            latest = await self.resolver.list_latest_builds(only_successful=False, only_enabled=True)
            builds = [b for b in latest.values() if b is not None and b.is_active]
        elif target_id and number is not None and number > 0:
            builds = [await self.resolver.get_build_status(target_id, number)]
        elif target_id:
            latest = await self.resolver.list_latest_builds(only_successful=False, only_enabled=True)
            build = latest.get(target_id)
            if build is not None:
                builds = [build]
        else:
            raise ValidationError("Missing target-id")

        if not builds:
            raise ValidationError("No builds found")
        return builds

    async def wait(
        self,
        target_id: str | None = None,
        number: int | None = None,
        all_targets: bool = False,
        abort_on_fail: bool = False,
    ) -> WaitResult:
        """Collect the builds for a scope and wait for them to complete."""
        builds = await self.collect_builds(target_id, number, all_targets)
        return await self.watch(builds, abort_on_fail=abort_on_fail)

    async def watch(self, builds: Iterable[Build], abort_on_fail: bool = False) -> WaitResult:
        """Poll the given builds until each one reaches a terminal status.

        Args:
            builds: Initial snapshots of the builds to watch. Duplicates
                (same target and number) are watched once.
            abort_on_fail: Stop as soon as one build finishes without success.

        Returns:
            WaitResult with the final snapshots, all successful.

        Raises:
            ValidationError: If no builds were given or one is already finished.
            BuildFailedError: If a watched build did not succeed.
            CloudBuildError: Any non rate-limit error while polling.
        """
        entries: dict[tuple[str, int], MonitorEntry] = {}
        for build in builds:
            if build.key in entries:
                continue
            if not build.is_active:
                raise ValidationError(
                    f"Build #{build.number} for target {build.target_id} is not active"
                )
            entries[build.key] = MonitorEntry.start(build)

        if not entries:
            raise ValidationError("No builds found")

        for entry in entries.values():
            logger.info("watch_started", build=entry.build.label, status=entry.last_status)
            _emit(self._on_event, WatchStarted(build=entry.build))

        tick = 0
        while not all(entry.finished for entry in entries.values()):
            await self._sleep(self.poll_interval)
            tick += 1
            await self._poll_round(list(entries.values()), tick, abort_on_fail)

        results = [entry.build for entry in entries.values()]
        for build in results:
            if not build.is_success:
                raise BuildFailedError(
                    f"Build: {build.label} failed with status: {build.status}",
                    target_id=build.target_id,
                    number=build.number,
                    status=build.status,
                )

        logger.info("wait_completed", builds=len(results))
        _emit(self._on_event, WaitCompleted(builds=results))
        return WaitResult(builds=results)

    async def _poll_round(
        self,
        entries: list[MonitorEntry],
        tick: int,
        abort_on_fail: bool,
    ) -> None:
        """Refresh every unfinished entry once, in watch order."""
        pending = [entry for entry in entries if not entry.finished]
        logger.debug("poll_tick", tick=tick, pending=len(pending))
        _emit(self._on_event, PollTick(tick=tick, pending=len(pending)))

        for entry in pending:
            current = entry.build
            try:
                build = await self.resolver.get_build_status(current.target_id, current.number)
            except RateLimitedError:
                logger.warning("rate_limited", tick=tick, build=current.label)
                _emit(self._on_event, RateLimitBackoff(tick=tick, build=current))
                return

            previous = entry.observe(build)
            if previous is not None:
                logger.info(
                    "build_status_changed",
                    build=build.label,
                    old_status=previous,
                    new_status=build.status,
                )
                _emit(
                    self._on_event,
                    StatusChanged(build=build, old_status=previous, new_status=build.status),
                )

            if not entry.finished:
                continue

            logger.info("build_finished", build=build.label, status=build.status)
            _emit(self._on_event, BuildFinished(build=build))

            if abort_on_fail and not build.is_success:
                raise BuildFailedError(
                    f"Aborting early, build: {build.label} failed with status: {build.status}",
                    target_id=build.target_id,
                    number=build.number,
                    status=build.status,
                )

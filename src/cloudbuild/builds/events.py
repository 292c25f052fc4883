"""Typed events emitted while waiting for builds and downloading artifacts.

The core emits events; the CLI formatter decides how to render them.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from cloudbuild.core.models import Build


@dataclass
class WatchStarted:
    """Emitted once per build when monitoring begins."""

    build: Build


@dataclass
class PollTick:
    """Emitted at the start of every poll round."""

    tick: int  # 1-based
    pending: int  # Builds not yet finished


@dataclass
class StatusChanged:
    """Emitted when a build's status differs from the last observed one."""

    build: Build
    old_status: str
    new_status: str


@dataclass
class BuildFinished:
    """Emitted when a build reaches a terminal status."""

    build: Build

    @property
    def succeeded(self) -> bool:
        return self.build.is_success


@dataclass
class RateLimitBackoff:
    """Emitted when a poll round is cut short by rate limiting."""

    tick: int
    build: Build  # The build whose status request was rejected


@dataclass
class WaitCompleted:
    """Emitted when every watched build finished successfully."""

    builds: list[Build]


MonitorEvent = (
    WatchStarted | PollTick | StatusChanged | BuildFinished | RateLimitBackoff | WaitCompleted
)


@dataclass
class DownloadStarted:
    """Emitted right before the artifact transfer begins."""

    build: Build
    path: Path  # Final file, or the temporary archive when unzipping


@dataclass
class DownloadCompleted:
    """Emitted when the transfer finished."""

    build: Build
    path: Path
    size_bytes: int


@dataclass
class EntryExtracted:
    """Emitted for every file written while unpacking an archive."""

    path: Path


DownloadEvent = DownloadStarted | DownloadCompleted | EntryExtracted

EventHandler = Callable[[MonitorEvent | DownloadEvent], None]

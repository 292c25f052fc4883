"""Artifact retrieval: download a successful build and optionally unpack it."""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

from cloudbuild.api.client import CloudBuildClient
from cloudbuild.builds.events import (
    DownloadCompleted,
    DownloadEvent,
    DownloadStarted,
    EntryExtracted,
    EventHandler,
)
from cloudbuild.builds.resolver import BuildResolver
from cloudbuild.core.exceptions import (
    FileSystemError,
    IntegrityError,
    NotFoundError,
    ValidationError,
)
from cloudbuild.core.models import Build
from cloudbuild.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DIR_MODE = 0o755
DEFAULT_FILE_MODE = 0o644


@dataclass
class DownloadResult:
    """Where a downloaded build ended up."""

    build: Build
    destination: Path
    file: Path | None = None  # Downloaded file, None when the archive was unpacked
    extracted: list[Path] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "target_id": self.build.target_id,
            "number": self.build.number,
            "destination": str(self.destination),
            "file": str(self.file) if self.file else None,
            "extracted": [str(p) for p in self.extracted],
        }


def _emit(handler: EventHandler | None, event: DownloadEvent) -> None:
    """Emit event to handler if present."""
    if handler:
        handler(event)


def _entry_mode(info: zipfile.ZipInfo, default: int) -> int:
    """Unix permission bits recorded for an archive entry."""
    mode = (info.external_attr >> 16) & 0o777
    return mode or default


def _write_failure(path: Path, error: OSError) -> FileSystemError:
    return FileSystemError(f"Cannot write {path}: {error.strerror or error}", str(path))


def _safe_entry_path(destination: Path, name: str) -> Path:
    """Resolve an archive entry name below the destination directory."""
    root = destination.resolve()
    path = (root / Path(*Path(name).parts)).resolve()
    if path != root and root not in path.parents:
        raise IntegrityError(f"Archive entry escapes destination directory: {name}")
    return path


def extract_archive(
    archive: Path,
    destination: Path,
    on_event: EventHandler | None = None,
) -> list[Path]:
    """Unpack a zip archive into ``destination`` in archive order.

    Directories are created with their recorded permissions; files are
    written with their recorded mode, creating parents as needed.

    Returns:
        Paths of the files written.

    Raises:
        IntegrityError: If the archive is corrupt or an entry points outside
            the destination.
        FileSystemError: If an entry cannot be written, e.g. it collides with
            an existing file or directory.
    """
    written: list[Path] = []
    parent_mode = destination.stat().st_mode & 0o777

    try:
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                path = _safe_entry_path(destination, info.filename)

                try:
                    if info.is_dir():
                        path.mkdir(
                            mode=_entry_mode(info, DEFAULT_DIR_MODE), parents=True, exist_ok=True
                        )
                        continue

                    path.parent.mkdir(mode=parent_mode, parents=True, exist_ok=True)
                    with zf.open(info) as source, path.open("wb") as target:
                        shutil.copyfileobj(source, target)
                    os.chmod(path, _entry_mode(info, DEFAULT_FILE_MODE))
                except OSError as e:
                    raise _write_failure(path, e) from e

                written.append(path)
                _emit(on_event, EntryExtracted(path=path))
    except zipfile.BadZipFile as e:
        raise IntegrityError(f"Downloaded archive is not a valid zip file: {e}") from e

    return written


class ArtifactRetriever:
    """Downloads build artifacts to a local directory."""

    def __init__(
        self,
        client: CloudBuildClient,
        resolver: BuildResolver,
        on_event: EventHandler | None = None,
    ):
        self.client = client
        self.resolver = resolver
        self._on_event = on_event

    async def resolve_build(
        self,
        target_id: str,
        number: int | None = None,
        latest: bool = False,
    ) -> Build:
        """Find the build to download.

        Args:
            target_id: Build target ID.
            number: Explicit build number (ignored when ``latest`` is set).
            latest: Use the target's latest successful build.

        Raises:
            NotFoundError: If there is no such build.
            ValidationError: If neither a number nor ``latest`` was given.
        """
        if latest:
            build = await self.resolver.latest_successful_build(target_id)
            if build is None:
                raise NotFoundError(f"No successful build for target {target_id}")
            return build

        if number is None or number < 0:
            raise ValidationError("Missing build number (or use latest)")
        return await self.resolver.get_build_status(target_id, number)

    async def download(
        self,
        target_id: str,
        number: int | None = None,
        latest: bool = False,
        destination: Path | str = ".",
        unzip: bool = False,
    ) -> DownloadResult:
        """Resolve a build and download its primary artifact."""
        build = await self.resolve_build(target_id, number, latest)
        logger.debug("download_build_resolved", build=build.label, status=build.status)
        return await self.download_build(build, destination, unzip)

    async def download_build(
        self,
        build: Build,
        destination: Path | str = ".",
        unzip: bool = False,
    ) -> DownloadResult:
        """Download the primary artifact of an already resolved build.

        Every precondition is checked before the transfer starts. A failed
        transfer never leaves a partial file behind, and the temporary
        archive used for unpacking is always removed.

        Raises:
            ValidationError: If the build did not succeed, has no download
                link, is not an archive while ``unzip`` is requested, the
                destination is not an existing directory, or the download
                filename would land outside it.
            ServerError: If the download responds with a non-200 status.
            TransportError: If the connection fails during the transfer.
            IntegrityError: If the downloaded archive cannot be unpacked.
            FileSystemError: If the file or an archive entry cannot be written.
        """
        if not build.is_success:
            raise ValidationError(
                f"Cannot download build {build.label}, status is '{build.status}'"
            )
        link = build.download
        if link is None:
            raise ValidationError(f"Missing download link for build {build.label}")
        if unzip and not link.is_archive:
            raise ValidationError(
                f"Cannot unzip build {build.label}, filetype is {link.content_type or 'unknown'}"
            )

        destination = Path(destination or ".")
        if not destination.is_dir():
            raise ValidationError(f"{destination} is not a directory or does not exist")

        filename = link.filename
        if not filename:
            raise ValidationError(f"Cannot determine a filename for build {build.label}")

        if not unzip:
            path = destination / filename
            if path.resolve().parent != destination.resolve():
                raise ValidationError(
                    f"Download filename {filename!r} of build {build.label} leaves {destination}"
                )
            await self._transfer(build, link.href, path)
            return DownloadResult(build=build, destination=destination, file=path)

        try:
            fd, temp_name = tempfile.mkstemp(suffix=f"-{filename}")
        except OSError as e:
            raise FileSystemError(
                f"Cannot create a temporary archive for build {build.label}: {e.strerror or e}",
                tempfile.gettempdir(),
            ) from e
        os.close(fd)
        archive = Path(temp_name)
        try:
            await self._transfer(build, link.href, archive)
            logger.debug("extracting_archive", archive=str(archive), destination=str(destination))
            try:
                extracted = extract_archive(archive, destination, on_event=self._on_event)
            except FileSystemError as e:
                raise FileSystemError(
                    f"Cannot unpack build {build.label}: {e.message}", e.path
                ) from e
        finally:
            with contextlib.suppress(OSError):
                archive.unlink(missing_ok=True)

        return DownloadResult(build=build, destination=destination, extracted=extracted)

    async def _transfer(self, build: Build, url: str, path: Path) -> None:
        """Stream ``url`` into ``path``, removing the file if the transfer fails."""
        _emit(self._on_event, DownloadStarted(build=build, path=path))
        logger.debug("download_started", build=build.label, path=str(path))
        try:
            handle = path.open("wb")
        except OSError as e:
            raise FileSystemError(
                f"Cannot write build {build.label} to {path}: {e.strerror or e}", str(path)
            ) from e

        try:
            with handle:
                await self.client.download(url, handle)
        except OSError as e:
            self._discard(path)
            raise FileSystemError(
                f"Cannot write build {build.label} to {path}: {e.strerror or e}", str(path)
            ) from e
        except Exception:
            self._discard(path)
            raise

        size = path.stat().st_size
        logger.info("download_completed", build=build.label, path=str(path), size_bytes=size)
        _emit(self._on_event, DownloadCompleted(build=build, path=path, size_bytes=size))

    @staticmethod
    def _discard(path: Path) -> None:
        """Remove a partially written file."""
        with contextlib.suppress(OSError):
            path.unlink(missing_ok=True)

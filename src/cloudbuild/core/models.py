"""Domain models for build targets, builds and their download links.

Builds are immutable snapshots of the remote record. A fresh snapshot is
decoded from every response; nothing here is mutated client-side.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse

from cloudbuild.core.exceptions import IntegrityError

STATUS_SUCCESS = "success"
STATUS_FAILURE = "failure"
STATUS_CANCELED = "canceled"
STATUS_UNKNOWN = "unknown"

TERMINAL_STATUSES = frozenset({STATUS_SUCCESS, STATUS_FAILURE, STATUS_CANCELED, STATUS_UNKNOWN})
ACTIVE_STATUSES = ("queued", "sentToBuilder", "started", "restarted")

ARCHIVE_TYPES = frozenset({"zip", "application/zip", "application/x-zip-compressed"})


def is_terminal(status: str) -> bool:
    """Check if no further transition is expected from this status."""
    return status in TERMINAL_STATUSES


@dataclass(frozen=True)
class BuildLink:
    """A link attached to a build record (e.g. the primary download)."""

    href: str
    method: str = "get"
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        """Declared file type of the linked content, lowercased."""
        return str(self.meta.get("type", "")).lower()

    @property
    def is_archive(self) -> bool:
        return self.content_type in ARCHIVE_TYPES

    @property
    def filename(self) -> str:
        """Suggested local filename for the linked content.

        Pre-signed URLs carry a ``response-content-disposition`` query
        parameter with the intended filename; fall back to the last path
        segment otherwise.
        """
        parsed = urlparse(self.href)
        fallback = _basename(unquote(parsed.path))
        disposition = parse_qs(parsed.query).get("response-content-disposition")
        if disposition:
            hinted = _filename_from_disposition(disposition[0])
            if hinted:
                return hinted
        return fallback

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildLink:
        return cls(
            href=data["href"],
            method=data.get("method", "get"),
            meta=dict(data.get("meta") or {}),
        )


def _filename_from_disposition(value: str) -> str | None:
    """Extract the filename parameter from a Content-Disposition value."""
    for part in value.split(";")[1:]:
        key, _, raw = part.strip().partition("=")
        if key.strip().lower() == "filename" and raw:
            return _basename(raw.strip().strip('"')) or None
    return None


def _basename(value: str) -> str:
    """Last path component of a server-provided name, or "" if unusable."""
    name = value.replace("\\", "/").rsplit("/", 1)[-1]
    return "" if name in (".", "..") else name


@dataclass(frozen=True)
class Build:
    """One build attempt of a build target."""

    target_id: str
    number: int
    status: str
    platform: str = ""
    target_name: str = ""
    guid: str = ""
    created: str | None = None
    finished: str | None = None
    build_time_seconds: float = 0.0
    total_time_seconds: float = 0.0
    last_built_revision: str | None = None
    scm_branch: str = ""
    unity_version: str = ""
    download: BuildLink | None = None

    @property
    def key(self) -> tuple[str, int]:
        """Identity of the build, stable across polls."""
        return (self.target_id, self.number)

    @property
    def label(self) -> str:
        return f"{self.target_id} #{self.number}"

    @property
    def is_active(self) -> bool:
        return not is_terminal(self.status)

    @property
    def is_success(self) -> bool:
        return self.status == STATUS_SUCCESS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Build:
        """Decode a build record from the API.

        Raises:
            IntegrityError: If required fields are missing or malformed.
        """
        try:
            links = data.get("links") or {}
            download = links.get("download_primary")
            target_id = data["buildtargetid"] if "buildtargetid" in data else data["buildTargetId"]
            return cls(
                target_id=str(target_id),
                number=int(data["build"]),
                status=str(data["buildStatus"]),
                platform=data.get("platform") or "",
                target_name=data.get("buildTargetName") or "",
                guid=data.get("buildGUID") or "",
                created=data.get("created"),
                finished=data.get("finished"),
                build_time_seconds=float(data.get("buildTimeInSeconds") or 0.0),
                total_time_seconds=float(data.get("totalTimeInSeconds") or 0.0),
                last_built_revision=data.get("lastBuiltRevision") or None,
                scm_branch=data.get("scmBranch") or "",
                unity_version=data.get("unityVersion") or "",
                download=BuildLink.from_dict(download) if download else None,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise IntegrityError(f"Malformed build record: {e!r}") from e

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "target_id": self.target_id,
            "number": self.number,
            "status": self.status,
            "platform": self.platform,
            "target_name": self.target_name,
            "guid": self.guid,
            "created": self.created,
            "finished": self.finished,
            "build_time_seconds": self.build_time_seconds,
            "total_time_seconds": self.total_time_seconds,
            "last_built_revision": self.last_built_revision,
            "scm_branch": self.scm_branch,
            "unity_version": self.unity_version,
            "download": (
                {"href": self.download.href, "type": self.download.content_type}
                if self.download
                else None
            ),
        }


@dataclass(frozen=True)
class BuildTargetSettings:
    """Subset of a build target's settings shown by ``targets list``."""

    auto_build: bool = False
    branch: str = ""
    unity_version: str = ""
    executable_name: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildTargetSettings:
        scm = data.get("scm") or {}
        return cls(
            auto_build=bool(data.get("autoBuild", False)),
            branch=scm.get("branch", ""),
            unity_version=str(data.get("unityVersion", "")).replace("_", "."),
            executable_name=data.get("executablename", ""),
        )


@dataclass(frozen=True)
class BuildTarget:
    """A configured build pipeline."""

    id: str
    name: str
    enabled: bool
    platform: str = ""
    builds: tuple[Build, ...] = ()
    settings: BuildTargetSettings | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildTarget:
        """Decode a build target from the API.

        Raises:
            IntegrityError: If required fields are missing or malformed.
        """
        try:
            settings = data.get("settings")
            return cls(
                id=str(data["buildtargetid"]),
                name=data.get("name", ""),
                enabled=bool(data.get("enabled", False)),
                platform=data.get("platform", ""),
                builds=tuple(Build.from_dict(b) for b in data.get("builds") or []),
                settings=BuildTargetSettings.from_dict(settings) if settings else None,
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise IntegrityError(f"Malformed build target record: {e!r}") from e

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "platform": self.platform,
        }
        if self.settings:
            data["settings"] = {
                "auto_build": self.settings.auto_build,
                "branch": self.settings.branch,
                "unity_version": self.settings.unity_version,
            }
        return data


@dataclass(frozen=True)
class BuildAttempt:
    """Outcome of asking the service to start a build for one target."""

    target_id: str
    build: Build | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error and self.build is not None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildAttempt:
        if not isinstance(data, dict):
            raise IntegrityError(f"Malformed build attempt: {data!r}")
        target_id = data.get("buildtargetid") or data.get("buildTargetId") or ""
        error = data.get("error") or ""
        build = Build.from_dict(data) if "build" in data and not error else None
        return cls(target_id=str(target_id), build=build, error=str(error))

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_id": self.target_id,
            "build": self.build.to_dict() if self.build else None,
            "error": self.error or None,
        }

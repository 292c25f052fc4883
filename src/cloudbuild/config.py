"""Configuration for cloudbuild.

Credentials and project identifiers are resolved, in order, from explicit
command-line values, ``UNITY_*`` environment variables (or a ``.env``
file) and finally the Unity project settings file found by walking up from
the working directory.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from cloudbuild.core.exceptions import ValidationError
from cloudbuild.logging import get_logger

logger = get_logger(__name__)

DEFAULT_API_URL = "https://build-api.cloud.unity3d.com/api/v1"
PROJECT_SETTINGS_PATH = Path("ProjectSettings") / "ProjectSettings.asset"

# Unity serializes assets as tagged multi-document YAML ("--- !u!129 &1")
_UNITY_DOCUMENT_TAG = re.compile(r"^--- !u!\d+ &\d+.*$", re.MULTILINE)


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="UNITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Credentials
    api_key: str | None = None
    org_id: str | None = None
    project_id: str | None = None

    # API
    api_url: str = DEFAULT_API_URL
    request_timeout: float = 30.0
    download_timeout: float = 120.0

    # Monitoring
    poll_interval: float = 5.0

    # Logging
    log_level: str = "WARNING"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


@dataclass(frozen=True)
class CloudBuildContext:
    """Resolved credentials and connection settings for one invocation."""

    org_id: str
    project_id: str
    api_key: str
    api_url: str = DEFAULT_API_URL
    request_timeout: float = 30.0
    download_timeout: float = 120.0
    poll_interval: float = 5.0
    verbose: bool = False


@dataclass(frozen=True)
class ProjectIdentifiers:
    """Identifiers recorded in a Unity project's settings file."""

    org_id: str | None = None
    project_id: str | None = None


def find_project_settings(start_dir: Path | None = None) -> Path | None:
    """Search ``start_dir`` and its parents for the project settings file.

    Returns:
        Path to the settings file, or None if there is none.
    """
    current = (start_dir or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / PROJECT_SETTINGS_PATH
        if candidate.is_dir():
            logger.debug("project_settings_is_directory", path=str(candidate))
            return None
        if candidate.is_file():
            return candidate
    return None


def _strip_unity_tags(text: str) -> str:
    """Turn a Unity asset into plain multi-document YAML."""
    lines = [line for line in text.splitlines() if not line.startswith("%")]
    return _UNITY_DOCUMENT_TAG.sub("---", "\n".join(lines))


def read_project_settings(path: Path) -> ProjectIdentifiers:
    """Read organization and cloud project ids from a settings file.

    Unreadable or malformed files yield empty identifiers.
    """
    try:
        text = path.read_text(encoding="utf-8")
        documents = list(yaml.safe_load_all(_strip_unity_tags(text)))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.debug("project_settings_unreadable", path=str(path), error=str(e))
        return ProjectIdentifiers()

    for document in documents:
        if not isinstance(document, dict):
            continue
        player = document.get("PlayerSettings")
        if isinstance(player, dict):
            logger.debug("project_settings_discovered", path=str(path))
            return ProjectIdentifiers(
                org_id=player.get("organizationId") or None,
                project_id=player.get("cloudProjectId") or None,
            )
    return ProjectIdentifiers()


def build_context(
    api_key: str | None = None,
    org_id: str | None = None,
    project_id: str | None = None,
    verbose: bool = False,
    start_dir: Path | None = None,
    settings: Settings | None = None,
) -> CloudBuildContext:
    """Resolve a CloudBuildContext from flags, environment and project files.

    Raises:
        ValidationError: If the API key, organization or project is missing.
    """
    if settings is None:
        settings = get_settings()

    api_key = api_key or settings.api_key
    org_id = org_id or settings.org_id
    project_id = project_id or settings.project_id

    if not api_key:
        raise ValidationError("Missing api-key")

    if not org_id or not project_id:
        settings_file = find_project_settings(start_dir)
        if settings_file is not None:
            discovered = read_project_settings(settings_file)
            org_id = org_id or discovered.org_id
            project_id = project_id or discovered.project_id

    if not org_id:
        raise ValidationError("Missing org-id")
    if not project_id:
        raise ValidationError("Missing project-id")

    return CloudBuildContext(
        org_id=org_id,
        project_id=project_id,
        api_key=api_key,
        api_url=settings.api_url.rstrip("/"),
        request_timeout=settings.request_timeout,
        download_timeout=settings.download_timeout,
        poll_interval=settings.poll_interval,
        verbose=verbose,
    )

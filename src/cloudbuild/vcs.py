"""Git revision lookup via the git CLI."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from cloudbuild.core.exceptions import ValidationError

TIMEOUT_GIT = 30  # seconds


@dataclass(frozen=True)
class GitCommit:
    """The commit currently checked out."""

    revision: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"revision": self.revision, "message": self.message}


def _git(repo_path: Path, *args: str) -> str:
    try:
        result = subprocess.run(
            ["git", "-C", str(repo_path), *args],
            capture_output=True,
            text=True,
            check=True,
            timeout=TIMEOUT_GIT,
        )
    except FileNotFoundError as e:
        raise ValidationError("git executable not found") from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        raise ValidationError(f"Not a git repository: {repo_path} ({stderr})") from e
    except subprocess.TimeoutExpired as e:
        raise ValidationError(f"git timed out in {repo_path}") from e
    return result.stdout


def git_head(repo_path: Path | str | None = None) -> GitCommit:
    """Read the HEAD commit of the repository containing ``repo_path``.

    Git itself searches parent directories for the repository.

    Raises:
        ValidationError: If there is no repository or git is unavailable.
    """
    path = Path(repo_path or ".")
    revision = _git(path, "rev-parse", "HEAD").strip()
    message = _git(path, "log", "-1", "--format=%B", "HEAD").strip()
    return GitCommit(revision=revision, message=message)

"""cloudbuild - command-line client for Unity Cloud Build."""

__version__ = "0.4.0"

from cloudbuild.core.exceptions import CloudBuildError, ErrorKind
from cloudbuild.core.models import Build, BuildTarget

__all__ = [
    "Build",
    "BuildTarget",
    "CloudBuildError",
    "ErrorKind",
]

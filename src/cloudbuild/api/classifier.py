"""Classification of API responses.

Every endpoint call goes through ``classify_response`` so that list, start,
cancel and status operations share one set of error semantics.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from cloudbuild.core.exceptions import (
    CloudBuildError,
    IntegrityError,
    NotFoundError,
    RateLimitedError,
    ServerError,
)

T = TypeVar("T")


class OutcomeKind(Enum):
    """Kinds of response outcome."""

    SUCCESS = "success"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    FAILURE = "failure"


@dataclass(frozen=True)
class ClassifiedOutcome(Generic[T]):
    """Interpreted response, without transport details."""

    kind: OutcomeKind
    payload: T | None = None
    status_code: int | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def to_error(self) -> CloudBuildError:
        """Build the exception matching a non-success outcome."""
        match self.kind:
            case OutcomeKind.NOT_FOUND:
                return NotFoundError()
            case OutcomeKind.RATE_LIMITED:
                return RateLimitedError()
            case OutcomeKind.FAILURE:
                return ServerError(self.message, status_code=self.status_code)
            case OutcomeKind.SUCCESS:
                raise ValueError("Successful outcome has no error")
        raise ValueError(f"Unhandled outcome kind: {self.kind}")

    def unwrap(self) -> T | None:
        """Return the payload or raise the matching CloudBuildError."""
        if self.ok:
            return self.payload
        raise self.to_error()


def _decode_error_message(status_code: int, body: bytes) -> str:
    """Pull the ``error`` field out of an error body, if there is one."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        data = None
    if isinstance(data, dict) and isinstance(data.get("error"), str) and data["error"]:
        return data["error"]
    return f"Request failed with status code {status_code}"


def classify_response(
    status_code: int,
    body: bytes,
    decode: Callable[[Any], T] | None = None,
) -> ClassifiedOutcome[T]:
    """Interpret a response status code and body.

    Args:
        status_code: HTTP status code.
        body: Raw response body.
        decode: Converts the parsed JSON into the caller's shape. When None,
            any body is ignored.

    Returns:
        ClassifiedOutcome describing the response.

    Raises:
        IntegrityError: If a 200/202 body cannot be decoded.
    """
    if status_code in (200, 202):
        if decode is None or not body:
            return ClassifiedOutcome(OutcomeKind.SUCCESS, status_code=status_code)
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise IntegrityError(f"Malformed server response: {e}") from e
        return ClassifiedOutcome(OutcomeKind.SUCCESS, payload=decode(data), status_code=status_code)

    if status_code == 204:
        return ClassifiedOutcome(OutcomeKind.SUCCESS, status_code=status_code)
    if status_code == 404:
        return ClassifiedOutcome(OutcomeKind.NOT_FOUND, status_code=status_code)
    if status_code == 429:
        return ClassifiedOutcome(OutcomeKind.RATE_LIMITED, status_code=status_code)

    return ClassifiedOutcome(
        OutcomeKind.FAILURE,
        status_code=status_code,
        message=_decode_error_message(status_code, body),
    )

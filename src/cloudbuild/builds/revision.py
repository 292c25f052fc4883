"""Revision matching: do builds correspond to a given source revision?"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from cloudbuild.builds.resolver import BuildResolver
from cloudbuild.core.exceptions import ValidationError
from cloudbuild.core.models import Build


class MatchOutcome(Enum):
    """Result of comparing one target's build against a revision."""

    MATCH = "match"
    MISMATCH = "mismatch"  # Successful build of a different revision
    NOT_SUCCESSFUL = "not_successful"  # Build status is not success
    MISSING = "missing"  # Target has no successful build at all


@dataclass(frozen=True)
class RevisionCheck:
    """Comparison result for one target."""

    target_id: str
    outcome: MatchOutcome
    build: Build | None = None

    @property
    def matches(self) -> bool:
        return self.outcome is MatchOutcome.MATCH

    def to_dict(self) -> dict:
        return {
            "target_id": self.target_id,
            "number": self.build.number if self.build else None,
            "status": self.build.status if self.build else None,
            "revision": self.build.last_built_revision if self.build else None,
            "outcome": self.outcome.value,
        }


@dataclass(frozen=True)
class RevisionReport:
    """Per-target comparison results against one revision."""

    revision: str
    checks: list[RevisionCheck] = field(default_factory=list)

    @property
    def matches(self) -> bool:
        """True only if there was something to compare and everything matched."""
        return bool(self.checks) and all(check.matches for check in self.checks)

    def to_dict(self) -> dict:
        return {
            "revision": self.revision,
            "matches": self.matches,
            "builds": [check.to_dict() for check in self.checks],
        }


def check_build(revision: str, build: Build) -> RevisionCheck:
    """Compare one build against a revision (exact, full-string match)."""
    if not build.is_success:
        outcome = MatchOutcome.NOT_SUCCESSFUL
    elif build.last_built_revision != revision:
        outcome = MatchOutcome.MISMATCH
    else:
        outcome = MatchOutcome.MATCH
    return RevisionCheck(target_id=build.target_id, outcome=outcome, build=build)


def matches_head(
    revision: str,
    builds: Iterable[Build],
    missing_targets: Iterable[str] = (),
) -> RevisionReport:
    """Compare builds against a revision.

    Args:
        revision: Full revision identifier to compare against.
        builds: Builds to check.
        missing_targets: Targets without any successful build; always reported
            as missing.
    """
    checks = [
        RevisionCheck(target_id=target_id, outcome=MatchOutcome.MISSING)
        for target_id in missing_targets
    ]
    checks.extend(check_build(revision, build) for build in builds)
    return RevisionReport(revision=revision, checks=checks)


class RevisionMatcher:
    """Resolves the builds for a scope and compares them against a revision."""

    def __init__(self, resolver: BuildResolver):
        self.resolver = resolver

    async def check(
        self,
        revision: str,
        target_id: str | None = None,
        number: int | None = None,
        all_targets: bool = False,
    ) -> RevisionReport:
        """Compare one or all targets' builds against ``revision``.

        Args:
            revision: Revision to compare against.
            target_id: Target to check when not checking all targets.
            number: Explicit build number; defaults to the latest successful build.
            all_targets: Check the latest successful build of every enabled target.

        Raises:
            ValidationError: If neither a target nor ``all_targets`` was given.
        """
        if not revision:
            raise ValidationError("Missing revision")

        builds: list[Build] = []
        missing: list[str] = []

        if all_targets:
            latest = await self.resolver.list_latest_builds(only_successful=True, only_enabled=True)
            for target, build in latest.items():
                if build is None:
                    missing.append(target)
                else:
                    builds.append(build)
        elif target_id and number is not None and number > 0:
            builds.append(await self.resolver.get_build_status(target_id, number))
        elif target_id:
            latest = await self.resolver.list_latest_builds(only_successful=True, only_enabled=True)
            build = latest.get(target_id)
            if build is None:
                missing.append(target_id)
            else:
                builds.append(build)
        else:
            raise ValidationError("Missing target-id")

        return matches_head(revision, builds, missing)

"""Tests for console rendering of results."""

from __future__ import annotations

import io

from rich.console import Console

from cloudbuild.builds.events import StatusChanged
from cloudbuild.cli.formatters import HumanFormatter
from cloudbuild.core.models import Build, BuildTarget
from tests.factories import build_record, target_record


def recording_formatter() -> tuple[HumanFormatter, Console]:
    console = Console(file=io.StringIO(), record=True, width=200, highlight=False)
    return HumanFormatter(stdout=console, stderr=console), console


class TestMarkupIsEscaped:
    """Server-provided values are printed literally."""

    def test_build_fields(self) -> None:
        formatter, console = recording_formatter()
        build = Build.from_dict(
            build_record(target_id="ios-[dev]", status="[bold]queued", created="[i]today")
        )

        formatter.builds([build])

        text = console.export_text()
        assert "Target: ios-[dev]" in text
        assert "Status:   [bold]queued" in text
        assert "Created:  [i]today" in text

    def test_target_fields(self) -> None:
        formatter, console = recording_formatter()
        record = target_record("android")
        record["name"] = "Android [beta]"
        record["settings"]["scm"]["branch"] = "[red]main"

        formatter.targets([BuildTarget.from_dict(record)])

        text = console.export_text()
        assert "Target: Android [beta]" in text
        assert "Branch:    [red]main" in text

    def test_status_change_event(self) -> None:
        formatter, console = recording_formatter()
        build = Build.from_dict(build_record(target_id="[x]", number=2, status="started"))

        event = StatusChanged(build=build, old_status="[dim]queued", new_status="started")

        formatter.handle_event(event)

        assert "Build: [x] #2 status changed from [dim]queued to started" in console.export_text()

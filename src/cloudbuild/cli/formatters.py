"""Output formatters for the cloudbuild CLI.

The CLI picks one formatter per invocation; core modules only return
structured results and emit events.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape

from cloudbuild.builds.artifacts import DownloadResult
from cloudbuild.builds.events import (
    BuildFinished,
    DownloadCompleted,
    DownloadEvent,
    DownloadStarted,
    EntryExtracted,
    MonitorEvent,
    RateLimitBackoff,
    StatusChanged,
    WaitCompleted,
    WatchStarted,
)
from cloudbuild.builds.monitor import WaitResult
from cloudbuild.builds.revision import MatchOutcome, RevisionReport
from cloudbuild.core.models import Build, BuildAttempt, BuildTarget
from cloudbuild.vcs import GitCommit


def format_size(size_bytes: int) -> str:
    """Format size in bytes to human-readable format."""
    if size_bytes >= 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    elif size_bytes >= 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes} B"


def format_duration(seconds: float) -> str:
    """Format seconds as H:MM:SS."""
    return str(timedelta(seconds=int(seconds)))


def short_revision(revision: str | None) -> str:
    return (revision or "")[:8]


class OutputFormatter(ABC):
    """Renders command results."""

    def __init__(self, stdout: Console | None = None, stderr: Console | None = None):
        self.console = stdout or Console(highlight=False, soft_wrap=True)
        self.err_console = stderr or Console(stderr=True, highlight=False, soft_wrap=True)

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]Error:[/red] {escape(message)}")

    def handle_event(self, event: MonitorEvent | DownloadEvent) -> None:  # noqa: B027
        """Render a progress event. Silent by default."""

    @abstractmethod
    def builds(self, builds: list[Build]) -> None: ...

    @abstractmethod
    def latest_builds(self, latest: dict[str, Build | None]) -> None: ...

    @abstractmethod
    def targets(self, targets: list[BuildTarget]) -> None: ...

    @abstractmethod
    def attempts(self, attempts: list[BuildAttempt]) -> None: ...

    @abstractmethod
    def canceled(self, target_ids: list[str]) -> None: ...

    @abstractmethod
    def commit(self, commit: GitCommit) -> None: ...

    @abstractmethod
    def revision_report(self, report: RevisionReport) -> None: ...

    @abstractmethod
    def download(self, result: DownloadResult) -> None: ...

    @abstractmethod
    def wait_result(self, result: WaitResult) -> None: ...


class JsonFormatter(OutputFormatter):
    """Dumps results as indented JSON on stdout."""

    def _dump(self, data: Any) -> None:
        typer.echo(json.dumps(data, indent=4))

    def builds(self, builds: list[Build]) -> None:
        self._dump([b.to_dict() for b in builds])

    def latest_builds(self, latest: dict[str, Build | None]) -> None:
        self._dump({target: b.to_dict() if b else None for target, b in latest.items()})

    def targets(self, targets: list[BuildTarget]) -> None:
        self._dump([t.to_dict() for t in targets])

    def attempts(self, attempts: list[BuildAttempt]) -> None:
        self._dump([a.to_dict() for a in attempts])

    def canceled(self, target_ids: list[str]) -> None:
        self._dump({"canceled": target_ids})

    def commit(self, commit: GitCommit) -> None:
        self._dump(commit.to_dict())

    def revision_report(self, report: RevisionReport) -> None:
        self._dump(report.to_dict())

    def download(self, result: DownloadResult) -> None:
        self._dump(result.to_dict())

    def wait_result(self, result: WaitResult) -> None:
        self._dump([b.to_dict() for b in result.builds])


class HumanFormatter(OutputFormatter):
    """Readable console output using rich."""

    def _build(self, build: Build) -> None:
        target = escape(build.target_id)
        self.console.print(f"[bold]Target: {target}[/bold] (Build #{build.number})")
        self.console.print(f"  Created:  {escape(build.created or '-')}")
        if build.guid:
            self.console.print(f"  GUID:     {escape(build.guid)}")
        self.console.print(f"  Status:   {escape(build.status)}")
        self.console.print(f"  Time:     {format_duration(build.total_time_seconds)}")
        if build.last_built_revision:
            self.console.print(f"  Revision: {escape(build.last_built_revision)}")
        if build.download:
            self.console.print(f"  Download: {escape(build.download.href)}")

    def builds(self, builds: list[Build]) -> None:
        if not builds:
            self.console.print("No builds found.")
        for build in builds:
            self._build(build)
            self.console.print()

    def latest_builds(self, latest: dict[str, Build | None]) -> None:
        for target_id in sorted(latest):
            build = latest[target_id]
            if build is not None:
                self._build(build)
            else:
                self.console.print(f"[bold]Target: {escape(target_id)}[/bold]")
                self.console.print("  [dim]<No successful builds>[/dim]")
            self.console.print()

    def targets(self, targets: list[BuildTarget]) -> None:
        for target in targets:
            self.console.print(f"[bold]Target: {escape(target.name)}[/bold]")
            self.console.print(f"  ID:        {escape(target.id)}")
            self.console.print(f"  Enabled:   {target.enabled}")
            if target.settings:
                self.console.print(f"  AutoBuild: {target.settings.auto_build}")
                self.console.print(f"  Branch:    {escape(target.settings.branch)}")
                self.console.print(f"  Unity:     {escape(target.settings.unity_version)}")
            self.console.print()

    def attempts(self, attempts: list[BuildAttempt]) -> None:
        for attempt in attempts:
            if attempt.error:
                self.console.print(f"[bold]Target: {escape(attempt.target_id)}[/bold]")
                self.console.print(f"  [red]Error: {escape(attempt.error)}[/red]")
            elif attempt.build:
                self._build(attempt.build)
            self.console.print()

    def canceled(self, target_ids: list[str]) -> None:
        for target_id in target_ids:
            self.console.print(f"Canceled builds for target {escape(target_id)}.")

    def commit(self, commit: GitCommit) -> None:
        self.console.print(f"Revision: {escape(commit.revision)}")
        self.console.print(f"Message:  {escape(commit.message)}")

    def revision_report(self, report: RevisionReport) -> None:
        self.console.print(f"HEAD: {escape(report.revision)}")
        for check in report.checks:
            build = check.build
            match check.outcome:
                case MatchOutcome.MISSING:
                    self.console.print(
                        f"[yellow]Target {escape(check.target_id)} "
                        "does not have a successful build.[/yellow]"
                    )
                case MatchOutcome.NOT_SUCCESSFUL:
                    self.console.print(
                        f"[red]Build {escape(build.label)} is not a successful build "
                        f"(status: {escape(build.status)})[/red]"
                    )
                case MatchOutcome.MISMATCH:
                    self.console.print(
                        f"[red]Build {escape(build.label)} is revision "
                        f"{short_revision(build.last_built_revision) or '<none>'}, "
                        f"head is {short_revision(report.revision)}[/red]"
                    )
                case MatchOutcome.MATCH:
                    self.console.print(f"[green]Build {escape(build.label)} matches HEAD.[/green]")

    def download(self, result: DownloadResult) -> None:
        if result.file:
            self.console.print(
                f"Saved build {escape(result.build.label)} to {escape(str(result.file))}"
            )
        else:
            self.console.print(
                f"Unzipped {len(result.extracted)} file(s) of build {escape(result.build.label)} "
                f"to {escape(str(result.destination))}"
            )

    def wait_result(self, result: WaitResult) -> None:
        self.console.print("[green]Build(s) complete.[/green]")

    def handle_event(self, event: MonitorEvent | DownloadEvent) -> None:
        match event:
            case WatchStarted():
                self.console.print(f"Watching: {escape(event.build.label)}")
            case StatusChanged():
                self.console.print(
                    f"Build: {escape(event.build.label)} status changed from "
                    f"{escape(event.old_status)} to {escape(event.new_status)}"
                )
            case BuildFinished():
                if event.succeeded:
                    label = escape(event.build.label)
                    self.console.print(f"[green]Build: {label} finished.[/green]")
                else:
                    self.console.print(
                        f"[red]Build: {escape(event.build.label)} failed with status: "
                        f"{escape(event.build.status)}[/red]"
                    )
            case RateLimitBackoff():
                self.err_console.print("[yellow]Rate limit hit, backing off[/yellow]")
            case DownloadStarted():
                self.console.print(f"Downloading to: {escape(str(event.path))}")
            case DownloadCompleted():
                self.console.print(f"Download complete ({format_size(event.size_bytes)}).")
            case EntryExtracted():
                self.console.print(f"Writing: {escape(str(event.path))}")
            case WaitCompleted():
                pass


def get_formatter(json_output: bool) -> OutputFormatter:
    """Pick the formatter for an invocation."""
    if json_output:
        return JsonFormatter()
    return HumanFormatter()

"""Main Typer CLI application for cloudbuild."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import typer

from cloudbuild import __version__
from cloudbuild.api.client import CloudBuildClient
from cloudbuild.builds.artifacts import ArtifactRetriever
from cloudbuild.builds.control import cancel_all_builds, cancel_build, start_all_builds, start_build
from cloudbuild.builds.monitor import CompletionMonitor
from cloudbuild.builds.resolver import ALL_TARGETS, BuildResolver
from cloudbuild.builds.revision import RevisionMatcher
from cloudbuild.cli.formatters import OutputFormatter, get_formatter
from cloudbuild.config import CloudBuildContext, build_context, get_settings
from cloudbuild.core.exceptions import CloudBuildError, ValidationError
from cloudbuild.logging import configure_logging
from cloudbuild.vcs import git_head

app = typer.Typer(
    name="cloudbuild",
    help="A tool to interact with Unity Cloud Build",
    no_args_is_help=True,
)
builds_app = typer.Typer(name="builds", help="List, start, cancel and download builds", no_args_is_help=True)
targets_app = typer.Typer(name="targets", help="Inspect build targets", no_args_is_help=True)
git_app = typer.Typer(name="git", help="Compare builds against the local git HEAD", no_args_is_help=True)

app.add_typer(builds_app, name="builds")
app.add_typer(targets_app, name="targets")
app.add_typer(git_app, name="git")

TargetOption = Annotated[
    str | None,
    typer.Option("-t", "--target-id", help="Build target ID"),
]
BuildOption = Annotated[
    int,
    typer.Option("-b", "--build", help="Build number for build target"),
]


@dataclass
class CliState:
    """Global options shared by every command."""

    api_key: str | None
    org_id: str | None
    project_id: str | None
    verbose: bool
    formatter: OutputFormatter

    def context(self) -> CloudBuildContext:
        return build_context(
            api_key=self.api_key,
            org_id=self.org_id,
            project_id=self.project_id,
            verbose=self.verbose,
            settings=get_settings(),
        )


def create_client(context: CloudBuildContext) -> CloudBuildClient:
    """Create the API client for a command."""
    return CloudBuildClient(context)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"cloudbuild {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    api_key: Annotated[
        str | None,
        typer.Option("--api-key", help="Unity API key", envvar="UNITY_API_KEY"),
    ] = None,
    org_id: Annotated[
        str | None,
        typer.Option("--org-id", help="Unity Organization ID", envvar="UNITY_ORG_ID"),
    ] = None,
    project_id: Annotated[
        str | None,
        typer.Option("--project-id", help="Unity Project ID", envvar="UNITY_PROJECT_ID"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output responses in JSON"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("-v", "--verbose", help="Output detailed status messages to the log"),
    ] = False,
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit", callback=_version_callback, is_eager=True),
    ] = False,
) -> None:
    """A tool to interact with Unity Cloud Build."""
    settings = get_settings()
    configure_logging(log_level="DEBUG" if verbose else settings.log_level)
    ctx.obj = CliState(
        api_key=api_key,
        org_id=org_id,
        project_id=project_id,
        verbose=verbose,
        formatter=get_formatter(json_output),
    )


Operation = Callable[[CloudBuildClient, CloudBuildContext, OutputFormatter], Awaitable[int]]


async def _with_client(context: CloudBuildContext, operation: Operation, formatter: OutputFormatter) -> int:
    async with create_client(context) as client:
        return await operation(client, context, formatter)


def _run(ctx: typer.Context, operation: Operation) -> None:
    """Resolve the context, run an async operation and exit with its code.

    Any CloudBuildError is reported through the formatter and exits with 1.
    """
    state: CliState = ctx.obj
    try:
        context = state.context()
        exit_code = asyncio.run(_with_client(context, operation, state.formatter))
    except CloudBuildError as e:
        state.formatter.error(str(e))
        raise typer.Exit(code=1) from e
    raise typer.Exit(code=exit_code)


def _require_target(target_id: str | None) -> str:
    if not target_id:
        raise ValidationError("missing target-id")
    return target_id


# =============================================================================
# BUILDS
# =============================================================================


@builds_app.command("list")
def list_builds(
    ctx: typer.Context,
    target_id: Annotated[
        str,
        typer.Option("-t", "--target-id", help="Specific target ID or _all for all targets"),
    ] = ALL_TARGETS,
    filter_status: Annotated[
        str | None,
        typer.Option(
            "--filter-status",
            help="(queued, sentToBuilder, started, restarted, success, failure, canceled, unknown)",
        ),
    ] = None,
    filter_platform: Annotated[
        str | None,
        typer.Option("--filter-platform", help="(ios, android, webgl, osx, win, win64, linux)"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("-l", "--limit", help="If >0 show only the specified number of builds"),
    ] = 0,
) -> None:
    """List builds."""

    async def operation(client, context, formatter) -> int:
        resolver = BuildResolver(client)
        builds = await resolver.list_builds(target_id, filter_status, filter_platform, limit)
        formatter.builds(builds)
        return 0

    _run(ctx, operation)


@builds_app.command("status")
def build_status(ctx: typer.Context, target_id: TargetOption = None, build: BuildOption = -1) -> None:
    """Retrieve status of a build."""

    async def operation(client, context, formatter) -> int:
        target = _require_target(target_id)
        if build < 0:
            raise ValidationError("missing build number")
        formatter.builds([await BuildResolver(client).get_build_status(target, build)])
        return 0

    _run(ctx, operation)


@builds_app.command("latest")
def latest_builds(
    ctx: typer.Context,
    success: Annotated[
        bool,
        typer.Option("--success", help="Only show the latest successful build"),
    ] = False,
    only_enabled: Annotated[
        bool,
        typer.Option("--only-enabled", help="Only show builds from enabled targets"),
    ] = False,
) -> None:
    """List latest builds for every build target."""

    async def operation(client, context, formatter) -> int:
        latest = await BuildResolver(client).list_latest_builds(success, only_enabled)
        formatter.latest_builds(latest)
        return 0

    _run(ctx, operation)


@builds_app.command("cancel")
def cancel_builds(
    ctx: typer.Context,
    all_builds: Annotated[bool, typer.Option("--all", help="Cancel all builds")] = False,
    target_id: TargetOption = None,
    build: BuildOption = -1,
) -> None:
    """Cancel a build for a build target, or all builds with --all."""

    async def operation(client, context, formatter) -> int:
        if all_builds:
            formatter.canceled(await cancel_all_builds(client, target_id))
            return 0
        target = _require_target(target_id)
        if build < 0:
            raise ValidationError("missing build number")
        await cancel_build(client, target, build)
        formatter.canceled([target])
        return 0

    _run(ctx, operation)


@builds_app.command("start")
def start_builds(
    ctx: typer.Context,
    all_targets: Annotated[
        bool,
        typer.Option("--all", help="Start builds on all enabled targets"),
    ] = False,
    clean: Annotated[bool, typer.Option("--clean", help="Force a clean build")] = False,
    target_id: TargetOption = None,
) -> None:
    """Start a build for a build target, or for all enabled targets with --all."""

    async def operation(client, context, formatter) -> int:
        if all_targets:
            attempts = await start_all_builds(client, clean=clean)
        else:
            attempts = [await start_build(client, _require_target(target_id), clean=clean)]
        formatter.attempts(attempts)
        return 0

    _run(ctx, operation)


@builds_app.command("download")
def download_build(
    ctx: typer.Context,
    target_id: TargetOption = None,
    build: BuildOption = -1,
    latest: Annotated[
        bool,
        typer.Option("--latest", help="Download the latest successful build"),
    ] = False,
    output: Annotated[
        Path,
        typer.Option("-o", "--output", help="Directory to write the build to"),
    ] = Path("."),
    unzip: Annotated[
        bool,
        typer.Option(
            "--unzip",
            help="Unzip the contents of the build to the output directory (.zip builds only)",
        ),
    ] = False,
) -> None:
    """Download a build artifact."""

    async def operation(client, context, formatter) -> int:
        target = _require_target(target_id)
        retriever = ArtifactRetriever(client, BuildResolver(client), on_event=formatter.handle_event)
        result = await retriever.download(
            target,
            number=build if build >= 0 else None,
            latest=latest,
            destination=output,
            unzip=unzip,
        )
        formatter.download(result)
        return 0

    _run(ctx, operation)


@builds_app.command("wait-for-complete")
def wait_for_complete(
    ctx: typer.Context,
    target_id: TargetOption = None,
    build: BuildOption = -1,
    all_targets: Annotated[
        bool,
        typer.Option("--all", help="Wait for all active builds of all enabled targets"),
    ] = False,
    abort_on_fail: Annotated[
        bool,
        typer.Option("--abort-on-fail", help="Exit as soon as one build fails or is canceled"),
    ] = False,
) -> None:
    """Wait for in-progress build(s) to finish."""

    async def operation(client, context, formatter) -> int:
        if not all_targets:
            _require_target(target_id)
        monitor = CompletionMonitor(
            BuildResolver(client),
            poll_interval=context.poll_interval,
            on_event=formatter.handle_event,
        )
        result = await monitor.wait(
            target_id=target_id,
            number=build if build > 0 else None,
            all_targets=all_targets,
            abort_on_fail=abort_on_fail,
        )
        formatter.wait_result(result)
        return 0

    _run(ctx, operation)


# =============================================================================
# TARGETS
# =============================================================================


@targets_app.command("list")
def list_targets(ctx: typer.Context) -> None:
    """List all build targets."""

    async def operation(client, context, formatter) -> int:
        formatter.targets(await BuildResolver(client).list_targets())
        return 0

    _run(ctx, operation)


# =============================================================================
# GIT
# =============================================================================

RepoPathOption = Annotated[
    Path | None,
    typer.Option("-p", "--repo-path", help="Search for the git repo there instead of the working directory"),
]


@git_app.command("head")
def head(ctx: typer.Context, repo_path: RepoPathOption = None) -> None:
    """Output current revision and commit message for HEAD."""
    state: CliState = ctx.obj
    try:
        commit = git_head(repo_path)
    except CloudBuildError as e:
        state.formatter.error(str(e))
        raise typer.Exit(code=1) from e
    state.formatter.commit(commit)


@git_app.command("build-matches-head")
def build_matches_head(
    ctx: typer.Context,
    target_id: TargetOption = None,
    build: BuildOption = -1,
    all_targets: Annotated[
        bool,
        typer.Option("--all", help="Check if all enabled targets match"),
    ] = False,
    repo_path: RepoPathOption = None,
) -> None:
    """Determine if the build(s) match the current HEAD revision."""

    async def operation(client, context, formatter) -> int:
        if not all_targets:
            _require_target(target_id)
        commit = git_head(repo_path)
        report = await RevisionMatcher(BuildResolver(client)).check(
            commit.revision,
            target_id=target_id,
            number=build if build > 0 else None,
            all_targets=all_targets,
        )
        formatter.revision_report(report)
        if not report.matches:
            formatter.error("Build(s) do not match.")
            return 1
        return 0

    _run(ctx, operation)


def main() -> None:
    """Entry point for the Typer CLI."""
    app()

"""CLI entry point: repo-timeline.

Subcommands:
    repo-timeline run -p github -u octocat            # all repositories
    repo-timeline run -p gitlab -u someone -r a -r b  # explicit subset
    repo-timeline platforms                           # list supported platforms
"""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path

import click

from repotimeline.core.config import CREDENTIAL_ENV_VARS, Settings, resolve_credential
from repotimeline.core.logging import setup_logging
from repotimeline.errors import NoDataError, TimelineError
from repotimeline.models import IngestionResult, Platform, TimelineRequest
from repotimeline.progress import ProgressEvent, ProgressReporter
from repotimeline.providers import PROVIDERS
from repotimeline.schemas import TimelineReport
from repotimeline.stats import calculate_stats, format_stats
from repotimeline.timeline import generate_timeline

_PLATFORM_CHOICES = [p.value for p in Platform]


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """repo-timeline: commit activity timelines across Git hosting platforms."""
    setup_logging("DEBUG" if verbose else None)


@main.command("platforms")
def platforms() -> None:
    """List supported platforms and the variable each reads its token from."""
    for platform, provider_cls in PROVIDERS.items():
        click.echo(
            f"  {platform.value:<10} {provider_cls.display_name:<10} "
            f"{provider_cls.base_url}  (token: {CREDENTIAL_ENV_VARS[platform]})"
        )


@main.command("run")
@click.option(
    "-p", "--platform", type=click.Choice(_PLATFORM_CHOICES), default="github", show_default=True
)
@click.option("-u", "--user", "identity", required=True, help="Account name on the platform")
@click.option("-r", "--repo", "repos", multiple=True, help="Repository to include (repeatable)")
@click.option("--no-merges", is_flag=True, help="Exclude merge commits where detectable")
@click.option(
    "--format", "output_format", type=click.Choice(["text", "json"]), default="text",
    show_default=True,
)
@click.option("-o", "--output", type=click.Path(dir_okay=False), default=None,
              help="Write the JSON report to this file")
@click.option("--concurrency", type=click.IntRange(min=1), default=None,
              help="Repositories fetched at once (default: REPOTIMELINE_CONCURRENCY or 1)")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Per-request timeout in seconds (default: REPOTIMELINE_TIMEOUT or 30)")
@click.option("-q", "--quiet", is_flag=True, help="Suppress progress output")
def run(
    platform: str,
    identity: str,
    repos: tuple[str, ...],
    no_merges: bool,
    output_format: str,
    output: str | None,
    concurrency: int | None,
    timeout: float | None,
    quiet: bool,
) -> None:
    """Fetch commit history and print the aggregated timeline."""
    try:
        settings = Settings.from_env()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not identity.strip():
        click.echo("Error: --user must not be empty", err=True)
        sys.exit(1)

    request = TimelineRequest(
        platform=Platform(platform),
        identity=identity,
        repositories=list(repos),
        include_merges=not no_merges,
    )
    reporter = ProgressReporter()
    if not quiet:
        reporter.callbacks.append(_echo_progress)

    try:
        result = asyncio.run(
            _run_async(
                request,
                token=resolve_credential(request.platform),
                reporter=reporter,
                concurrency=concurrency or settings.concurrency,
                timeout=timeout or settings.timeout_s,
                max_retries=settings.max_retries,
            )
        )
    except NoDataError as e:
        click.echo(f"Error: {e}", err=True)
        for s in e.skipped:
            click.echo(f"  - {s.repository}: {s.reason}", err=True)
        sys.exit(1)
    except TimelineError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    stats = calculate_stats(result.series)
    report = TimelineReport.build(result, stats)

    if output:
        Path(output).write_text(report.model_dump_json(indent=2) + "\n", encoding="utf-8")
        if not quiet:
            click.echo(f"Report written to {output}", err=True)

    if output_format == "json":
        click.echo(report.model_dump_json(indent=2))
    else:
        _echo_text(result, format_stats(stats))


async def _run_async(
    request: TimelineRequest,
    *,
    token: str | None,
    reporter: ProgressReporter,
    concurrency: int,
    timeout: float,
    max_retries: int,
) -> IngestionResult:
    """Run with Ctrl-C mapped to a cancellation of the remaining repositories."""
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = False
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        pass
    try:
        return await generate_timeline(
            request,
            token=token,
            reporter=reporter,
            concurrency=concurrency,
            cancel=cancel,
            timeout=timeout,
            max_retries=max_retries,
        )
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _echo_progress(event: ProgressEvent) -> None:
    click.echo(event.describe(), err=True)


def _echo_text(result: IngestionResult, stats_text: str) -> None:
    click.echo(f"Total commits analyzed: {result.total_commits_analyzed}")
    click.echo(f"Repositories included: {len(result.series)}")
    if result.skipped:
        click.echo(f"Skipped repositories: {len(result.skipped)}")
        for s in result.skipped:
            click.echo(f"  - {s.repository}: {s.reason}")
    if stats_text:
        click.echo("")
        click.echo(stats_text)


if __name__ == "__main__":
    main()

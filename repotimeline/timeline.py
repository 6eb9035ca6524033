"""TimelineOrchestrator: repository discovery, per-repository commit fetch, aggregation."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from typing import Any

import structlog

from repotimeline.bucketing import group_by_date
from repotimeline.errors import NoDataError, ProviderError
from repotimeline.models import (
    DailySeries,
    IngestionResult,
    Platform,
    SkippedRepository,
    TimelineRequest,
)
from repotimeline.progress import ProgressReporter
from repotimeline.providers import GitProvider, create_provider

log = structlog.get_logger("repotimeline.timeline")

NO_COMMITS_REASON = "no commits found"
CANCELLED_REASON = "cancelled"


class RunState(str, enum.Enum):
    INIT = "init"
    RESOLVING_REPOSITORIES = "resolving_repositories"
    PROCESSING_REPOSITORY = "processing_repository"
    AGGREGATING = "aggregating"
    DONE = "done"


@dataclass
class _Outcome:
    repository: str
    series: DailySeries | None = None
    commits: int = 0
    skip: SkippedRepository | None = None
    started: bool = True


class TimelineOrchestrator:
    """Drives one run over a provider.

    Discovery failures abort the run; a failing repository only ever turns
    into a skip record. Output order always follows the input order, also
    when ``concurrency > 1``.
    """

    def __init__(
        self,
        provider: GitProvider,
        *,
        reporter: ProgressReporter | None = None,
        concurrency: int = 1,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._provider = provider
        self._reporter = reporter
        self._concurrency = concurrency
        self.state = RunState.INIT

    async def run(
        self,
        request: TimelineRequest,
        *,
        cancel: asyncio.Event | None = None,
    ) -> IngestionResult:
        """Execute the run and return the aggregated result.

        Raises :class:`ProviderError` (or a subclass) when repository
        discovery fails and :class:`NoDataError` when no repository yields
        commits.
        """
        if self.state is not RunState.INIT:
            raise RuntimeError(f"orchestrator already used (state={self.state.value})")

        identity = validate_identity(request.identity)
        platform = Platform(request.platform)
        if platform is not self._provider.platform:
            raise ValueError(
                f"request platform {platform} does not match provider {self._provider.platform}"
            )

        repositories = [r.strip() for r in request.repositories if r.strip()]
        if not repositories:
            self.state = RunState.RESOLVING_REPOSITORIES
            repositories = await self._resolve(platform, identity)

        self.state = RunState.PROCESSING_REPOSITORY
        outcomes = await self._process_all(identity, repositories, request.include_merges, cancel)

        self.state = RunState.AGGREGATING
        result = self._aggregate(platform, identity, outcomes)

        self.state = RunState.DONE
        log.info(
            "timeline.done",
            platform=str(platform),
            identity=identity,
            repositories=len(result.series),
            skipped=len(result.skipped),
            commits=result.total_commits_analyzed,
        )
        return result

    # ── states ─────────────────────────────────────────────────────────────

    async def _resolve(self, platform: Platform, identity: str) -> list[str]:
        self._emit("resolving")
        try:
            repositories = await self._provider.list_repositories(identity)
        except ProviderError as exc:
            log.error(
                "timeline.discovery_failed",
                platform=str(platform),
                identity=identity,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise

        if not repositories:
            raise NoDataError(f"No repositories found for user '{identity}' on {platform}")

        names = [r.name for r in repositories]
        log.info("timeline.repositories_resolved", platform=str(platform), count=len(names))
        self._emit("resolved", total=len(names))
        return names

    async def _process_all(
        self,
        identity: str,
        repositories: list[str],
        include_merges: bool,
        cancel: asyncio.Event | None,
    ) -> list[_Outcome]:
        total = len(repositories)

        if self._concurrency == 1:
            outcomes = []
            for index, repo in enumerate(repositories, 1):
                outcomes.append(
                    await self._process_one(identity, repo, index, total, include_merges, cancel)
                )
        else:
            sem = asyncio.Semaphore(self._concurrency)

            async def _run_one(index: int, repo: str) -> _Outcome:
                async with sem:
                    return await self._process_one(
                        identity, repo, index, total, include_merges, cancel
                    )

            # gather() keeps argument order, whatever the completion order.
            outcomes = list(
                await asyncio.gather(*(_run_one(i, r) for i, r in enumerate(repositories, 1)))
            )

        cancelled = [o.repository for o in outcomes if not o.started]
        if cancelled:
            log.warning("timeline.cancelled", remaining=len(cancelled))
            self._emit("cancelled", total=len(cancelled))
        return outcomes

    async def _process_one(
        self,
        identity: str,
        repo: str,
        index: int,
        total: int,
        include_merges: bool,
        cancel: asyncio.Event | None,
    ) -> _Outcome:
        if cancel is not None and cancel.is_set():
            return _Outcome(
                repository=repo,
                skip=SkippedRepository(repository=repo, reason=CANCELLED_REASON),
                started=False,
            )

        self._emit("processing", repository=repo, index=index, total=total)
        try:
            commits = await self._provider.list_commits(
                identity, repo, include_merges=include_merges
            )
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            log.warning(
                "timeline.repository_skipped",
                repository=repo,
                reason=reason,
                error_type=type(exc).__name__,
            )
            self._emit("repository_skipped", repository=repo, index=index, total=total, reason=reason)
            return _Outcome(repository=repo, skip=SkippedRepository(repository=repo, reason=reason))

        if not commits:
            log.info("timeline.repository_skipped", repository=repo, reason=NO_COMMITS_REASON)
            self._emit(
                "repository_skipped",
                repository=repo,
                index=index,
                total=total,
                reason=NO_COMMITS_REASON,
            )
            return _Outcome(
                repository=repo,
                skip=SkippedRepository(repository=repo, reason=NO_COMMITS_REASON),
            )

        series = group_by_date(repo, commits)
        log.info(
            "timeline.repository_done",
            repository=repo,
            commits=len(commits),
            days=len(series.labels),
        )
        self._emit(
            "repository_done", repository=repo, index=index, total=total, commits=len(commits)
        )
        return _Outcome(repository=repo, series=series, commits=len(commits))

    def _aggregate(
        self, platform: Platform, identity: str, outcomes: list[_Outcome]
    ) -> IngestionResult:
        series = [o.series for o in outcomes if o.series is not None]
        skipped = [o.skip for o in outcomes if o.skip is not None]

        if not series:
            message = _no_data_message(skipped)
            log.error("timeline.no_data", platform=str(platform), identity=identity, reason=message)
            raise NoDataError(message, skipped)

        return IngestionResult(
            platform=platform,
            identity=identity,
            series=series,
            total_commits_analyzed=sum(o.commits for o in outcomes),
            skipped=skipped,
            processed_count=sum(1 for o in outcomes if o.started),
        )

    def _emit(self, kind: Any, **fields: Any) -> None:
        if self._reporter is not None:
            self._reporter.emit(kind, **fields)


# ── helpers ───────────────────────────────────────────────────────────────


def validate_identity(identity: str | None) -> str:
    """Return the stripped identity; empty identities are rejected."""
    cleaned = (identity or "").strip()
    if not cleaned:
        raise ValueError("identity must not be empty")
    return cleaned


def _no_data_message(skipped: list[SkippedRepository]) -> str:
    empty = sum(1 for s in skipped if s.reason == NO_COMMITS_REASON)
    cancelled = sum(1 for s in skipped if s.reason == CANCELLED_REASON)
    failed = len(skipped) - empty - cancelled

    if failed:
        return (
            "No data to generate chart: all repositories failed or are empty "
            f"({failed} failed, {empty} empty)"
        )
    if cancelled:
        return "Run cancelled before any repository produced data"
    return f"No repositories with commits found ({empty} repositories were empty)"


async def generate_timeline(
    request: TimelineRequest,
    *,
    token: str | None = None,
    reporter: ProgressReporter | None = None,
    concurrency: int = 1,
    cancel: asyncio.Event | None = None,
    **provider_kwargs: Any,
) -> IngestionResult:
    """Build the provider for ``request.platform``, run once, close the provider."""
    validate_identity(request.identity)
    provider = create_provider(
        request.platform, identity=request.identity.strip(), token=token, **provider_kwargs
    )
    async with provider:
        orchestrator = TimelineOrchestrator(provider, reporter=reporter, concurrency=concurrency)
        return await orchestrator.run(request, cancel=cancel)

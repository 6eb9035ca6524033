"""Tests for the timeline orchestrator."""

from __future__ import annotations

import asyncio
from datetime import date, datetime
from unittest.mock import AsyncMock

import httpx
import pytest

from repotimeline.errors import NoDataError, NotFoundError, ProviderError, RateLimitError
from repotimeline.models import Commit, Platform, Repository, TimelineRequest
from repotimeline.progress import ProgressReporter
from repotimeline.timeline import (
    CANCELLED_REASON,
    NO_COMMITS_REASON,
    RunState,
    TimelineOrchestrator,
    generate_timeline,
    validate_identity,
)


def _commit(sha: str, ts: str) -> Commit:
    return Commit(
        id=sha, message="m", author="dev", timestamp=datetime.fromisoformat(ts)
    )


def _repo(name: str) -> Repository:
    return Repository(name=name, full_name=f"octo/{name}", url=f"https://example.com/{name}")


class _FakeProvider:
    """Serves canned commit lists; a value that is an exception is raised."""

    platform = Platform.GITHUB

    def __init__(self, commits: dict, repositories: list[Repository] | None = None, delays=None):
        self.commits = commits
        self.repositories = repositories
        self.delays = delays or {}
        self.list_repositories = AsyncMock(side_effect=self._list_repositories)
        self.calls: list[tuple[str, bool]] = []

    async def _list_repositories(self, identity):
        if isinstance(self.repositories, Exception):
            raise self.repositories
        return list(self.repositories or [])

    async def list_commits(self, identity, repository, *, include_merges=True):
        self.calls.append((repository, include_merges))
        if repository in self.delays:
            await asyncio.sleep(self.delays[repository])
        value = self.commits[repository]
        if isinstance(value, Exception):
            raise value
        return value


def _request(repositories=(), **kwargs) -> TimelineRequest:
    return TimelineRequest(
        platform=Platform.GITHUB, identity="octo", repositories=list(repositories), **kwargs
    )


# ── TimelineOrchestrator ──────────────────────────────────────────────────


class TestTimelineOrchestrator:
    @pytest.mark.anyio
    async def test_happy_path_discovers_and_aggregates(self):
        provider = _FakeProvider(
            {
                "a": [
                    _commit("1", "2024-01-01T09:00:00+00:00"),
                    _commit("2", "2024-01-01T18:00:00+00:00"),
                    _commit("3", "2024-01-02T09:00:00+00:00"),
                ],
                "b": [_commit("4", "2024-01-02T12:00:00+00:00")],
            },
            repositories=[_repo("a"), _repo("b")],
        )
        orch = TimelineOrchestrator(provider)
        result = await orch.run(_request())

        assert orch.state is RunState.DONE
        assert [s.repository for s in result.series] == ["a", "b"]
        assert result.series[0].labels == (date(2024, 1, 1), date(2024, 1, 2))
        assert result.series[0].counts == (2, 1)
        assert result.series[1].counts == (1,)
        assert result.total_commits_analyzed == 4
        assert result.skipped == []
        assert result.processed_count == 2
        assert result.labels() == [date(2024, 1, 1), date(2024, 1, 2)]
        provider.list_repositories.assert_awaited_once_with("octo")

    @pytest.mark.anyio
    async def test_discovered_repositories_with_empty_and_failing(self):
        provider = _FakeProvider(
            {
                "repo1": [
                    _commit("1", "2024-01-01T08:00:00+00:00"),
                    _commit("2", "2024-01-01T09:00:00+00:00"),
                    _commit("3", "2024-01-01T10:00:00+00:00"),
                    _commit("4", "2024-01-02T08:00:00+00:00"),
                    _commit("5", "2024-01-02T09:00:00+00:00"),
                ],
                "repo2": [],
                "repo3": ProviderError("GitHub network error (Repository 'octo/repo3')"),
            },
            repositories=[_repo("repo1"), _repo("repo2"), _repo("repo3")],
        )
        result = await TimelineOrchestrator(provider).run(_request())

        assert [s.repository for s in result.series] == ["repo1"]
        assert result.series[0].counts == (3, 2)
        assert result.total_commits_analyzed == 5
        assert [(s.repository, s.reason) for s in result.skipped] == [
            ("repo2", NO_COMMITS_REASON),
            ("repo3", "GitHub network error (Repository 'octo/repo3')"),
        ]

    @pytest.mark.anyio
    async def test_failing_and_empty_repositories_are_skipped(self):
        provider = _FakeProvider(
            {
                "x": [_commit("1", "2024-01-01T00:00:00+00:00")],
                "y": [],
                "z": ProviderError("GitHub API error: 500 Internal Server Error"),
            }
        )
        result = await TimelineOrchestrator(provider).run(_request(["x", "y", "z"]))

        assert [s.repository for s in result.series] == ["x"]
        assert [(s.repository, s.reason) for s in result.skipped] == [
            ("y", NO_COMMITS_REASON),
            ("z", "GitHub API error: 500 Internal Server Error"),
        ]
        assert result.total_commits_analyzed == 1
        assert result.processed_count == 3

    @pytest.mark.anyio
    async def test_explicit_repositories_skip_discovery(self):
        provider = _FakeProvider({"a": [_commit("1", "2024-01-01T00:00:00+00:00")]})
        await TimelineOrchestrator(provider).run(_request([" a ", "  "]))
        provider.list_repositories.assert_not_awaited()
        assert provider.calls == [("a", True)]

    @pytest.mark.anyio
    async def test_include_merges_forwarded(self):
        provider = _FakeProvider({"a": [_commit("1", "2024-01-01T00:00:00+00:00")]})
        await TimelineOrchestrator(provider).run(_request(["a"], include_merges=False))
        assert provider.calls == [("a", False)]

    @pytest.mark.anyio
    async def test_no_repositories_discovered(self):
        provider = _FakeProvider({}, repositories=[])
        with pytest.raises(NoDataError, match="No repositories found for user 'octo' on github"):
            await TimelineOrchestrator(provider).run(_request())

    @pytest.mark.anyio
    async def test_discovery_failure_propagates(self):
        provider = _FakeProvider(
            {}, repositories=NotFoundError("User 'octo' not found on GitHub", status_code=404)
        )
        with pytest.raises(NotFoundError):
            await TimelineOrchestrator(provider).run(_request())
        assert provider.calls == []

    @pytest.mark.anyio
    async def test_rate_limit_during_discovery_propagates(self):
        provider = _FakeProvider({}, repositories=RateLimitError("GitHub rate limit exceeded"))
        with pytest.raises(RateLimitError):
            await TimelineOrchestrator(provider).run(_request())

    @pytest.mark.anyio
    async def test_rate_limit_on_one_repository_is_a_skip(self):
        provider = _FakeProvider(
            {
                "a": RateLimitError("GitHub rate limit exceeded"),
                "b": [_commit("1", "2024-01-01T00:00:00+00:00")],
            }
        )
        result = await TimelineOrchestrator(provider).run(_request(["a", "b"]))
        assert result.skipped[0].reason == "GitHub rate limit exceeded"
        assert [s.repository for s in result.series] == ["b"]

    @pytest.mark.anyio
    async def test_unexpected_error_uses_type_name_when_message_empty(self):
        provider = _FakeProvider(
            {"a": KeyError(), "b": [_commit("1", "2024-01-01T00:00:00+00:00")]}
        )
        result = await TimelineOrchestrator(provider).run(_request(["a", "b"]))
        assert result.skipped[0].reason == "KeyError"

    @pytest.mark.anyio
    async def test_all_empty(self):
        provider = _FakeProvider({"a": [], "b": []})
        with pytest.raises(NoDataError, match="2 repositories were empty") as exc_info:
            await TimelineOrchestrator(provider).run(_request(["a", "b"]))
        assert [s.repository for s in exc_info.value.skipped] == ["a", "b"]

    @pytest.mark.anyio
    async def test_all_failed_or_empty(self):
        provider = _FakeProvider({"a": ProviderError("boom"), "b": []})
        with pytest.raises(NoDataError, match=r"\(1 failed, 1 empty\)"):
            await TimelineOrchestrator(provider).run(_request(["a", "b"]))

    @pytest.mark.anyio
    async def test_total_equals_sum_of_series(self):
        provider = _FakeProvider(
            {
                "a": [_commit(str(i), f"2024-01-{i:02d}T00:00:00+00:00") for i in range(1, 8)],
                "b": [_commit("x", "2024-02-01T00:00:00+00:00")] * 3,
            }
        )
        result = await TimelineOrchestrator(provider).run(_request(["a", "b"]))
        assert result.total_commits_analyzed == sum(s.total for s in result.series) == 10

    @pytest.mark.anyio
    async def test_orchestrator_is_single_use(self):
        provider = _FakeProvider({"a": [_commit("1", "2024-01-01T00:00:00+00:00")]})
        orch = TimelineOrchestrator(provider)
        await orch.run(_request(["a"]))
        with pytest.raises(RuntimeError, match="already used"):
            await orch.run(_request(["a"]))

    @pytest.mark.anyio
    async def test_blank_identity_rejected(self):
        provider = _FakeProvider({})
        request = TimelineRequest(platform=Platform.GITHUB, identity="   ")
        with pytest.raises(ValueError, match="identity"):
            await TimelineOrchestrator(provider).run(request)

    @pytest.mark.anyio
    async def test_platform_mismatch_rejected(self):
        provider = _FakeProvider({})
        request = TimelineRequest(platform=Platform.GITLAB, identity="octo")
        with pytest.raises(ValueError, match="does not match"):
            await TimelineOrchestrator(provider).run(request)

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            TimelineOrchestrator(_FakeProvider({}), concurrency=0)


# ── cancellation and concurrency ──────────────────────────────────────────


class TestCancellation:
    @pytest.mark.anyio
    async def test_cancel_skips_remaining_repositories(self):
        cancel = asyncio.Event()

        def stop_after_first(event):
            if event.kind == "repository_done":
                cancel.set()

        reporter = ProgressReporter(stop_after_first)
        provider = _FakeProvider(
            {name: [_commit("1", "2024-01-01T00:00:00+00:00")] for name in ("a", "b", "c")}
        )
        result = await TimelineOrchestrator(provider, reporter=reporter).run(
            _request(["a", "b", "c"]), cancel=cancel
        )

        assert [s.repository for s in result.series] == ["a"]
        assert [(s.repository, s.reason) for s in result.skipped] == [
            ("b", CANCELLED_REASON),
            ("c", CANCELLED_REASON),
        ]
        assert result.processed_count == 1
        assert [c[0] for c in provider.calls] == ["a"]
        assert reporter.events[-1].kind == "cancelled"
        assert reporter.events[-1].total == 2

    @pytest.mark.anyio
    async def test_cancel_before_start(self):
        cancel = asyncio.Event()
        cancel.set()
        provider = _FakeProvider({"a": [_commit("1", "2024-01-01T00:00:00+00:00")]})
        with pytest.raises(NoDataError, match="cancelled"):
            await TimelineOrchestrator(provider).run(_request(["a"]), cancel=cancel)
        assert provider.calls == []


class TestConcurrency:
    @pytest.mark.anyio
    async def test_output_follows_input_order(self):
        provider = _FakeProvider(
            {
                "slow": [_commit("1", "2024-01-01T00:00:00+00:00")],
                "medium": [_commit("2", "2024-01-02T00:00:00+00:00")],
                "fast": [_commit("3", "2024-01-03T00:00:00+00:00")],
            },
            delays={"slow": 0.05, "medium": 0.02},
        )
        result = await TimelineOrchestrator(provider, concurrency=3).run(
            _request(["slow", "medium", "fast"])
        )
        assert [s.repository for s in result.series] == ["slow", "medium", "fast"]

    @pytest.mark.anyio
    async def test_failure_isolated_under_concurrency(self):
        provider = _FakeProvider(
            {
                "a": [_commit("1", "2024-01-01T00:00:00+00:00")],
                "b": ProviderError("boom"),
                "c": [_commit("2", "2024-01-02T00:00:00+00:00")],
            }
        )
        result = await TimelineOrchestrator(provider, concurrency=2).run(_request(["a", "b", "c"]))
        assert [s.repository for s in result.series] == ["a", "c"]
        assert [s.repository for s in result.skipped] == ["b"]

    @pytest.mark.anyio
    async def test_semaphore_bounds_in_flight(self):
        in_flight = 0
        peak = 0

        class _Counting(_FakeProvider):
            async def list_commits(self, identity, repository, *, include_merges=True):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1
                return [_commit(repository, "2024-01-01T00:00:00+00:00")]

        names = [f"r{i}" for i in range(6)]
        await TimelineOrchestrator(_Counting({}), concurrency=2).run(_request(names))
        assert peak == 2


# ── progress ──────────────────────────────────────────────────────────────


class TestProgressEvents:
    @pytest.mark.anyio
    async def test_event_sequence(self):
        reporter = ProgressReporter()
        provider = _FakeProvider(
            {"a": [_commit("1", "2024-01-01T00:00:00+00:00")], "b": []},
            repositories=[_repo("a"), _repo("b")],
        )
        await TimelineOrchestrator(provider, reporter=reporter).run(_request())

        kinds = [e.kind for e in reporter.events]
        assert kinds == [
            "resolving",
            "resolved",
            "processing",
            "repository_done",
            "processing",
            "repository_skipped",
        ]
        processing = [e for e in reporter.events if e.kind == "processing"]
        assert [(e.repository, e.index, e.total) for e in processing] == [("a", 1, 2), ("b", 2, 2)]
        assert reporter.events[3].commits == 1
        assert reporter.events[5].reason == NO_COMMITS_REASON

    @pytest.mark.anyio
    async def test_failing_callback_does_not_break_run(self):
        def broken(event):
            raise RuntimeError("ui went away")

        provider = _FakeProvider({"a": [_commit("1", "2024-01-01T00:00:00+00:00")]})
        result = await TimelineOrchestrator(provider, reporter=ProgressReporter(broken)).run(
            _request(["a"])
        )
        assert result.total_commits_analyzed == 1


# ── generate_timeline ─────────────────────────────────────────────────────


class TestGenerateTimeline:
    def test_validate_identity(self):
        assert validate_identity("  octo ") == "octo"
        with pytest.raises(ValueError):
            validate_identity("")

    @pytest.mark.anyio
    async def test_end_to_end_over_http(self):
        def handler(request):
            path = request.url.path
            page = request.url.params.get("page")
            if path == "/users/octo/repos":
                if page == "1":
                    return httpx.Response(
                        200,
                        json=[
                            {"name": "full", "full_name": "octo/full", "html_url": "u",
                             "size": 5, "fork": False},
                            {"name": "bare", "full_name": "octo/bare", "html_url": "u",
                             "size": 5, "fork": False},
                        ],
                    )
                return httpx.Response(200, json=[])
            if path == "/repos/octo/full/commits":
                if page == "1":
                    return httpx.Response(
                        200,
                        json=[
                            {"sha": "a", "commit": {"message": "m", "author": {
                                "name": "dev", "date": "2024-03-01T10:00:00Z"}}},
                            {"sha": "b", "commit": {"message": "m", "author": {
                                "name": "dev", "date": "2024-03-01T11:00:00Z"}}},
                        ],
                    )
                return httpx.Response(200, json=[])
            if path == "/repos/octo/bare/commits":
                return httpx.Response(409, json={"message": "Git Repository is empty."})
            return httpx.Response(404)

        result = await generate_timeline(
            _request(), transport=httpx.MockTransport(handler)
        )

        assert [s.repository for s in result.series] == ["full"]
        assert result.series[0].counts == (2,)
        assert [(s.repository, s.reason) for s in result.skipped] == [("bare", NO_COMMITS_REASON)]
        assert result.series[0].labels == (date(2024, 3, 1),)
        assert result.platform is Platform.GITHUB

    @pytest.mark.anyio
    async def test_blank_identity_never_builds_provider(self):
        with pytest.raises(ValueError):
            await generate_timeline(TimelineRequest(platform=Platform.GITHUB, identity=" "))

    @pytest.mark.anyio
    async def test_invalid_discovery_response_is_provider_error(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, text="<html>maintenance</html>")
        )
        with pytest.raises(ProviderError, match="GitHub returned an invalid response"):
            await generate_timeline(_request(), transport=transport)

    @pytest.mark.anyio
    async def test_invalid_commit_response_is_a_skip(self):
        def handler(request):
            if request.url.path == "/repos/octo/bad/commits":
                return httpx.Response(200, text="<html>maintenance</html>")
            if request.url.params.get("page") == "1":
                return httpx.Response(
                    200,
                    json=[{"sha": "a", "commit": {"message": "m", "author": {
                        "name": "dev", "date": "2024-03-01T10:00:00Z"}}}],
                )
            return httpx.Response(200, json=[])

        result = await generate_timeline(
            _request(["bad", "good"]), transport=httpx.MockTransport(handler)
        )
        assert [s.repository for s in result.series] == ["good"]
        assert result.skipped[0].reason == (
            "GitHub returned an invalid response (Repository 'octo/bad')"
        )

    @pytest.mark.anyio
    async def test_unknown_user(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        with pytest.raises(NotFoundError, match="User 'ghost' not found on GitHub"):
            await generate_timeline(
                TimelineRequest(platform=Platform.GITHUB, identity="ghost"), transport=transport
            )


"""GitHub REST API provider."""

from __future__ import annotations

from typing import Any

import structlog

from repotimeline.models import Commit, Platform, Repository
from repotimeline.providers.base import GitProvider, parse_timestamp, qualified_name

log = structlog.get_logger("repotimeline.provider")

# GitHub answers 409 Conflict for the commit list of an empty repository.
_EMPTY_REPOSITORY_STATUS = 409


class GitHubProvider(GitProvider):
    platform = Platform.GITHUB
    display_name = "GitHub"
    base_url = "https://api.github.com"
    rate_limit_statuses = frozenset({403, 429})

    def _build_headers(self) -> dict[str, str]:
        headers = super()._build_headers()
        headers["Accept"] = "application/vnd.github+json"
        headers["X-GitHub-Api-Version"] = "2022-11-28"
        if self._token:
            headers["Authorization"] = f"token {self._token}"
        return headers

    async def list_repositories(self, identity: str) -> list[Repository]:
        """GET /users/{identity}/repos: forks and empty repositories excluded."""
        items = await self._paginate(
            f"/users/{identity}/repos",
            {"per_page": 100},
            context=f"User '{identity}'",
        )
        return [
            _to_repository(item)
            for item in items
            if not item.get("fork") and (item.get("size") or 0) > 0
        ]

    async def list_commits(
        self,
        identity: str,
        repository: str,
        *,
        include_merges: bool = True,
    ) -> list[Commit]:
        """GET /repos/{owner}/{repo}/commits: 409 means an empty repository."""
        full_name = qualified_name(identity, repository)
        items = await self._paginate(
            f"/repos/{full_name}/commits",
            {"per_page": 100},
            context=f"Repository '{full_name}'",
            empty_statuses=(_EMPTY_REPOSITORY_STATUS,),
        )

        commits: list[Commit] = []
        for item in items:
            if not include_merges and len(item.get("parents") or []) > 1:
                continue
            commit = _to_commit(item)
            if commit is None:
                log.debug("provider.commit_without_date", platform="github", sha=item.get("sha"))
                continue
            commits.append(commit)
        return commits


def _to_repository(item: dict[str, Any]) -> Repository:
    return Repository(
        name=item["name"],
        full_name=item.get("full_name") or item["name"],
        url=item.get("html_url") or "",
        description=item.get("description"),
        default_branch=item.get("default_branch") or "main",
    )


def _to_commit(item: dict[str, Any]) -> Commit | None:
    detail = item.get("commit") or {}
    author = detail.get("author") or {}
    timestamp = parse_timestamp(author.get("date"))
    if timestamp is None:
        return None
    return Commit(
        id=item.get("sha", ""),
        message=detail.get("message", ""),
        author=author.get("name") or "Unknown",
        timestamp=timestamp,
    )

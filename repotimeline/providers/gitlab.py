"""GitLab REST API (v4) provider."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog

from repotimeline.errors import NotFoundError
from repotimeline.models import Commit, Platform, Repository
from repotimeline.providers.base import GitProvider, parse_timestamp, qualified_name

log = structlog.get_logger("repotimeline.provider")


class GitLabProvider(GitProvider):
    platform = Platform.GITLAB
    display_name = "GitLab"
    base_url = "https://gitlab.com/api/v4"

    def _build_headers(self) -> dict[str, str]:
        headers = super()._build_headers()
        if self._token:
            headers["PRIVATE-TOKEN"] = self._token
        return headers

    def _error_message(self, response: httpx.Response, context: str) -> str:
        if response.status_code == 401:
            return "GitLab authentication failed; check the configured access token"
        return super()._error_message(response, context)

    async def resolve_user_id(self, identity: str) -> int:
        """GET /users?username=: the projects endpoint wants the numeric id."""
        context = f"User '{identity}'"
        response = await self._request("/users", {"username": identity}, context=context)
        users = self._decode(response, context) if response is not None else []
        if not users:
            raise NotFoundError(
                f"{context} not found on {self.display_name}",
                platform=str(self.platform),
                status_code=404,
            )
        return int(users[0]["id"])

    async def list_repositories(self, identity: str) -> list[Repository]:
        """GET /users/{id}/projects: projects with zero commits excluded.

        Projects without a ``statistics`` block (anonymous callers) are kept,
        since their commit count is unknown rather than zero.
        """
        user_id = await self.resolve_user_id(identity)
        items = await self._paginate(
            f"/users/{user_id}/projects",
            {"per_page": 100, "statistics": "true"},
            context=f"User '{identity}'",
        )
        return [_to_repository(item) for item in items if _has_commits(item)]

    async def list_commits(
        self,
        identity: str,
        repository: str,
        *,
        include_merges: bool = True,
    ) -> list[Commit]:
        """GET /projects/{owner%2Frepo}/repository/commits."""
        full_name = qualified_name(identity, repository)
        project_path = quote(full_name, safe="")
        items = await self._paginate(
            f"/projects/{project_path}/repository/commits",
            {"per_page": 100},
            context=f"Repository '{full_name}'",
        )

        commits: list[Commit] = []
        for item in items:
            if not include_merges and len(item.get("parent_ids") or []) > 1:
                continue
            timestamp = parse_timestamp(item.get("committed_date") or item.get("created_at"))
            if timestamp is None:
                log.debug("provider.commit_without_date", platform="gitlab", sha=item.get("id"))
                continue
            commits.append(
                Commit(
                    id=item.get("id", ""),
                    message=item.get("message", ""),
                    author=item.get("author_name") or "Unknown",
                    timestamp=timestamp,
                )
            )
        return commits


def _has_commits(item: dict[str, Any]) -> bool:
    statistics = item.get("statistics")
    if statistics is None:
        return True
    return (statistics.get("commit_count") or 0) > 0


def _to_repository(item: dict[str, Any]) -> Repository:
    return Repository(
        name=item["path"],
        full_name=item.get("path_with_namespace") or item["path"],
        url=item.get("web_url") or "",
        description=item.get("description"),
        default_branch=item.get("default_branch") or "main",
    )

"""SourceHut (git.sr.ht) legacy REST API provider.

The commit log is fetched with a single call, and the log entries carry no
parent information, so merge commits cannot be told apart here.
"""

from __future__ import annotations

from typing import Any

import structlog

from repotimeline.models import Commit, Platform, Repository
from repotimeline.providers.base import GitProvider, parse_timestamp, qualified_name

log = structlog.get_logger("repotimeline.provider")


def _canonical_owner(identity: str) -> str:
    """SourceHut user paths are ``~name``; accept the name with or without it."""
    return identity if identity.startswith("~") else f"~{identity}"


class SourceHutProvider(GitProvider):
    platform = Platform.SOURCEHUT
    display_name = "SourceHut"
    base_url = "https://git.sr.ht/api"

    def _build_headers(self) -> dict[str, str]:
        headers = super()._build_headers()
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _page_items(self, body: Any) -> list[dict[str, Any]]:
        if not isinstance(body, dict):
            return []
        return body.get("results") or []

    async def list_repositories(self, identity: str) -> list[Repository]:
        """GET /api/~{owner}/repos: repositories without commits excluded."""
        owner = _canonical_owner(identity)
        context = f"User '{identity}'"
        response = await self._request(f"/{owner}/repos", context=context)
        items = self._page_items(self._decode(response, context)) if response is not None else []
        return [
            _to_repository(owner, item)
            for item in items
            if (item.get("commits_count") or 0) > 0
        ]

    async def list_commits(
        self,
        identity: str,
        repository: str,
        *,
        include_merges: bool = True,
    ) -> list[Commit]:
        """GET /api/~{owner}/repos/{repo}/log: one call, no pagination.

        ``include_merges`` is accepted for contract parity and ignored.
        """
        owner, _, name = qualified_name(identity, repository).rpartition("/")
        owner = _canonical_owner(owner)
        context = f"Repository '{owner}/{name}'"
        response = await self._request(f"/{owner}/repos/{name}/log", context=context)
        items = self._page_items(self._decode(response, context)) if response is not None else []

        commits: list[Commit] = []
        for item in items:
            timestamp = parse_timestamp(item.get("timestamp"))
            if timestamp is None:
                log.debug("provider.commit_without_date", platform="sourcehut", sha=item.get("id"))
                continue
            author = item.get("author") or {}
            commits.append(
                Commit(
                    id=item.get("id", ""),
                    message=item.get("message", ""),
                    author=author.get("name") or "Unknown",
                    timestamp=timestamp,
                )
            )
        return commits


def _to_repository(owner: str, item: dict[str, Any]) -> Repository:
    name = item["name"]
    return Repository(
        name=name,
        full_name=f"{owner}/{name}",
        url=f"https://git.sr.ht/{owner}/{name}",
        description=item.get("description"),
        default_branch=item.get("default_branch") or "master",
    )

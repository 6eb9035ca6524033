"""Bitbucket Cloud REST API (2.0) provider.

Bitbucket paginates with an opaque ``next`` URL in each response body rather
than page numbers, so the cursor hooks are overridden here.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from repotimeline.models import Commit, Platform, Repository
from repotimeline.providers.base import (
    GitProvider,
    PageCursor,
    parse_timestamp,
    qualified_name,
)

log = structlog.get_logger("repotimeline.provider")


class BitbucketProvider(GitProvider):
    platform = Platform.BITBUCKET
    display_name = "Bitbucket"
    base_url = "https://api.bitbucket.org/2.0"

    def __init__(self, token: str | None = None, *, username: str | None = None, **kwargs: Any) -> None:
        # App passwords authenticate with HTTP Basic, so the account name is needed too.
        self._username = username
        super().__init__(token, **kwargs)

    def _build_auth(self) -> httpx.Auth | None:
        if self._token and self._username:
            return httpx.BasicAuth(self._username, self._token)
        if self._token:
            log.warning(
                "provider.credential_ignored",
                platform=str(self.platform),
                reason="app password needs a username",
            )
        return None

    def _first_page(self, path: str, params: dict[str, Any] | None) -> PageCursor:
        return path, dict(params or {})

    def _next_page(self, cursor: PageCursor, body: Any) -> PageCursor | None:
        next_url = body.get("next") if isinstance(body, dict) else None
        if not next_url:
            return None
        # The next link already carries the query string.
        return next_url, None

    def _page_items(self, body: Any) -> list[dict[str, Any]]:
        if not isinstance(body, dict):
            return []
        return body.get("values") or []

    async def list_repositories(self, identity: str) -> list[Repository]:
        """GET /repositories/{workspace}: empty repositories excluded."""
        items = await self._paginate(
            f"/repositories/{identity}",
            {"pagelen": 100},
            context=f"User '{identity}'",
        )
        return [_to_repository(item) for item in items if (item.get("size") or 0) > 0]

    async def list_commits(
        self,
        identity: str,
        repository: str,
        *,
        include_merges: bool = True,
    ) -> list[Commit]:
        """GET /repositories/{workspace}/{slug}/commits, following ``next``."""
        full_name = qualified_name(identity, repository)
        items = await self._paginate(
            f"/repositories/{full_name}/commits",
            {"pagelen": 100},
            context=f"Repository '{full_name}'",
        )

        commits: list[Commit] = []
        for item in items:
            if not include_merges and len(item.get("parents") or []) > 1:
                continue
            timestamp = parse_timestamp(item.get("date"))
            if timestamp is None:
                log.debug("provider.commit_without_date", platform="bitbucket", sha=item.get("hash"))
                continue
            commits.append(
                Commit(
                    id=item.get("hash", ""),
                    message=item.get("message", ""),
                    author=_author_name(item.get("author") or {}),
                    timestamp=timestamp,
                )
            )
        return commits


def _author_name(author: dict[str, Any]) -> str:
    user = author.get("user") or {}
    return user.get("display_name") or author.get("raw") or "Unknown"


def _to_repository(item: dict[str, Any]) -> Repository:
    full_name = item.get("full_name") or item["slug"]
    links = item.get("links") or {}
    html = links.get("html") or {}
    mainbranch = item.get("mainbranch") or {}
    return Repository(
        name=item["slug"],
        full_name=full_name,
        url=html.get("href") or f"https://bitbucket.org/{full_name}",
        description=item.get("description"),
        default_branch=mainbranch.get("name") or "master",
    )

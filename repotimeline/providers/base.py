"""Provider contract plus the shared request classification and page walker."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from repotimeline.errors import NotFoundError, ProviderError, RateLimitError
from repotimeline.models import Commit, Platform, Repository

log = structlog.get_logger("repotimeline.provider")

# Hard cap on pages walked per listing, whatever the platform reports.
MAX_PAGES = 10
DEFAULT_TIMEOUT = 30.0  # seconds
DEFAULT_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds
_USER_AGENT = "repo-timeline"

PageCursor = tuple[str, dict[str, Any] | None]


class GitProvider(ABC):
    """Uniform repository / commit listing over one hosting platform.

    Subclasses supply the endpoints, the response mapping and, where the
    platform differs, the pagination cursor. Request classification and the
    bounded page walk live here so every variant terminates the same way:

    1. an HTTP failure is classified and raised,
    2. a page with zero items ends the walk,
    3. reaching ``max_pages`` ends the walk (partial history is fine).
    """

    platform: Platform
    display_name: str
    base_url: str
    rate_limit_statuses: frozenset[int] = frozenset({429})

    def __init__(
        self,
        token: str | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_pages: int = MAX_PAGES,
        max_retries: int = DEFAULT_MAX_RETRIES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if max_pages < 1:
            raise ValueError(f"max_pages must be >= 1, got {max_pages}")
        self._token = token or None
        self.max_pages = min(max_pages, MAX_PAGES)
        self.max_retries = max(max_retries, 1)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._build_headers(),
            auth=self._build_auth(),
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    # ── contract ───────────────────────────────────────────────────────────

    @abstractmethod
    async def list_repositories(self, identity: str) -> list[Repository]:
        """Return the identity's repositories in native listing order."""
        ...

    @abstractmethod
    async def list_commits(
        self,
        identity: str,
        repository: str,
        *,
        include_merges: bool = True,
    ) -> list[Commit]:
        """Return the repository's commits; ``[]`` for an empty repository."""
        ...

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitProvider:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── hooks ──────────────────────────────────────────────────────────────

    def _build_headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "User-Agent": _USER_AGENT}

    def _build_auth(self) -> httpx.Auth | None:
        return None

    def _first_page(self, path: str, params: dict[str, Any] | None) -> PageCursor:
        query = dict(params or {})
        query["page"] = 1
        return path, query

    def _next_page(self, cursor: PageCursor, body: Any) -> PageCursor | None:
        url, query = cursor
        query = dict(query or {})
        query["page"] = int(query.get("page", 1)) + 1
        return url, query

    def _page_items(self, body: Any) -> list[dict[str, Any]]:
        return body if isinstance(body, list) else []

    def _error_message(self, response: httpx.Response, context: str) -> str:
        return (
            f"{self.display_name} API error: {response.status_code} "
            f"{response.reason_phrase} ({context})"
        )

    # ── page walker ────────────────────────────────────────────────────────

    async def _paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        context: str,
        empty_statuses: Iterable[int] = (),
    ) -> list[dict[str, Any]]:
        """Walk pages from *path* and return the concatenated items."""
        empty = frozenset(empty_statuses)
        results: list[dict[str, Any]] = []
        cursor: PageCursor | None = self._first_page(path, params)
        pages = 0

        while cursor is not None and pages < self.max_pages:
            url, query = cursor
            response = await self._request(url, query, context=context, empty_statuses=empty)
            pages += 1
            if response is None:
                break
            body = self._decode(response, context)
            items = self._page_items(body)
            if not items:
                break
            results.extend(items)
            cursor = self._next_page(cursor, body)
        else:
            if cursor is not None:
                log.debug(
                    "provider.page_cap_reached",
                    platform=str(self.platform),
                    context=context,
                    pages=pages,
                    items=len(results),
                )

        return results

    # ── request classification ─────────────────────────────────────────────

    async def _request(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        *,
        context: str,
        empty_statuses: Iterable[int] = (),
    ) -> httpx.Response | None:
        """GET with classification; ``None`` means the platform signalled "empty".

        5xx responses, timeouts and transport errors are retried with
        exponential backoff; anything else is classified immediately.
        """
        empty = frozenset(empty_statuses)
        last_exc: ProviderError | None = None
        for attempt in range(self.max_retries):
            try:
                response = await self._client.get(url, params=params)
            except httpx.TimeoutException:
                log.warning(
                    "provider.timeout",
                    platform=str(self.platform),
                    url=url,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                )
                last_exc = ProviderError(
                    f"{self.display_name} request timed out ({context})",
                    platform=str(self.platform),
                )
            except httpx.TransportError as exc:
                log.warning(
                    "provider.network_error",
                    platform=str(self.platform),
                    url=url,
                    error=str(exc),
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                )
                last_exc = ProviderError(
                    f"{self.display_name} network error ({context}): {exc}",
                    platform=str(self.platform),
                )
            else:
                if response.status_code in empty:
                    return None
                if response.status_code < 500:
                    self._raise_for_status(response, context)
                    return response
                log.warning(
                    "provider.server_error",
                    platform=str(self.platform),
                    url=url,
                    status=response.status_code,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                )
                last_exc = ProviderError(
                    self._error_message(response, context),
                    platform=str(self.platform),
                    status_code=response.status_code,
                )

            if attempt < self.max_retries - 1:
                await asyncio.sleep(_RETRY_BASE_DELAY * (2**attempt))

        raise last_exc  # type: ignore[misc]

    def _decode(self, response: httpx.Response, context: str) -> Any:
        try:
            return response.json()
        except ValueError:
            log.warning(
                "provider.invalid_response",
                platform=str(self.platform),
                url=str(response.url),
                status=response.status_code,
                content_type=response.headers.get("content-type"),
            )
            raise ProviderError(
                f"{self.display_name} returned an invalid response ({context})",
                platform=str(self.platform),
                status_code=response.status_code,
            ) from None

    def _raise_for_status(self, response: httpx.Response, context: str) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 404:
            raise NotFoundError(
                f"{context} not found on {self.display_name}",
                platform=str(self.platform),
                status_code=status,
            )
        if status in self.rate_limit_statuses:
            raise self._rate_limit_error(response)
        raise ProviderError(
            self._error_message(response, context),
            platform=str(self.platform),
            status_code=status,
        )

    def _rate_limit_error(self, response: httpx.Response) -> RateLimitError:
        headers = response.headers
        remaining = _header_int(headers, "X-RateLimit-Remaining", "RateLimit-Remaining")
        limit = _header_int(headers, "X-RateLimit-Limit", "RateLimit-Limit")
        reset = _header_int(headers, "X-RateLimit-Reset", "RateLimit-Reset")
        retry_after = _header_int(headers, "Retry-After")
        reset_at = datetime.fromtimestamp(reset, tz=timezone.utc) if reset is not None else None

        details: list[str] = []
        if remaining is not None:
            if limit is not None:
                details.append(f"{remaining} of {limit} requests remaining")
            else:
                details.append(f"{remaining} requests remaining")
        if reset_at is not None:
            details.append(f"resets at {reset_at:%H:%M:%S} UTC")
        elif retry_after is not None:
            details.append(f"retry after {retry_after}s")

        message = f"{self.display_name} rate limit exceeded"
        if details:
            message += f" ({', '.join(details)})"
        if self._token is None:
            message += "; configure an access token to raise the limit"

        log.warning(
            "provider.rate_limited",
            platform=str(self.platform),
            status=response.status_code,
            remaining=remaining,
            reset_at=reset_at.isoformat() if reset_at else None,
        )
        return RateLimitError(
            message,
            platform=str(self.platform),
            status_code=response.status_code,
            remaining=remaining,
            limit=limit,
            reset_at=reset_at,
            retry_after=retry_after,
        )


# ── helpers ───────────────────────────────────────────────────────────────


def qualified_name(identity: str, repository: str) -> str:
    """``owner/name`` for *repository*, unless it is already qualified."""
    if "/" in repository:
        return repository
    return f"{identity}/{repository}"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp into UTC, returning None on failure.

    Naive values are taken to be UTC.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _header_int(headers: httpx.Headers, *names: str) -> int | None:
    for name in names:
        value = headers.get(name)
        if value is None:
            continue
        try:
            return int(value)
        except (ValueError, TypeError):
            continue
    return None

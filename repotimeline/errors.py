"""Error taxonomy for repository discovery, commit fetching and aggregation."""

from __future__ import annotations

from datetime import datetime

from repotimeline.models import SkippedRepository


class TimelineError(Exception):
    """Base exception for all timeline errors."""


class ProviderError(TimelineError):
    """Any HTTP / network failure talking to a hosting platform."""

    def __init__(
        self,
        message: str,
        *,
        platform: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.platform = platform
        self.status_code = status_code
        super().__init__(message)


class NotFoundError(ProviderError):
    """The identity (or repository) does not exist on the platform (-> HTTP 404)."""


class RateLimitError(ProviderError):
    """The platform signalled quota exhaustion (-> HTTP 403/429)."""

    def __init__(
        self,
        message: str,
        *,
        platform: str | None = None,
        status_code: int | None = None,
        remaining: int | None = None,
        limit: int | None = None,
        reset_at: datetime | None = None,
        retry_after: int | None = None,
    ) -> None:
        self.remaining = remaining
        self.limit = limit
        self.reset_at = reset_at
        self.retry_after = retry_after
        super().__init__(message, platform=platform, status_code=status_code)


class NoDataError(TimelineError):
    """No repository produced a usable series."""

    def __init__(self, message: str, skipped: list[SkippedRepository] | None = None) -> None:
        self.skipped = list(skipped or [])
        super().__init__(message)

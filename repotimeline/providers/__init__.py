"""Platform providers: one GitProvider implementation per Platform."""

from __future__ import annotations

from typing import Any

from repotimeline.models import Platform
from repotimeline.providers.base import MAX_PAGES, GitProvider
from repotimeline.providers.bitbucket import BitbucketProvider
from repotimeline.providers.github import GitHubProvider
from repotimeline.providers.gitlab import GitLabProvider
from repotimeline.providers.sourcehut import SourceHutProvider

PROVIDERS: dict[Platform, type[GitProvider]] = {
    Platform.GITHUB: GitHubProvider,
    Platform.GITLAB: GitLabProvider,
    Platform.BITBUCKET: BitbucketProvider,
    Platform.SOURCEHUT: SourceHutProvider,
}


def create_provider(
    platform: Platform | str,
    *,
    identity: str | None = None,
    token: str | None = None,
    **kwargs: Any,
) -> GitProvider:
    """Instantiate the provider registered for *platform*.

    *identity* is only used by Bitbucket, whose app passwords authenticate
    as ``identity:password``.
    """
    try:
        key = Platform(platform)
    except ValueError:
        raise ValueError(f"unsupported platform: {platform!r}") from None
    provider_cls = PROVIDERS[key]
    if provider_cls is BitbucketProvider:
        return BitbucketProvider(token, username=identity, **kwargs)
    return provider_cls(token, **kwargs)


__all__ = [
    "MAX_PAGES",
    "PROVIDERS",
    "BitbucketProvider",
    "GitHubProvider",
    "GitLabProvider",
    "GitProvider",
    "SourceHutProvider",
    "create_provider",
]

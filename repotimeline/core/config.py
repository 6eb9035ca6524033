"""Runtime settings and credential lookup, read from the environment.

This is the only place that touches process state; providers receive their
token and limits explicitly.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from repotimeline.models import Platform

# One well-known variable per platform.
CREDENTIAL_ENV_VARS: dict[Platform, str] = {
    Platform.GITHUB: "GITHUB_TOKEN",
    Platform.GITLAB: "GITLAB_TOKEN",
    Platform.BITBUCKET: "BITBUCKET_APP_PASSWORD",
    Platform.SOURCEHUT: "SOURCEHUT_TOKEN",
}

_ENV_TIMEOUT = "REPOTIMELINE_TIMEOUT"
_ENV_MAX_RETRIES = "REPOTIMELINE_MAX_RETRIES"
_ENV_CONCURRENCY = "REPOTIMELINE_CONCURRENCY"


@dataclass(frozen=True)
class Settings:
    timeout_s: float = 30.0
    max_retries: int = 3
    concurrency: int = 1

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            timeout_s=_positive(env, _ENV_TIMEOUT, float, cls.timeout_s),
            max_retries=_positive(env, _ENV_MAX_RETRIES, int, cls.max_retries),
            concurrency=_positive(env, _ENV_CONCURRENCY, int, cls.concurrency),
        )


def resolve_credential(
    platform: Platform | str,
    environ: Mapping[str, str] | None = None,
) -> str | None:
    """Return the platform's token from the environment, or None (anonymous)."""
    env = os.environ if environ is None else environ
    value = env.get(CREDENTIAL_ENV_VARS[Platform(platform)], "").strip()
    return value or None


def _positive(env: Mapping[str, str], key: str, cast: type, default: float | int) -> float | int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {raw!r}")
    return value

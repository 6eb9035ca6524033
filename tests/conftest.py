"""Shared pytest fixtures for repotimeline tests: no network needed."""

from __future__ import annotations

import pytest


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"

"""Progress reporting for a timeline run."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

import structlog

log = structlog.get_logger("repotimeline.progress")

EventKind = Literal[
    "resolving",
    "resolved",
    "processing",
    "repository_done",
    "repository_skipped",
    "cancelled",
]


@dataclass(frozen=True)
class ProgressEvent:
    kind: EventKind
    repository: str | None = None
    index: int | None = None  # 1-based
    total: int | None = None
    commits: int | None = None
    reason: str | None = None
    at: float = field(default_factory=time.monotonic)

    def describe(self) -> str:
        if self.kind == "resolving":
            return "Fetching repositories..."
        if self.kind == "resolved":
            return f"Found {self.total} repositories"
        if self.kind == "processing":
            return f"Processing {self.repository} ({self.index}/{self.total})"
        if self.kind == "repository_done":
            return f"{self.repository}: {self.commits} commits"
        if self.kind == "repository_skipped":
            return f"Skipped {self.repository}: {self.reason}"
        return "Run cancelled"


class ProgressReporter:
    """Fan progress events out to callbacks.

    Callbacks must not block; a failing callback never affects the run.
    """

    def __init__(self, *callbacks: Callable[[ProgressEvent], None]) -> None:
        self.callbacks: list[Callable[[ProgressEvent], None]] = list(callbacks)
        self.events: list[ProgressEvent] = []

    def emit(self, kind: EventKind, **fields: Any) -> ProgressEvent:
        event = ProgressEvent(kind=kind, **fields)
        self.events.append(event)
        for cb in self.callbacks:
            try:
                cb(event)
            except Exception:
                log.debug("progress.callback_error", kind=kind, exc_info=True)
        return event

"""Data models for the timeline pipeline.

Pure data structures: no network or I/O dependencies.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime


class Platform(str, enum.Enum):
    """Supported Git hosting platforms."""

    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"
    SOURCEHUT = "sourcehut"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Repository:
    name: str
    full_name: str
    url: str
    description: str | None = None
    default_branch: str = "main"


@dataclass(frozen=True)
class Commit:
    """A single commit as returned by a provider.

    ``timestamp`` is always timezone-aware UTC.
    """

    id: str
    message: str
    author: str
    timestamp: datetime


@dataclass(frozen=True)
class DailySeries:
    """Commit counts per UTC calendar day for one repository.

    Days without commits are omitted, not zero-filled.
    """

    repository: str
    labels: tuple[date, ...]
    counts: tuple[int, ...]

    def __post_init__(self) -> None:
        if len(self.labels) != len(self.counts):
            raise ValueError(
                f"labels/counts length mismatch for {self.repository}: "
                f"{len(self.labels)} != {len(self.counts)}"
            )
        for prev, cur in zip(self.labels, self.labels[1:]):
            if cur <= prev:
                raise ValueError(f"labels must be strictly ascending ({prev} >= {cur})")
        if any(c < 1 for c in self.counts):
            raise ValueError("counts must be >= 1")

    @property
    def total(self) -> int:
        return sum(self.counts)


@dataclass(frozen=True)
class SkippedRepository:
    repository: str
    reason: str


@dataclass(frozen=True)
class TimelineRequest:
    """Input of one run, as handed over by the CLI / config layer."""

    platform: Platform
    identity: str
    repositories: list[str] = field(default_factory=list)
    include_merges: bool = True


@dataclass
class IngestionResult:
    """Output of one run: handed to statistics and renderers."""

    platform: Platform
    identity: str
    series: list[DailySeries] = field(default_factory=list)
    total_commits_analyzed: int = 0
    skipped: list[SkippedRepository] = field(default_factory=list)
    processed_count: int = 0

    def labels(self) -> list[date]:
        """Sorted union of every series' labels (recomputed on each call)."""
        from repotimeline.bucketing import merge_labels

        return merge_labels(self.series)


@dataclass(frozen=True)
class RepositoryTotal:
    name: str
    commits: int


@dataclass(frozen=True)
class DateRange:
    start: date
    end: date
    days: int


@dataclass(frozen=True)
class Statistics:
    total_commits: int
    repository_count: int
    date_range: DateRange | None
    top_repositories: list[RepositoryTotal]
    average_commits_per_repository: int
    average_commits_per_day: float

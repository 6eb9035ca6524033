"""repo-timeline: multi-platform commit ingestion and per-day aggregation."""

from repotimeline.bucketing import align_series, group_by_date, merge_labels
from repotimeline.errors import (
    NoDataError,
    NotFoundError,
    ProviderError,
    RateLimitError,
    TimelineError,
)
from repotimeline.models import (
    Commit,
    DailySeries,
    IngestionResult,
    Platform,
    Repository,
    SkippedRepository,
    Statistics,
    TimelineRequest,
)
from repotimeline.stats import calculate_stats, format_stats
from repotimeline.timeline import TimelineOrchestrator, generate_timeline

__all__ = [
    "Commit",
    "DailySeries",
    "IngestionResult",
    "NoDataError",
    "NotFoundError",
    "Platform",
    "ProviderError",
    "RateLimitError",
    "Repository",
    "SkippedRepository",
    "Statistics",
    "TimelineError",
    "TimelineOrchestrator",
    "TimelineRequest",
    "align_series",
    "calculate_stats",
    "format_stats",
    "generate_timeline",
    "group_by_date",
    "merge_labels",
]

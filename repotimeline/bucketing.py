"""Date bucketing: commits → per-day series, and series → a common time axis."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timezone

from repotimeline.models import Commit, DailySeries


@dataclass
class ChartDataset:
    label: str
    data: list[int] = field(default_factory=list)


@dataclass
class ChartData:
    """Series aligned on one shared axis, zero-filled: what renderers draw."""

    labels: list[date] = field(default_factory=list)
    datasets: list[ChartDataset] = field(default_factory=list)


def group_by_date(repository: str, commits: Iterable[Commit]) -> DailySeries:
    """Count commits per UTC calendar day, ascending by day."""
    counter = Counter(c.timestamp.astimezone(timezone.utc).date() for c in commits)
    days = sorted(counter)
    return DailySeries(
        repository=repository,
        labels=tuple(days),
        counts=tuple(counter[d] for d in days),
    )


def merge_labels(series: Iterable[DailySeries]) -> list[date]:
    """Sorted, de-duplicated union of every series' labels."""
    return sorted({label for s in series for label in s.labels})


def align_series(series: list[DailySeries]) -> ChartData:
    """Project every series onto the union axis, filling missing days with 0."""
    labels = merge_labels(series)
    datasets = []
    for s in series:
        by_day = dict(zip(s.labels, s.counts))
        datasets.append(ChartDataset(label=s.repository, data=[by_day.get(d, 0) for d in labels]))
    return ChartData(labels=labels, datasets=datasets)

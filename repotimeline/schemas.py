"""Report schemas: the JSON document handed to chart renderers."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel

from repotimeline.bucketing import align_series
from repotimeline.models import IngestionResult, Statistics


class SeriesOut(BaseModel):
    repository: str
    labels: list[date]
    counts: list[int]
    total: int


class SkippedOut(BaseModel):
    repository: str
    reason: str


class RepositoryTotalOut(BaseModel):
    name: str
    commits: int


class DateRangeOut(BaseModel):
    start: date
    end: date
    days: int


class StatisticsOut(BaseModel):
    total_commits: int
    repository_count: int
    date_range: DateRangeOut | None = None
    top_repositories: list[RepositoryTotalOut]
    average_commits_per_repository: int
    average_commits_per_day: float


class ChartDatasetOut(BaseModel):
    label: str
    data: list[int]


class ChartDataOut(BaseModel):
    labels: list[date]
    datasets: list[ChartDatasetOut]


class TimelineReport(BaseModel):
    platform: str
    identity: str
    total_commits_analyzed: int
    processed_count: int
    series: list[SeriesOut]
    skipped: list[SkippedOut]
    chart: ChartDataOut
    statistics: StatisticsOut | None = None

    @classmethod
    def build(cls, result: IngestionResult, stats: Statistics | None = None) -> TimelineReport:
        chart = align_series(result.series)
        statistics = None
        if stats is not None:
            statistics = StatisticsOut(
                total_commits=stats.total_commits,
                repository_count=stats.repository_count,
                date_range=(
                    DateRangeOut(
                        start=stats.date_range.start,
                        end=stats.date_range.end,
                        days=stats.date_range.days,
                    )
                    if stats.date_range
                    else None
                ),
                top_repositories=[
                    RepositoryTotalOut(name=t.name, commits=t.commits)
                    for t in stats.top_repositories
                ],
                average_commits_per_repository=stats.average_commits_per_repository,
                average_commits_per_day=stats.average_commits_per_day,
            )
        return cls(
            platform=str(result.platform),
            identity=result.identity,
            total_commits_analyzed=result.total_commits_analyzed,
            processed_count=result.processed_count,
            series=[
                SeriesOut(
                    repository=s.repository,
                    labels=list(s.labels),
                    counts=list(s.counts),
                    total=s.total,
                )
                for s in result.series
            ],
            skipped=[SkippedOut(repository=s.repository, reason=s.reason) for s in result.skipped],
            chart=ChartDataOut(
                labels=chart.labels,
                datasets=[ChartDatasetOut(label=d.label, data=d.data) for d in chart.datasets],
            ),
            statistics=statistics,
        )

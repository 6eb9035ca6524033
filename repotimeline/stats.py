"""Summary statistics over the per-repository series."""

from __future__ import annotations

from collections.abc import Sequence
from decimal import ROUND_HALF_UP, Decimal

from repotimeline.models import DailySeries, DateRange, RepositoryTotal, Statistics

TOP_REPOSITORIES = 5


def calculate_stats(series: Sequence[DailySeries]) -> Statistics | None:
    """Compute totals, ranking, date span and averages; None without series."""
    if not series:
        return None

    totals = [RepositoryTotal(name=s.repository, commits=s.total) for s in series]
    total_commits = sum(t.commits for t in totals)
    # sorted() is stable, so equal totals keep input order.
    top = sorted(totals, key=lambda t: t.commits, reverse=True)[:TOP_REPOSITORIES]

    labels = [label for s in series for label in s.labels]
    date_range = None
    if labels:
        start, end = min(labels), max(labels)
        date_range = DateRange(start=start, end=end, days=(end - start).days)

    days = date_range.days if date_range else 0
    per_day = _round_half_up(Decimal(total_commits) / days, "0.01") if days > 0 else Decimal(0)

    return Statistics(
        total_commits=total_commits,
        repository_count=len(series),
        date_range=date_range,
        top_repositories=top,
        average_commits_per_repository=int(
            _round_half_up(Decimal(total_commits) / len(series), "1")
        ),
        average_commits_per_day=float(per_day),
    )


def format_stats(stats: Statistics | None) -> str:
    """Plain-text summary printed after a run."""
    if stats is None:
        return ""

    if stats.date_range is not None:
        span = (
            f"{stats.date_range.start.isoformat()} to {stats.date_range.end.isoformat()} "
            f"({stats.date_range.days} days)"
        )
    else:
        span = "n/a"

    lines = [
        "Statistics Summary",
        "-------------------",
        f"Total Commits: {stats.total_commits}",
        f"Repositories: {stats.repository_count}",
        f"Date Range: {span}",
        f"Average per Repo: {stats.average_commits_per_repository} commits",
        f"Average per Day: {stats.average_commits_per_day} commits",
        "",
        "Top Repositories:",
    ]
    for i, repo in enumerate(stats.top_repositories, 1):
        lines.append(f"  {i}. {repo.name}: {repo.commits} commits")
    return "\n".join(lines)


def _round_half_up(value: Decimal, exponent: str) -> Decimal:
    return value.quantize(Decimal(exponent), rounding=ROUND_HALF_UP)

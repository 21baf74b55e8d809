"""
Contribution calendar math.

Pure functions over a list of ContributionDay values: period sums,
streaks and the points formula that feeds the power level.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from .entities import ContributionDay


@dataclass(frozen=True)
class ContributionWindows:
    daily:   int
    weekly:  int
    monthly: int
    yearly:  int
    last365: int


def window_sum(days: Iterable[ContributionDay], start: date, end: date) -> int:
    """Sum of contributions between start and end, both inclusive."""
    return sum(d.count for d in days if start <= d.date <= end)


def contribution_windows(days: list[ContributionDay], today: date) -> ContributionWindows:
    # Weeks start on Sunday, matching GitHub's calendar columns
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)

    return ContributionWindows(
        daily   = window_sum(days, today, today),
        weekly  = window_sum(days, week_start, week_start + timedelta(days=6)),
        monthly = sum(d.count for d in days if (d.date.year, d.date.month) == (today.year, today.month)),
        yearly  = sum(d.count for d in days if d.date.year == today.year),
        last365 = window_sum(days, today - timedelta(days=364), today),
    )


def streaks(days: list[ContributionDay], today: date) -> tuple[int, int]:
    """
    Return (current_streak, longest_streak) in days.

    The current streak counts backwards from today. A quiet today does not
    break it, since the day is not over yet.
    """
    ordered = sorted(days, key=lambda d: d.date)

    current  = 0
    expected = today
    for day in reversed(ordered):
        if day.date > today:
            continue
        if day.count > 0 and day.date == expected:
            current += 1
            expected -= timedelta(days=1)
        elif day.date == today:
            expected = today - timedelta(days=1)
        else:
            break

    longest = run = 0
    for day in ordered:
        if day.count > 0:
            run += 1
            longest = max(longest, run)
        else:
            run = 0

    return current, longest


def calculate_points(
    last365_contributions: int,
    total_stars:           int,
    current_streak:        int,
    total_repositories:    int,
    merged_pull_requests:  int = 0,
    closed_issues:         int = 0,
    total_reviews:         int = 0,
    total_commits:         int = 0,
) -> int:
    meaningful_commits = int(total_commits * 0.7)
    return (
        last365_contributions
        + total_stars * 2
        + current_streak * 5
        + total_repositories * 3
        + merged_pull_requests * 10
        + closed_issues * 5
        + total_reviews * 3
        + meaningful_commits * 2
    )

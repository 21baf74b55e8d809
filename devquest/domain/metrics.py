from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Callable

from .entities import GitHubProfile


def as_score(value: object) -> float | None:
    """Return value as a float, or None when it is not a finite number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        score = float(value)
    except OverflowError:
        return None
    return score if math.isfinite(score) else None


@dataclass(frozen=True)
class Metric:
    """
    A named leaderboard metric.

    `extract` returns the profile's score for this metric, or None when the
    value is unavailable. The ranking engine scores None, and anything
    as_score() rejects, as 0.
    """
    name:        str
    description: str
    extract:     Callable[[GitHubProfile], float | None]


POINTS = Metric(
    name        = "points",
    description = "Total power points",
    extract     = lambda p: as_score(p.points),
)
STARS = Metric(
    name        = "stars",
    description = "Stars across owned repositories",
    extract     = lambda p: as_score(p.total_stars),
)
FOLLOWERS = Metric(
    name        = "followers",
    description = "Followers",
    extract     = lambda p: as_score(p.followers),
)
REPOS = Metric(
    name        = "repos",
    description = "Public repositories",
    extract     = lambda p: as_score(p.public_repos),
)
CONTRIBUTIONS = Metric(
    name        = "contributions",
    description = "Contributions in the last year",
    extract     = lambda p: as_score(p.total_contributions),
)
STREAK = Metric(
    name        = "streak",
    description = "Longest contribution streak in days",
    extract     = lambda p: as_score(p.longest_streak),
)

DEFAULT_METRICS: tuple[Metric, ...] = (POINTS, STARS, FOLLOWERS, REPOS, CONTRIBUTIONS, STREAK)

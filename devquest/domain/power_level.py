from __future__ import annotations
from dataclasses import dataclass

MAX_LEVEL = 10_000


@dataclass(frozen=True)
class PowerProgress:
    level:             int
    points_into_level: int
    next_level_cost:   int
    points_to_next:    int
    progress_percent:  int


def level_cost(level: int) -> int:
    """Points needed to go from `level` to `level + 1`."""
    return 100 + 20 * level + 3 * level * level


def _walk_levels(points: int) -> tuple[int, int]:
    """Return (level, cumulative cost of reaching that level)."""
    level      = 0
    cumulative = 0
    while level < MAX_LEVEL and cumulative + level_cost(level) <= points:
        cumulative += level_cost(level)
        level += 1
    return level, cumulative


def level_from_points(points: int) -> int:
    level, _ = _walk_levels(points)
    return level


def progress_from_points(points: int) -> PowerProgress:
    level, cumulative = _walk_levels(points)

    next_level_cost   = level_cost(level)
    points_into_level = max(0, points - cumulative)
    points_to_next    = max(0, next_level_cost - points_into_level)
    percent           = int(points_into_level * 100 // next_level_cost)

    return PowerProgress(
        level             = level,
        points_into_level = points_into_level,
        next_level_cost   = next_level_cost,
        points_to_next    = points_to_next,
        progress_percent  = max(0, min(100, percent)),
    )

import pytest

from devquest.domain.power_level import (
    MAX_LEVEL,
    level_cost,
    level_from_points,
    progress_from_points,
)


class TestLevelCost:

    def test_first_costs(self):
        assert level_cost(0) == 100
        assert level_cost(1) == 123
        assert level_cost(2) == 152

    def test_strictly_increasing(self):
        costs = [level_cost(n) for n in range(50)]
        assert all(a < b for a, b in zip(costs, costs[1:]))


class TestLevelFromPoints:

    @pytest.mark.parametrize("points, level", [
        (0, 0),
        (50, 0),
        (99, 0),
        (100, 1),
        (222, 1),
        (223, 2),
        (375, 3),
    ])
    def test_known_levels(self, points, level):
        assert level_from_points(points) == level

    def test_negative_points_stay_at_level_zero(self):
        assert level_from_points(-500) == 0

    def test_monotonic(self):
        levels = [level_from_points(p) for p in range(0, 20_000, 37)]
        assert levels == sorted(levels)

    def test_capped(self):
        assert level_from_points(10 ** 13) == MAX_LEVEL


class TestProgressFromPoints:

    def test_halfway_through_level_zero(self):
        progress = progress_from_points(50)
        assert progress.level == 0
        assert progress.points_into_level == 50
        assert progress.next_level_cost == 100
        assert progress.points_to_next == 50
        assert progress.progress_percent == 50

    def test_exactly_on_a_level_boundary(self):
        progress = progress_from_points(100)
        assert progress.level == 1
        assert progress.points_into_level == 0
        assert progress.next_level_cost == 123
        assert progress.points_to_next == 123
        assert progress.progress_percent == 0

    def test_percent_is_floored(self):
        # 61 of 123 points into level 1 is 49.59%
        assert progress_from_points(161).progress_percent == 49

    def test_negative_points(self):
        progress = progress_from_points(-10)
        assert progress.level == 0
        assert progress.points_into_level == 0
        assert progress.progress_percent == 0

    def test_percent_clamped_at_cap(self):
        progress = progress_from_points(10 ** 13)
        assert progress.level == MAX_LEVEL
        assert progress.progress_percent == 100
        assert progress.points_to_next == 0

    @pytest.mark.parametrize("points", list(range(0, 6000, 13)) + [-1, 10 ** 13])
    def test_agrees_with_level_from_points(self, points):
        progress = progress_from_points(points)
        assert progress.level == level_from_points(points)
        assert 0 <= progress.progress_percent <= 100

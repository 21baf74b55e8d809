from __future__ import annotations

import logging
import math
from typing import Iterable

from devquest.domain.entities import CachedProfile, LeaderboardEntry, LeaderboardPage
from devquest.domain.interfaces import IProfileStore
from devquest.domain.metrics import DEFAULT_METRICS, POINTS, Metric, as_score
from devquest.domain.power_level import level_from_points

log = logging.getLogger(__name__)


class LeaderboardRankingEngine:
    """
    Turns every cached profile into one ranked leaderboard per metric.

    Ranks are plain 1-based positions after a stable descending sort: two
    equal scores get two consecutive ranks, ordered by the store's
    enumeration order. Each metric's board is swapped in whole, so a
    reader sees either the previous board or the new one.
    """

    def __init__(self, store: IProfileStore, metrics: Iterable[Metric] = DEFAULT_METRICS) -> None:
        self._store   = store
        self._metrics = {m.name: m for m in metrics}
        self._boards: dict[str, tuple[LeaderboardEntry, ...]] = {}

    @property
    def metrics(self) -> list[str]:
        return list(self._metrics)

    @staticmethod
    def _score(metric: Metric, cached: CachedProfile) -> float:
        try:
            value = metric.extract(cached.profile)
        except Exception as exc:
            log.debug("Metric %s unavailable for %s: %s", metric.name, cached.username, exc)
            return 0.0
        score = as_score(value)
        if score is None:
            if value is not None:
                log.debug("Metric %s gave a non-numeric value for %s: %r", metric.name, cached.username, value)
            return 0.0
        return score

    def _rank(self, metric: Metric, profiles: list[CachedProfile]) -> tuple[LeaderboardEntry, ...]:
        scored = [(self._score(metric, c), c) for c in profiles]
        # sorted() is stable, so ties keep enumeration order
        scored = sorted(scored, key=lambda pair: pair[0], reverse=True)

        return tuple(
            LeaderboardEntry(
                username    = cached.username,
                name        = cached.profile.display_name,
                avatar_url  = cached.profile.avatar_url,
                score       = score,
                rank        = position,
                metric      = metric.name,
                power_level = level_from_points(int(self._score(POINTS, cached))),
            )
            for position, (score, cached) in enumerate(scored, start=1)
        )

    def recompute_all(self) -> None:
        profiles = self._store.list_all()
        for metric in self._metrics.values():
            self._boards[metric.name] = self._rank(metric, profiles)
        log.info("Leaderboards recomputed | metrics=%d | profiles=%d", len(self._metrics), len(profiles))

    def get(self, metric: str, limit: int | None = None) -> list[LeaderboardEntry]:
        board = self._boards.get(metric, ())
        if limit is not None:
            board = board[:max(0, limit)]
        return list(board)

    def get_page(self, metric: str, page: int = 1, page_size: int = 50) -> LeaderboardPage:
        page      = max(1, page)
        page_size = max(1, page_size)
        board     = self._boards.get(metric, ())
        total     = len(board)
        pages     = math.ceil(total / page_size)
        offset    = (page - 1) * page_size

        return LeaderboardPage(
            entries     = list(board[offset:offset + page_size]),
            page        = page,
            page_size   = page_size,
            total       = total,
            total_pages = pages,
            has_next    = page < pages,
            has_prev    = page > 1,
        )

    def position(self, metric: str, username: str) -> LeaderboardEntry | None:
        key = username.lower()
        for entry in self._boards.get(metric, ()):
            if entry.username == key:
                return entry
        return None

    def summary(self, metric: str) -> dict:
        board = self._boards.get(metric, ())
        return {
            "total_participants": len(board),
            "top_performer":      board[0] if board else None,
        }

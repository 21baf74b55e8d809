from __future__ import annotations
from datetime import datetime, timezone
from typing import Callable, Iterable

from devquest.config import DEFAULT_MAX_AGE_MINUTES
from devquest.domain.interfaces import IProfileStore

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class StalenessPolicy:
    """
    Decides whether a cached profile is due for a refresh.

    A profile is stale when it has never been cached, or when it is older
    than `max_age_minutes`. No side effects: the answer depends only on
    the store's current contents and the clock.
    """

    def __init__(self,store: IProfileStore,max_age_minutes: float = DEFAULT_MAX_AGE_MINUTES,clock: Clock = utc_now) -> None:
        self._store           = store
        self._max_age_minutes = max_age_minutes
        self._clock           = clock

    @property
    def max_age_minutes(self) -> float:
        return self._max_age_minutes

    def is_stale(self, username: str, max_age_minutes: float | None = None) -> bool:
        cached = self._store.get(username.lower())
        if cached is None:
            return True

        limit       = self._max_age_minutes if max_age_minutes is None else max_age_minutes
        age_minutes = (self._clock() - cached.last_updated).total_seconds() / 60
        return age_minutes > limit

    def filter_stale(self, usernames: Iterable[str], max_age_minutes: float | None = None) -> list[str]:
        """Return the stale usernames, keeping their input order."""
        return [u for u in usernames if self.is_stale(u, max_age_minutes)]

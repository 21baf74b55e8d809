"""Shared fixtures: a controllable clock, an in-memory store and a fake fetcher."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from devquest.domain.entities import CachedProfile, GitHubProfile
from devquest.domain.interfaces import IProfileFetcher
from devquest.infrastructure.memory_store import InMemoryProfileStore


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def _make_profile(login: str, **overrides) -> GitHubProfile:
    values = dict(
        login        = login,
        name         = login.title(),
        avatar_url   = f"https://avatars.example/{login}.png",
        followers    = 10,
        public_repos = 3,
        total_stars  = 5,
        points       = 150,
    )
    values.update(overrides)
    return GitHubProfile(**values)


class FakeFetcher(IProfileFetcher):
    """
    Returns canned profiles (or raises canned errors) and records calls.

    When `gate` is set, every fetch waits on it, which keeps a cycle
    in the Updating state until the test releases it.
    """

    def __init__(self, responses: dict | None = None, gate: asyncio.Event | None = None) -> None:
        self.responses     = dict(responses or {})
        self.gate          = gate
        self.calls: list[str] = []
        self.in_flight     = 0
        self.max_in_flight = 0

    async def fetch_profile(self, username: str) -> GitHubProfile:
        self.calls.append(username)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            result = self.responses.get(username) or _make_profile(username)
            if isinstance(result, Exception):
                raise result
            return result
        finally:
            self.in_flight -= 1


@pytest.fixture
def fixed_time():
    return datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(fixed_time):
    return FrozenClock(fixed_time)


@pytest.fixture
def store():
    return InMemoryProfileStore()


@pytest.fixture
def make_profile():
    return _make_profile


@pytest.fixture
def fake_fetcher_cls():
    return FakeFetcher


@pytest.fixture
def seed(store, clock):
    """Put cached profiles straight into the store: seed("alice", points=10)."""

    def _seed(login: str, minutes_old: float = 0, refresh_count: int = 1, **profile_fields) -> CachedProfile:
        cached = CachedProfile(
            username      = login.lower(),
            profile       = _make_profile(login, **profile_fields),
            last_updated  = clock() - timedelta(minutes=minutes_old),
            refresh_count = refresh_count,
        )
        store.put(login, cached)
        return cached

    return _seed

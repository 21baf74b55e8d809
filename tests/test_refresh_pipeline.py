import asyncio
from datetime import timedelta

import pytest

from devquest.application.refresh_pipeline import ProfileRefreshPipeline, build_fallback_profile
from devquest.domain.entities import RefreshStatus
from devquest.domain.errors import FetchError, FetchErrorKind
from devquest.domain.interfaces import IProfileFetcher


class TestRefresh:

    @pytest.mark.asyncio
    async def test_first_successful_fetch_creates_profile(self, store, clock, fake_fetcher_cls, make_profile):
        fetcher  = fake_fetcher_cls({"alice": make_profile("alice", points=420)})
        pipeline = ProfileRefreshPipeline(fetcher, store, clock=clock)

        outcome = await pipeline.refresh("Alice")

        assert outcome.status is RefreshStatus.REFRESHED
        assert outcome.username == "alice"
        cached = store.get("alice")
        assert cached.profile.points == 420
        assert cached.refresh_count == 1
        assert cached.last_updated == clock()
        assert not cached.fetch_failed

    @pytest.mark.asyncio
    async def test_success_replaces_profile_and_clears_failure(self, store, clock, seed, fake_fetcher_cls, make_profile):
        seed("alice", minutes_old=60, refresh_count=4, points=10)
        fetcher  = fake_fetcher_cls({"alice": FetchError("boom")})
        pipeline = ProfileRefreshPipeline(fetcher, store, clock=clock)
        await pipeline.refresh("alice")
        assert store.get("alice").fetch_failed

        fetcher.responses["alice"] = make_profile("alice", points=999)
        clock.advance(minutes=5)
        outcome = await pipeline.refresh("alice")

        cached = store.get("alice")
        assert outcome.status is RefreshStatus.REFRESHED
        assert cached.profile.points == 999
        assert cached.refresh_count == 6
        assert cached.fetch_failed is False
        assert cached.fetch_error is None

    @pytest.mark.asyncio
    async def test_failed_fetch_preserves_existing_profile(self, store, clock, seed, fake_fetcher_cls):
        before   = seed("alice", minutes_old=45, refresh_count=2, points=777)
        fetcher  = fake_fetcher_cls({"alice": FetchError("GitHub API error: 502", FetchErrorKind.TRANSIENT, 502)})
        pipeline = ProfileRefreshPipeline(fetcher, store, clock=clock)

        outcome = await pipeline.refresh("alice")

        after = store.get("alice")
        assert outcome.status is RefreshStatus.PRESERVED
        assert outcome.error == "GitHub API error: 502"
        assert after.profile == before.profile
        assert after.profile is before.profile
        assert after.fetch_failed is True
        assert after.fetch_error == "GitHub API error: 502"
        assert after.refresh_count == 3
        assert after.last_updated == clock()
        assert after.last_updated - before.last_updated == timedelta(minutes=45)

    @pytest.mark.asyncio
    async def test_failed_fetch_for_new_user_writes_fallback(self, store, clock, fake_fetcher_cls):
        partial = {"login": "NewUser", "name": "New User", "followers": 7, "following": 2, "public_repos": 4}
        fetcher = fake_fetcher_cls({"newuser": FetchError("rate limited", FetchErrorKind.RATE_LIMITED, 403, partial=partial)})
        pipeline = ProfileRefreshPipeline(fetcher, store, clock=clock)

        outcome = await pipeline.refresh("NewUser")

        cached = store.get("newuser")
        assert outcome.status is RefreshStatus.FALLBACK
        assert cached.fetch_failed is True
        assert cached.refresh_count == 1
        assert cached.profile.login == "NewUser"
        assert cached.profile.followers == 7
        assert cached.profile.public_repos == 4
        assert cached.profile.points == 4 * 3 + 7
        assert cached.profile.total_stars == 0
        assert cached.profile.total_contributions == 0

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self, clock, fake_fetcher_cls, store):
        class BrokenStore(type(store)):
            def put(self, username, cached):
                raise RuntimeError("disk full")

        pipeline = ProfileRefreshPipeline(fake_fetcher_cls(), BrokenStore(), clock=clock)
        with pytest.raises(RuntimeError, match="disk full"):
            await pipeline.refresh("alice")


class TestEnsureFresh:

    @pytest.mark.asyncio
    async def test_fresh_profile_is_served_from_cache(self, store, clock, seed, fake_fetcher_cls):
        seed("alice", minutes_old=5)
        fetcher  = fake_fetcher_cls()
        pipeline = ProfileRefreshPipeline(fetcher, store, clock=clock)

        cached = await pipeline.ensure_fresh("alice")

        assert cached.username == "alice"
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_stale_profile_is_refreshed_first(self, store, clock, seed, fake_fetcher_cls):
        seed("alice", minutes_old=120, refresh_count=1)
        fetcher  = fake_fetcher_cls()
        pipeline = ProfileRefreshPipeline(fetcher, store, clock=clock)

        cached = await pipeline.ensure_fresh("alice")

        assert fetcher.calls == ["alice"]
        assert cached.refresh_count == 2

    @pytest.mark.asyncio
    async def test_unknown_user_is_fetched(self, store, clock, fake_fetcher_cls):
        fetcher  = fake_fetcher_cls()
        pipeline = ProfileRefreshPipeline(fetcher, store, clock=clock)

        cached = await pipeline.ensure_fresh("bob")

        assert cached.profile.login == "bob"


class TestFallbackProfile:

    def test_without_partial_data(self, fixed_time):
        profile = build_fallback_profile("ghost", None, fixed_time)
        assert profile.login == "ghost"
        assert profile.points == 0
        assert profile.followers == 0
        assert profile.fetched_at == fixed_time


class ScriptedFetcher(IProfileFetcher):
    """Each call pops (yields_before_answer, profile_or_error) off the script."""

    def __init__(self, *script):
        self.script = list(script)

    async def fetch_profile(self, username):
        yields, result = self.script.pop(0)
        for _ in range(yields):
            await asyncio.sleep(0)
        if isinstance(result, Exception):
            raise result
        return result


class TestUnexpectedFetchErrors:

    @pytest.mark.asyncio
    async def test_any_fetcher_exception_preserves_existing_profile(self, store, clock, seed, fake_fetcher_cls):
        before   = seed("alice", minutes_old=45, refresh_count=2, points=777)
        fetcher  = fake_fetcher_cls({"alice": ValueError("Expecting value: line 1 column 1 (char 0)")})
        pipeline = ProfileRefreshPipeline(fetcher, store, clock=clock)

        outcome = await pipeline.refresh("alice")

        after = store.get("alice")
        assert outcome.status is RefreshStatus.PRESERVED
        assert after.profile is before.profile
        assert after.fetch_failed is True
        assert "Expecting value" in after.fetch_error
        assert after.refresh_count == 3
        assert after.last_updated == clock()

    @pytest.mark.asyncio
    async def test_any_fetcher_exception_for_new_user_writes_fallback(self, store, clock, fake_fetcher_cls):
        fetcher  = fake_fetcher_cls({"bob": KeyError("user")})
        pipeline = ProfileRefreshPipeline(fetcher, store, clock=clock)

        outcome = await pipeline.refresh("bob")

        assert outcome.status is RefreshStatus.FALLBACK
        assert store.get("bob").profile.login == "bob"
        assert store.get("bob").refresh_count == 1


class TestOverlappingRefreshes:

    @pytest.mark.asyncio
    async def test_every_overlapping_write_counts(self, store, clock, seed, fake_fetcher_cls):
        seed("alice", refresh_count=1)
        pipeline = ProfileRefreshPipeline(fake_fetcher_cls(), store, clock=clock)

        await asyncio.gather(pipeline.refresh("alice"), pipeline.refresh("alice"))

        assert store.get("alice").refresh_count == 3

    @pytest.mark.asyncio
    async def test_late_failure_keeps_the_newer_snapshot(self, store, clock, seed, make_profile):
        seed("alice", refresh_count=1, points=10)
        fetcher = ScriptedFetcher(
            (1, make_profile("alice", points=999)),
            (5, FetchError("timeout")),
        )
        pipeline = ProfileRefreshPipeline(fetcher, store, clock=clock)

        first, second = await asyncio.gather(pipeline.refresh("alice"), pipeline.refresh("alice"))

        cached = store.get("alice")
        assert first.status is RefreshStatus.REFRESHED
        assert second.status is RefreshStatus.PRESERVED
        assert cached.profile.points == 999
        assert cached.fetch_failed is True
        assert cached.refresh_count == 3

from __future__ import annotations

import logging

from devquest.domain.entities import CachedProfile, GitHubProfile, RefreshOutcome, RefreshStatus
from devquest.domain.errors import FetchError, FetchErrorKind
from devquest.domain.interfaces import IProfileFetcher, IProfileStore
from .staleness import Clock, StalenessPolicy, utc_now

log = logging.getLogger(__name__)


def build_fallback_profile(username: str, partial: dict | None, fetched_at) -> GitHubProfile:
    """
    Minimal profile for a user we have never fetched successfully.

    Only the cheap basic fields survive (whatever the fetcher managed to
    read before failing); every derived metric stays at zero.
    """
    basic        = partial or {}
    followers    = int(basic.get("followers") or 0)
    public_repos = int(basic.get("public_repos") or 0)
    return GitHubProfile(
        login        = basic.get("login") or username,
        name         = basic.get("name"),
        avatar_url   = basic.get("avatar_url"),
        html_url     = basic.get("html_url"),
        bio          = basic.get("bio"),
        location     = basic.get("location"),
        followers    = followers,
        following    = int(basic.get("following") or 0),
        public_repos = public_repos,
        points       = public_repos * 3 + followers,
        fetched_at   = fetched_at,
    )


class ProfileRefreshPipeline:
    """
    Fetch -> transform -> persist for one username.

    All dependencies are injected:
      - IProfileFetcher  → how to talk to GitHub
      - IProfileStore    → where cached profiles live

    A failed fetch (FetchError or anything else the fetcher raises) never
    loses data and never raises: an existing profile is kept as-is and
    marked failed, a brand new user gets a fallback record. Only store
    errors propagate to the caller.

    The cached record is read after the fetch returns, so overlapping
    refreshes of one user each bump refresh_count and a late failure
    preserves the newest snapshot.
    """

    def __init__(self,fetcher: IProfileFetcher,store: IProfileStore,clock: Clock = utc_now,staleness: StalenessPolicy | None = None) -> None:
        self._fetcher   = fetcher
        self._store     = store
        self._clock     = clock
        self._staleness = staleness or StalenessPolicy(store, clock=clock)

    async def refresh(self, username: str) -> RefreshOutcome:
        key = username.lower()

        try:
            profile = await self._fetcher.fetch_profile(key)
        except FetchError as exc:
            return self._apply_fallback(key, self._store.get(key), exc)
        except Exception as exc:
            log.error("Unexpected fetch failure for %s: %s", key, exc, exc_info=True)
            error = FetchError(f"Unexpected fetch failure: {exc!r}", FetchErrorKind.TRANSIENT)
            return self._apply_fallback(key, self._store.get(key), error)

        # Read after the await: another refresh of the same user may have
        # written in the meantime.
        existing = self._store.get(key)
        self._store.put(key, CachedProfile(
            username      = key,
            profile       = profile,
            last_updated  = self._clock(),
            refresh_count = existing.refresh_count + 1 if existing else 1,
        ))
        log.debug("Refreshed %s | points=%d", key, profile.points)
        return RefreshOutcome(username=key, status=RefreshStatus.REFRESHED)

    def _apply_fallback(self, key: str, existing: CachedProfile | None, exc: FetchError) -> RefreshOutcome:
        now   = self._clock()
        error = str(exc)

        if existing is not None:
            # Same payload, new stamp. A failed attempt still counts.
            self._store.put(key, CachedProfile(
                username      = key,
                profile       = existing.profile,
                last_updated  = now,
                refresh_count = existing.refresh_count + 1,
                fetch_failed  = True,
                fetch_error   = error,
            ))
            log.warning("[PRESERVED] Fetch failed for %s (%s): %s", key, exc.kind.value, error)
            return RefreshOutcome(username=key, status=RefreshStatus.PRESERVED, error=error)

        self._store.put(key, CachedProfile(
            username      = key,
            profile       = build_fallback_profile(key, exc.partial, now),
            last_updated  = now,
            refresh_count = 1,
            fetch_failed  = True,
            fetch_error   = error,
        ))
        log.warning("[FALLBACK] Fetch failed for new user %s (%s): %s", key, exc.kind.value, error)
        return RefreshOutcome(username=key, status=RefreshStatus.FALLBACK, error=error)

    async def ensure_fresh(self, username: str, max_age_minutes: float | None = None) -> CachedProfile:
        """
        On-demand read path: serve the cached profile when it is fresh,
        refresh it first otherwise.
        """
        key = username.lower()
        if self._staleness.is_stale(key, max_age_minutes):
            await self.refresh(key)
        cached = self._store.get(key)
        if cached is None:
            raise LookupError(f"no cached profile for {key} after refresh")
        return cached

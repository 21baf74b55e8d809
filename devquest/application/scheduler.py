from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from devquest.config import SchedulerConfig
from devquest.domain.entities import CycleReport, RefreshStatus, SchedulerStatus
from devquest.domain.interfaces import IProfileStore, IRunLog
from .leaderboard import LeaderboardRankingEngine
from .refresh_pipeline import ProfileRefreshPipeline
from .staleness import Clock, StalenessPolicy, utc_now

log = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class BatchScheduler:
    """
    Drives background refresh cycles using asyncio.

    All dependencies are injected; the scheduler creates NOTHING itself
    apart from its own tasks:
      - ProfileRefreshPipeline   → refreshes one username
      - IProfileStore            → where candidate usernames come from
      - LeaderboardRankingEngine → recomputed at the end of every cycle
      - IRunLog (optional)       → audit record per cycle

    One scheduling task sleeps until the next due time and launches a
    cycle. Each cycle runs as its own task, so stop() can cancel the timer
    without touching a cycle that is already fetching.

    Within a cycle, usernames are processed in batches of `batch_size`.
    Members of a batch run simultaneously via asyncio.gather; batches run
    one after another with `batch_delay_seconds` between them, which is
    what keeps us under GitHub's rate limit.

    Every wait (the timer and the inter-batch delay) goes through the
    injected `sleep`, so tests can drive time without real sleeps.
    """

    def __init__(
        self,
        pipeline:  ProfileRefreshPipeline,
        store:     IProfileStore,
        engine:    LeaderboardRankingEngine,
        config:    SchedulerConfig | None = None,
        staleness: StalenessPolicy | None = None,
        run_log:   IRunLog | None = None,
        clock:     Clock = utc_now,
        sleep:     Sleep = asyncio.sleep,
    ) -> None:
        self._pipeline  = pipeline
        self._store     = store
        self._engine    = engine
        self._config    = config or SchedulerConfig()
        self._staleness = staleness or StalenessPolicy(store, self._config.max_age_minutes, clock)
        self._run_log   = run_log
        self._clock     = clock
        self._sleep     = sleep

        self._running     = False
        self._updating    = False
        self._next_run_at: datetime | None = None
        self._loop_task:   asyncio.Task | None = None
        self._cycle_task:  asyncio.Task | None = None
        self._last_report: CycleReport | None = None

    # Control surface
    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_updating(self) -> bool:
        return self._updating

    @property
    def last_report(self) -> CycleReport | None:
        return self._last_report

    def get_status(self) -> SchedulerStatus:
        next_update_in = 0.0
        if self._running and self._next_run_at is not None:
            next_update_in = max(0.0, (self._next_run_at - self._clock()).total_seconds())
        return SchedulerStatus(
            is_running     = self._running,
            is_updating    = self._updating,
            next_update_in = next_update_in,
        )

    def get_config(self) -> SchedulerConfig:
        return self._config

    def start(self) -> None:
        """Begin timer-driven cycles. Must be called from a running event loop."""
        if self._running:
            log.info("Background update service is already running")
            return

        loop = asyncio.get_running_loop()
        self._running     = True
        self._next_run_at = self._clock() + timedelta(seconds=self._config.initial_delay_seconds)
        self._loop_task   = loop.create_task(self._run_loop())

        log.info(
            "Background update service started | interval=%ss | batch_size=%d | batch_delay=%ss | stale_only=%s",
            self._config.update_interval_seconds,
            self._config.batch_size,
            self._config.batch_delay_seconds,
            self._config.refresh_stale_only,
        )

    def stop(self) -> None:
        """Cancel the timer. A cycle already in progress runs to completion."""
        if not self._running:
            log.info("Background update service is not running")
            return

        self._running     = False
        self._next_run_at = None
        if self._loop_task is not None:
            self._loop_task.cancel()
            self._loop_task = None
        log.info("Background update service stopped")

    def trigger_update(self) -> asyncio.Task | None:
        """
        Start a cycle right now, whether or not the timer is running.

        Returns the cycle's task (await it for the CycleReport), or None
        when a cycle is already in progress. Nothing is queued.
        """
        task = self._launch_cycle()
        if task is None:
            log.info("Update already in progress, cannot trigger another")
        else:
            log.info("Manual update triggered")
        return task

    async def shutdown(self) -> None:
        """Stop the timer and wait for any in-flight cycle to finish."""
        if self._running:
            self.stop()
        cycle = self._cycle_task
        if cycle is not None and not cycle.done():
            await cycle

    # Internals
    def _launch_cycle(self) -> asyncio.Task | None:
        # Check and set with no await in between: two triggers on the same
        # loop can never both get past this point.
        if self._updating:
            return None
        self._updating = True
        try:
            task = asyncio.get_running_loop().create_task(self._perform_cycle())
        except RuntimeError:
            self._updating = False
            raise
        self._cycle_task = task
        return task

    async def _run_loop(self) -> None:
        while self._running and self._next_run_at is not None:
            delay = max(0.0, (self._next_run_at - self._clock()).total_seconds())
            await self._sleep(delay)
            if not self._running:
                break

            self._next_run_at = self._clock() + timedelta(seconds=self._config.update_interval_seconds)
            if self._launch_cycle() is None:
                log.info("Background update already in progress, skipping tick")

    def _select_candidates(self) -> list[str]:
        usernames = [cached.username for cached in self._store.list_all()]
        if self._config.refresh_stale_only:
            usernames = self._staleness.filter_stale(usernames, self._config.max_age_minutes)
        return usernames

    async def _refresh_batch(self, batch: list[str], counts: Counter) -> None:
        results = await asyncio.gather(
            *[self._pipeline.refresh(username) for username in batch],
            return_exceptions=True,
        )
        for username, result in zip(batch, results):
            if isinstance(result, BaseException):
                counts[RefreshStatus.FAILED] += 1
                log.error("Error updating user %s: %s", username, result, exc_info=result)
            else:
                counts[result.status] += 1

    async def _perform_cycle(self) -> CycleReport:
        started    = time.monotonic()
        run_id     = None
        candidates: list[str] = []
        counts: Counter = Counter()
        status, error = "success", None

        try:
            if self._run_log is not None:
                run_id = self._run_log.create_run()

            candidates = self._select_candidates()
            batch_size = self._config.batch_size
            n_batches  = (len(candidates) + batch_size - 1) // batch_size
            log.info("Refresh cycle started | run #%s | candidates=%d | batches=%d", run_id, len(candidates), n_batches)

            for i in range(0, len(candidates), batch_size):
                await self._refresh_batch(candidates[i: i + batch_size], counts)
                log.info(
                    "Batch %d/%d | refreshed=%d | preserved=%d | fallback=%d | failed=%d",
                    i // batch_size + 1,
                    n_batches,
                    counts[RefreshStatus.REFRESHED],
                    counts[RefreshStatus.PRESERVED],
                    counts[RefreshStatus.FALLBACK],
                    counts[RefreshStatus.FAILED],
                )
                if i + batch_size < len(candidates):
                    await self._sleep(self._config.batch_delay_seconds)

            self._engine.recompute_all()
        except Exception as exc:
            log.error("Critical error in refresh cycle: %s", exc, exc_info=True)
            status, error = "failed", str(exc)
        finally:
            self._updating = False

        report = CycleReport(
            run_id        = run_id,
            candidates    = len(candidates),
            refreshed     = counts[RefreshStatus.REFRESHED],
            preserved     = counts[RefreshStatus.PRESERVED],
            fallback      = counts[RefreshStatus.FALLBACK],
            failed        = counts[RefreshStatus.FAILED],
            status        = status,
            elapsed_secs  = time.monotonic() - started,
            error_message = error,
        )
        self._last_report = report

        if self._run_log is not None and run_id is not None:
            try:
                self._run_log.finish_run(run_id, report)
            except Exception as exc:
                log.error("Could not record run #%d: %s", run_id, exc, exc_info=True)

        log.info(
            "Refresh cycle complete | status=%s | %d candidates | %.1fs",
            report.status,
            report.candidates,
            report.elapsed_secs,
        )
        return report

"""
main.py: Dependency Wiring (Composition Root)
------------------------------------------------
This file has ONE job: wire all the pieces together and run the
background refresh service.

It does NOT contain any business logic. It just:
  1. Reads configuration from environment variables
  2. Creates concrete implementations of each interface
  3. Injects them into the classes that need them
  4. Starts the scheduler (or runs a single cycle with --once)

Dependency graph (what depends on what):
                          main.py  (wires everything)
                             │
              ┌──────────────┼───────────────┐
              ▼              ▼               ▼
        BatchScheduler  LeaderboardEngine  PostgresProfileStore
              │                              (or InMemoryProfileStore)
              ▼
    ProfileRefreshPipeline ──► GitHubClient
              │
              ▼
       StalenessPolicy
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

import httpx
import psycopg2

from devquest.application.leaderboard import LeaderboardRankingEngine
from devquest.application.refresh_pipeline import ProfileRefreshPipeline
from devquest.application.scheduler import BatchScheduler
from devquest.application.staleness import StalenessPolicy
from devquest.config import SchedulerConfig
from devquest.domain.power_level import progress_from_points
from devquest.infrastructure.github_client import GitHubClient
from devquest.infrastructure.memory_store import InMemoryProfileStore
from devquest.infrastructure.postgres_storage import PostgresProfileStore

log = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


def configure_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )


def _read_env(use_memory: bool) -> tuple[str | None, str]:
    """
    Read required environment variables.
    Fails fast with a clear error if any is missing.
    """
    db_url = os.environ.get("DATABASE_URL")
    token  = os.environ.get("GITHUB_TOKEN")

    if not db_url and not use_memory:
        log.error("DATABASE_URL environment variable is required (or pass --memory)")
        sys.exit(1)

    if not token:
        log.error("GITHUB_TOKEN environment variable is required")
        sys.exit(1)

    return db_url, token


def print_leaderboards(engine: LeaderboardRankingEngine, limit: int) -> None:
    for metric in engine.metrics:
        print(f"\n== {metric} ==")
        for entry in engine.get(metric, limit):
            print(f"{entry.rank:>4}. {entry.username:<24} {entry.score:>10.0f}  (level {entry.power_level})")


async def build_and_run(db_url: str | None, token: str, args: argparse.Namespace) -> None:
    """
    Wires all dependencies together and runs the scheduler.

    This is the Composition Root: the only place that knows which
    concrete class implements each interface.
    """
    config = SchedulerConfig.from_env()
    conn   = psycopg2.connect(db_url) if db_url and not args.memory else None
    client = httpx.AsyncClient()

    try:
        # --- Wire the dependency graph bottom-up ---
        if conn is not None:
            store = PostgresProfileStore(conn=conn)
            store.ensure_schema()
        else:
            store = InMemoryProfileStore()

        github_client = GitHubClient(token=token, client=client)
        staleness     = StalenessPolicy(store, config.max_age_minutes)
        pipeline      = ProfileRefreshPipeline(fetcher=github_client, store=store, staleness=staleness)
        engine        = LeaderboardRankingEngine(store)
        scheduler     = BatchScheduler(
            pipeline  = pipeline,
            store     = store,
            engine    = engine,
            config    = config,
            staleness = staleness,
            run_log   = store,
        )

        # --- Seed explicitly requested users so they are tracked ---
        for login in args.seed:
            outcome = await pipeline.refresh(login)
            cached  = store.get(outcome.username)
            level   = progress_from_points(cached.profile.points).level if cached else 0
            log.info("Seeded %s | %s | level %d", outcome.username, outcome.status.value, level)

        # --- Execute ---
        if args.once:
            task   = scheduler.trigger_update()
            report = await task
            print_leaderboards(engine, args.limit)
            if report.status != "success":
                log.error("Cycle failed: %s", report.error_message)
                sys.exit(1)
            return

        scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.shutdown()

    finally:
        # Always clean up connections, even if an exception occurred
        await client.aclose()
        if conn is not None:
            conn.close()


def cli(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Background GitHub profile refresher and leaderboard ranker"
    )
    parser.add_argument("--seed", nargs="*", default=[], metavar="LOGIN", help="GitHub logins to refresh once at startup")
    parser.add_argument("--once", action="store_true", help="Run a single refresh cycle, print leaderboards and exit")
    parser.add_argument("--memory", action="store_true", help="Use the in-memory store instead of PostgreSQL")
    parser.add_argument(
        "--limit",
        type    = int,
        default = DEFAULT_LIMIT,
        help    = f"Rows per leaderboard printed with --once (default: {DEFAULT_LIMIT})",
    )
    args = parser.parse_args(argv)

    configure_logging()
    db_url, token = _read_env(args.memory)

    try:
        asyncio.run(build_and_run(db_url, token, args))
    except KeyboardInterrupt:
        log.info("Interrupted, shutting down")


if __name__ == "__main__":
    cli()

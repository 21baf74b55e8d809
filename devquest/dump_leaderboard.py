import argparse
import csv
import logging
import os
import sys

import psycopg2

from devquest.application.leaderboard import LeaderboardRankingEngine
from devquest.infrastructure.postgres_storage import PostgresProfileStore

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
log = logging.getLogger(__name__)

OUTPUT_FILE = "leaderboard.csv"
COLUMNS     = ["rank", "username", "name", "score", "power_level", "metric"]


def write_csv(engine: LeaderboardRankingEngine, metric: str, output: str) -> int:
    entries = engine.get(metric)
    with open(output, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(COLUMNS)
        writer.writerows(
            [e.rank, e.username, e.name, e.score, e.power_level, e.metric] for e in entries
        )
    return len(entries)


def dump(db_url: str, metric: str, output: str) -> None:
    log.info("Connecting to database...")
    conn = psycopg2.connect(db_url)

    try:
        engine = LeaderboardRankingEngine(PostgresProfileStore(conn))
        if metric not in engine.metrics:
            log.error("Unknown metric %r (choose from: %s)", metric, ", ".join(engine.metrics))
            sys.exit(1)

        log.info("Ranking cached profiles...")
        engine.recompute_all()
    finally:
        conn.close()

    rows = write_csv(engine, metric, output)
    log.info("Dump complete: %s (%d rows)", output, rows)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Export one leaderboard to CSV")
    parser.add_argument("--metric", default="points")
    parser.add_argument("--output", default=OUTPUT_FILE)
    args = parser.parse_args()

    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        log.error("DATABASE_URL environment variable is required")
        sys.exit(1)

    dump(db_url, args.metric, args.output)

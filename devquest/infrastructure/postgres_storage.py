from __future__ import annotations
import json
import logging
from dataclasses import asdict, fields
from datetime import date, datetime

from devquest.domain.entities import CachedProfile, ContributionDay, CycleReport, GitHubProfile
from devquest.domain.interfaces import IProfileStore, IRunLog

log = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS cached_profiles (
    id            BIGSERIAL PRIMARY KEY,
    username      TEXT        NOT NULL UNIQUE,
    profile       JSONB       NOT NULL,
    last_updated  TIMESTAMPTZ NOT NULL,
    refresh_count INTEGER     NOT NULL,
    fetch_failed  BOOLEAN     NOT NULL DEFAULT FALSE,
    fetch_error   TEXT
);

CREATE TABLE IF NOT EXISTS refresh_runs (
    id          BIGSERIAL PRIMARY KEY,
    started_at  TIMESTAMPTZ NOT NULL,
    finished_at TIMESTAMPTZ,
    status      TEXT        NOT NULL,
    candidates  INTEGER,
    refreshed   INTEGER,
    preserved   INTEGER,
    fallback    INTEGER,
    failed      INTEGER,
    error_msg   TEXT
);
"""

_PROFILE_FIELDS = {f.name for f in fields(GitHubProfile)}


def profile_to_json(profile: GitHubProfile) -> str:
    """
    Serialise a GitHubProfile for the JSONB column.
    Adding a profile field = add it to the dataclass, zero DB migration.
    """
    data = asdict(profile)
    data["fetched_at"] = profile.fetched_at.isoformat() if profile.fetched_at else None
    data["contribution_days"] = [
        {"date": d.date.isoformat(), "count": d.count} for d in profile.contribution_days
    ]
    return json.dumps(data)


def profile_from_json(raw: dict | str) -> GitHubProfile:
    """
    Rebuild a GitHubProfile from the JSONB column.

    Keys we no longer know are dropped and missing keys fall back to the
    dataclass defaults, so rows written by older versions still load.
    """
    data = json.loads(raw) if isinstance(raw, str) else dict(raw)
    data = {k: v for k, v in data.items() if k in _PROFILE_FIELDS}

    if data.get("fetched_at"):
        data["fetched_at"] = datetime.fromisoformat(data["fetched_at"])
    data["contribution_days"] = tuple(
        ContributionDay(date=date.fromisoformat(d["date"]), count=int(d.get("count") or 0))
        for d in data.get("contribution_days") or ()
    )
    data["language_stats"] = dict(data.get("language_stats") or {})
    return GitHubProfile(**data)


class PostgresProfileStore(IProfileStore, IRunLog):
    """
    Concrete implementation of IProfileStore and IRunLog using PostgreSQL.

    Receives an already-connected psycopg2 connection (injected).
    Does not create or manage the connection itself; that's the
    responsibility of the caller (main.py / dependency wiring).
    """

    def __init__(self, conn) -> None:
        self._conn = conn

    def ensure_schema(self) -> None:
        with self._conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        self._conn.commit()

    @staticmethod
    def _row_to_cached(row) -> CachedProfile:
        username, profile, last_updated, refresh_count, fetch_failed, fetch_error = row
        return CachedProfile(
            username      = username,
            profile       = profile_from_json(profile),
            last_updated  = last_updated,
            refresh_count = refresh_count,
            fetch_failed  = fetch_failed,
            fetch_error   = fetch_error,
        )

    def get(self, username: str) -> CachedProfile | None:
        with self._conn.cursor() as cur:
            cur.execute(
                """
                SELECT username, profile, last_updated, refresh_count, fetch_failed, fetch_error
                FROM cached_profiles
                WHERE username = %s
                """,
                (username.lower(),),
            )
            row = cur.fetchone()
        return self._row_to_cached(row) if row else None

    def put(self, username: str, cached: CachedProfile) -> None:
        """
        Insert or fully replace one cached profile.

        ON CONFLICT (username) DO UPDATE keeps the row's id, so list_all()
        keeps returning users in first-insertion order.
        """
        with self._conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO cached_profiles
                    (username, profile, last_updated, refresh_count, fetch_failed, fetch_error)
                VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (username) DO UPDATE SET
                    profile       = EXCLUDED.profile,
                    last_updated  = EXCLUDED.last_updated,
                    refresh_count = EXCLUDED.refresh_count,
                    fetch_failed  = EXCLUDED.fetch_failed,
                    fetch_error   = EXCLUDED.fetch_error
                """,
                (
                    username.lower(),
                    profile_to_json(cached.profile),
                    cached.last_updated,
                    cached.refresh_count,
                    cached.fetch_failed,
                    cached.fetch_error,
                ),
            )
        self._conn.commit()
        log.debug("Upserted cached profile %s (refresh #%d)", username, cached.refresh_count)

    def list_all(self) -> list[CachedProfile]:
        with self._conn.cursor() as cur:
            cur.execute(
                """
                SELECT username, profile, last_updated, refresh_count, fetch_failed, fetch_error
                FROM cached_profiles
                ORDER BY id
                """
            )
            rows = cur.fetchall()
        return [self._row_to_cached(row) for row in rows]

    # IRunLog
    def create_run(self) -> int:
        """
        Create a refresh_runs row when a cycle starts.
        Returns the new run ID so we can update it when finished.
        """
        with self._conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO refresh_runs (started_at, status)
                VALUES (NOW(), 'running')
                RETURNING id
                """
            )
            run_id = cur.fetchone()[0]
        self._conn.commit()
        log.debug("Created refresh run #%d", run_id)
        return run_id

    def finish_run(self, run_id: int, report: CycleReport) -> None:
        with self._conn.cursor() as cur:
            cur.execute(
                """
                UPDATE refresh_runs
                SET finished_at = NOW(),
                    status      = %s,
                    candidates  = %s,
                    refreshed   = %s,
                    preserved   = %s,
                    fallback    = %s,
                    failed      = %s,
                    error_msg   = %s
                WHERE id = %s
                """,
                (
                    report.status,
                    report.candidates,
                    report.refreshed,
                    report.preserved,
                    report.fallback,
                    report.failed,
                    report.error_message,
                    run_id,
                ),
            )
        self._conn.commit()
        log.debug("Finished refresh run #%d | status=%s", run_id, report.status)

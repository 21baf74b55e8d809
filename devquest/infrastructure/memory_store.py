from __future__ import annotations
from datetime import datetime, timezone

from devquest.domain.entities import CachedProfile, CycleReport
from devquest.domain.interfaces import IProfileStore, IRunLog


class InMemoryProfileStore(IProfileStore, IRunLog):
    """
    Dict-backed profile cache and run log.

    Usernames are stored in first-insertion order; re-putting an existing
    username replaces its value without moving it, so list_all() order is
    stable across refresh cycles. All access happens on the event loop
    thread and none of these methods await, so no lock is needed.
    """

    def __init__(self) -> None:
        self._profiles: dict[str, CachedProfile] = {}
        self._runs:     dict[int, dict] = {}

    def get(self, username: str) -> CachedProfile | None:
        return self._profiles.get(username.lower())

    def put(self, username: str, cached: CachedProfile) -> None:
        self._profiles[username.lower()] = cached

    def list_all(self) -> list[CachedProfile]:
        return list(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)

    # IRunLog
    def create_run(self) -> int:
        run_id = len(self._runs) + 1
        self._runs[run_id] = {
            "started_at": datetime.now(tz=timezone.utc),
            "status":     "running",
        }
        return run_id

    def finish_run(self, run_id: int, report: CycleReport) -> None:
        self._runs[run_id].update(
            finished_at = datetime.now(tz=timezone.utc),
            status      = report.status,
            report      = report,
        )

    def runs(self) -> list[dict]:
        return [dict(run, id=run_id) for run_id, run in self._runs.items()]

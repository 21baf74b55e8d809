"""
Domain Layer: Interfaces (Abstract Contracts)
-----------------------------------------------
These are ABSTRACT definitions of what the infrastructure must provide.
The application layer (staleness policy, refresh pipeline, ranking
engine, scheduler) depends on these, never on GitHubClient or psycopg2.

Benefit: tests pass a fake fetcher and an InMemoryProfileStore without
changing a single line of application code.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from .entities import CachedProfile, CycleReport, GitHubProfile


class IProfileFetcher(ABC):
    """
    Contract that any GitHub API client must fulfil.
    The refresh pipeline depends on THIS, not on the concrete GitHubClient.
    """

    @abstractmethod
    async def fetch_profile(self, username: str) -> GitHubProfile:
        """
        Fetch the user's current snapshot.

        Raises:
            FetchError: carries the failure class (unauthorized,
                rate_limited, not_found, transient)
        """
        ...


class IProfileStore(ABC):
    """
    Contract that any profile cache backend must fulfil.
    Last write wins per username; no transactional guarantees.
    """

    @abstractmethod
    def get(self, username: str) -> CachedProfile | None:
        """Return the cached profile for a canonical username, or None."""
        ...

    @abstractmethod
    def put(self, username: str, cached: CachedProfile) -> None:
        """Replace the cached profile for `username` (full replacement)."""
        ...

    @abstractmethod
    def list_all(self) -> list[CachedProfile]:
        """Every cached profile, in a stable enumeration order."""
        ...


class IRunLog(ABC):
    """
    Contract for recording refresh cycles (audit trail).
    Optional: the scheduler works without one.
    """

    @abstractmethod
    def create_run(self) -> int:
        """Create a run record when a cycle starts. Returns the run ID."""
        ...

    @abstractmethod
    def finish_run(self, run_id: int, report: CycleReport) -> None:
        """Mark a run as complete with the cycle's final counts."""
        ...

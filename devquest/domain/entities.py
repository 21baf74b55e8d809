from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


@dataclass(frozen=True)
class ContributionDay:
    """One cell of the contribution calendar."""
    date:  date
    count: int


@dataclass(frozen=True)
class GitHubProfile:
    """
    Immutable snapshot of one user's GitHub statistics.

    frozen=True guarantees a cached snapshot is never edited in place:
    every refresh produces a brand new GitHubProfile that replaces the
    old one whole.

    Field names are OURS (snake_case), not GitHub's (camelCase).
    The translation happens in the GitHub client, not here.
    """
    login:                 str
    name:                  str | None = None
    avatar_url:            str | None = None
    html_url:              str | None = None
    bio:                   str | None = None
    location:              str | None = None
    followers:             int = 0
    following:             int = 0
    public_repos:          int = 0
    total_stars:           int = 0
    total_forks:           int = 0
    total_contributions:   int = 0
    daily_contributions:   int = 0
    weekly_contributions:  int = 0
    monthly_contributions: int = 0
    yearly_contributions:  int = 0
    last365_contributions: int = 0
    current_streak:        int = 0
    longest_streak:        int = 0
    total_commits:         int = 0
    total_pull_requests:   int = 0
    merged_pull_requests:  int = 0
    total_issues:          int = 0
    closed_issues:         int = 0
    total_reviews:         int = 0
    top_language:          str | None = None
    language_stats:        dict[str, int] = field(default_factory=dict)
    contribution_days:     tuple[ContributionDay, ...] = ()
    points:                int = 0
    fetched_at:            datetime | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.login


@dataclass(frozen=True)
class CachedProfile:
    """
    The latest known snapshot for one username.

    fetch_failed / fetch_error live next to the profile rather than inside
    it, so a preserved profile stays exactly what was last fetched.
    """
    username:      str
    profile:       GitHubProfile
    last_updated:  datetime
    refresh_count: int
    fetch_failed:  bool = False
    fetch_error:   str | None = None


@dataclass(frozen=True)
class LeaderboardEntry:
    username:    str
    name:        str
    avatar_url:  str | None
    score:       float
    rank:        int
    metric:      str
    power_level: int = 0


@dataclass(frozen=True)
class LeaderboardPage:
    entries:     list[LeaderboardEntry]
    page:        int
    page_size:   int
    total:       int
    total_pages: int
    has_next:    bool
    has_prev:    bool


class RefreshStatus(str, Enum):
    REFRESHED = "refreshed"
    PRESERVED = "preserved"
    FALLBACK  = "fallback"
    FAILED    = "failed"


@dataclass(frozen=True)
class RefreshOutcome:
    username: str
    status:   RefreshStatus
    error:    str | None = None


@dataclass(frozen=True)
class SchedulerStatus:
    is_running:     bool
    is_updating:    bool
    next_update_in: float


@dataclass(frozen=True)
class CycleReport:
    """
    Immutable value object summarising one completed refresh cycle.
    Returned by the scheduler when a cycle finishes, successful or not.
    """
    run_id:        int | None
    candidates:    int
    refreshed:     int
    preserved:     int
    fallback:      int
    failed:        int
    status:        str
    elapsed_secs:  float
    error_message: str | None = None

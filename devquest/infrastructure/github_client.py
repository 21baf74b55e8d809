from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone
from typing import Callable

import httpx

from devquest.domain.contributions import calculate_points, contribution_windows, streaks
from devquest.domain.entities import ContributionDay, GitHubProfile
from devquest.domain.errors import FetchError, FetchErrorKind
from devquest.domain.interfaces import IProfileFetcher

log = logging.getLogger(__name__)

GITHUB_API_URL     = "https://api.github.com"
GITHUB_GRAPHQL_URL = "https://api.github.com/graphql"
USER_AGENT         = "DevQuest"
REQUEST_TIMEOUT    = 30.0
MAX_RETRIES        = 3
REST_REPO_PAGE     = 100

STATS_QUERY = """
query UserStats($login: String!) {
  rateLimit {
    remaining
    resetAt
  }
  user(login: $login) {
    repositories(first: 100, ownerAffiliations: OWNER, orderBy: {field: STARGAZERS, direction: DESC}) {
      totalCount
      nodes {
        stargazerCount
        forkCount
        primaryLanguage { name }
      }
    }
    pullRequests { totalCount }
    mergedPullRequests: pullRequests(states: MERGED) { totalCount }
    issues { totalCount }
    closedIssues: issues(states: CLOSED) { totalCount }
    contributionsCollection {
      totalCommitContributions
      pullRequestReviewContributions { totalCount }
      contributionCalendar {
        totalContributions
        weeks {
          contributionDays {
            date
            contributionCount
          }
        }
      }
    }
  }
}
"""


class RateLimitError(FetchError):
    """Raised when GitHub explicitly returns a RATE_LIMITED GraphQL error."""

    def __init__(self, reset_at: str = "unknown") -> None:
        super().__init__(f"Rate limit exhausted, resets at {reset_at}", FetchErrorKind.RATE_LIMITED)
        self.reset_at = reset_at


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _parse_reset(raw: str | None) -> datetime | None:
    """x-ratelimit-reset is epoch seconds; anything unparsable is ignored."""
    if not raw:
        return None
    try:
        return datetime.fromtimestamp(int(raw), tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def _top_language(language_stats: dict[str, int]) -> str | None:
    if not language_stats:
        return None
    return max(language_stats, key=language_stats.__getitem__)


class GitHubClient(IProfileFetcher):
    """
    Concrete implementation of IProfileFetcher for the GitHub APIs.

    The constructor receives an httpx.AsyncClient (injected) rather than
    creating one internally. This lets callers control the client lifecycle
    and makes testing trivial: just pass a client built on MockTransport.

    One profile costs: REST /users/{login} for the basic fields, then one
    GraphQL query for the stats. When GraphQL fails, the REST repository
    listing gives a degraded profile (stars and languages, no calendar).
    """

    def __init__(self,token: str,client: httpx.AsyncClient,clock: Callable[[], datetime] = _utc_now,retry_backoff: float = 1.0) -> None:
        self._client        = client
        self._clock         = clock
        self._retry_backoff = retry_backoff
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept":        "application/vnd.github+json",
            "User-Agent":    USER_AGENT,
        }

    # Transport
    async def _request(self, method: str, url: str, **kwargs) -> dict | list:
        """
        Send one request with retry logic.

        Transient failures (network errors, 5xx) are retried with
        exponential backoff. 401/403/404/429 are not worth retrying inside
        a batch and are raised straight away.
        """
        last_error: FetchError | None = None

        for attempt in range(MAX_RETRIES):
            try:
                response = await self._client.request(
                    method,
                    url,
                    headers=self._headers,
                    timeout=REQUEST_TIMEOUT,
                    **kwargs,
                )
            except httpx.RequestError as exc:
                last_error = FetchError(f"GitHub request failed: {exc}", FetchErrorKind.TRANSIENT)
            else:
                if response.status_code < 400:
                    try:
                        return response.json()
                    except ValueError as exc:
                        # proxies and captive portals answer 200 with HTML
                        last_error = FetchError(
                            f"GitHub returned a non-JSON body ({response.status_code}): {exc}",
                            FetchErrorKind.TRANSIENT,
                            response.status_code,
                        )
                else:
                    kind     = FetchErrorKind.from_status(response.status_code)
                    message  = f"GitHub API error: {response.status_code} {response.reason_phrase}"
                    reset_at = _parse_reset(response.headers.get("x-ratelimit-reset"))
                    if kind is FetchErrorKind.RATE_LIMITED and reset_at is not None:
                        message = f"Rate limit exceeded. Resets at {reset_at.isoformat()}"

                    last_error = FetchError(message, kind, response.status_code)
                    if kind is not FetchErrorKind.TRANSIENT:
                        raise last_error

            if attempt + 1 < MAX_RETRIES:
                wait = self._retry_backoff * 2 ** attempt
                log.warning("HTTP error attempt %d/%d: %s - retrying in %.1fs", attempt + 1, MAX_RETRIES, last_error, wait)
                await asyncio.sleep(wait)

        raise last_error

    async def _graphql(self, query: str, variables: dict) -> dict:
        body = await self._request("POST", GITHUB_GRAPHQL_URL, json={"query": query, "variables": variables})

        # GraphQL-level errors arrive with HTTP 200
        if body.get("errors"):
            for err in body["errors"]:
                if err.get("type") == "RATE_LIMITED":
                    reset_at = ((body.get("data") or {}).get("rateLimit") or {}).get("resetAt", "unknown")
                    raise RateLimitError(reset_at)
                if err.get("type") == "NOT_FOUND":
                    raise FetchError(err.get("message", "Not found"), FetchErrorKind.NOT_FOUND)
            raise FetchError(f"GraphQL errors: {body['errors']}", FetchErrorKind.TRANSIENT)

        return body["data"]

    # Anti-Corruption Layer
    def _parse_profile(self, basic: dict, user: dict) -> GitHubProfile:
        """
        Translate GitHub's REST user object plus the GraphQL stats into our
        GitHubProfile. If GitHub renames a field, fix it HERE only.
        """
        now   = self._clock()
        today = now.date()
        repos = user["repositories"]["nodes"]

        language_stats: dict[str, int] = {}
        for repo in repos:
            if repo.get("primaryLanguage"):
                lang = repo["primaryLanguage"]["name"]
                language_stats[lang] = language_stats.get(lang, 0) + 1

        calendar = user["contributionsCollection"]["contributionCalendar"]
        days = tuple(
            ContributionDay(date=date.fromisoformat(d["date"]), count=d.get("contributionCount") or 0)
            for week in calendar.get("weeks") or ()
            for d in week["contributionDays"]
        )
        windows          = contribution_windows(list(days), today)
        current, longest = streaks(list(days), today)

        total_stars   = sum(r.get("stargazerCount") or 0 for r in repos)
        total_repos   = user["repositories"]["totalCount"]
        merged_prs    = user["mergedPullRequests"]["totalCount"]
        closed_issues = user["closedIssues"]["totalCount"]
        contributions = user["contributionsCollection"]
        total_reviews = contributions["pullRequestReviewContributions"]["totalCount"]
        total_commits = contributions.get("totalCommitContributions") or 0

        return GitHubProfile(
            login                 = basic["login"],
            name                  = basic.get("name"),
            avatar_url            = basic.get("avatar_url"),
            html_url              = basic.get("html_url"),
            bio                   = basic.get("bio"),
            location              = basic.get("location"),
            followers             = basic.get("followers") or 0,
            following             = basic.get("following") or 0,
            public_repos          = basic.get("public_repos") or 0,
            total_stars           = total_stars,
            total_forks           = sum(r.get("forkCount") or 0 for r in repos),
            total_contributions   = calendar.get("totalContributions") or 0,
            daily_contributions   = windows.daily,
            weekly_contributions  = windows.weekly,
            monthly_contributions = windows.monthly,
            yearly_contributions  = windows.yearly,
            last365_contributions = windows.last365,
            current_streak        = current,
            longest_streak        = longest,
            total_commits         = total_commits,
            total_pull_requests   = user["pullRequests"]["totalCount"],
            merged_pull_requests  = merged_prs,
            total_issues          = user["issues"]["totalCount"],
            closed_issues         = closed_issues,
            total_reviews         = total_reviews,
            top_language          = _top_language(language_stats),
            language_stats        = language_stats,
            contribution_days     = days,
            points                = calculate_points(
                last365_contributions = windows.last365,
                total_stars           = total_stars,
                current_streak        = current,
                total_repositories    = total_repos,
                merged_pull_requests  = merged_prs,
                closed_issues         = closed_issues,
                total_reviews         = total_reviews,
                total_commits         = total_commits,
            ),
            fetched_at            = now,
        )

    def _parse_rest_profile(self, basic: dict, repos: list[dict]) -> GitHubProfile:
        """Degraded profile from the REST repository listing only."""
        language_stats: dict[str, int] = {}
        for repo in repos:
            if repo.get("language"):
                language_stats[repo["language"]] = language_stats.get(repo["language"], 0) + 1

        total_stars = sum(r.get("stargazers_count") or 0 for r in repos)
        return GitHubProfile(
            login          = basic["login"],
            name           = basic.get("name"),
            avatar_url     = basic.get("avatar_url"),
            html_url       = basic.get("html_url"),
            bio            = basic.get("bio"),
            location       = basic.get("location"),
            followers      = basic.get("followers") or 0,
            following      = basic.get("following") or 0,
            public_repos   = basic.get("public_repos") or 0,
            total_stars    = total_stars,
            total_forks    = sum(r.get("forks_count") or 0 for r in repos),
            top_language   = _top_language(language_stats),
            language_stats = language_stats,
            points         = total_stars * 2 + len(repos) * 3,
            fetched_at     = self._clock(),
        )

    # IProfileFetcher implementation
    async def fetch_profile(self, username: str) -> GitHubProfile:
        basic = await self._request("GET", f"{GITHUB_API_URL}/users/{username}")
        login = basic.get("login") or username

        try:
            data = await self._graphql(STATS_QUERY, {"login": login})
            if data.get("user") is None:
                raise FetchError(f"User {login} not found", FetchErrorKind.NOT_FOUND)
            rate = data.get("rateLimit") or {}
            log.debug("GraphQL rate limit: %s remaining, resets %s", rate.get("remaining"), rate.get("resetAt"))
            return self._parse_profile(basic, data["user"])
        except (FetchError, KeyError, TypeError, ValueError) as exc:
            log.warning("GraphQL stats failed for %s, falling back to REST: %s", login, exc)

        try:
            repos = await self._request(
                "GET",
                f"{GITHUB_API_URL}/users/{login}/repos",
                params={"per_page": REST_REPO_PAGE, "type": "owner"},
            )
            return self._parse_rest_profile(basic, repos)
        except FetchError as exc:
            raise FetchError(str(exc), exc.kind, exc.status, partial=basic) from exc
        except (KeyError, TypeError, AttributeError) as exc:
            raise FetchError(f"Malformed GitHub response for {login}: {exc}", partial=basic) from exc

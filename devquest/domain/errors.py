from __future__ import annotations
from enum import Enum


class FetchErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND    = "not_found"
    TRANSIENT    = "transient"

    @classmethod
    def from_status(cls, status: int | None) -> "FetchErrorKind":
        """Map an HTTP status code onto the failure class the pipeline records."""
        if status == 401:
            return cls.UNAUTHORIZED
        if status in (403, 429):
            return cls.RATE_LIMITED
        if status == 404:
            return cls.NOT_FOUND
        return cls.TRANSIENT


class FetchError(Exception):
    """
    Raised by a profile fetcher when a user's snapshot cannot be produced.

    `partial` carries whatever basic user fields were fetched before the
    failure (a dict in GitHub REST shape), so the refresh pipeline can
    build a better fallback record than a bare login.
    """

    def __init__(self,message: str,kind: FetchErrorKind = FetchErrorKind.TRANSIENT,status: int | None = None,partial: dict | None = None) -> None:
        super().__init__(message)
        self.kind    = kind
        self.status  = status
        self.partial = partial

from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_UPDATE_INTERVAL_SECONDS = 300.0
DEFAULT_BATCH_SIZE              = 5
DEFAULT_BATCH_DELAY_SECONDS     = 2.0
DEFAULT_INITIAL_DELAY_SECONDS   = 10.0
DEFAULT_MAX_AGE_MINUTES         = 30.0


def _read_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _read_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _read_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Tuning knobs for the background refresh scheduler.

    batch_size and batch_delay_seconds together bound how fast the
    scheduler spends GitHub API quota: at most `batch_size` users are
    fetched at once, with a pause between consecutive batches.
    """
    update_interval_seconds: float = DEFAULT_UPDATE_INTERVAL_SECONDS
    batch_size:              int   = DEFAULT_BATCH_SIZE
    batch_delay_seconds:     float = DEFAULT_BATCH_DELAY_SECONDS
    initial_delay_seconds:   float = DEFAULT_INITIAL_DELAY_SECONDS
    refresh_stale_only:      bool  = False
    max_age_minutes:         float = DEFAULT_MAX_AGE_MINUTES

    def __post_init__(self) -> None:
        if self.update_interval_seconds <= 0:
            raise ValueError("update_interval_seconds must be positive")
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.batch_delay_seconds < 0 or self.initial_delay_seconds < 0:
            raise ValueError("delays cannot be negative")
        if self.max_age_minutes < 0:
            raise ValueError("max_age_minutes cannot be negative")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> SchedulerConfig:
        """Build a config from BACKGROUND_UPDATE_* environment variables."""
        env = os.environ if env is None else env
        return cls(
            update_interval_seconds = _read_float(env, "BACKGROUND_UPDATE_INTERVAL_SECONDS", DEFAULT_UPDATE_INTERVAL_SECONDS),
            batch_size              = _read_int(env, "BACKGROUND_UPDATE_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            batch_delay_seconds     = _read_float(env, "BACKGROUND_UPDATE_BATCH_DELAY_SECONDS", DEFAULT_BATCH_DELAY_SECONDS),
            initial_delay_seconds   = _read_float(env, "BACKGROUND_UPDATE_INITIAL_DELAY_SECONDS", DEFAULT_INITIAL_DELAY_SECONDS),
            refresh_stale_only      = _read_bool(env, "BACKGROUND_UPDATE_STALE_ONLY", False),
            max_age_minutes         = _read_float(env, "PROFILE_MAX_AGE_MINUTES", DEFAULT_MAX_AGE_MINUTES),
        )

"""Background GitHub profile refresh and leaderboard ranking."""

__version__ = "0.1.0"

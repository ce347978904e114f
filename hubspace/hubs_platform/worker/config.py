"""Configuration helpers for the change feed worker."""

from __future__ import annotations

import os
from dataclasses import dataclass

from hubspace.core.utils.validation import require_positive


@dataclass
class FeedConfig:
    """Runtime knobs for the feed loop."""

    batch_size: int = 10
    max_batching_window_seconds: float = 5
    poll_interval: float = 1
    max_attempts: int = 3
    backoff_seconds: float = 5
    backoff_multiplier: float = 2
    visibility_timeout_seconds: float = 60

    def __post_init__(self) -> None:
        require_positive(self.batch_size, "batch_size")
        require_positive(self.max_attempts, "max_attempts")

    @classmethod
    def from_env(cls) -> "FeedConfig":
        """Build config from environment with sensible defaults."""
        return cls(
            batch_size=int(os.environ.get("FEED_BATCH_SIZE", "10")),
            max_batching_window_seconds=float(os.environ.get("FEED_MAX_BATCHING_WINDOW_SECONDS", "5")),
            poll_interval=float(os.environ.get("FEED_POLL_INTERVAL", "1")),
            max_attempts=int(os.environ.get("FEED_MAX_ATTEMPTS", "3")),
            backoff_seconds=float(os.environ.get("FEED_BACKOFF_SECONDS", "5")),
            backoff_multiplier=float(os.environ.get("FEED_BACKOFF_MULTIPLIER", "2")),
            visibility_timeout_seconds=float(os.environ.get("FEED_VISIBILITY_TIMEOUT_SECONDS", "60")),
        )

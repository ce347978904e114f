"""Configuration for the stale membership cleanup task."""

from __future__ import annotations

import os
from dataclasses import dataclass

from hubspace.core.utils.validation import require_positive


@dataclass
class JanitorConfig:
    """Runtime knobs for one cleanup run."""

    heartbeat_timeout_minutes: int = 20
    page_size: int = 25
    max_pages: int = 100
    page_pause_seconds: float = 0.1

    def __post_init__(self) -> None:
        require_positive(self.heartbeat_timeout_minutes, "heartbeat_timeout_minutes")
        require_positive(self.page_size, "page_size")
        require_positive(self.max_pages, "max_pages")
        if self.page_pause_seconds < 0:
            raise ValueError("page_pause_seconds must not be negative")

    @classmethod
    def from_env(cls) -> "JanitorConfig":
        """Build config from environment with sensible defaults."""
        return cls(
            heartbeat_timeout_minutes=int(os.environ.get("MEMBERSHIP_HEARTBEAT_TIMEOUT_MINUTES", "20")),
            page_size=int(os.environ.get("MEMBERSHIP_CLEANUP_PAGE_SIZE", "25")),
            max_pages=int(os.environ.get("MEMBERSHIP_CLEANUP_MAX_PAGES", "100")),
            page_pause_seconds=float(os.environ.get("MEMBERSHIP_CLEANUP_PAGE_PAUSE_SECONDS", "0.1")),
        )

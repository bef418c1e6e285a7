"""Storage layer for rss_reader."""

from .database import (
    Database,
    FeedAlreadyExistsError,
    FeedNotFoundError,
    dedup_key,
)

__all__ = [
    "Database",
    "FeedAlreadyExistsError",
    "FeedNotFoundError",
    "dedup_key",
]

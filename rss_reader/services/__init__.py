"""Services for rss_reader."""

from .errors import (
    ErrorCategory,
    FeedFetchError,
    MalformedFeedError,
    classify_error,
)
from .feed_parser import fetch_feed, fetch_preview, ParsedArticle, ParsedFeed
from .ingest import FeedIngestor

__all__ = [
    "ErrorCategory",
    "FeedFetchError",
    "MalformedFeedError",
    "classify_error",
    "fetch_feed",
    "fetch_preview",
    "ParsedArticle",
    "ParsedFeed",
    "FeedIngestor",
]

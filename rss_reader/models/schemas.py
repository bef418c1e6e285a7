"""Data models for rss_reader.

This module defines the core data structures for feeds, articles and the
progress events emitted while ingesting them.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


@dataclass
class Feed:
    """Represents a subscribed feed source."""

    id: int
    title: str
    url: str
    category: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    last_fetched: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "category": self.category,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "last_fetched": _iso(self.last_fetched),
        }


@dataclass
class Article:
    """Represents a stored article, annotated with its feed and favorite state."""

    id: int
    feed_id: int
    title: str
    description: str
    content: str
    url: str
    image_url: Optional[str]
    published_at: Optional[datetime]
    created_at: Optional[datetime]
    feed_title: Optional[str] = None
    feed_category: Optional[str] = None
    is_favorite: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "feed_id": self.feed_id,
            "title": self.title,
            "description": self.description,
            "content": self.content,
            "url": self.url,
            "image_url": self.image_url,
            "published_at": _iso(self.published_at),
            "created_at": _iso(self.created_at),
            "feed_title": self.feed_title,
            "feed_category": self.feed_category,
            "is_favorite": self.is_favorite,
        }


@dataclass
class Category:
    """A feed category with the number of feeds filed under it."""

    name: str
    count: int


class FeedStep(str, Enum):
    """Steps of the add-feed operation."""

    FETCHING = "fetching"
    CREATING = "creating"
    IMPORTING = "importing"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ERROR = "error"


class RefreshStep(str, Enum):
    """Steps of the refresh-all operation."""

    STARTING = "starting"
    UPDATING = "updating"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class FeedProgress:
    """Progress event for a single add-feed operation."""

    step: FeedStep
    message: str
    progress: int

    def to_dict(self) -> Dict[str, Any]:
        return {"step": self.step.value, "message": self.message, "progress": self.progress}


@dataclass
class RefreshProgress:
    """Progress event for a bulk refresh."""

    step: RefreshStep
    message: str
    progress: int
    current: int
    total: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.value,
            "message": self.message,
            "progress": self.progress,
            "current": self.current,
            "total": self.total,
        }


@dataclass
class FeedOutcome:
    """Result of refreshing one feed during a bulk refresh."""

    feed_id: int
    success: bool
    article_count: Optional[int] = None
    error: Optional[str] = None
    error_category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"feed_id": self.feed_id, "success": self.success}
        if self.success:
            data["article_count"] = self.article_count
        else:
            data["error"] = self.error
            data["error_category"] = self.error_category
        return data


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None

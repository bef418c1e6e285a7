"""Feed parser service.

This module fetches RSS/Atom feeds and normalizes their entries into
article candidates.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterator, List, Optional

import feedparser
import httpx
from bs4 import BeautifulSoup

from rss_reader.services.errors import MalformedFeedError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_USER_AGENT = "RSSReader/1.0 (+feed ingestion)"

UNTITLED_ARTICLE = "Untitled"
UNTITLED_FEED = "Untitled Feed"
SNIPPET_LENGTH = 200

IMG_SRC_RE = re.compile(r"""<img\b[^>]*?\bsrc\s*=\s*["']([^"']+)["']""", re.IGNORECASE)


@dataclass
class ParsedArticle:
    """Represents a normalized article candidate parsed from a feed."""

    title: str
    description: str
    content: str
    url: str
    published_at: datetime
    image_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "content": self.content,
            "url": self.url,
            "published_at": self.published_at.isoformat(),
            "image_url": self.image_url,
        }


@dataclass
class ParsedFeed:
    """A fetched feed document.

    Entries are normalized lazily by ``iter_articles``; ``fetched_at`` stands
    in for entries that carry no usable date.
    """

    title: str
    description: str
    entries: List[Any]
    fetched_at: datetime

    def __len__(self) -> int:
        return len(self.entries)

    def iter_articles(self) -> Iterator[ParsedArticle]:
        for entry in self.entries:
            yield normalize_entry(entry, self.fetched_at)


async def fetch_feed(
    feed_url: str,
    timeout: float = DEFAULT_TIMEOUT,
    user_agent: str = DEFAULT_USER_AGENT,
) -> ParsedFeed:
    """Fetch and parse an RSS/Atom feed.

    Network, TLS, timeout and HTTP status failures propagate as the httpx
    exceptions that raised them.

    Args:
        feed_url: URL of the feed to fetch
        timeout: Request timeout in seconds
        user_agent: User-Agent header sent with the request

    Returns:
        ParsedFeed with feed metadata and raw entries

    Raises:
        MalformedFeedError: If the document is not a recognizable feed
    """
    logger.info(f"Fetching feed: {feed_url}")

    async with httpx.AsyncClient(
        follow_redirects=True,
        timeout=timeout,
        headers={"User-Agent": user_agent},
    ) as client:
        response = await client.get(feed_url)
        response.raise_for_status()

    feed = feedparser.parse(response.content)

    if feed.bozo and not feed.entries:
        raise MalformedFeedError(f"Feed parsing error: {feed.get('bozo_exception')}")

    if not feed.get("version") and not feed.entries and not feed.feed.get("title"):
        raise MalformedFeedError("Document is not an RSS or Atom feed")

    if feed.bozo:
        logger.warning(f"Feed has parse warnings: {feed.get('bozo_exception')}")

    parsed = ParsedFeed(
        title=(feed.feed.get("title") or "").strip() or UNTITLED_FEED,
        description=(feed.feed.get("subtitle") or feed.feed.get("description") or "").strip(),
        entries=list(feed.entries),
        fetched_at=datetime.now(timezone.utc),
    )

    logger.info(f"Fetched {len(parsed)} entries from feed")
    return parsed


async def fetch_preview(
    feed_url: str,
    timeout: float = DEFAULT_TIMEOUT,
    user_agent: str = DEFAULT_USER_AGENT,
) -> List[ParsedArticle]:
    """Fetch a feed and return its normalized articles without storing them."""
    parsed = await fetch_feed(feed_url, timeout=timeout, user_agent=user_agent)
    return list(parsed.iter_articles())


def normalize_entry(entry: dict, fetched_at: Optional[datetime] = None) -> ParsedArticle:
    """Normalize a feedparser entry into a ParsedArticle.

    Missing fields fall back to defaults; this never raises for sparse entries.

    Args:
        entry: feedparser entry (dict-like)
        fetched_at: Instant used when the entry has no usable date

    Returns:
        ParsedArticle candidate
    """
    title = (entry.get("title") or "").strip() or UNTITLED_ARTICLE

    encoded = _encoded_content(entry)
    summary = entry.get("summary") or ""
    # feedparser copies the body into summary when the item has no summary of its own
    if summary and summary == encoded:
        summary = ""

    snippet = _snippet(encoded)

    description = summary or snippet or ""
    content = encoded or summary or ""

    published_at = _parse_date(entry) or fetched_at or datetime.now(timezone.utc)

    return ParsedArticle(
        title=title,
        description=description,
        content=content,
        url=(entry.get("link") or "").strip(),
        published_at=published_at,
        image_url=_extract_image(entry, encoded, summary),
    )


def _encoded_content(entry: dict) -> str:
    """Return the richest body feedparser found (content:encoded, atom content)."""
    for item in entry.get("content") or []:
        value = item.get("value")
        if value:
            return value
    return ""


def _snippet(markup: str) -> str:
    if not markup:
        return ""
    text = BeautifulSoup(markup, "lxml").get_text(" ", strip=True)
    text = " ".join(text.split())
    if len(text) > SNIPPET_LENGTH:
        text = text[:SNIPPET_LENGTH].rstrip() + "..."
    return text


def _extract_image(entry: dict, content: str, summary: str) -> Optional[str]:
    """Find a lead image for an entry.

    Priority: media thumbnail, image media content, image enclosure, then
    the first <img> in the content or summary markup.
    """
    for thumb in entry.get("media_thumbnail") or []:
        url = thumb.get("url")
        if url:
            return url

    for media in entry.get("media_content") or []:
        url = media.get("url")
        media_type = (media.get("type") or "").lower()
        if url and (media_type.startswith("image/") or media.get("medium") == "image"):
            return url

    for enclosure in entry.get("enclosures") or []:
        url = enclosure.get("href") or enclosure.get("url")
        if url and (enclosure.get("type") or "").lower().startswith("image/"):
            return url

    for markup in (content, summary):
        if not markup:
            continue
        match = IMG_SRC_RE.search(markup)
        if match:
            return match.group(1)

    return None


def _parse_date(entry: dict) -> Optional[datetime]:
    """Parse the publication date from a feed entry.

    Args:
        entry: Feed entry dict

    Returns:
        timezone-aware UTC datetime if parsed successfully, None otherwise
    """
    for field in ["published", "updated", "created"]:
        # feedparser normalizes to a UTC time.struct_time
        parsed = entry.get(f"{field}_parsed")
        if parsed:
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (ValueError, TypeError):
                pass

        date_str = entry.get(field)
        if not date_str:
            continue

        # Try RFC 2822 format (common in RSS)
        try:
            parsed_date = parsedate_to_datetime(date_str)
            if parsed_date is not None:
                return _as_utc(parsed_date)
        except (ValueError, TypeError, IndexError):
            pass

        # Try ISO format
        try:
            return _as_utc(datetime.fromisoformat(date_str.replace("Z", "+00:00")))
        except (ValueError, AttributeError):
            pass

    return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

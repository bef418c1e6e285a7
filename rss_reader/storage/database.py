"""Database storage for rss_reader.

This module provides async SQLite operations for feeds, articles, favorites
and settings. A Database wraps a single connection and is constructed
explicitly by the process that owns it, then handed to whatever needs it.
"""

import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import aiosqlite

from rss_reader.models.schemas import Article, Category, Feed

DEFAULT_CATEGORY = "General"

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS feeds (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        url TEXT NOT NULL UNIQUE,
        category TEXT NOT NULL DEFAULT 'General',
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP NOT NULL,
        last_fetched TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS articles (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        feed_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        content TEXT NOT NULL DEFAULT '',
        url TEXT NOT NULL,
        dedup_key TEXT NOT NULL,
        image_url TEXT,
        published_at TIMESTAMP,
        created_at TIMESTAMP NOT NULL,
        FOREIGN KEY (feed_id) REFERENCES feeds(id) ON DELETE CASCADE,
        UNIQUE (feed_id, dedup_key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS favorites (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        article_id INTEGER NOT NULL UNIQUE,
        created_at TIMESTAMP NOT NULL,
        FOREIGN KEY (article_id) REFERENCES articles(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_articles_feed_id ON articles(feed_id)",
    "CREATE INDEX IF NOT EXISTS idx_articles_published_at ON articles(published_at)",
]

ARTICLE_SELECT = """
    SELECT a.*,
           f.title AS feed_title,
           f.category AS feed_category,
           CASE WHEN fav.article_id IS NOT NULL THEN 1 ELSE 0 END AS is_favorite
    FROM articles a
    JOIN feeds f ON a.feed_id = f.id
    LEFT JOIN favorites fav ON a.id = fav.article_id
"""


class FeedAlreadyExistsError(ValueError):
    """Raised when a feed URL is already registered."""


class FeedNotFoundError(LookupError):
    """Raised when updating a feed that does not exist."""


def _now() -> str:
    return _to_iso(datetime.now(timezone.utc))


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def dedup_key(url: str, title: str, description: str, content: str) -> str:
    """Identity of an article within its feed.

    The URL when there is one; otherwise a content hash, so that several
    link-less items from one feed do not collapse into a single row.
    """
    if url:
        return url
    digest = hashlib.sha256(
        "\x1f".join((title, description, content)).encode("utf-8")
    ).hexdigest()
    return f"sha256:{digest}"


def _row_to_feed(row: aiosqlite.Row) -> Feed:
    return Feed(
        id=row["id"],
        title=row["title"],
        url=row["url"],
        category=row["category"],
        created_at=_from_iso(row["created_at"]),
        updated_at=_from_iso(row["updated_at"]),
        last_fetched=_from_iso(row["last_fetched"]),
    )


def _row_to_article(row: aiosqlite.Row) -> Article:
    return Article(
        id=row["id"],
        feed_id=row["feed_id"],
        title=row["title"],
        description=row["description"],
        content=row["content"],
        url=row["url"],
        image_url=row["image_url"],
        published_at=_from_iso(row["published_at"]),
        created_at=_from_iso(row["created_at"]),
        feed_title=row["feed_title"],
        feed_category=row["feed_category"],
        is_favorite=bool(row["is_favorite"]),
    )


class Database:
    """Persistence layer over one aiosqlite connection.

    Usage:
        db = await Database.open(path)
        ...
        await db.close()

    or ``async with await Database.open(path) as db: ...``.
    """

    def __init__(self, connection: aiosqlite.Connection):
        self._db = connection

    @classmethod
    async def open(
        cls,
        path: Union[str, Path],
        default_settings: Optional[Dict[str, str]] = None,
    ) -> "Database":
        """Open (creating if needed) the database at ``path``.

        Args:
            path: Filesystem path, or ":memory:" for an in-memory database
            default_settings: Settings inserted only if not already present

        Returns:
            Initialized Database
        """
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        connection = await aiosqlite.connect(str(path))
        connection.row_factory = aiosqlite.Row

        db = cls(connection)
        await db.init_schema(default_settings)
        return db

    @property
    def connection(self) -> aiosqlite.Connection:
        return self._db

    async def init_schema(self, default_settings: Optional[Dict[str, str]] = None) -> None:
        """Create tables and indexes if they don't exist, then seed settings."""
        await self._db.execute("PRAGMA foreign_keys = ON")
        for statement in SCHEMA:
            await self._db.execute(statement)

        now = _now()
        for key, value in (default_settings or {}).items():
            await self._db.execute(
                "INSERT OR IGNORE INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, now),
            )

        await self._db.commit()

    async def close(self) -> None:
        await self._db.close()

    async def __aenter__(self) -> "Database":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # Feeds

    async def create_feed(
        self, title: str, url: str, category: str = DEFAULT_CATEGORY
    ) -> int:
        """Register a new feed.

        Args:
            title: Display title
            url: Feed source URL (globally unique)
            category: Category label

        Returns:
            ID of the new feed

        Raises:
            FeedAlreadyExistsError: If a feed with the same URL exists
        """
        now = _now()
        try:
            cursor = await self._db.execute(
                """
                INSERT INTO feeds (title, url, category, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (title, url, category or DEFAULT_CATEGORY, now, now),
            )
            await self._db.commit()
        except aiosqlite.IntegrityError as e:
            await self._db.rollback()
            raise FeedAlreadyExistsError(f"Feed with URL '{url}' already exists") from e

        return cursor.lastrowid

    async def get_feed(self, feed_id: int) -> Optional[Feed]:
        cursor = await self._db.execute("SELECT * FROM feeds WHERE id = ?", (feed_id,))
        row = await cursor.fetchone()
        return _row_to_feed(row) if row else None

    async def list_feeds(self) -> List[Feed]:
        """List all feeds ordered by category, then title."""
        cursor = await self._db.execute("SELECT * FROM feeds ORDER BY category, title, id")
        return [_row_to_feed(row) async for row in cursor]

    async def update_feed(
        self,
        feed_id: int,
        title: Optional[str] = None,
        url: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Feed:
        """Update the given fields of a feed; None leaves a field unchanged.

        Raises:
            FeedNotFoundError: If the feed does not exist
            FeedAlreadyExistsError: If the new URL belongs to another feed
        """
        fields: List[str] = []
        params: List[Any] = []

        if title is not None:
            fields.append("title = ?")
            params.append(title)
        if url is not None:
            fields.append("url = ?")
            params.append(url)
        if category is not None:
            fields.append("category = ?")
            params.append(category)

        fields.append("updated_at = ?")
        params.append(_now())
        params.append(feed_id)

        try:
            cursor = await self._db.execute(
                f"UPDATE feeds SET {', '.join(fields)} WHERE id = ?", params
            )
            await self._db.commit()
        except aiosqlite.IntegrityError as e:
            await self._db.rollback()
            raise FeedAlreadyExistsError(f"Feed with URL '{url}' already exists") from e

        if cursor.rowcount == 0:
            raise FeedNotFoundError(f"Feed with id {feed_id} not found")

        return await self.get_feed(feed_id)

    async def delete_feed(self, feed_id: int) -> bool:
        """Delete a feed; its articles and their favorites go with it.

        Returns:
            True if a feed was deleted
        """
        cursor = await self._db.execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
        await self._db.commit()
        return cursor.rowcount > 0

    async def touch_last_fetched(self, feed_id: int) -> None:
        await self._db.execute(
            "UPDATE feeds SET last_fetched = ? WHERE id = ?",
            (_now(), feed_id),
        )
        await self._db.commit()

    async def list_categories(self) -> List[Category]:
        """Group feeds by category with a feed count per category."""
        cursor = await self._db.execute(
            """
            SELECT category, COUNT(*) AS count
            FROM feeds
            GROUP BY category
            ORDER BY category
            """
        )
        return [Category(name=row["category"], count=row["count"]) async for row in cursor]

    # Articles

    async def insert_article_if_absent(
        self,
        feed_id: int,
        title: str,
        description: str,
        content: str,
        url: str,
        published_at: Optional[datetime],
        image_url: Optional[str] = None,
    ) -> bool:
        """Insert an article unless the feed already has it.

        Returns:
            True if a new row was inserted, False if it already existed
        """
        now = _now()
        cursor = await self._db.execute(
            """
            INSERT INTO articles (
                feed_id, title, description, content, url, dedup_key,
                image_url, published_at, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (feed_id, dedup_key) DO NOTHING
            """,
            (
                feed_id,
                title,
                description or "",
                content or "",
                url or "",
                dedup_key(url or "", title, description or "", content or ""),
                image_url,
                _to_iso(published_at) if published_at else now,
                now,
            ),
        )
        await self._db.commit()
        return cursor.rowcount == 1

    async def get_article(self, article_id: int) -> Optional[Article]:
        cursor = await self._db.execute(ARTICLE_SELECT + " WHERE a.id = ?", (article_id,))
        row = await cursor.fetchone()
        return _row_to_article(row) if row else None

    async def list_articles(
        self,
        feed_id: Optional[int] = None,
        category: Optional[str] = None,
    ) -> List[Article]:
        """List articles, newest first, optionally filtered by feed and/or category."""
        query = ARTICLE_SELECT + " WHERE 1=1"
        params: List[Any] = []

        if feed_id is not None:
            query += " AND a.feed_id = ?"
            params.append(feed_id)

        if category is not None:
            query += " AND f.category = ?"
            params.append(category)

        query += " ORDER BY a.published_at DESC, a.created_at DESC, a.id DESC"

        cursor = await self._db.execute(query, params)
        return [_row_to_article(row) async for row in cursor]

    async def count_articles(self, feed_id: int) -> int:
        cursor = await self._db.execute(
            "SELECT COUNT(*) AS count FROM articles WHERE feed_id = ?", (feed_id,)
        )
        row = await cursor.fetchone()
        return row["count"]

    # Favorites

    async def add_favorite(self, article_id: int) -> None:
        """Favorite an article. Already-favorited articles are left as they are."""
        await self._db.execute(
            """
            INSERT INTO favorites (article_id, created_at) VALUES (?, ?)
            ON CONFLICT (article_id) DO NOTHING
            """,
            (article_id, _now()),
        )
        await self._db.commit()

    async def remove_favorite(self, article_id: int) -> None:
        await self._db.execute("DELETE FROM favorites WHERE article_id = ?", (article_id,))
        await self._db.commit()

    async def is_favorite(self, article_id: int) -> bool:
        cursor = await self._db.execute(
            "SELECT 1 FROM favorites WHERE article_id = ?", (article_id,)
        )
        return await cursor.fetchone() is not None

    async def list_favorites(self) -> List[Article]:
        """List favorited articles, most recently favorited first."""
        cursor = await self._db.execute(
            """
            SELECT a.*,
                   f.title AS feed_title,
                   f.category AS feed_category,
                   1 AS is_favorite
            FROM favorites fav
            JOIN articles a ON fav.article_id = a.id
            JOIN feeds f ON a.feed_id = f.id
            ORDER BY fav.created_at DESC, fav.id DESC
            """
        )
        return [_row_to_article(row) async for row in cursor]

    # Settings

    async def get_setting(self, key: str) -> Optional[str]:
        cursor = await self._db.execute("SELECT value FROM settings WHERE key = ?", (key,))
        row = await cursor.fetchone()
        return row["value"] if row else None

    async def set_setting(self, key: str, value: str) -> None:
        await self._db.execute(
            """
            INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT (key) DO UPDATE SET value = excluded.value,
                                            updated_at = excluded.updated_at
            """,
            (key, value, _now()),
        )
        await self._db.commit()

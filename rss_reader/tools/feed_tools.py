"""RSS reader MCP tools.

This module provides MCP tools for subscribing to feeds, refreshing them,
browsing articles, managing favorites and storing reader settings.

NOTE: Never use Optional parameters in MCP tools - they break MCP clients.
Use empty string "" for optional strings and 0 for optional integers.
"""

import logging
from typing import Any, Dict

from mcp.server.fastmcp import Context

from rss_reader.services.errors import FeedFetchError
from rss_reader.storage.database import FeedAlreadyExistsError, FeedNotFoundError
from rss_reader.tools.context import (
    AUTOPLAY_INTERVAL_KEY,
    THEME_KEY,
    get_app_context,
)

logger = logging.getLogger(__name__)

THEMES = ("light", "dark")


def _progress_reporter(ctx: Context):
    """Forward engine progress events to the MCP client."""

    async def report(event) -> None:
        logger.debug(f"progress: {event.to_dict()}")
        await ctx.report_progress(progress=event.progress, total=100, message=event.message)

    return report


def _fetch_error(e: FeedFetchError) -> Dict[str, Any]:
    return {
        "success": False,
        "error": e.message,
        "error_category": e.category.value,
        "cause": e.cause,
    }


async def add_feed(
    url: str,
    title: str = "",
    category: str = "",
    ctx: Context = None,
) -> Dict[str, Any]:
    """Subscribe to an RSS/Atom feed and import its current articles.

    Progress is reported while the feed is fetched, created and its articles
    imported. Articles already known for the feed are skipped.

    Args:
        url: URL of the RSS/Atom feed
        title: Display title (empty string to use the feed's own title)
        category: Category label (empty string for the default category)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - feed: object with id, title, url, category, timestamps (if successful)
        - error: string if success is False
        - error_category: classified fetch failure category, when the fetch failed
    """
    logger.info(f"add_feed called: url={url}, title={title}, category={category}")

    app = get_app_context(ctx)

    try:
        feed = await app.ingestor.add_feed(
            url,
            title=title,
            category=category or None,
            progress=_progress_reporter(ctx),
        )
    except FeedFetchError as e:
        return _fetch_error(e)
    except (FeedAlreadyExistsError, ValueError) as e:
        return {
            "success": False,
            "error": str(e),
        }

    return {
        "success": True,
        "feed": feed.to_dict(),
        "article_count": await app.db.count_articles(feed.id),
    }


async def refresh_all_feeds(ctx: Context = None) -> Dict[str, Any]:
    """Fetch every subscribed feed again and import new articles.

    Feeds are refreshed one at a time. A feed that fails is reported in its
    result entry and does not stop the others.

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - feeds_refreshed: number of feeds processed
        - total_new_articles: new articles across all feeds
        - results: list of {feed_id, success, article_count | error, error_category}
    """
    logger.info("refresh_all_feeds called")

    app = get_app_context(ctx)
    outcomes = await app.ingestor.refresh_all_feeds(progress=_progress_reporter(ctx))

    return {
        "success": True,
        "feeds_refreshed": len(outcomes),
        "total_new_articles": sum(o.article_count or 0 for o in outcomes),
        "results": [o.to_dict() for o in outcomes],
    }


async def fetch_preview(url: str, ctx: Context = None) -> Dict[str, Any]:
    """Fetch a feed and return its articles without subscribing to it.

    Args:
        url: URL of the RSS/Atom feed
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - count: number of articles
        - articles: list of normalized articles (title, description, content,
          url, published_at, image_url)
        - error / error_category: if the fetch failed
    """
    logger.info(f"fetch_preview called: url={url}")

    app = get_app_context(ctx)

    try:
        articles = await app.ingestor.fetch_preview(url)
    except FeedFetchError as e:
        return _fetch_error(e)

    return {
        "success": True,
        "count": len(articles),
        "articles": [a.to_dict() for a in articles],
    }


async def list_feeds(ctx: Context = None) -> Dict[str, Any]:
    """List all subscribed feeds, ordered by category and then title.

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - count: number of feeds
        - feeds: list of feed objects
    """
    logger.info("list_feeds called")

    app = get_app_context(ctx)
    feeds = await app.db.list_feeds()

    return {
        "success": True,
        "count": len(feeds),
        "feeds": [f.to_dict() for f in feeds],
    }


async def get_feed(feed_id: int, ctx: Context = None) -> Dict[str, Any]:
    """Get a single feed by ID.

    Args:
        feed_id: Database ID of the feed
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - feed: feed object (if found)
        - error: string if the feed was not found
    """
    logger.info(f"get_feed called: feed_id={feed_id}")

    app = get_app_context(ctx)
    feed = await app.db.get_feed(feed_id)

    if feed is None:
        return {
            "success": False,
            "error": f"Feed with id {feed_id} not found",
        }

    return {
        "success": True,
        "feed": feed.to_dict(),
    }


async def update_feed(
    feed_id: int,
    title: str = "",
    url: str = "",
    category: str = "",
    ctx: Context = None,
) -> Dict[str, Any]:
    """Change a feed's title, URL or category.

    Only non-empty arguments are applied.

    Args:
        feed_id: Database ID of the feed
        title: New title (empty string to keep)
        url: New feed URL (empty string to keep)
        category: New category (empty string to keep)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - feed: updated feed object
        - error: string if the feed was not found or the URL is taken
    """
    logger.info(f"update_feed called: feed_id={feed_id}, title={title}, url={url}, category={category}")

    app = get_app_context(ctx)

    try:
        feed = await app.db.update_feed(
            feed_id,
            title=title or None,
            url=url or None,
            category=category or None,
        )
    except (FeedNotFoundError, FeedAlreadyExistsError) as e:
        return {
            "success": False,
            "error": str(e),
        }

    return {
        "success": True,
        "feed": feed.to_dict(),
    }


async def delete_feed(feed_id: int, ctx: Context = None) -> Dict[str, Any]:
    """Unsubscribe from a feed, deleting its articles and their favorites.

    This action cannot be undone.

    Args:
        feed_id: Database ID of the feed
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - message: confirmation string if successful
        - articles_deleted: count of articles removed
        - error: string if the feed was not found
    """
    logger.info(f"delete_feed called: feed_id={feed_id}")

    app = get_app_context(ctx)
    article_count = await app.db.count_articles(feed_id)

    if not await app.db.delete_feed(feed_id):
        return {
            "success": False,
            "error": f"Feed with id {feed_id} not found",
        }

    return {
        "success": True,
        "message": f"Removed feed {feed_id} and {article_count} articles",
        "articles_deleted": article_count,
    }


async def list_articles(
    feed_id: int = 0,
    category: str = "",
    ctx: Context = None,
) -> Dict[str, Any]:
    """List articles, newest first, optionally filtered by feed or category.

    Args:
        feed_id: Only articles from this feed (0 for all feeds)
        category: Only articles from feeds in this category (empty string for all)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - count: number of articles returned
        - articles: list of articles with feed_title, feed_category, is_favorite
        - filters_applied: summary of active filters
    """
    logger.info(f"list_articles called: feed_id={feed_id}, category={category}")

    app = get_app_context(ctx)
    articles = await app.db.list_articles(
        feed_id=feed_id or None,
        category=category or None,
    )

    return {
        "success": True,
        "count": len(articles),
        "filters_applied": {
            "feed_id": feed_id or None,
            "category": category or None,
        },
        "articles": [a.to_dict() for a in articles],
    }


async def list_categories(ctx: Context = None) -> Dict[str, Any]:
    """List feed categories with the number of feeds in each.

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - categories: list of {name, count}
    """
    logger.info("list_categories called")

    app = get_app_context(ctx)
    categories = await app.db.list_categories()

    return {
        "success": True,
        "categories": [{"name": c.name, "count": c.count} for c in categories],
    }


async def add_favorite(article_id: int, ctx: Context = None) -> Dict[str, Any]:
    """Mark an article as a favorite. Favoriting twice is harmless.

    Args:
        article_id: Database ID of the article (from list_articles response)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - article_id: the article
        - is_favorite: true
        - error: string if the article was not found
    """
    logger.info(f"add_favorite called: article_id={article_id}")

    app = get_app_context(ctx)

    if await app.db.get_article(article_id) is None:
        return {
            "success": False,
            "error": f"Article with id {article_id} not found",
        }

    await app.db.add_favorite(article_id)

    return {
        "success": True,
        "article_id": article_id,
        "is_favorite": True,
    }


async def remove_favorite(article_id: int, ctx: Context = None) -> Dict[str, Any]:
    """Remove an article from favorites. Removing a non-favorite is harmless.

    Args:
        article_id: Database ID of the article
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - article_id: the article
        - is_favorite: false
    """
    logger.info(f"remove_favorite called: article_id={article_id}")

    app = get_app_context(ctx)
    await app.db.remove_favorite(article_id)

    return {
        "success": True,
        "article_id": article_id,
        "is_favorite": False,
    }


async def list_favorites(ctx: Context = None) -> Dict[str, Any]:
    """List favorite articles, most recently favorited first.

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - count: number of favorites
        - articles: list of article objects
    """
    logger.info("list_favorites called")

    app = get_app_context(ctx)
    articles = await app.db.list_favorites()

    return {
        "success": True,
        "count": len(articles),
        "articles": [a.to_dict() for a in articles],
    }


async def get_setting(key: str, ctx: Context = None) -> Dict[str, Any]:
    """Read a stored setting.

    Args:
        key: Setting name
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - key: the setting name
        - value: stored string, or null if never set
    """
    logger.info(f"get_setting called: key={key}")

    app = get_app_context(ctx)

    return {
        "success": True,
        "key": key,
        "value": await app.db.get_setting(key),
    }


async def set_setting(key: str, value: str, ctx: Context = None) -> Dict[str, Any]:
    """Store a setting, replacing any previous value.

    Args:
        key: Setting name
        value: Setting value
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - key, value: what was stored
    """
    logger.info(f"set_setting called: key={key}")

    if not key:
        return {
            "success": False,
            "error": "Setting key must not be empty",
        }

    app = get_app_context(ctx)
    await app.db.set_setting(key, value)

    return {
        "success": True,
        "key": key,
        "value": value,
    }


async def get_theme(ctx: Context = None) -> Dict[str, Any]:
    """Get the reader theme ("light" or "dark").

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - theme: current theme
    """
    app = get_app_context(ctx)
    theme = await app.db.get_setting(THEME_KEY)

    return {
        "success": True,
        "theme": theme if theme in THEMES else app.config.default_theme,
    }


async def set_theme(theme: str, ctx: Context = None) -> Dict[str, Any]:
    """Set the reader theme.

    Args:
        theme: "light" or "dark"
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - theme: stored theme
        - error: string if the theme is not supported
    """
    logger.info(f"set_theme called: theme={theme}")

    if theme not in THEMES:
        return {
            "success": False,
            "error": f"Unsupported theme '{theme}'. Use one of: {', '.join(THEMES)}",
        }

    app = get_app_context(ctx)
    await app.db.set_setting(THEME_KEY, theme)

    return {
        "success": True,
        "theme": theme,
    }


async def get_autoplay_interval(ctx: Context = None) -> Dict[str, Any]:
    """Get the auto-play interval used when browsing articles hands-free.

    Args:
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - interval_ms: milliseconds each article is shown
    """
    app = get_app_context(ctx)
    stored = await app.db.get_setting(AUTOPLAY_INTERVAL_KEY)

    try:
        interval = int(stored) if stored else app.config.autoplay_interval_ms
    except ValueError:
        interval = app.config.autoplay_interval_ms

    if interval <= 0:
        interval = app.config.autoplay_interval_ms

    return {
        "success": True,
        "interval_ms": interval,
    }


async def set_autoplay_interval(interval_ms: int, ctx: Context = None) -> Dict[str, Any]:
    """Set the auto-play interval.

    Args:
        interval_ms: Milliseconds each article is shown (must be positive)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - interval_ms: stored interval
        - error: string if the interval is not positive
    """
    logger.info(f"set_autoplay_interval called: interval_ms={interval_ms}")

    if interval_ms <= 0:
        return {
            "success": False,
            "error": f"Auto-play interval must be positive, got {interval_ms}",
        }

    app = get_app_context(ctx)
    await app.db.set_setting(AUTOPLAY_INTERVAL_KEY, str(interval_ms))

    return {
        "success": True,
        "interval_ms": interval_ms,
    }


# List of feed tools for registration
feed_tools = [
    add_feed,
    refresh_all_feeds,
    fetch_preview,
    list_feeds,
    get_feed,
    update_feed,
    delete_feed,
    list_articles,
    list_categories,
    add_favorite,
    remove_favorite,
    list_favorites,
    get_setting,
    set_setting,
    get_theme,
    set_theme,
    get_autoplay_interval,
    set_autoplay_interval,
]

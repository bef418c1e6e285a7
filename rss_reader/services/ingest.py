"""Feed ingestion orchestrators.

FeedIngestor drives the add-feed flow (fetch, create, import, finalize) and
the sequential refresh of every subscribed feed, reporting progress through
an optional sink. The sink may be a plain function or a coroutine function;
it receives FeedProgress or RefreshProgress events in order, and the
terminal event (completed or error) is always the last one emitted.
"""

import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Union

from rss_reader.config import ServerConfig
from rss_reader.models.schemas import (
    Feed,
    FeedOutcome,
    FeedProgress,
    FeedStep,
    RefreshProgress,
    RefreshStep,
)
from rss_reader.services import feed_parser
from rss_reader.services.errors import FeedFetchError, classify_error
from rss_reader.services.feed_parser import ParsedArticle, ParsedFeed
from rss_reader.storage.database import Database

logger = logging.getLogger(__name__)

ProgressEvent = Union[FeedProgress, RefreshProgress]
ProgressSink = Callable[[ProgressEvent], Union[None, Awaitable[None]]]

FETCHING_PERCENT = 20
CREATING_PERCENT = 40
IMPORT_START_PERCENT = 60
IMPORT_END_PERCENT = 90
FINALIZING_PERCENT = 95


async def _emit(sink: Optional[ProgressSink], event: ProgressEvent) -> None:
    if sink is None:
        return
    result = sink(event)
    if inspect.isawaitable(result):
        await result


def import_progress(processed: int, total: int) -> int:
    """Percent for the import step after ``processed`` of ``total`` candidates."""
    if total <= 0:
        return IMPORT_END_PERCENT
    span = IMPORT_END_PERCENT - IMPORT_START_PERCENT
    return IMPORT_START_PERCENT + round(span * processed / total)


class FeedIngestor:
    """Fetches feeds and imports their articles into a Database."""

    def __init__(self, db: Database, config: Optional[ServerConfig] = None):
        self.db = db
        self.config = config or ServerConfig()

    async def fetch(self, url: str) -> ParsedFeed:
        """Fetch a feed, classifying any failure.

        Raises:
            FeedFetchError: For every network, HTTP or parse failure
        """
        try:
            return await feed_parser.fetch_feed(
                url,
                timeout=self.config.fetch_timeout,
                user_agent=self.config.user_agent,
            )
        except Exception as e:
            error = classify_error(e)
            logger.warning(
                f"Fetch failed for {url}: {error.category.value} ({error.cause})"
            )
            raise error from e

    async def fetch_preview(self, url: str) -> List[ParsedArticle]:
        """Fetch and normalize a feed without storing anything."""
        parsed = await self.fetch(url)
        return list(parsed.iter_articles())

    async def import_articles(
        self,
        feed_id: int,
        parsed: ParsedFeed,
        on_article: Optional[Callable[[int, int, int], Awaitable[None]]] = None,
    ) -> int:
        """Insert every candidate of ``parsed`` that the feed doesn't have yet.

        Args:
            feed_id: Owning feed
            parsed: Fetched feed document
            on_article: Awaited after each candidate with
                (processed, total, inserted so far)

        Returns:
            Number of newly inserted articles
        """
        total = len(parsed)
        inserted = 0

        for processed, article in enumerate(parsed.iter_articles(), start=1):
            if await self.db.insert_article_if_absent(
                feed_id,
                article.title,
                article.description,
                article.content,
                article.url,
                article.published_at,
                article.image_url,
            ):
                inserted += 1
            if on_article is not None:
                await on_article(processed, total, inserted)

        return inserted

    async def add_feed(
        self,
        url: str,
        title: str = "",
        category: Optional[str] = None,
        progress: Optional[ProgressSink] = None,
    ) -> Feed:
        """Subscribe to a feed and import its current articles.

        A failure after the feed row was created removes that row again, so
        the same URL can be retried.

        Args:
            url: Feed source URL
            title: Display title; the feed's own title is used when empty
            category: Category label; the configured default when empty
            progress: Optional sink for FeedProgress events

        Returns:
            The stored Feed, with last_fetched set

        Raises:
            ValueError: If the URL is empty
            FeedFetchError: If the feed could not be fetched or parsed
            FeedAlreadyExistsError: If the URL is already subscribed
        """
        feed_id: Optional[int] = None
        try:
            url = (url or "").strip()
            if not url:
                raise ValueError("Feed URL is required")

            await _emit(progress, FeedProgress(FeedStep.FETCHING, "Fetching feed...", FETCHING_PERCENT))
            parsed = await self.fetch(url)

            effective_title = (title or "").strip() or parsed.title
            await _emit(progress, FeedProgress(FeedStep.CREATING, "Creating feed...", CREATING_PERCENT))
            feed_id = await self.db.create_feed(
                effective_title, url, category or self.config.default_category
            )

            total = len(parsed)
            await _emit(
                progress,
                FeedProgress(
                    FeedStep.IMPORTING,
                    f"Importing articles... ({total} found)",
                    IMPORT_START_PERCENT,
                ),
            )

            async def on_article(processed: int, total: int, inserted: int) -> None:
                await _emit(
                    progress,
                    FeedProgress(
                        FeedStep.IMPORTING,
                        f"Importing articles... ({processed}/{total})",
                        import_progress(processed, total),
                    ),
                )

            imported = await self.import_articles(feed_id, parsed, on_article)
            if total == 0:
                await on_article(0, 0, 0)

            await _emit(progress, FeedProgress(FeedStep.FINALIZING, "Finalizing...", FINALIZING_PERCENT))
            await self.db.touch_last_fetched(feed_id)
            feed = await self.db.get_feed(feed_id)
        except Exception as e:
            message = e.message if isinstance(e, FeedFetchError) else str(e)
            logger.error(f"Failed to add feed {url}: {message}")
            if feed_id is not None:
                await self._discard_feed(feed_id)
            await _emit(progress, FeedProgress(FeedStep.ERROR, message, 0))
            raise

        logger.info(f"Added feed {feed.id} ({feed.title}) with {imported} articles")
        await _emit(
            progress,
            FeedProgress(
                FeedStep.COMPLETED,
                f"Feed added ({imported} articles)",
                100,
            ),
        )
        return feed

    async def refresh_feed(self, feed: Feed) -> int:
        """Re-fetch one feed and import anything new.

        Returns:
            Number of newly inserted articles

        Raises:
            FeedFetchError: If the feed could not be fetched or parsed
        """
        parsed = await self.fetch(feed.url)
        inserted = await self.import_articles(feed.id, parsed)
        await self.db.touch_last_fetched(feed.id)
        return inserted

    async def refresh_all_feeds(
        self, progress: Optional[ProgressSink] = None
    ) -> List[FeedOutcome]:
        """Refresh every subscribed feed, one at a time.

        A failing feed is recorded in its outcome and the batch moves on.

        Args:
            progress: Optional sink for RefreshProgress events

        Returns:
            One FeedOutcome per feed, in feed list order

        Raises:
            Exception: Whatever stopped the batch itself (not a single feed),
                after a terminal error event
        """
        outcomes: List[FeedOutcome] = []
        current = 0
        total = 0

        try:
            feeds = await self.db.list_feeds()
            total = len(feeds)

            await _emit(
                progress,
                RefreshProgress(RefreshStep.STARTING, f"Refreshing {total} feeds...", 0, 0, total),
            )

            for index, feed in enumerate(feeds):
                current = index + 1
                await _emit(
                    progress,
                    RefreshProgress(
                        RefreshStep.UPDATING,
                        f'Updating "{feed.title}"...',
                        round(index / total * 100),
                        current,
                        total,
                    ),
                )
                outcomes.append(await self._refresh_outcome(feed))
        except Exception as e:
            logger.error(f"Refresh aborted after {current} of {total} feeds: {e}", exc_info=True)
            await _emit(progress, RefreshProgress(RefreshStep.ERROR, str(e), 0, current, total))
            raise

        total_new = sum(o.article_count or 0 for o in outcomes)
        failed = sum(1 for o in outcomes if not o.success)
        logger.info(f"Refresh complete: {total_new} new articles, {failed} of {total} feeds failed")

        await _emit(
            progress,
            RefreshProgress(
                RefreshStep.COMPLETED,
                f"Refresh complete ({total_new} new articles)",
                100,
                total,
                total,
            ),
        )
        return outcomes

    async def _refresh_outcome(self, feed: Feed) -> FeedOutcome:
        """Refresh one feed, turning its failure into a failed outcome."""
        try:
            count = await self.refresh_feed(feed)
        except FeedFetchError as e:
            return FeedOutcome(
                feed_id=feed.id,
                success=False,
                error=e.message,
                error_category=e.category.value,
            )
        except Exception as e:
            logger.error(f"Failed to refresh feed {feed.id}: {e}", exc_info=True)
            return FeedOutcome(feed_id=feed.id, success=False, error=str(e))

        logger.info(f"Refreshed feed {feed.id} ({feed.title}): {count} new articles")
        return FeedOutcome(feed_id=feed.id, success=True, article_count=count)

    async def _discard_feed(self, feed_id: int) -> None:
        """Remove a feed created by an add that did not complete."""
        try:
            await self.db.delete_feed(feed_id)
        except Exception as cleanup_error:
            logger.error(
                f"Could not remove partially added feed {feed_id}: {cleanup_error}",
                exc_info=True,
            )

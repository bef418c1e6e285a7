"""Unit tests for feed services.

Tests for feed fetching, entry normalization and lead image extraction.
"""

from datetime import datetime, timezone

import feedparser
import httpx
import pytest

from rss_reader.services.errors import MalformedFeedError
from rss_reader.services.feed_parser import (
    ParsedArticle,
    _parse_date,
    fetch_feed,
    fetch_preview,
    normalize_entry,
)

from conftest import feed_response, mock_feeds, rss_feed


# Mark all tests as async
pytestmark = pytest.mark.anyio

FEED_URL = "https://example.com/feed.xml"
FETCHED_AT = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)


def _entry(item_xml: str):
    """Parse a single RSS <item> into a feedparser entry."""
    document = f"""<?xml version="1.0"?>
    <rss version="2.0"
         xmlns:content="http://purl.org/rss/1.0/modules/content/"
         xmlns:media="http://search.yahoo.com/mrss/">
        <channel><title>T</title>{item_xml}</channel>
    </rss>
    """
    return feedparser.parse(document.encode("utf-8")).entries[0]


class TestFetchFeed:
    """Tests for fetching and parsing feeds."""

    async def test_fetch_rss_feed(self):
        """Test fetching an RSS feed returns metadata and lazily normalized articles."""
        with mock_feeds({FEED_URL: rss_feed("Example Feed", 2)}):
            parsed = await fetch_feed(FEED_URL)

        assert parsed.title == "Example Feed"
        assert parsed.description == "A test feed"
        assert len(parsed) == 2

        articles = list(parsed.iter_articles())
        assert articles[0].title == "Post 1"
        assert articles[0].url == "https://example.com/post1"
        assert articles[0].description == "Summary of Post 1"
        assert articles[0].published_at == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    async def test_fetch_atom_feed(self):
        """Test parsing an Atom feed."""
        atom_feed = """<?xml version="1.0"?>
        <feed xmlns="http://www.w3.org/2005/Atom">
            <title>Atom Blog</title>
            <entry>
                <title>Atom Post</title>
                <link href="https://example.com/atom-post"/>
                <updated>2024-01-15T10:30:00Z</updated>
                <content type="html">&lt;p&gt;Full atom body&lt;/p&gt;</content>
            </entry>
        </feed>
        """

        with mock_feeds({FEED_URL: atom_feed}):
            parsed = await fetch_feed(FEED_URL)

        article = next(parsed.iter_articles())
        assert parsed.title == "Atom Blog"
        assert article.title == "Atom Post"
        assert article.url == "https://example.com/atom-post"
        assert "Full atom body" in article.content
        assert article.published_at == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    async def test_fetch_sends_user_agent_and_timeout(self):
        """Test the client is built with the identifying header and timeout."""
        with mock_feeds({FEED_URL: rss_feed()}) as mock_client:
            await fetch_feed(FEED_URL, timeout=7.5, user_agent="TestAgent/1.0")

        kwargs = mock_client.call_args.kwargs
        assert kwargs["timeout"] == 7.5
        assert kwargs["headers"]["User-Agent"] == "TestAgent/1.0"
        assert kwargs["follow_redirects"] is True

    async def test_fetch_feed_without_title(self):
        """Test a feed without a title gets a placeholder title."""
        document = """<?xml version="1.0"?>
        <rss version="2.0"><channel>
            <item><title>Only</title><link>https://example.com/only</link></item>
        </channel></rss>
        """

        with mock_feeds({FEED_URL: document}):
            parsed = await fetch_feed(FEED_URL)

        assert parsed.title == "Untitled Feed"
        assert len(parsed) == 1

    async def test_fetch_html_page_is_malformed(self):
        """Test that a non-feed document raises MalformedFeedError."""
        html = "<html><head><title>Not a feed</title></head><body><p>Hello</p></body></html>"

        with mock_feeds({FEED_URL: html}):
            with pytest.raises(MalformedFeedError):
                await fetch_feed(FEED_URL)

    async def test_fetch_broken_xml_is_malformed(self):
        """Test that broken XML raises MalformedFeedError."""
        with mock_feeds({FEED_URL: "<rss><channel><title>Broken</channel"}):
            with pytest.raises(MalformedFeedError):
                await fetch_feed(FEED_URL)

    async def test_fetch_http_error_propagates(self):
        """Test HTTP status errors are raised, not swallowed."""
        response = feed_response(FEED_URL, "missing", status_code=404)

        with mock_feeds({FEED_URL: response}):
            with pytest.raises(httpx.HTTPStatusError):
                await fetch_feed(FEED_URL)

    async def test_fetch_connection_error_propagates(self):
        """Test transport errors are raised, not swallowed."""
        with mock_feeds({FEED_URL: httpx.ConnectError("Connection failed")}):
            with pytest.raises(httpx.ConnectError):
                await fetch_feed(FEED_URL)

    async def test_fetch_preview(self):
        """Test preview returns normalized articles."""
        with mock_feeds({FEED_URL: rss_feed(count=3)}):
            articles = await fetch_preview(FEED_URL)

        assert len(articles) == 3
        assert all(isinstance(a, ParsedArticle) for a in articles)


class TestNormalizeEntry:
    """Tests for per-item field fallbacks."""

    def test_empty_entry_defaults(self):
        """Test an entry with nothing in it normalizes without raising."""
        article = normalize_entry(feedparser.FeedParserDict(), FETCHED_AT)

        assert article.title == "Untitled"
        assert article.description == ""
        assert article.content == ""
        assert article.url == ""
        assert article.image_url is None
        assert article.published_at == FETCHED_AT

    def test_encoded_content_preferred(self):
        """Test content:encoded wins over the description for content."""
        entry = _entry("""
            <item>
                <title>Rich</title>
                <link>https://example.com/rich</link>
                <description>Short summary</description>
                <content:encoded><![CDATA[<p>The <b>full</b> body</p>]]></content:encoded>
            </item>
        """)

        article = normalize_entry(entry, FETCHED_AT)

        assert article.description == "Short summary"
        assert "<b>full</b>" in article.content

    def test_description_from_content_snippet(self):
        """Test a missing summary falls back to a plain-text snippet of the content."""
        entry = _entry("""
            <item>
                <title>No summary</title>
                <content:encoded><![CDATA[<p>Hello   <em>world</em></p>]]></content:encoded>
            </item>
        """)

        article = normalize_entry(entry, FETCHED_AT)

        assert article.description == "Hello world"
        assert "<em>world</em>" in article.content

    def test_content_falls_back_to_description(self):
        """Test content falls back to the summary when no body exists."""
        entry = _entry("""
            <item><title>Plain</title><description>Just a summary</description></item>
        """)

        article = normalize_entry(entry, FETCHED_AT)

        assert article.content == "Just a summary"

    def test_missing_date_uses_fetch_time(self):
        """Test entries without a date get the fetch instant."""
        entry = _entry("<item><title>Undated</title></item>")

        assert normalize_entry(entry, FETCHED_AT).published_at == FETCHED_AT


class TestImageExtraction:
    """Tests for lead image priority."""

    def test_thumbnail_wins_over_inline_image(self):
        """Test a media thumbnail beats an <img> in the content."""
        entry = _entry("""
            <item>
                <title>Both</title>
                <media:thumbnail url="https://example.com/thumb.jpg"/>
                <content:encoded><![CDATA[<img src="https://example.com/inline.jpg">]]></content:encoded>
            </item>
        """)

        assert normalize_entry(entry).image_url == "https://example.com/thumb.jpg"

    def test_media_content_image(self):
        """Test image media content is used when there is no thumbnail."""
        entry = _entry("""
            <item>
                <title>Media</title>
                <media:content url="https://example.com/video.mp4" type="video/mp4"/>
                <media:content url="https://example.com/photo.png" type="image/png"/>
            </item>
        """)

        assert normalize_entry(entry).image_url == "https://example.com/photo.png"

    def test_enclosure_image(self):
        """Test an image enclosure is used, non-image enclosures are not."""
        entry = _entry("""
            <item>
                <title>Enclosure</title>
                <enclosure url="https://example.com/episode.mp3" type="audio/mpeg" length="1"/>
                <enclosure url="https://example.com/cover.jpg" type="image/jpeg" length="1"/>
            </item>
        """)

        assert normalize_entry(entry).image_url == "https://example.com/cover.jpg"

    def test_inline_image_in_summary(self):
        """Test the first <img> in the summary markup is found."""
        entry = _entry("""
            <item>
                <title>Inline</title>
                <description><![CDATA[<p>Hi</p><img alt="x" src='https://example.com/a.gif'><img src="https://example.com/b.gif">]]></description>
            </item>
        """)

        assert normalize_entry(entry).image_url == "https://example.com/a.gif"

    def test_no_image(self):
        """Test entries without any image have none."""
        entry = _entry("<item><title>Text only</title><description>Words</description></item>")

        assert normalize_entry(entry).image_url is None


class TestParseDate:
    """Tests for date parsing fallbacks."""

    def test_parse_date_rfc2822(self):
        """Test parsing RFC 2822 date format."""
        result = _parse_date({"published": "Mon, 01 Jan 2024 12:00:00 GMT"})
        assert result == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_parse_date_iso_format(self):
        """Test parsing ISO format date."""
        result = _parse_date({"published": "2024-01-15T10:30:00Z"})
        assert result == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_parse_date_alternate_field(self):
        """Test the updated field is used when published is absent."""
        result = _parse_date({"updated": "2024-02-02T00:00:00+02:00"})
        assert result == datetime(2024, 2, 1, 22, 0, tzinfo=timezone.utc)

    def test_parse_date_invalid(self):
        """Test handling of invalid date."""
        assert _parse_date({"published": "not a date"}) is None

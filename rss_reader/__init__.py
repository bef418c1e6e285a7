"""rss_reader - RSS/Atom feed ingestion and synchronization engine."""

__version__ = "1.0.0"

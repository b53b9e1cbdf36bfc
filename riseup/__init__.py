"""Rise Up: news aggregation, deduplication and incident mapping for a fast-moving event."""

__version__ = "1.0.0"

"""Lead search service: cache-first, deduplicated place search with credit metering."""

__version__ = "1.0.0"

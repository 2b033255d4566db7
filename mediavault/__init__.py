"""mediavault - video ingestion durability core."""

__version__ = "0.1.0"

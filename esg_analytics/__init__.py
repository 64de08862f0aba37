"""ESG sustainability analytics: record normalization and aggregation per dashboard module."""

__version__ = "0.1.0"

"""An HTTP client, logging and caching wrappers, and an in-memory fake for storage buckets."""

__version__ = "0.1.0"

__all__ = [
    "caching",
    "connection",
    "conversions",
    "debug",
    "errors",
    "fake",
    "http_bucket",
    "model",
]
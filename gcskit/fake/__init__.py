"""In-memory fake buckets and connections."""

__all__ = ["bucket", "connection"]
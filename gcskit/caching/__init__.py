"""A stat cache and a bucket wrapper that uses it to save round trips."""

__all__ = ["fast_stat_bucket", "stat_cache"]
"""In-process response cache."""

from .cache import ResponseCache, make_cache_key

__all__ = [
    "ResponseCache",
    "make_cache_key",
]

"""Memory package."""

from smart_ast.memory.result_cache import (
    CacheError,
    CacheHit,
    CacheMiss,
    CacheResult,
    ResultCache,
)

__all__ = [
    "CacheError",
    "CacheHit",
    "CacheMiss",
    "CacheResult",
    "ResultCache",
]

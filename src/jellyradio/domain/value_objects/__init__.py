"""Pure value-level logic (no I/O)."""

from jellyradio.domain.value_objects.fuzzy_match import (
    best_match,
    build_queries,
    is_similar,
    normalize,
    score,
    similarity,
    strip_stop_words,
)

__all__ = [
    "best_match",
    "build_queries",
    "is_similar",
    "normalize",
    "score",
    "similarity",
    "strip_stop_words",
]

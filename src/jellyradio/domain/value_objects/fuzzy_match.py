"""Fuzzy matching of song suggestions against library search results.

Hey future me - this module decides whether "Hey Jude (Remastered 2015)" by
"The Beatles" is the song the suggestion source meant by "Hey Jude" by
"Beatles". Everything here is PURE: no I/O, no shared state, safe to call
from any number of concurrent searches.

The scoring heuristic (max 26 points):
- title:  +10 if similar at 0.8, else +5 if similar at 0.6
- artist: +8 if similar at 0.8, else +4 if similar at 0.6 (only if the track has an artist)
- album:  +3 if similar at 0.8 (only if both sides have an album)
- bonus:  +5 when raw title AND raw artist similarity are both > 0.5

A candidate is accepted when it scores >= MIN_ACCEPT_SCORE. Ties go to the
candidate that came first in the search results.

Examples:
    >>> is_similar("The Beatles", "Beatles")
    True
    >>> normalize("  Don't  Stop   Me Now! ")
    'dont stop me now'
"""

import re
from collections.abc import Iterable

from rapidfuzz.distance import Levenshtein

from jellyradio.domain.entities import LibraryTrack, MatchResult, SongSuggestion

# Low-signal words that only add noise to comparisons and searches.
STOP_WORDS: frozenset[str] = frozenset(
    {
        "the",
        "a",
        "an",
        "and",
        "or",
        "but",
        "in",
        "on",
        "at",
        "to",
        "for",
        "of",
        "with",
        "by",
        "feat",
        "featuring",
        "ft",
        "vs",
        "versus",
    }
)

DEFAULT_THRESHOLD = 0.7
STRONG_THRESHOLD = 0.8
WEAK_THRESHOLD = 0.6
COMBINED_BONUS_FLOOR = 0.5

TITLE_STRONG_POINTS = 10
TITLE_WEAK_POINTS = 5
ARTIST_STRONG_POINTS = 8
ARTIST_WEAK_POINTS = 4
ALBUM_POINTS = 3
COMBINED_BONUS_POINTS = 5

MIN_ACCEPT_SCORE = 5

MATCHABLE_TYPE = "Audio"

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace, trim.

    Idempotent: normalize(normalize(x)) == normalize(x).
    """
    text = _PUNCTUATION.sub("", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def strip_stop_words(text: str) -> str:
    """Remove STOP_WORDS (case-insensitive), keeping the other words as written."""
    return " ".join(word for word in text.split() if word.lower() not in STOP_WORDS)


def similarity(a: str, b: str) -> float:
    """One minus normalized Levenshtein distance, in [0, 1].

    Distance is divided by the longer string's length. Two empty strings are
    identical by convention and score 1.0.
    """
    if not a and not b:
        return 1.0
    return float(Levenshtein.normalized_similarity(a, b))


def is_similar(a: str, b: str, threshold: float = DEFAULT_THRESHOLD) -> bool:
    """Tiered similarity check, cheapest test first.

    1. equal after normalization
    2. one contains the other after normalization
    3. equal / containment after stop-word stripping
    4. similarity() of the stripped forms >= threshold
    """
    normalized_a = normalize(a)
    normalized_b = normalize(b)

    if normalized_a == normalized_b:
        return True
    if normalized_b in normalized_a or normalized_a in normalized_b:
        return True

    cleaned_a = strip_stop_words(normalized_a)
    cleaned_b = strip_stop_words(normalized_b)

    if cleaned_a == cleaned_b:
        return True
    if cleaned_b in cleaned_a or cleaned_a in cleaned_b:
        return True

    return similarity(cleaned_a, cleaned_b) >= threshold


def _tiered_points(a: str, b: str, strong: int, weak: int) -> int:
    if is_similar(a, b, STRONG_THRESHOLD):
        return strong
    if is_similar(a, b, WEAK_THRESHOLD):
        return weak
    return 0


def score(suggestion: SongSuggestion, candidate: LibraryTrack) -> int:
    """Weighted fuzzy match score of one candidate for one suggestion."""
    points = _tiered_points(
        suggestion.title, candidate.name, TITLE_STRONG_POINTS, TITLE_WEAK_POINTS
    )

    if candidate.album_artist:
        points += _tiered_points(
            suggestion.artist,
            candidate.album_artist,
            ARTIST_STRONG_POINTS,
            ARTIST_WEAK_POINTS,
        )

    if suggestion.album and candidate.album:
        if is_similar(suggestion.album, candidate.album, STRONG_THRESHOLD):
            points += ALBUM_POINTS

    # Bonus looks at raw (normalized, NOT stop-word stripped) similarity,
    # independently of the tiers above.
    title_similarity = similarity(normalize(suggestion.title), normalize(candidate.name))
    artist_similarity = (
        similarity(normalize(suggestion.artist), normalize(candidate.album_artist))
        if candidate.album_artist
        else 0.0
    )
    if title_similarity > COMBINED_BONUS_FLOOR and artist_similarity > COMBINED_BONUS_FLOOR:
        points += COMBINED_BONUS_POINTS

    return points


def best_match(
    suggestion: SongSuggestion, candidates: Iterable[LibraryTrack]
) -> MatchResult:
    """Pick the highest scoring Audio candidate.

    Ties keep the first candidate in input order. The track is only returned
    when the best score reaches MIN_ACCEPT_SCORE; MatchResult.score always
    carries the best score seen (0 when there were no candidates).
    """
    best_track: LibraryTrack | None = None
    best_score = 0

    for candidate in candidates:
        if candidate.item_type != MATCHABLE_TYPE:
            continue
        candidate_score = score(suggestion, candidate)
        if best_track is None or candidate_score > best_score:
            best_track = candidate
            best_score = candidate_score

    if best_track is None or best_score < MIN_ACCEPT_SCORE:
        return MatchResult(suggestion=suggestion, track=None, score=best_score)
    return MatchResult(suggestion=suggestion, track=best_track, score=best_score)


def build_queries(suggestion: SongSuggestion) -> list[str]:
    """Ordered, de-duplicated search queries for one suggestion.

    "title artist", "title", "artist", "title album" (if album), then a
    stop-word-stripped "title artist" when that differs from the first one.
    """
    primary = f"{suggestion.title} {suggestion.artist}"
    queries = [primary, suggestion.title, suggestion.artist]

    if suggestion.album:
        queries.append(f"{suggestion.title} {suggestion.album}")

    stripped = f"{strip_stop_words(suggestion.title)} {strip_stop_words(suggestion.artist)}".strip()
    if stripped != primary:
        queries.append(stripped)

    unique: list[str] = []
    for query in queries:
        query = query.strip()
        if query and query not in unique:
            unique.append(query)
    return unique


__all__ = [
    "MIN_ACCEPT_SCORE",
    "STOP_WORDS",
    "best_match",
    "build_queries",
    "is_similar",
    "normalize",
    "score",
    "similarity",
    "strip_stop_words",
]

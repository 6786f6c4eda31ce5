"""Tests for fuzzy matching of suggestions against library tracks."""

from jellyradio.domain.entities import LibraryTrack, SongSuggestion
from jellyradio.domain.value_objects.fuzzy_match import (
    MIN_ACCEPT_SCORE,
    best_match,
    build_queries,
    is_similar,
    normalize,
    score,
    similarity,
    strip_stop_words,
)


def _track(
    track_id: str,
    name: str,
    artist: str | None = None,
    album: str | None = None,
    item_type: str = "Audio",
) -> LibraryTrack:
    return LibraryTrack(
        id=track_id, name=name, album_artist=artist, album=album, item_type=item_type
    )


class TestNormalize:
    """Test text normalization."""

    def test_lowercases_strips_punctuation_and_collapses_whitespace(self) -> None:
        assert normalize("  Don't  Stop   Me Now! ") == "dont stop me now"

    def test_is_idempotent(self) -> None:
        for text in ("Hey Jude (Remastered 2015)", "  AC/DC  ", "", "Sigur Rós"):
            once = normalize(text)
            assert normalize(once) == once

    def test_keeps_unicode_word_characters(self) -> None:
        assert normalize("Sigur Rós") == "sigur rós"


class TestStripStopWords:
    """Test stop word removal."""

    def test_removes_stop_words_case_insensitive(self) -> None:
        assert strip_stop_words("The Sound of Silence") == "Sound Silence"

    def test_featuring_markers_removed(self) -> None:
        assert strip_stop_words("daft punk feat pharrell") == "daft punk pharrell"

    def test_only_stop_words_gives_empty_string(self) -> None:
        assert strip_stop_words("the and of") == ""


class TestSimilarity:
    """Test Levenshtein based similarity."""

    def test_identical_strings_score_one(self) -> None:
        assert similarity("teardrop", "teardrop") == 1.0

    def test_two_empty_strings_score_one(self) -> None:
        assert similarity("", "") == 1.0

    def test_empty_against_text_scores_zero(self) -> None:
        assert similarity("abc", "") == 0.0

    def test_result_is_in_unit_range(self) -> None:
        value = similarity("windowlicker", "window")
        assert 0.0 < value < 1.0

    def test_is_symmetric(self) -> None:
        assert similarity("massive", "passive") == similarity("passive", "massive")


class TestIsSimilar:
    """Test the tiered similarity check."""

    def test_stop_word_difference_is_similar(self) -> None:
        assert is_similar("The Beatles", "Beatles") is True

    def test_containment_is_similar(self) -> None:
        assert is_similar("Hey Jude", "Hey Jude (Remastered 2015)") is True

    def test_case_and_punctuation_ignored(self) -> None:
        assert is_similar("DON'T STOP ME NOW", "dont stop me now") is True

    def test_unrelated_titles_not_similar(self) -> None:
        assert is_similar("Hey Jude", "Bohemian Rhapsody") is False

    def test_small_typo_is_similar(self) -> None:
        assert is_similar("Windowlicker", "Windowlickr") is True


class TestScore:
    """Test the weighted match score."""

    def test_perfect_title_and_artist_match(self) -> None:
        suggestion = SongSuggestion(title="Hey Jude", artist="The Beatles")
        track = _track("1", "Hey Jude", "The Beatles")

        # title 10 + artist 8 + bonus 5
        assert score(suggestion, track) == 23

    def test_album_adds_points_when_both_sides_have_one(self) -> None:
        suggestion = SongSuggestion(title="Teardrop", artist="Massive Attack", album="Mezzanine")
        track = _track("1", "Teardrop", "Massive Attack", "Mezzanine")

        assert score(suggestion, track) == 26

    def test_missing_album_artist_skips_artist_and_bonus(self) -> None:
        suggestion = SongSuggestion(title="Teardrop", artist="Massive Attack")
        track = _track("1", "Teardrop")

        assert score(suggestion, track) == 10

    def test_unrelated_track_scores_zero(self) -> None:
        suggestion = SongSuggestion(title="Hey Jude", artist="The Beatles")
        track = _track("1", "Windowlicker", "Aphex Twin")

        assert score(suggestion, track) == 0


class TestBestMatch:
    """Test candidate selection."""

    def test_no_candidates_gives_no_track_and_zero_score(self) -> None:
        result = best_match(SongSuggestion(title="Teardrop", artist="Massive Attack"), [])

        assert result.track is None
        assert result.score == 0
        assert result.matched is False

    def test_picks_highest_score(self) -> None:
        suggestion = SongSuggestion(title="Teardrop", artist="Massive Attack")
        weak = _track("weak", "Teardrop")
        strong = _track("strong", "Teardrop", "Massive Attack")

        result = best_match(suggestion, [weak, strong])

        assert result.track == strong
        assert result.score == 23

    def test_tie_keeps_first_candidate(self) -> None:
        suggestion = SongSuggestion(title="Teardrop", artist="Massive Attack")
        first = _track("first", "Teardrop", "Massive Attack")
        second = _track("second", "Teardrop", "Massive Attack")

        result = best_match(suggestion, [first, second])

        assert result.track is not None
        assert result.track.id == "first"

    def test_non_audio_candidates_are_skipped(self) -> None:
        suggestion = SongSuggestion(title="Mezzanine", artist="Massive Attack")
        album = _track("album", "Mezzanine", "Massive Attack", item_type="MusicAlbum")

        result = best_match(suggestion, [album])

        assert result.track is None
        assert result.score == 0

    def test_below_threshold_rejected_but_score_reported(self) -> None:
        suggestion = SongSuggestion(title="Hey Jude", artist="The Beatles")
        result = best_match(suggestion, [_track("1", "Windowlicker", "Aphex Twin")])

        assert result.track is None
        assert result.score < MIN_ACCEPT_SCORE

    def test_accepts_remastered_variant(self) -> None:
        suggestion = SongSuggestion(title="Hey Jude", artist="Beatles")
        track = _track("1", "Hey Jude - Remastered 2015", "The Beatles")

        result = best_match(suggestion, [track])

        assert result.track == track


class TestBuildQueries:
    """Test search query generation."""

    def test_order_and_stripped_variant(self) -> None:
        suggestion = SongSuggestion(title="Hey Jude", artist="The Beatles")

        assert build_queries(suggestion) == [
            "Hey Jude The Beatles",
            "Hey Jude",
            "The Beatles",
            "Hey Jude Beatles",
        ]

    def test_album_query_and_no_duplicate_stripped_variant(self) -> None:
        suggestion = SongSuggestion(
            title="Teardrop", artist="Massive Attack", album="Mezzanine"
        )

        assert build_queries(suggestion) == [
            "Teardrop Massive Attack",
            "Teardrop",
            "Massive Attack",
            "Teardrop Mezzanine",
        ]

    def test_duplicates_removed(self) -> None:
        suggestion = SongSuggestion(title="Weezer", artist="Weezer")

        assert build_queries(suggestion) == ["Weezer Weezer", "Weezer"]

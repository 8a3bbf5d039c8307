"""
Tests for the window matcher.
"""

import pytest

from cuesync.matcher import (
    NO_MATCH,
    MatchResult,
    match,
    score_at,
)
from cuesync.normalizer import normalize


class TestEmptyInput:
    """Nothing said, or nothing to match against."""

    def test_empty_transcript(self) -> None:
        assert match([], ["the", "quick"]) == NO_MATCH

    def test_empty_transcript_and_window(self) -> None:
        result = match([], [])
        assert result.score == 0.0
        assert result.matched_index is None

    def test_empty_window(self) -> None:
        result = match(["hello"], [])
        assert result.score == 0.0
        assert result.matched_index is None
        assert not result.matched


class TestScoring:
    """Credit rules for exact, partial and skip matches."""

    def test_exact_match(self) -> None:
        result = match(normalize("the quick fox"), ["The", "quick", "fox", "jumps"])
        assert result.score == 1.0
        assert result.matched_index == 0
        assert result.end_index == 2

    def test_dropped_script_word(self) -> None:
        result = match(normalize("the quick fox"), ["the", "quick", "brown", "fox"])
        assert result.score == pytest.approx((1 + 1 + 0.8) / 3)
        assert result.matched_index == 0
        # The skip lands on "fox", past the dropped "brown"
        assert result.end_index == 3

    def test_partial_match(self) -> None:
        # "run" is contained in "running"
        assert score_at(["run"], ["running"], 0) == 0.5

    def test_unmatched_word_gets_no_credit(self) -> None:
        assert score_at(["hello", "zebra"], ["hello", "world"], 0) == 0.5

    def test_walk_stops_at_window_end(self) -> None:
        # Only the first transcript word fits before the window runs out
        assert score_at(["end", "beyond", "window"], ["the", "end"], 1) == pytest.approx(1 / 3)

    def test_empty_script_word_gets_no_partial_credit(self) -> None:
        # "—" normalizes to "", which is a substring of everything
        assert score_at(["dash"], [""], 0) == 0.0

    def test_literal_script_words_are_normalized(self) -> None:
        result = match(["world"], ["Hello,", "World!"])
        assert result.score == 1.0
        assert result.matched_index == 1


class TestBestCandidate:
    """Choosing the start position."""

    def test_finds_later_start(self) -> None:
        window = normalize("one two three four five six")
        result = match(["four", "five"], window)
        assert result.matched_index == 3
        assert result.end_index == 4
        assert result.score == 1.0

    def test_ties_keep_earliest_start(self) -> None:
        window = ["go", "now", "go", "now"]
        result = match(["go", "now"], window)
        assert result.score == 1.0
        assert result.matched_index == 0

    def test_nothing_lines_up(self) -> None:
        result = match(["zebra"], ["the", "quick", "fox"])
        assert result.score == 0.0
        assert result.matched_index is None

    @pytest.mark.parametrize("transcript, window", [
        ("the the the the", "the"),
        ("a b c", "a b c d e f"),
        ("quickly brown", "the quick brown fox"),
        ("foxes jump over", "the quick brown fox jumps over the lazy dog"),
    ])
    def test_score_in_unit_range(self, transcript: str, window: str) -> None:
        result = match(normalize(transcript), normalize(window))
        assert 0.0 <= result.score <= 1.0


class TestMatchResult:
    """MatchResult helpers."""

    def test_advance_index_prefers_end(self) -> None:
        assert MatchResult(score=1.0, matched_index=2, end_index=5).advance_index == 5

    def test_advance_index_falls_back_to_start(self) -> None:
        assert MatchResult(score=1.0, matched_index=2).advance_index == 2

    def test_no_match_has_no_advance(self) -> None:
        assert NO_MATCH.advance_index is None

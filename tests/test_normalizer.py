"""Tests for text normalization."""

from cuesync.normalizer import normalize, normalize_word


class TestNormalize:
    """Tests for normalize()."""

    def test_lowercases_and_strips_punctuation(self) -> None:
        assert normalize("Hello, World!") == ["hello", "world"]

    def test_collapses_whitespace(self) -> None:
        assert normalize("  the   quick\tbrown\n fox  ") == ["the", "quick", "brown", "fox"]

    def test_empty_and_punctuation_only(self) -> None:
        assert normalize("") == []
        assert normalize("   ") == []
        assert normalize("... !? --") == []

    def test_keeps_digits_and_underscores(self) -> None:
        assert normalize("Room 101 snake_case") == ["room", "101", "snake_case"]

    def test_apostrophes_are_removed(self) -> None:
        assert normalize("Don't stop") == ["dont", "stop"]

    def test_idempotent(self) -> None:
        samples = ["Hello, World!", "It's 9 o'clock -- time to go.", "", "ÉCOLE été"]
        for text in samples:
            once = normalize(text)
            assert normalize(" ".join(once)) == once


class TestNormalizeWord:
    """Tests for normalize_word()."""

    def test_single_word(self) -> None:
        assert normalize_word("Quick,") == "quick"

    def test_punctuation_only_word_is_empty(self) -> None:
        assert normalize_word("—") == ""
        assert normalize_word("...") == ""

"""Tests for the script model and window slicing."""

import pytest

from cuesync.script import DEFAULT_WINDOW_SIZE, Script


class TestScript:
    """Loading and indexing a script."""

    def test_from_text_splits_on_whitespace(self) -> None:
        script = Script.from_text("Hello world,\n this  is a test.")
        assert script.words == ["Hello", "world,", "this", "is", "a", "test."]
        assert len(script) == 6

    def test_tokens_are_absolutely_indexed(self) -> None:
        script = Script.from_text("a b c")
        assert [t.index for t in script] == [0, 1, 2]
        assert script[1].text == "b"

    def test_tokens_carry_normalized_form(self) -> None:
        script = Script.from_text("World!")
        assert script[0].normalized == "world"

    def test_empty_script_rejected(self) -> None:
        with pytest.raises(ValueError):
            Script.from_text("   \n ")


class TestWindow:
    """Slicing matching windows."""

    def setup_method(self) -> None:
        self.script = Script([f"w{i}" for i in range(50)])

    def test_default_size(self) -> None:
        window = self.script.window(0)
        assert len(window) == DEFAULT_WINDOW_SIZE
        assert window.start == 0
        assert window.end == 30

    def test_clipped_at_end(self) -> None:
        window = self.script.window(45)
        assert window.words == ["w45", "w46", "w47", "w48", "w49"]
        assert window.end == 50

    def test_at_end_is_empty(self) -> None:
        window = self.script.window(50)
        assert len(window) == 0
        assert window.start == 50

    def test_start_is_clamped(self) -> None:
        assert self.script.window(-5).start == 0
        assert self.script.window(99).start == 50

    def test_negative_size_rejected(self) -> None:
        with pytest.raises(ValueError):
            self.script.window(0, -1)

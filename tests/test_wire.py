"""
Tests for the transcribe request/response format and the on/off-script decision.
"""

import json

import pytest

from cuesync.matcher import MatchResult
from cuesync.script import Script
from cuesync.tracker import PlaybackState, PositionTracker
from cuesync.wire import TranscribeRequest, TranscribeResponse, evaluate

SCRIPT_WORDS = ["Hello", "world", "this", "is", "a", "test"]


class TestEvaluate:
    """The decision shared by the endpoint and the local pipeline."""

    def test_on_script_reports_last_word_reached(self) -> None:
        response = evaluate("hello world", SCRIPT_WORDS, 0, 0.6)
        assert response.state == "RUNNING"
        assert response.matched_index == 1
        assert response.confidence == 1.0
        assert response.transcript == "hello world"

    def test_empty_transcript_pauses(self) -> None:
        response = evaluate("", SCRIPT_WORDS, 0, 0.6)
        assert response.state == "PAUSED"
        assert response.matched_index is None
        assert response.confidence == 0.0
        assert response.transcript == ""

    def test_punctuation_only_transcript_pauses(self) -> None:
        response = evaluate(" ... ", SCRIPT_WORDS, 0, 0.6)
        assert response.state == "PAUSED"
        assert response.matched_index is None
        assert response.transcript == "..."

    def test_transcript_is_trimmed_either_way(self) -> None:
        assert evaluate("  hello world \n", SCRIPT_WORDS, 0, 0.6).transcript == "hello world"
        assert evaluate("  banana  ", SCRIPT_WORDS, 0, 0.6).transcript == "banana"

    def test_off_script_hides_index(self) -> None:
        response = evaluate("completely unrelated words", SCRIPT_WORDS, 0, 0.6)
        assert response.state == "PAUSED"
        assert response.matched_index is None
        assert response.confidence < 0.6

    def test_index_is_absolute(self) -> None:
        response = evaluate("is a test", SCRIPT_WORDS[2:], 2, 0.6)
        assert response.state == "RUNNING"
        assert response.matched_index == 5

    def test_empty_window_pauses(self) -> None:
        response = evaluate("hello", [], 6, 0.6)
        assert response.state == "PAUSED"
        assert response.matched_index is None

    def test_end_to_end_with_tracker(self) -> None:
        """Response applied to the tracker moves it just past the last word heard."""
        tracker = PositionTracker(Script(SCRIPT_WORDS))
        revision = tracker.start()
        window, _ = tracker.snapshot()

        response = evaluate("hello world", window.words, window.start, 0.6)
        tracker.apply_match(response.to_match_result(window.start), window.start, 0.6, revision)
        assert tracker.current_index == 2
        assert tracker.state is PlaybackState.RUNNING

        response = evaluate("", tracker.window().words, tracker.current_index, 0.6)
        tracker.apply_match(response.to_match_result(2), 2, 0.6, revision)
        assert tracker.current_index == 2
        assert tracker.state is PlaybackState.PAUSED


class TestTranscribeRequest:
    """Form encoding of a chunk request."""

    def test_form_fields(self) -> None:
        request = TranscribeRequest(audio=b"\x00\x01", script_window=["a", "b"],
                                    current_index=4, threshold=0.7)
        fields = request.form_fields()
        assert json.loads(fields["scriptWindow"]) == ["a", "b"]
        assert fields["currentIndex"] == "4"
        assert fields["threshold"] == "0.7"

    def test_from_form_round_trip(self) -> None:
        request = TranscribeRequest(audio=b"pcm", script_window=["Hello,", "world"],
                                    current_index=10, threshold=0.5)
        parsed = TranscribeRequest.from_form(b"pcm", request.form_fields())
        assert parsed.script_window == ["Hello,", "world"]
        assert parsed.current_index == 10
        assert parsed.threshold == 0.5

    def test_from_form_defaults(self) -> None:
        parsed = TranscribeRequest.from_form(b"pcm", {})
        assert parsed.script_window == []
        assert parsed.current_index == 0
        assert parsed.threshold == 0.6

    @pytest.mark.parametrize("fields", [
        {"scriptWindow": "not json"},
        {"scriptWindow": '{"a": 1}'},
        {"currentIndex": "four"},
        {"threshold": "high"},
        {"threshold": "1.5"},
    ])
    def test_from_form_rejects_malformed(self, fields: dict[str, str]) -> None:
        with pytest.raises(ValueError):
            TranscribeRequest.from_form(b"pcm", fields)


class TestTranscribeResponse:
    """Parsing and converting responses."""

    def test_json_uses_wire_names(self) -> None:
        response = TranscribeResponse("hello", 1.0, 3, "RUNNING")
        assert response.to_json() == {
            "transcript": "hello",
            "confidence": 1.0,
            "matchedIndex": 3,
            "state": "RUNNING",
        }

    def test_from_json(self) -> None:
        response = TranscribeResponse.from_json(
            {"transcript": "", "confidence": 0, "matchedIndex": None, "state": "PAUSED"})
        assert response.matched_index is None
        assert not response.is_running

    @pytest.mark.parametrize("body", [
        {"transcript": "x", "confidence": 1.0, "matchedIndex": 0},
        {"transcript": "x", "confidence": 1.0, "matchedIndex": 0, "state": "DANCING"},
        {"transcript": "x", "confidence": "lots", "matchedIndex": 0, "state": "RUNNING"},
    ])
    def test_from_json_rejects_malformed(self, body: dict[str, object]) -> None:
        with pytest.raises(ValueError):
            TranscribeResponse.from_json(body)

    def test_to_match_result_is_window_relative(self) -> None:
        result = TranscribeResponse("a test", 1.0, 5, "RUNNING").to_match_result(2)
        assert result == MatchResult(score=1.0, matched_index=3, end_index=3)

    def test_paused_response_has_no_index(self) -> None:
        result = TranscribeResponse("", 0.0, None, "PAUSED").to_match_result(2)
        assert result.matched_index is None

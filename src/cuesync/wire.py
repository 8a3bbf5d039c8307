# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Per-chunk transcribe request/response and the on/off-script decision.

The same decision is used by the /transcribe endpoint and by the local
in-process pipeline, so both produce identical responses for the same
transcript.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field

from .matcher import MatchResult, match
from .normalizer import normalize

DEFAULT_THRESHOLD: float = 0.6

STATE_RUNNING: str = "RUNNING"
STATE_PAUSED: str = "PAUSED"


@dataclass
class TranscribeRequest:
    """One audio chunk plus the script context to match it against."""
    audio: bytes = field(repr=False)
    script_window: list[str]  # Literal script words in the window
    current_index: int  # Absolute index the window starts at
    threshold: float = DEFAULT_THRESHOLD
    sequence: int = 0  # Chunk sequence number (not sent over the wire)
    revision: int | None = None  # Tracker revision (not sent over the wire)

    def form_fields(self) -> dict[str, str]:
        """Non-audio form fields in their wire representation."""
        return {
            "scriptWindow": json.dumps(self.script_window),
            "currentIndex": str(self.current_index),
            "threshold": str(self.threshold),
        }

    @classmethod
    def from_form(cls, audio: bytes, fields: Mapping[str, str]) -> 'TranscribeRequest':
        """
        Build a request from multipart form fields.

        Raises:
            ValueError: If a field is malformed
        """
        try:
            script_window = json.loads(fields.get("scriptWindow") or "[]")
        except json.JSONDecodeError as e:
            raise ValueError(f"scriptWindow is not valid JSON: {e}") from e
        if not isinstance(script_window, list):
            raise ValueError("scriptWindow must be a JSON array")

        try:
            current_index = int(fields.get("currentIndex") or "0")
        except ValueError as e:
            raise ValueError(f"currentIndex must be an integer: {e}") from e

        try:
            threshold = float(fields.get("threshold") or DEFAULT_THRESHOLD)
        except ValueError as e:
            raise ValueError(f"threshold must be a number: {e}") from e
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be between 0 and 1, got {threshold}")

        return cls(
            audio=audio,
            script_window=[str(w) for w in script_window],
            current_index=current_index,
            threshold=threshold,
        )


@dataclass
class TranscribeResponse:
    """Transcript plus the on/off-script decision for one chunk."""
    transcript: str
    confidence: float
    matched_index: int | None  # Absolute index of the last word reached, None when paused
    state: str  # RUNNING or PAUSED

    @property
    def is_running(self) -> bool:
        return self.state == STATE_RUNNING

    def to_json(self) -> dict[str, object]:
        return {
            "transcript": self.transcript,
            "confidence": self.confidence,
            "matchedIndex": self.matched_index,
            "state": self.state,
        }

    @classmethod
    def from_json(cls, data: Mapping[str, object]) -> 'TranscribeResponse':
        """
        Parse a /transcribe response body.

        Raises:
            ValueError: If required fields are missing or have the wrong type
        """
        try:
            matched = data.get("matchedIndex")
            state = str(data["state"])
            response = cls(
                transcript=str(data.get("transcript") or ""),
                confidence=float(data.get("confidence") or 0.0),  # type: ignore[arg-type]
                matched_index=None if matched is None else int(matched),  # type: ignore[arg-type]
                state=state,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed transcribe response: {data!r}") from e
        if state not in (STATE_RUNNING, STATE_PAUSED):
            raise ValueError(f"Unknown state in transcribe response: {state}")
        return response

    def to_match_result(self, window_start: int) -> MatchResult:
        """Convert back to a window-relative MatchResult."""
        if self.matched_index is None:
            return MatchResult(score=self.confidence, matched_index=None)
        relative = self.matched_index - window_start
        return MatchResult(score=self.confidence, matched_index=relative, end_index=relative)


def evaluate(transcript: str, script_window: list[str], current_index: int,
             threshold: float = DEFAULT_THRESHOLD) -> TranscribeResponse:
    """
    Decide whether a transcript is on-script for the given window.

    Args:
        transcript: Text returned by the speech recognizer
        script_window: Literal script words in the window
        current_index: Absolute index the window starts at
        threshold: Minimum match score to count as on-script

    Returns:
        TranscribeResponse whose matched index is the absolute position of
        the last script word the transcript reached, when on-script
    """
    tokens: list[str] = normalize(transcript)
    if not tokens:
        return TranscribeResponse(
            transcript=transcript.strip(),
            confidence=0.0,
            matched_index=None,
            state=STATE_PAUSED,
        )

    result: MatchResult = match(tokens, script_window)
    reached: int | None = result.advance_index
    on_script: bool = reached is not None and result.score >= threshold

    return TranscribeResponse(
        transcript=transcript.strip(),
        confidence=result.score,
        matched_index=current_index + reached if on_script else None,  # type: ignore[operator]
        state=STATE_RUNNING if on_script else STATE_PAUSED,
    )

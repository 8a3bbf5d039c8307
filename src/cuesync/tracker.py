# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Position tracking state machine.

Owns the playback state (IDLE / RUNNING / PAUSED) and the current word
index for one session. Match results move the index forward past the
matched word; only reset() and jump() can move it backwards.

All operations take the tracker's lock, so the tracker is the single
writer of its own state no matter which thread or task calls it.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from . import debug_log
from .matcher import MatchResult
from .script import DEFAULT_WINDOW_SIZE, Script, ScriptWindow

logger = logging.getLogger(__name__)


class PlaybackState(str, Enum):
    """Whether the prompter is capturing, and if so whether it is on-script."""
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"


@dataclass(frozen=True)
class PositionUpdate:
    """A state/position change emitted to the display layer."""
    state: PlaybackState
    current_index: int
    total_words: int
    confidence: float = 0.0
    transcript: str = ""
    reason: str = ""  # start, stop, match, miss, reset, jump

    def to_message(self) -> dict[str, object]:
        """Convert to the WebSocket message format."""
        return {
            "type": "position",
            "state": self.state.value,
            "wordIndex": self.current_index,
            "totalWords": self.total_words,
            "confidence": self.confidence,
            "transcript": self.transcript,
            "reason": self.reason,
        }


PositionListener = Callable[[PositionUpdate], None]


class PositionTracker:
    """
    Tracks the speaker's position in a script.

    The matching window is always derived from the current index, never
    cached. A revision counter is bumped whenever the position or the
    capture session is changed by the user (stop, reset, jump); results
    requested under an older revision are discarded rather than applied.
    """

    script: Script
    window_size: int

    def __init__(self, script: Script, window_size: int = DEFAULT_WINDOW_SIZE) -> None:
        """
        Initialize the tracker.

        Args:
            script: The loaded reference script
            window_size: Number of script words in each matching window
        """
        if window_size <= 0:
            raise ValueError(f"window_size must be positive, got {window_size}")
        self.script = script
        self.window_size = window_size

        self._lock = threading.Lock()
        self._state: PlaybackState = PlaybackState.IDLE
        self._current_index: int = 0
        self._revision: int = 0
        self._listeners: list[PositionListener] = []

    @property
    def state(self) -> PlaybackState:
        with self._lock:
            return self._state

    @property
    def current_index(self) -> int:
        with self._lock:
            return self._current_index

    @property
    def revision(self) -> int:
        with self._lock:
            return self._revision

    @property
    def is_capturing(self) -> bool:
        return self.state is not PlaybackState.IDLE

    def add_listener(self, listener: PositionListener) -> None:
        """Register a callback for position updates."""
        self._listeners.append(listener)

    def remove_listener(self, listener: PositionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def window(self) -> ScriptWindow:
        """Get the matching window at the current index."""
        with self._lock:
            return self.script.window(self._current_index, self.window_size)

    def snapshot(self) -> tuple[ScriptWindow, int]:
        """Get the current window together with the revision it belongs to."""
        with self._lock:
            return self.script.window(self._current_index, self.window_size), self._revision

    def start(self) -> int:
        """
        Begin capturing (IDLE -> RUNNING). Position is kept.

        Returns:
            The revision results for this capture session must carry
        """
        with self._lock:
            if self._state is not PlaybackState.IDLE:
                logger.info("Tracker already capturing (%s)", self._state.value)
                return self._revision
            self._state = PlaybackState.RUNNING
            update = self._make_update(reason="start")
            revision = self._revision
        logger.info("Tracking started at word %d", update.current_index)
        self._emit(update)
        return revision

    def stop(self) -> None:
        """Stop capturing (RUNNING|PAUSED -> IDLE), invalidating in-flight results."""
        with self._lock:
            self._revision += 1
            if self._state is PlaybackState.IDLE:
                return
            self._state = PlaybackState.IDLE
            update = self._make_update(reason="stop")
        logger.info("Tracking stopped at word %d", update.current_index)
        self._emit(update)

    def reset(self) -> None:
        """Move back to the start of the script. State is unchanged."""
        with self._lock:
            self._revision += 1
            old_index = self._current_index
            self._current_index = 0
            update = self._make_update(reason="reset")
        debug_log.log_position_change(old_index, 0, "reset")
        logger.info("Position reset")
        self._emit(update)

    def jump(self, index: int) -> int:
        """
        Move to an explicit word index (clamped to [0, script length]).

        Returns:
            The index actually jumped to
        """
        with self._lock:
            self._revision += 1
            old_index = self._current_index
            self._current_index = max(0, min(index, len(self.script)))
            update = self._make_update(reason="jump")
        debug_log.log_position_change(old_index, update.current_index, "jump")
        logger.info("Jumped to word %d", update.current_index)
        self._emit(update)
        return update.current_index

    def apply_match(
        self,
        result: MatchResult,
        window_start: int,
        threshold: float,
        revision: int | None = None,
        transcript: str = ""
    ) -> PositionUpdate | None:
        """
        Apply a match result for a window that started at `window_start`.

        A result at or above the threshold with an index moves the position
        just past the last matched word and marks the speaker on-script. Anything
        else (including an empty transcript) marks them off-script and leaves
        the position alone.

        Args:
            result: Match result with a window-relative index
            window_start: Absolute index the window started at
            threshold: Minimum score to count as on-script (inclusive)
            revision: Revision the window was taken under, None to skip the check
            transcript: Raw transcript, passed through to listeners

        Returns:
            The emitted update, or None if the result was ignored
        """
        with self._lock:
            if self._state is PlaybackState.IDLE:
                logger.debug("Ignoring match result while idle")
                return None
            if revision is not None and revision != self._revision:
                logger.debug(
                    "Discarding stale match result (revision %d, current %d)",
                    revision, self._revision
                )
                return None

            old_index = self._current_index
            anchor = result.advance_index
            if anchor is not None and result.score >= threshold:
                matched_at = window_start + anchor
                # Never move backwards on a match
                self._current_index = max(
                    old_index, min(matched_at + 1, len(self.script)))
                self._state = PlaybackState.RUNNING
                reason = "match"
            else:
                self._state = PlaybackState.PAUSED
                reason = "miss"

            update = self._make_update(
                reason=reason, confidence=result.score, transcript=transcript)

        if update.current_index != old_index:
            debug_log.log_position_change(old_index, update.current_index, reason)
        self._emit(update)
        return update

    def _make_update(self, reason: str, confidence: float = 0.0,
                     transcript: str = "") -> PositionUpdate:
        return PositionUpdate(
            state=self._state,
            current_index=self._current_index,
            total_words=len(self.script),
            confidence=confidence,
            transcript=transcript,
            reason=reason,
        )

    def _emit(self, update: PositionUpdate) -> None:
        for listener in list(self._listeners):
            try:
                listener(update)
            except Exception as e:
                logger.error("Position listener failed: %s", e, exc_info=True)

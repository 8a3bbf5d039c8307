# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
A prompting session: one script, one position tracker, one chunk scheduler.

The scheduler captures audio chunks; for each chunk the session takes the
tracker's current window, sends chunk and window to the transcription
backend, and applies the response to the tracker in chunk order.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from . import debug_log
from .scheduler import (
    DEFAULT_CHUNK_DURATION_MS,
    DEFAULT_CHUNK_GAP_MS,
    DEFAULT_MAX_IN_FLIGHT,
    ORDERING_SERIAL,
    AudioChunk,
    CaptureSource,
    ChunkScheduler,
)
from .script import DEFAULT_WINDOW_SIZE, Script
from .tracker import PlaybackState, PositionListener, PositionTracker, PositionUpdate
from .transcribe import TranscriptionBackend
from .wire import DEFAULT_THRESHOLD, TranscribeRequest, TranscribeResponse

logger = logging.getLogger(__name__)

ErrorListener = Callable[[int, str], None]


@dataclass
class ChunkOutcome:
    """A chunk's request together with the backend's response."""
    request: TranscribeRequest
    response: TranscribeResponse


class PrompterSession:
    """Owns the live state for one script being read aloud."""

    script: Script
    tracker: PositionTracker
    backend: TranscriptionBackend
    threshold: float
    scheduler: ChunkScheduler[ChunkOutcome]

    def __init__(
        self,
        script: Script,
        backend: TranscriptionBackend,
        source: CaptureSource,
        window_size: int = DEFAULT_WINDOW_SIZE,
        threshold: float = DEFAULT_THRESHOLD,
        chunk_duration_ms: int = DEFAULT_CHUNK_DURATION_MS,
        chunk_gap_ms: int = DEFAULT_CHUNK_GAP_MS,
        ordering: str = ORDERING_SERIAL,
        max_in_flight: int = DEFAULT_MAX_IN_FLIGHT
    ) -> None:
        """
        Initialize the session.

        Args:
            script: Reference script to track
            backend: Transcription backend that each chunk is sent to
            source: Audio capture source
            window_size: Number of script words matched per chunk
            threshold: Minimum match score (0-1) to count as on-script
            chunk_duration_ms: Length of each captured segment
            chunk_gap_ms: Pause between captures
            ordering: "serial" or "reorder"
            max_in_flight: Maximum concurrent sends in reorder mode
        """
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be between 0 and 1, got {threshold}")

        self.script = script
        self.tracker = PositionTracker(script, window_size=window_size)
        self.backend = backend
        self.threshold = threshold
        self.last_transcript: str = ""
        self._error_listeners: list[ErrorListener] = []

        self.scheduler = ChunkScheduler(
            source,
            process=self._process_chunk,
            deliver=self._deliver,
            on_error=self._on_chunk_error,
            on_capture_error=self._on_capture_error,
            chunk_duration_ms=chunk_duration_ms,
            chunk_gap_ms=chunk_gap_ms,
            ordering=ordering,
            max_in_flight=max_in_flight,
        )

    @property
    def state(self) -> PlaybackState:
        return self.tracker.state

    @property
    def current_index(self) -> int:
        return self.tracker.current_index

    def add_listener(self, listener: PositionListener) -> None:
        """Register a callback for position/state updates."""
        self.tracker.add_listener(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        """Register a callback(sequence, message) for transcription failures."""
        self._error_listeners.append(listener)

    def start(self) -> None:
        """Start capturing and tracking. Must be called from a running event loop."""
        if self.tracker.is_capturing:
            return
        self.tracker.start()
        self.scheduler.start()

    def stop(self) -> None:
        """Stop capturing. Results still in flight are discarded."""
        self.tracker.stop()
        self.scheduler.stop()

    async def aclose(self) -> None:
        """Stop and wait for the scheduler to wind down."""
        self.stop()
        await self.scheduler.wait_closed()

    def reset(self) -> None:
        self.tracker.reset()

    def jump(self, index: int) -> int:
        return self.tracker.jump(index)

    def snapshot(self) -> PositionUpdate:
        """Current state without waiting for the next change."""
        return PositionUpdate(
            state=self.tracker.state,
            current_index=self.tracker.current_index,
            total_words=len(self.script),
            transcript=self.last_transcript,
        )

    async def _process_chunk(self, chunk: AudioChunk) -> ChunkOutcome:
        window, revision = self.tracker.snapshot()
        request = TranscribeRequest(
            audio=chunk.data,
            script_window=window.words,
            current_index=window.start,
            threshold=self.threshold,
            sequence=chunk.sequence,
            revision=revision,
        )
        logger.debug("Sending chunk %d (window %d-%d)",
                     chunk.sequence, window.start, window.end)
        response = await self.backend.submit(request)
        return ChunkOutcome(request=request, response=response)

    def _deliver(self, chunk: AudioChunk, outcome: ChunkOutcome) -> None:
        request, response = outcome.request, outcome.response
        if response.transcript:
            self.last_transcript = response.transcript

        debug_log.log_chunk(
            chunk.sequence,
            request.current_index,
            response.transcript,
            response.confidence,
            response.matched_index,
            response.state,
        )
        logger.info("Chunk %d: \"%s\" score=%.2f -> %s",
                    chunk.sequence, response.transcript, response.confidence, response.state)

        self.tracker.apply_match(
            response.to_match_result(request.current_index),
            window_start=request.current_index,
            threshold=request.threshold,
            revision=request.revision,
            transcript=response.transcript,
        )

    def _on_chunk_error(self, chunk: AudioChunk, error: Exception) -> None:
        debug_log.log_chunk_error(chunk.sequence, str(error))
        for listener in list(self._error_listeners):
            listener(chunk.sequence, str(error))

    def _on_capture_error(self, error: Exception) -> None:
        logger.error("Stopping session: audio capture failed: %s", error)
        self.tracker.stop()
        for listener in list(self._error_listeners):
            listener(0, f"Audio capture failed: {error}")

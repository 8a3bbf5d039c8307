# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Chunk scheduler: captures fixed-length audio segments back to back and
feeds each one through transcription.

Capture is strictly sequential: one segment of `chunk_duration_ms`, then a
short gap, then the next. Every segment gets the next sequence number.
Results are always delivered in sequence order, whatever order the
transcription calls finish in.

Two send disciplines are supported:

- "serial": wait for a chunk's result before capturing the next one.
- "reorder": keep capturing while earlier chunks are still being
  transcribed (up to `max_in_flight` at once); a ResultSequencer holds
  back results that finish early until every earlier chunk has been
  delivered or discarded.
"""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from typing import Generic, Protocol, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_DURATION_MS: int = 1500
DEFAULT_CHUNK_GAP_MS: int = 100
DEFAULT_MAX_IN_FLIGHT: int = 4

ORDERING_SERIAL: str = "serial"
ORDERING_REORDER: str = "reorder"
ORDERINGS: tuple[str, ...] = (ORDERING_SERIAL, ORDERING_REORDER)

R = TypeVar("R")


@dataclass(frozen=True)
class AudioChunk:
    """One captured audio segment."""
    sequence: int
    data: bytes = field(repr=False)
    duration_ms: int


class CaptureSource(Protocol):
    """Anything that can record a fixed-length audio segment (blocking)."""

    def capture(self, duration_ms: int) -> bytes:
        ...


class ResultSequencer(Generic[R]):
    """
    Releases results strictly in sequence order.

    Each sequence number is either pushed with a result or discarded. A
    result is released only once every lower sequence number has been
    released or discarded, so a slow chunk holds back faster later ones.
    """

    def __init__(self, first_sequence: int = 1) -> None:
        self.next_sequence: int = first_sequence
        self._pending: dict[int, tuple[bool, R | None]] = {}

    @property
    def pending(self) -> int:
        """Number of results held back waiting for earlier ones."""
        return len(self._pending)

    def push(self, sequence: int, result: R) -> list[tuple[int, R]]:
        """
        Add a result and return every result that is now releasable.

        Results for sequence numbers already passed are dropped.
        """
        return self._add(sequence, True, result)

    def discard(self, sequence: int) -> list[tuple[int, R]]:
        """Mark a sequence number as having no result (e.g. it failed)."""
        return self._add(sequence, False, None)

    def _add(self, sequence: int, has_result: bool, result: R | None) -> list[tuple[int, R]]:
        if sequence < self.next_sequence or sequence in self._pending:
            logger.warning("Dropping duplicate or late result for chunk %d", sequence)
            return []
        self._pending[sequence] = (has_result, result)

        released: list[tuple[int, R]] = []
        while self.next_sequence in self._pending:
            ok, item = self._pending.pop(self.next_sequence)
            if ok:
                released.append((self.next_sequence, item))  # type: ignore[arg-type]
            self.next_sequence += 1
        if self._pending:
            logger.debug("Holding %d result(s) until chunk %d completes",
                         len(self._pending), self.next_sequence)
        return released


class ChunkScheduler(Generic[R]):
    """
    Drives the capture -> transcribe -> deliver cycle.

    Usage:
        scheduler = ChunkScheduler(source, process=send_chunk, deliver=apply_result)
        scheduler.start()
        ...
        scheduler.stop()
        await scheduler.wait_closed()
    """

    def __init__(
        self,
        source: CaptureSource,
        process: Callable[[AudioChunk], Awaitable[R]],
        deliver: Callable[[AudioChunk, R], None],
        on_error: Callable[[AudioChunk, Exception], None] | None = None,
        on_capture_error: Callable[[Exception], None] | None = None,
        chunk_duration_ms: int = DEFAULT_CHUNK_DURATION_MS,
        chunk_gap_ms: int = DEFAULT_CHUNK_GAP_MS,
        ordering: str = ORDERING_SERIAL,
        max_in_flight: int = DEFAULT_MAX_IN_FLIGHT
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            source: Blocking audio capture source, run in the default executor
            process: Coroutine that transcribes and matches one chunk
            deliver: Called with each chunk's result, in sequence order
            on_error: Called when process() raises for a chunk
            on_capture_error: Called if the capture source fails; capturing stops
            chunk_duration_ms: Length of each captured segment
            chunk_gap_ms: Pause between the end of one capture and the next
            ordering: "serial" or "reorder" (see module docstring)
            max_in_flight: Maximum outstanding process() calls in reorder mode
        """
        if ordering not in ORDERINGS:
            raise ValueError(f"Unknown ordering: {ordering}. Choose from: {ORDERINGS}")
        if chunk_duration_ms <= 0:
            raise ValueError(f"chunk_duration_ms must be positive, got {chunk_duration_ms}")
        if chunk_gap_ms < 0:
            raise ValueError(f"chunk_gap_ms must not be negative, got {chunk_gap_ms}")
        if max_in_flight <= 0:
            raise ValueError(f"max_in_flight must be positive, got {max_in_flight}")

        self.source: CaptureSource = source
        self.process = process
        self.deliver = deliver
        self.on_error = on_error
        self.on_capture_error = on_capture_error
        self.chunk_duration_ms: int = chunk_duration_ms
        self.chunk_gap_ms: int = chunk_gap_ms
        self.ordering: str = ordering
        self.max_in_flight: int = max_in_flight

        self.running: bool = False
        self.chunks_captured: int = 0
        self.chunks_failed: int = 0
        self._sequence: int = 0
        self._sequencer: ResultSequencer[tuple[AudioChunk, R]] = ResultSequencer()
        self._tasks: set[asyncio.Task[None]] = set()
        # Serializes source.capture: a cancelled capture keeps its executor
        # thread until the segment is recorded
        self._capture_lock = threading.Lock()
        self._captures: set[asyncio.Future[bytes]] = set()

    @property
    def in_flight(self) -> int:
        """Number of chunks currently being processed."""
        return sum(1 for t in self._tasks if t.get_name().startswith("chunk-"))

    def start(self) -> None:
        """Start capturing. Must be called from a running event loop."""
        if self.running:
            return
        self.running = True
        self._sequence = 0
        self._sequencer = ResultSequencer()

        if self.ordering == ORDERING_SERIAL:
            self._spawn(self._serial_loop(), "capture-loop")
        else:
            queue: asyncio.Queue[AudioChunk] = asyncio.Queue(maxsize=self.max_in_flight)
            self._spawn(self._capture_loop(queue), "capture-loop")
            self._spawn(self._dispatch_loop(queue), "dispatch-loop")
        logger.info("Chunk scheduler started (%s, %dms chunks, %dms gap)",
                    self.ordering, self.chunk_duration_ms, self.chunk_gap_ms)

    def stop(self) -> None:
        """Stop capturing and cancel in-flight work. Late results are dropped."""
        if not self.running:
            return
        self.running = False
        for task in list(self._tasks):
            task.cancel()
        logger.info("Chunk scheduler stopped after %d chunk(s)", self.chunks_captured)

    async def wait_closed(self) -> None:
        """Wait for cancelled tasks and any capture still recording to finish."""
        pending: list[asyncio.Future[object]] = [*self._tasks, *self._captures]  # type: ignore[list-item]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _spawn(self, coro: Coroutine[object, object, None], name: str) -> asyncio.Task[None]:
        task: asyncio.Task[None] = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _capture(self) -> AudioChunk:
        """Record one segment and number it."""
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self._locked_capture)
        self._captures.add(future)
        future.add_done_callback(self._captures.discard)
        # Cancelling the task must not orphan the executor future
        data: bytes = await asyncio.shield(future)
        self._sequence += 1
        self.chunks_captured += 1
        return AudioChunk(
            sequence=self._sequence,
            data=data,
            duration_ms=self.chunk_duration_ms,
        )

    def _locked_capture(self) -> bytes:
        with self._capture_lock:
            return self.source.capture(self.chunk_duration_ms)

    async def _capture_or_stop(self) -> AudioChunk | None:
        """Capture a segment, stopping the scheduler if the source fails."""
        try:
            return await self._capture()
        except asyncio.CancelledError:
            raise
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Audio capture failed: %s", e, exc_info=True)
            self.stop()
            if self.on_capture_error is not None:
                self.on_capture_error(e)
            return None

    async def _gap(self) -> None:
        if self.chunk_gap_ms:
            await asyncio.sleep(self.chunk_gap_ms / 1000)

    async def _serial_loop(self) -> None:
        """Capture, wait for the result, deliver, repeat."""
        while self.running:
            chunk = await self._capture_or_stop()
            if chunk is None or not self.running:
                break
            result = await self._run_process(chunk)
            if result is not None and self.running:
                self._deliver(chunk, result[0])
            await self._gap()

    async def _capture_loop(self, queue: 'asyncio.Queue[AudioChunk]') -> None:
        """Capture segments back to back into a bounded queue."""
        while self.running:
            chunk = await self._capture_or_stop()
            if chunk is None or not self.running:
                break
            await queue.put(chunk)
            await self._gap()

    async def _dispatch_loop(self, queue: 'asyncio.Queue[AudioChunk]') -> None:
        """Start processing each queued chunk without waiting for earlier ones."""
        slots = asyncio.Semaphore(self.max_in_flight)
        while self.running:
            chunk = await queue.get()
            await slots.acquire()
            task = self._spawn(self._process_in_order(chunk), f"chunk-{chunk.sequence}")
            task.add_done_callback(lambda _t: slots.release())

    async def _process_in_order(self, chunk: AudioChunk) -> None:
        result = await self._run_process(chunk)
        if result is None:
            released = self._sequencer.discard(chunk.sequence)
        else:
            released = self._sequencer.push(chunk.sequence, (chunk, result[0]))
        for _sequence, (ready_chunk, ready_result) in released:
            if not self.running:
                return
            self._deliver(ready_chunk, ready_result)

    async def _run_process(self, chunk: AudioChunk) -> tuple[R] | None:
        """Run process() for a chunk; report failures instead of raising."""
        try:
            return (await self.process(chunk),)
        except asyncio.CancelledError:
            raise
        except Exception as e:  # pylint: disable=broad-except
            self.chunks_failed += 1
            logger.warning("Chunk %d failed: %s", chunk.sequence, e)
            if self.on_error is not None and self.running:
                self.on_error(chunk, e)
            return None

    def _deliver(self, chunk: AudioChunk, result: R) -> None:
        try:
            self.deliver(chunk, result)
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Error delivering chunk %d: %s", chunk.sequence, e, exc_info=True)

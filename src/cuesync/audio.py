# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Microphone capture for the chunk scheduler.

The sounddevice stream pushes short blocks into a queue from its own
thread; capture() drains that queue until it has one segment of the
requested length. The stream stays open between captures so the next
segment starts without re-opening the device.
"""

import logging
import queue
import time
from typing import Any

import numpy as np
import numpy.typing as npt
import sounddevice as sd

logger = logging.getLogger(__name__)

BYTES_PER_SAMPLE: int = 2  # 16-bit PCM


class AudioCapture:
    """Records fixed-length 16-bit mono segments (a CaptureSource)."""

    def __init__(
        self,
        sample_rate: int = 16000,
        block_duration_ms: int = 100,
        device: int | None = None
    ) -> None:
        """
        Args:
            sample_rate: Sample rate in Hz (Vosk models expect 16000)
            block_duration_ms: Size of the blocks the stream delivers
            device: Input device index, or None for the system default
        """
        self.sample_rate: int = sample_rate
        self.device: int | None = device
        self.block_size: int = sample_rate * block_duration_ms // 1000

        self._blocks: queue.Queue[bytes] = queue.Queue()
        self._stream: sd.RawInputStream | None = None

    @property
    def running(self) -> bool:
        return self._stream is not None

    def __enter__(self) -> 'AudioCapture':
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _on_block(
        self,
        indata: npt.NDArray[np.int16],
        frames: int,
        time_info: Any,
        status: sd.CallbackFlags
    ) -> None:
        if status:
            logger.warning("Audio status: %s", status)
        self._blocks.put(bytes(indata))

    def start(self) -> None:
        """Open the input stream (no-op if already open)."""
        if self._stream is not None:
            return
        opened_at = time.monotonic()
        stream = sd.RawInputStream(
            samplerate=self.sample_rate,
            blocksize=self.block_size,
            device=self.device,
            dtype=np.int16,
            channels=1,
            callback=self._on_block
        )
        stream.start()
        self._stream = stream
        logger.info("Audio input opened in %.3fs (device %s)",
                    time.monotonic() - opened_at, self.device)

    def stop(self) -> None:
        """Close the input stream."""
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()
            logger.info("Audio input closed")

    def segment_bytes(self, duration_ms: int) -> int:
        """Number of bytes in a segment of the given duration."""
        return self.sample_rate * duration_ms // 1000 * BYTES_PER_SAMPLE

    def capture(self, duration_ms: int) -> bytes:
        """
        Record one segment (blocking).

        Blocks buffered before the call are dropped, so the segment covers
        the next `duration_ms` of input.

        Raises:
            RuntimeError: If the device stops delivering audio
        """
        self.start()
        self._drain()

        needed: int = self.segment_bytes(duration_ms)
        timeout: float = max(1.0, 2 * duration_ms / 1000)
        segment = bytearray()
        while len(segment) < needed:
            try:
                segment += self._blocks.get(timeout=timeout)
            except queue.Empty:
                raise RuntimeError(
                    f"No audio received from device {self.device} in {timeout:.1f}s") from None
        return bytes(segment[:needed])

    def _drain(self) -> None:
        try:
            while True:
                self._blocks.get_nowait()
        except queue.Empty:
            pass


def list_devices() -> None:
    """Print the available audio input devices."""
    print("Available audio input devices:")
    for index, device in enumerate(sd.query_devices()):  # type: ignore[arg-type]
        info: dict[str, Any] = dict(device)
        channels = int(info.get('max_input_channels', 0))
        if channels > 0:
            print(f"  [{index}] {info.get('name', 'Unknown')} (inputs: {channels})")

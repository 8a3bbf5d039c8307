"""
Speech-to-text providers for cuesync.

A provider turns one finished audio chunk (16-bit PCM, mono) into text.
Chunks are independent recordings, so providers keep no state between
calls. transcribe() blocks; LocalBackend runs it in an executor.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

ProgressCallback = Callable[[str, int], None]


class TranscriptionError(Exception):
    """A chunk could not be turned into text."""


@dataclass
class ModelInfo:
    """A model a provider can load, as shown by --list-models."""

    id: str  # e.g. "vosk-en-us-small"
    name: str
    provider: str
    size_mb: int | None = None
    description: str | None = None
    downloaded: bool = False


class TranscriptionProvider(ABC):
    """Chunk-at-a-time speech recognizer."""

    @abstractmethod
    def __init__(self, model_id: str, sample_rate: int = 16000) -> None:
        """Load `model_id` (a known model id or a model directory)."""

    @abstractmethod
    def transcribe(self, audio_data: bytes) -> str:
        """
        Transcribe one complete audio chunk.

        Returns:
            Recognized text, or "" if nothing was said

        Raises:
            TranscriptionError: If the recognizer failed
        """

    @staticmethod
    @abstractmethod
    def get_available_models() -> list[ModelInfo]:
        """Models this provider knows how to download."""

    @staticmethod
    @abstractmethod
    def download_model(model_id: str, target_dir: str | None = None,
                       progress_callback: ProgressCallback | None = None) -> str:
        """Fetch a model into the cache (no-op if present) and return its path."""

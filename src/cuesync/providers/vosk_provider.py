"""
Vosk speech recognition for whole audio chunks.

A fresh KaldiRecognizer is created per chunk: chunks are separate
recordings, so nothing should carry over from the previous one.
"""

import json
import logging
import tempfile
import urllib.request
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from vosk import KaldiRecognizer, Model, SetLogLevel

from ..transcription_provider import (
    ModelInfo,
    ProgressCallback,
    TranscriptionError,
    TranscriptionProvider,
)

logger = logging.getLogger(__name__)

# Vosk logs every model load to stderr otherwise
SetLogLevel(-1)

MODEL_CACHE_DIR: Path = Path.home() / ".cache" / "cuesync" / "models"
VOSK_MODEL_BASE_URL: str = "https://alphacephei.com/vosk/models"


@dataclass(frozen=True)
class VoskModelSpec:
    """A downloadable Vosk model."""
    directory: str  # Directory name inside the zip archive
    name: str
    size_mb: int

    @property
    def url(self) -> str:
        return f"{VOSK_MODEL_BASE_URL}/{self.directory}.zip"


VOSK_MODELS: dict[str, VoskModelSpec] = {
    "vosk-en-us-small": VoskModelSpec("vosk-model-small-en-us-0.15", "English US - Small", 40),
    "vosk-en-us-medium": VoskModelSpec("vosk-model-en-us-0.22", "English US - Medium", 1800),
    "vosk-en-gb-small": VoskModelSpec("vosk-model-small-en-gb-0.15", "English GB - Small", 40),
}


def resolve_model_path(model_id: str, cache_dir: Path = MODEL_CACHE_DIR) -> Path:
    """Cache location for a known model id; anything else is taken as a path."""
    spec = VOSK_MODELS.get(model_id)
    if spec is None:
        return Path(model_id)
    return cache_dir / spec.directory


def _fetch(url: str, dest: str, progress_callback: ProgressCallback | None) -> None:
    def report(block_count: int, block_size: int, total_size: int) -> None:
        if progress_callback and total_size > 0:
            progress_callback("downloading", min(100, block_count * block_size * 100 // total_size))

    if progress_callback:
        progress_callback("downloading", 0)
    urllib.request.urlretrieve(url, dest, report)


def _extract(archive: str, target: Path, progress_callback: ProgressCallback | None) -> None:
    if progress_callback:
        progress_callback("extracting", 0)
    with zipfile.ZipFile(archive, "r") as zf:
        zf.extractall(target)


class VoskProvider(TranscriptionProvider):
    """Vosk speech recognition provider."""

    sample_rate: int
    model_id: str
    model_path: Path
    model: Model

    def __init__(self, model_id: str, sample_rate: int = 16000) -> None:
        self.sample_rate = sample_rate
        self.model_id = model_id
        self.model_path = resolve_model_path(model_id)

        if not self.model_path.exists():
            raise RuntimeError(
                f"Vosk model not found at {self.model_path}. "
                f"Download it with: cuesync --download-model --model-id {model_id}"
            )
        logger.info("Loading Vosk model from: %s", self.model_path)
        self.model = Model(str(self.model_path))

    def transcribe(self, audio_data: bytes) -> str:
        try:
            recognizer = KaldiRecognizer(self.model, self.sample_rate)
            recognizer.AcceptWaveform(audio_data)
            result: dict[str, Any] = json.loads(recognizer.FinalResult())
        except (RuntimeError, ValueError) as e:
            raise TranscriptionError(f"Vosk failed to transcribe chunk: {e}") from e

        text: str = result.get("text", "").strip()
        # A lone "the" is what Vosk produces for silence or noise
        if text.lower() == "the":
            return ""
        return text

    @staticmethod
    def get_available_models() -> list[ModelInfo]:
        return [
            ModelInfo(
                id=model_id,
                name=spec.name,
                provider="vosk",
                size_mb=spec.size_mb,
                description=f"Vosk model - {spec.name}",
                downloaded=resolve_model_path(model_id).exists(),
            )
            for model_id, spec in VOSK_MODELS.items()
        ]

    @staticmethod
    def download_model(
        model_id: str,
        target_dir: str | None = None,
        progress_callback: ProgressCallback | None = None
    ) -> str:
        """
        Download and unpack a Vosk model into the cache.

        Raises:
            ValueError: If model_id is not a known Vosk model
        """
        spec = VOSK_MODELS.get(model_id)
        if spec is None:
            raise ValueError(
                f"Unknown Vosk model: {model_id}. Choose from: {list(VOSK_MODELS)}")

        cache_dir: Path = Path(target_dir) if target_dir else MODEL_CACHE_DIR
        model_path: Path = resolve_model_path(model_id, cache_dir)
        if model_path.exists():
            print(f"Model already exists at {model_path}")
        else:
            cache_dir.mkdir(parents=True, exist_ok=True)
            print(f"Downloading {model_id} ({spec.size_mb}MB) from {spec.url}...")
            with tempfile.TemporaryDirectory() as tmpdir:
                archive = str(Path(tmpdir) / f"{spec.directory}.zip")
                _fetch(spec.url, archive, progress_callback)
                print("Extracting model...")
                _extract(archive, cache_dir, progress_callback)
            print(f"Model installed to {model_path}")

        if progress_callback:
            progress_callback("complete", 100)
        return str(model_path)

# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Registry of transcription providers, looked up by the name used in config
and on the command line.
"""

from ..transcription_provider import ModelInfo, ProgressCallback, TranscriptionProvider
from .vosk_provider import VoskProvider

PROVIDER_REGISTRY: dict[str, type[TranscriptionProvider]] = {
    "vosk": VoskProvider,
}


def get_provider_class(provider_name: str) -> type[TranscriptionProvider]:
    """
    Raises:
        ValueError: If provider_name is not registered
    """
    try:
        return PROVIDER_REGISTRY[provider_name]
    except KeyError:
        raise ValueError(
            f"Unknown provider: {provider_name}. "
            f"Available providers: {', '.join(PROVIDER_REGISTRY)}"
        ) from None


def create_provider(
    provider_name: str, model_id: str, sample_rate: int = 16000
) -> TranscriptionProvider:
    """Load a model with the named provider."""
    return get_provider_class(provider_name)(model_id, sample_rate)


def get_all_available_models() -> list[ModelInfo]:
    """Downloadable models across every registered provider."""
    return [
        model
        for provider_class in PROVIDER_REGISTRY.values()
        for model in provider_class.get_available_models()
    ]


def download_model(
    provider_name: str,
    model_id: str,
    progress_callback: ProgressCallback | None = None
) -> str:
    """Download a model for the named provider and return its path."""
    return get_provider_class(provider_name).download_model(
        model_id, progress_callback=progress_callback)


__all__ = [
    "PROVIDER_REGISTRY",
    "VoskProvider",
    "create_provider",
    "download_model",
    "get_all_available_models",
    "get_provider_class",
]

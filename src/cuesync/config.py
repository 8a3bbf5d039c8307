# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Settings for cuesync.

Defaults live in DEFAULT_CONFIG; a `.cuesync.yaml` in the working directory
overrides any subset of them, section by section. Command-line flags are
applied on top by cuesync.main.
"""

import copy
import logging
from pathlib import Path
from typing import Any, TypedDict

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILENAME: str = ".cuesync.yaml"


class TranscriptionConfig(TypedDict):
    """Where chunks are transcribed: a local provider or a remote endpoint."""
    provider: str  # "vosk"
    model_id: str  # e.g. "vosk-en-us-small"
    model_path: str | None  # Optional custom model directory
    remote_url: str | None  # Send chunks to a remote /transcribe endpoint instead
    timeout_s: float | None  # Remote request timeout (None = no timeout)


class CaptureSettings(TypedDict):
    """Chunk cadence and the send discipline."""
    chunk_duration_ms: int
    chunk_gap_ms: int
    ordering: str  # "serial" or "reorder"
    max_in_flight: int


class MatchingSettings(TypedDict):
    window_size: int
    match_threshold: float


class DisplaySettings(TypedDict):
    """Opaque to the server; forwarded to display clients."""
    fontSize: int
    theme: str
    scrollOffset: float


class Config(TypedDict):
    transcription: TranscriptionConfig
    host: str
    port: int
    audio_device: int | None
    sample_rate: int
    capture: CaptureSettings
    matching: MatchingSettings
    display: DisplaySettings


DEFAULT_CONFIG: Config = {
    "transcription": {
        "provider": "vosk",
        "model_id": "vosk-en-us-small",
        "model_path": None,
        "remote_url": None,
        "timeout_s": None,
    },

    "host": "127.0.0.1",
    "port": 8000,
    "audio_device": None,
    "sample_rate": 16000,

    # 1.5s chunks with a short pause between captures
    "capture": {
        "chunk_duration_ms": 1500,
        "chunk_gap_ms": 100,
        "ordering": "serial",
        "max_in_flight": 4,
    },

    # Words per window and the minimum on-script score
    "matching": {
        "window_size": 30,
        "match_threshold": 0.6,
    },

    "display": {
        "fontSize": 48,
        "theme": "dark",
        # Keep current word at 40% from the top
        "scrollOffset": 0.4,
    },
}


def get_config_path() -> Path:
    """`.cuesync.yaml` in the current working directory."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge `override` into a copy of `base`, recursing into nested sections."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping, or {} (with a warning) if it can't be used."""
    try:
        with open(path, encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Could not load config from %s: %s", path, e)
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: expected a mapping", path)
        return {}
    return data


def load_config(config_path: Path | None = None) -> Config:
    """
    Load settings, with values from the config file (if any) layered over
    DEFAULT_CONFIG. The returned dict shares nothing with DEFAULT_CONFIG.
    """
    path = config_path or get_config_path()
    config: dict[str, Any] = copy.deepcopy(dict(DEFAULT_CONFIG))
    if path.exists():
        config = _deep_merge(config, _read_yaml(path))
    return config  # type: ignore[return-value]


def save_config(config: Config, config_path: Path | None = None) -> bool:
    """Write settings as YAML. Returns False (and logs) if the file can't be written."""
    path = config_path or get_config_path()
    try:
        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(dict(config), f, default_flow_style=False, sort_keys=False)
    except (OSError, yaml.YAMLError) as e:
        logger.error("Error saving config to %s: %s", path, e)
        return False
    logger.info("Saved config to %s", path)
    return True


def _section(config: Config, name: str) -> Any:
    section = config.get(name) or {}
    return {**DEFAULT_CONFIG[name], **section}  # type: ignore[literal-required]


def get_capture_settings(config: Config) -> CaptureSettings:
    return _section(config, "capture")


def get_matching_settings(config: Config) -> MatchingSettings:
    return _section(config, "matching")


def get_display_settings(config: Config) -> DisplaySettings:
    """Display settings, passed through untouched to WebSocket clients."""
    return _section(config, "display")


def get_transcription_settings(config: Config) -> TranscriptionConfig:
    return _section(config, "transcription")

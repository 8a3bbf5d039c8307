# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for configuration management.
"""

import tempfile
from pathlib import Path

import yaml

from cuesync.config import (
    DEFAULT_CONFIG,
    get_capture_settings,
    get_matching_settings,
    get_transcription_settings,
    load_config,
    save_config,
)


def test_defaults_when_no_file():
    """Missing config file gives the defaults."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config = load_config(Path(tmpdir) / ".cuesync.yaml")

    assert config == DEFAULT_CONFIG
    assert config["capture"]["chunk_duration_ms"] == 1500
    assert config["capture"]["chunk_gap_ms"] == 100
    assert config["matching"]["window_size"] == 30
    assert config["matching"]["match_threshold"] == 0.6


def test_file_values_override_defaults():
    """Nested sections are merged key by key."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".cuesync.yaml"
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump({
                "port": 9000,
                "capture": {"ordering": "reorder"},
                "matching": {"match_threshold": 0.75},
            }, f)

        config = load_config(config_path)

    assert config["port"] == 9000
    assert config["host"] == "127.0.0.1"
    assert get_capture_settings(config)["ordering"] == "reorder"
    assert get_capture_settings(config)["chunk_duration_ms"] == 1500
    assert get_matching_settings(config) == {"window_size": 30, "match_threshold": 0.75}


def test_loaded_config_does_not_share_defaults():
    """Changing a loaded config must not leak into DEFAULT_CONFIG."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config = load_config(Path(tmpdir) / "missing.yaml")
    config["capture"]["chunk_gap_ms"] = 999
    assert DEFAULT_CONFIG["capture"]["chunk_gap_ms"] == 100


def test_invalid_yaml_falls_back_to_defaults():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".cuesync.yaml"
        config_path.write_text("capture: [unclosed\n")
        config = load_config(config_path)
    assert config == DEFAULT_CONFIG


def test_non_mapping_yaml_is_ignored():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".cuesync.yaml"
        config_path.write_text("- just\n- a list\n")
        config = load_config(config_path)
    assert config == DEFAULT_CONFIG


def test_save_and_reload():
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".cuesync.yaml"
        config = load_config(config_path)
        config["transcription"]["remote_url"] = "http://example.test/transcribe"
        config["capture"]["max_in_flight"] = 2

        assert save_config(config, config_path)
        reloaded = load_config(config_path)

    assert get_transcription_settings(reloaded)["remote_url"] == "http://example.test/transcribe"
    assert get_capture_settings(reloaded)["max_in_flight"] == 2


def test_save_to_unwritable_path_fails():
    assert not save_config(DEFAULT_CONFIG, Path("/nonexistent/dir/.cuesync.yaml"))


def test_section_getters_fill_missing_keys():
    config = load_config(Path("/nonexistent/.cuesync.yaml"))
    config["capture"] = {"ordering": "reorder"}  # type: ignore[typeddict-item]
    capture = get_capture_settings(config)
    assert capture["ordering"] == "reorder"
    assert capture["max_in_flight"] == 4

"""
Debug logging of per-chunk matching decisions.

Writes one line per processed chunk and per position change to
logs/matches.log, which makes it possible to replay why the prompter
paused or advanced during a session.

Logging is disabled by default. Call enable() to turn it on.
"""

from datetime import datetime
from pathlib import Path

# Log files location (in the current working directory)
LOG_DIR: Path = Path.cwd() / "logs"
MATCH_LOG: Path = LOG_DIR / "matches.log"

# Global flag to control whether debug logging is enabled
_ENABLED: bool = False  # pylint: disable=invalid-name


def enable() -> None:
    """Enable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = True


def disable() -> None:
    """Disable debug logging."""
    global _ENABLED  # pylint: disable=global-statement
    _ENABLED = False


def is_enabled() -> bool:
    """Check if debug logging is enabled."""
    return _ENABLED


def _ensure_log_dir() -> None:
    """Create log directory if it doesn't exist."""
    LOG_DIR.mkdir(exist_ok=True)


def _timestamp() -> str:
    """Get current timestamp."""
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def _write(line: str) -> None:
    _ensure_log_dir()
    with open(MATCH_LOG, 'a', encoding='utf-8') as f:
        f.write(f"[{_timestamp()}] {line}\n")


def clear_logs() -> None:
    """Clear the log file for a fresh session."""
    if not _ENABLED:
        return
    _ensure_log_dir()
    with open(MATCH_LOG, 'w', encoding='utf-8') as f:
        f.write(
            f"=== New session started at {datetime.now().isoformat()} ===\n\n")


def log_chunk(
    sequence: int,
    window_start: int,
    transcript: str,
    score: float,
    matched_index: int | None,
    state: str
) -> None:
    """
    Log the outcome of one transcribed chunk.

    Args:
        sequence: Chunk sequence number
        window_start: Absolute index the matching window started at
        transcript: Transcribed text
        score: Match score (0-1)
        matched_index: Absolute matched index, or None
        state: Resulting state (RUNNING or PAUSED)
    """
    if not _ENABLED:
        return
    _write(
        f"chunk={sequence:4d} window={window_start:4d} score={score:.3f} "
        f"matched={matched_index} state={state:7} transcript=\"{transcript[-60:]}\""
    )


def log_chunk_error(sequence: int, message: str) -> None:
    """Log a transcription failure for a chunk."""
    if not _ENABLED:
        return
    _write(f"chunk={sequence:4d} ERROR {message}")


def log_position_change(old_pos: int, new_pos: int, reason: str) -> None:
    """Log a position change (match, reset or jump)."""
    if not _ENABLED:
        return
    _write(f"POSITION CHANGE: {old_pos} -> {new_pos} ({reason})")

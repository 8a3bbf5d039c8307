"""
cuesync - Voice-synced teleprompter.

Captures short audio chunks, transcribes them, and fuzzy-matches the
transcript against a window of the script to keep the display scrolled
to the word being spoken.
"""

__version__ = "0.1.0"

from .matcher import MatchResult, match
from .script import Script, ScriptWindow
from .session import PrompterSession
from .tracker import PlaybackState, PositionTracker, PositionUpdate
from .wire import TranscribeRequest, TranscribeResponse, evaluate

__all__ = [
    "MatchResult",
    "match",
    "Script",
    "ScriptWindow",
    "PrompterSession",
    "PlaybackState",
    "PositionTracker",
    "PositionUpdate",
    "TranscribeRequest",
    "TranscribeResponse",
    "evaluate",
]

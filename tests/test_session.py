"""
Tests for PrompterSession: capture -> transcribe -> match -> track, end to end
with a fake microphone and a mocked transcription provider.
"""

import asyncio
from collections.abc import Iterator
from unittest.mock import Mock

import pytest

from cuesync.script import Script
from cuesync.session import PrompterSession
from cuesync.tracker import PlaybackState, PositionUpdate
from cuesync.transcribe import LocalBackend
from cuesync.transcription_provider import TranscriptionError


class FakeMicrophone:
    """Returns silence immediately; optionally fails after a number of chunks."""

    def __init__(self, fail_after: int | None = None) -> None:
        self.calls = 0
        self.fail_after = fail_after

    def capture(self, duration_ms: int) -> bytes:
        self.calls += 1
        if self.fail_after is not None and self.calls > self.fail_after:
            raise RuntimeError("device lost")
        return b"\x00\x00" * 16


def scripted_provider(transcripts: list[object]) -> Mock:
    """Provider mock that returns (or raises) the given items, then silence."""
    items: Iterator[object] = iter(transcripts)

    def transcribe(_audio: bytes) -> str:
        item = next(items, "")
        if isinstance(item, Exception):
            raise item
        return str(item)

    provider = Mock()
    provider.transcribe.side_effect = transcribe
    return provider


def make_session(transcripts: list[object], source: FakeMicrophone | None = None,
                 **kwargs: object) -> PrompterSession:
    return PrompterSession(
        Script.from_text("Hello world this is a test"),
        backend=LocalBackend(scripted_provider(transcripts)),
        source=source or FakeMicrophone(),
        chunk_gap_ms=0,
        **kwargs,  # type: ignore[arg-type]
    )


async def wait_for_update(session: PrompterSession, predicate) -> list[PositionUpdate]:
    updates: list[PositionUpdate] = []
    done = asyncio.Event()

    def listener(update: PositionUpdate) -> None:
        updates.append(update)
        if predicate(update):
            done.set()

    session.add_listener(listener)
    session.start()
    try:
        await asyncio.wait_for(done.wait(), timeout=5)
    finally:
        await session.aclose()
    return updates


class TestPrompting:
    """Following the speaker through the script."""

    @pytest.mark.asyncio
    async def test_follows_speech_and_pauses_on_silence(self) -> None:
        session = make_session(["hello world", "", "this is"])
        updates = await wait_for_update(
            session, lambda u: u.reason == "match" and u.current_index == 4)

        reasons = [(u.reason, u.state, u.current_index) for u in updates[:4]]
        assert reasons == [
            ("start", PlaybackState.RUNNING, 0),
            ("match", PlaybackState.RUNNING, 2),
            ("miss", PlaybackState.PAUSED, 2),
            ("match", PlaybackState.RUNNING, 4),
        ]
        assert session.state is PlaybackState.IDLE
        assert session.current_index == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ordering", ["serial", "reorder"])
    async def test_orderings_reach_the_same_position(self, ordering: str) -> None:
        session = make_session(["hello world", "this is", "a test"], ordering=ordering)
        await wait_for_update(session, lambda u: u.current_index == 6)
        assert session.current_index == 6

    @pytest.mark.asyncio
    async def test_off_script_speech_pauses(self) -> None:
        session = make_session(["completely unrelated words"])
        updates = await wait_for_update(session, lambda u: u.reason == "miss")
        assert updates[-1].state is PlaybackState.PAUSED
        assert updates[-1].current_index == 0
        assert updates[-1].transcript == "completely unrelated words"

    @pytest.mark.asyncio
    async def test_snapshot_reports_last_transcript(self) -> None:
        session = make_session(["hello world"])
        await wait_for_update(session, lambda u: u.reason == "match")
        snapshot = session.snapshot()
        assert snapshot.transcript == "hello world"
        assert snapshot.total_words == 6


class TestFailures:
    """Transcription and capture failures."""

    @pytest.mark.asyncio
    async def test_transcription_failure_leaves_position_alone(self) -> None:
        session = make_session(["hello world", TranscriptionError("model crashed"), "this is"])
        errors: list[tuple[int, str]] = []
        session.add_error_listener(lambda seq, msg: errors.append((seq, msg)))

        updates = await wait_for_update(session, lambda u: u.current_index == 4)

        assert errors == [(2, "model crashed")]
        # The failed chunk produced no update at all
        assert [u.reason for u in updates[:3]] == ["start", "match", "match"]

    @pytest.mark.asyncio
    async def test_capture_failure_stops_session(self) -> None:
        session = make_session(["hello world"], source=FakeMicrophone(fail_after=1))
        errors: list[tuple[int, str]] = []
        stopped = asyncio.Event()
        session.add_error_listener(lambda seq, msg: errors.append((seq, msg)))
        session.add_listener(lambda u: stopped.set() if u.reason == "stop" else None)

        session.start()
        await asyncio.wait_for(stopped.wait(), timeout=5)
        await session.aclose()

        assert session.state is PlaybackState.IDLE
        assert errors[0][0] == 0
        assert "device lost" in errors[0][1]


class TestControls:
    """start / stop / reset / jump pass-through."""

    def test_invalid_threshold(self) -> None:
        with pytest.raises(ValueError):
            make_session([], threshold=1.5)

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self) -> None:
        session = make_session([])
        session.start()
        session.start()
        assert session.state is PlaybackState.RUNNING
        await session.aclose()
        assert session.state is PlaybackState.IDLE

    def test_reset_and_jump_while_idle(self) -> None:
        session = make_session([])
        assert session.jump(3) == 3
        assert session.current_index == 3
        session.reset()
        assert session.current_index == 0
        assert session.state is PlaybackState.IDLE

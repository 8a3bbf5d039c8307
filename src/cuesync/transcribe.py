# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Transcription backends used by the chunk scheduler.

A backend takes a TranscribeRequest (audio chunk plus script window) and
returns the TranscribeResponse for it. LocalBackend runs a transcription
provider in-process; HttpBackend posts the chunk to a remote /transcribe
endpoint served by cuesync.server.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

import aiohttp

from .transcription_provider import TranscriptionError, TranscriptionProvider
from .wire import TranscribeRequest, TranscribeResponse, evaluate

logger = logging.getLogger(__name__)

__all__ = ["TranscriptionBackend", "LocalBackend", "HttpBackend", "TranscriptionError"]


class TranscriptionBackend(ABC):
    """Turns a chunk request into a transcript and on/off-script decision."""

    @abstractmethod
    async def submit(self, request: TranscribeRequest) -> TranscribeResponse:
        """
        Transcribe and match one chunk.

        Raises:
            TranscriptionError: If the chunk could not be transcribed
        """

    async def close(self) -> None:
        """Release any resources held by the backend."""


class LocalBackend(TranscriptionBackend):
    """Runs a blocking transcription provider in the default executor."""

    def __init__(self, provider: TranscriptionProvider) -> None:
        self.provider: TranscriptionProvider = provider

    async def transcribe(self, audio: bytes) -> str:
        """Transcribe audio without blocking the event loop."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.provider.transcribe, audio)
        except TranscriptionError:
            raise
        except Exception as e:
            raise TranscriptionError(str(e)) from e

    async def submit(self, request: TranscribeRequest) -> TranscribeResponse:
        transcript: str = await self.transcribe(request.audio)
        logger.debug("Chunk %d transcript: %r", request.sequence, transcript)
        return evaluate(
            transcript,
            request.script_window,
            request.current_index,
            request.threshold,
        )


class HttpBackend(TranscriptionBackend):
    """Posts chunks to a remote /transcribe endpoint."""

    def __init__(
        self,
        url: str,
        timeout_s: float | None = None,
        session: aiohttp.ClientSession | None = None
    ) -> None:
        """
        Initialize the HTTP backend.

        Args:
            url: Full URL of the /transcribe endpoint
            timeout_s: Total request timeout in seconds, or None for no timeout
            session: Optional client session to reuse (not closed by close())
        """
        self.url: str = url
        self.timeout: aiohttp.ClientTimeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session: aiohttp.ClientSession | None = session
        self._owns_session: bool = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    def _build_form(self, request: TranscribeRequest) -> aiohttp.FormData:
        form = aiohttp.FormData()
        form.add_field(
            "audio",
            request.audio,
            filename="audio.pcm",
            content_type="application/octet-stream",
        )
        for name, value in request.form_fields().items():
            form.add_field(name, value)
        return form

    async def submit(self, request: TranscribeRequest) -> TranscribeResponse:
        session = self._get_session()
        try:
            async with session.post(self.url, data=self._build_form(request),
                                    timeout=self.timeout) as resp:
                body = await resp.json(content_type=None)
                if resp.status != 200:
                    details = body
                    if isinstance(body, dict):
                        details = body.get("details") or body.get("error")
                    raise TranscriptionError(
                        f"Server error {resp.status}: {details}")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TranscriptionError(f"Request to {self.url} failed: {e}") from e

        if not isinstance(body, dict):
            raise TranscriptionError(f"Unexpected response body: {body!r}")
        try:
            return TranscribeResponse.from_json(body)
        except ValueError as e:
            raise TranscriptionError(str(e)) from e

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

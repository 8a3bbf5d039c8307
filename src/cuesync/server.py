# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Web server for cuesync.

Serves the per-chunk /transcribe endpoint and a WebSocket feed that keeps
display clients up to date with the prompter's state and position.
"""

import asyncio
import contextlib
import json
import logging
import time
from datetime import datetime
from typing import Any, Protocol

from aiohttp import web

from .config import DEFAULT_CONFIG, DisplaySettings
from .transcribe import LocalBackend, TranscriptionError
from .tracker import PositionUpdate
from .wire import TranscribeRequest, evaluate

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024


class PrompterController(Protocol):
    """Operations the WebSocket clients can trigger."""

    async def load_script(self, text: str) -> None: ...

    async def start_prompting(self) -> None: ...

    async def stop_prompting(self) -> None: ...

    def reset(self) -> None: ...

    def jump(self, index: int) -> None: ...

    def describe(self) -> dict[str, object]: ...


class WebServer:
    """
    Serves the cuesync HTTP endpoints and manages WebSocket connections.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8000,
        transcriber: LocalBackend | None = None,
        initial_settings: DisplaySettings | None = None
    ) -> None:
        self.host: str = host
        self.port: int = port
        self.transcriber: LocalBackend | None = transcriber
        self.controller: PrompterController | None = None
        self.app: web.Application = web.Application(client_max_size=MAX_UPLOAD_BYTES)
        self.websockets: set[web.WebSocketResponse] = set()
        self.runner: web.AppRunner | None = None

        self._outbox: asyncio.Queue[dict[str, object]] | None = None
        self._sender: asyncio.Task[None] | None = None

        # Merge initial settings with defaults
        self.settings: dict[str, Any] = dict(DEFAULT_CONFIG["display"])
        if initial_settings:
            self.settings.update(initial_settings)

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_post('/transcribe', self._handle_transcribe)
        self.app.router.add_get('/ws', self._handle_websocket)
        self.app.router.add_get('/health', self._handle_health)

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "timestamp": datetime.now().isoformat()
        })

    async def _handle_transcribe(self, request: web.Request) -> web.Response:
        """Transcribe one audio chunk and match it against the posted window."""
        if self.transcriber is None:
            return web.json_response(
                {"error": "No local transcription provider configured"}, status=503)

        form = await request.post()
        audio_field = form.get("audio")
        if isinstance(audio_field, web.FileField):
            audio: bytes = audio_field.file.read()
        elif isinstance(audio_field, (bytes, bytearray)):
            audio = bytes(audio_field)
        else:
            return web.json_response({"error": "No audio file provided"}, status=400)

        fields: dict[str, str] = {
            k: v for k, v in form.items() if isinstance(v, str)
        }
        try:
            chunk = TranscribeRequest.from_form(audio, fields)
        except ValueError as e:
            return web.json_response({"error": "Invalid request", "details": str(e)}, status=400)

        logger.info("Transcribing audio chunk... (current index: %d)", chunk.current_index)
        try:
            transcript: str = await self.transcriber.transcribe(chunk.audio)
        except TranscriptionError as e:
            logger.error("Transcription error: %s", e)
            return web.json_response(
                {"error": "Transcription failed", "details": str(e)}, status=500)

        logger.info("Transcript: \"%s\"", transcript)
        response = evaluate(transcript, chunk.script_window, chunk.current_index, chunk.threshold)
        logger.info("Match score: %.2f (threshold: %s)", response.confidence, chunk.threshold)
        return web.json_response(response.to_json())

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle WebSocket connections for real-time updates."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self.websockets.add(ws)
        logger.info("WebSocket connected. Total: %d", len(self.websockets))

        try:
            init: dict[str, object] = {"type": "init", "settings": self.settings}
            if self.controller is not None:
                init.update(self.controller.describe())
            await ws.send_json(init)

            async for msg in ws:
                if msg.type == web.WSMsgType.TEXT:
                    try:
                        data = json.loads(msg.data)
                    except json.JSONDecodeError:
                        logger.warning("Ignoring malformed WebSocket message")
                        continue
                    if isinstance(data, dict):
                        await self._handle_ws_message(ws, data)
                elif msg.type == web.WSMsgType.ERROR:
                    logger.warning("WebSocket error: %s", ws.exception())
        finally:
            self.websockets.discard(ws)
            logger.info("WebSocket disconnected. Total: %d", len(self.websockets))

        return ws

    async def _handle_ws_message(self, ws: web.WebSocketResponse, data: dict[str, object]) -> None:
        """Handle incoming WebSocket messages using dispatch pattern."""
        msg_type: object | None = data.get("type")
        if not msg_type:
            return

        # Message type to handler dispatch
        handlers: dict[str, object] = {
            "script": self._on_script_message,
            "start": self._on_start_message,
            "stop": self._on_stop_message,
            "reset": self._on_reset_message,
            "jump_to": self._on_jump_to_message,
            "settings": self._on_settings_message,
        }

        handler: object | None = handlers.get(msg_type)  # type: ignore[arg-type]
        if not handler:
            logger.warning("Unhandled WebSocket message: %s", msg_type)
            return
        if self.controller is None:
            await ws.send_json({"type": "error", "message": "Prompter not ready"})
            return
        try:
            await handler(ws, data)  # type: ignore[operator]
        except ValueError as e:
            await ws.send_json({"type": "error", "message": str(e)})

    async def _on_script_message(self, _ws: web.WebSocketResponse, data: dict[str, object]) -> None:
        """Handle script update message."""
        await self.controller.load_script(str(data.get("text", "")))  # type: ignore[union-attr]

    async def _on_start_message(self, _ws: web.WebSocketResponse, _data: dict[str, object]) -> None:
        logger.info("Start prompting requested")
        await self.controller.start_prompting()  # type: ignore[union-attr]

    async def _on_stop_message(self, _ws: web.WebSocketResponse, _data: dict[str, object]) -> None:
        logger.info("Stop prompting requested")
        await self.controller.stop_prompting()  # type: ignore[union-attr]

    async def _on_reset_message(self, _ws: web.WebSocketResponse, _data: dict[str, object]) -> None:
        self.controller.reset()  # type: ignore[union-attr]

    async def _on_jump_to_message(self, _ws: web.WebSocketResponse, data: dict[str, object]) -> None:
        """Handle jump to word message."""
        index = data.get("index")
        if not isinstance(index, int) or isinstance(index, bool):
            raise ValueError(f"jump_to needs an integer index, got {index!r}")
        self.controller.jump(index)  # type: ignore[union-attr]

    async def _on_settings_message(self, _ws: web.WebSocketResponse, data: dict[str, object]) -> None:
        """Handle display settings update message."""
        settings = data.get("settings")
        if isinstance(settings, dict):
            self.settings.update(settings)
            await self.broadcast({"type": "settings_updated", "settings": self.settings})

    async def broadcast(self, message: dict[str, object]) -> None:
        """Send a message to all connected WebSocket clients."""
        if not self.websockets:
            return

        dead: set[web.WebSocketResponse] = set()
        for ws in list(self.websockets):
            try:
                await ws.send_json(message)
            except (ConnectionError, ConnectionResetError, RuntimeError) as e:
                logger.warning("Error sending to WebSocket: %s", e)
                dead.add(ws)

        self.websockets -= dead

    def publish(self, message: dict[str, object]) -> None:
        """
        Queue a message for broadcast without waiting.

        Messages are broadcast one at a time in the order they were queued.
        Safe to call from synchronous callbacks on the event loop thread.
        """
        if self._outbox is None:
            self._outbox = asyncio.Queue()
        if self._sender is None or self._sender.done():
            self._sender = asyncio.get_running_loop().create_task(self._send_loop())
        self._outbox.put_nowait(message)

    async def _send_loop(self) -> None:
        assert self._outbox is not None
        while True:
            message = await self._outbox.get()
            await self.broadcast(message)

    def send_position(self, update: PositionUpdate) -> None:
        """Queue a position/state update for all clients."""
        self.publish(update.to_message())

    def send_error(self, sequence: int, message: str) -> None:
        """Queue a transcription error event for all clients."""
        self.publish({"type": "error", "sequence": sequence, "message": message})

    async def start(self) -> None:
        """Start the web server."""
        start_time = time.time()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site: web.TCPSite = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        logger.info("Server started in %.3fs", time.time() - start_time)
        print(f"Web server running at http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the web server."""
        if self._sender is not None:
            self._sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sender
            self._sender = None

        # Close all WebSocket connections
        for ws in list(self.websockets):
            with contextlib.suppress(Exception):
                await ws.close()
        self.websockets.clear()

        if self.runner:
            await self.runner.cleanup()

"""
Main cuesync application.
Orchestrates audio capture, transcription, position tracking, and the web server.
"""

import argparse
import asyncio
import contextlib
import logging
import signal
from pathlib import Path

from . import debug_log
from .audio import AudioCapture, list_devices
from .config import (
    DEFAULT_CONFIG,
    CaptureSettings,
    Config,
    MatchingSettings,
    TranscriptionConfig,
    get_capture_settings,
    get_config_path,
    get_display_settings,
    get_matching_settings,
    get_transcription_settings,
    load_config,
    save_config,
)
from .providers import create_provider, download_model, get_all_available_models
from .scheduler import ORDERINGS
from .script import Script
from .server import WebServer
from .session import PrompterSession
from .transcribe import HttpBackend, LocalBackend, TranscriptionBackend

logger = logging.getLogger(__name__)


class CuesyncApp:
    """
    Main cuesync application that coordinates all components.

    Holds at most one PrompterSession, replaced whenever a new script is
    loaded.
    """

    def __init__(self, config: Config) -> None:
        self.config: Config = config
        self.transcription: TranscriptionConfig = get_transcription_settings(config)
        self.capture: CaptureSettings = get_capture_settings(config)
        self.matching: MatchingSettings = get_matching_settings(config)

        self.audio: AudioCapture | None = None
        self.local_backend: LocalBackend | None = None
        self.backend: TranscriptionBackend | None = None
        self.session: PrompterSession | None = None
        self.server: WebServer | None = None

        self._shutdown: asyncio.Event | None = None

    async def _initialize_backend(self) -> TranscriptionBackend:
        """Create the transcription backend (loads the model when local)."""
        remote_url = self.transcription.get("remote_url")
        if remote_url:
            logger.info("Sending chunks to %s", remote_url)
            return HttpBackend(remote_url, timeout_s=self.transcription.get("timeout_s"))

        provider = self.transcription["provider"]
        model = self.transcription.get("model_path") or self.transcription["model_id"]
        print(f"Loading transcription model: {provider} / {model}")
        # Model loading is slow, keep the event loop responsive
        loop = asyncio.get_running_loop()
        instance = await loop.run_in_executor(
            None,
            lambda: create_provider(provider, model, self.config.get("sample_rate", 16000)),
        )
        self.local_backend = LocalBackend(instance)
        return self.local_backend

    def _get_audio(self) -> AudioCapture:
        if self.audio is None:
            self.audio = AudioCapture(
                sample_rate=self.config.get("sample_rate", 16000),
                device=self.config.get("audio_device"),
            )
        return self.audio

    async def load_script(self, text: str) -> None:
        """Replace the current script, stopping any running session."""
        script = Script.from_text(text)
        if self.session is not None:
            await self.session.aclose()

        assert self.backend is not None, "Backend must be initialized"
        self.session = PrompterSession(
            script,
            backend=self.backend,
            source=self._get_audio(),
            window_size=self.matching["window_size"],
            threshold=self.matching["match_threshold"],
            chunk_duration_ms=self.capture["chunk_duration_ms"],
            chunk_gap_ms=self.capture["chunk_gap_ms"],
            ordering=self.capture["ordering"],
            max_in_flight=self.capture["max_in_flight"],
        )
        if self.server is not None:
            self.session.add_listener(self.server.send_position)
            self.session.add_error_listener(self.server.send_error)
            await self.server.broadcast({"type": "script_updated", **self.describe()})

        debug_log.clear_logs()
        print(f"Script loaded: {len(script)} words")

    async def start_prompting(self) -> None:
        if self.session is None:
            raise ValueError("Load a script before starting")
        self.session.start()

    async def stop_prompting(self) -> None:
        if self.session is None:
            return
        await self.session.aclose()
        if self.audio is not None:
            self.audio.stop()

    def reset(self) -> None:
        if self.session is not None:
            self.session.reset()

    def jump(self, index: int) -> None:
        if self.session is not None:
            self.session.jump(index)

    def describe(self) -> dict[str, object]:
        """Current script and position for newly connected clients."""
        if self.session is None:
            return {"words": [], "totalWords": 0, "state": "IDLE", "wordIndex": 0}
        snapshot = self.session.snapshot()
        return {
            "words": self.session.script.words,
            "totalWords": snapshot.total_words,
            "state": snapshot.state.value,
            "wordIndex": snapshot.current_index,
        }

    async def run(self, script_path: Path | None = None) -> None:
        """Start the server and run until shutdown is requested."""
        print("Starting cuesync...")
        self._shutdown = asyncio.Event()

        self.backend = await self._initialize_backend()
        self.server = WebServer(
            host=self.config.get("host", "127.0.0.1"),
            port=self.config.get("port", 8000),
            transcriber=self.local_backend,
            initial_settings=get_display_settings(self.config),
        )
        self.server.controller = self
        await self.server.start()

        if script_path is not None:
            await self.load_script(script_path.read_text(encoding="utf-8"))

        print("\n✓ cuesync ready!")
        print(f"  Connect a display to ws://{self.server.host}:{self.server.port}/ws")
        print("  Press Ctrl+C to stop\n")

        await self._shutdown.wait()

    def request_shutdown(self) -> None:
        if self._shutdown is not None:
            self._shutdown.set()

    async def stop(self) -> None:
        """Stop the cuesync application."""
        print("\nStopping cuesync...")
        if self.session is not None:
            await self.session.aclose()
        if self.audio is not None:
            self.audio.stop()
        if self.backend is not None:
            await self.backend.close()
        if self.server is not None:
            await self.server.stop()
        print("cuesync stopped.")


def build_parser(config: Config) -> argparse.ArgumentParser:
    """Build the command-line parser, using config values as defaults."""
    transcription = get_transcription_settings(config)
    capture = get_capture_settings(config)
    matching = get_matching_settings(config)

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="cuesync - voice-synced teleprompter"
    )

    parser.add_argument(
        "--provider",
        default=transcription.get("provider", "vosk"),
        choices=["vosk"],
        help="Transcription provider (default: from config or 'vosk')"
    )
    parser.add_argument(
        "--model-id",
        default=transcription.get("model_id"),
        help="Model identifier (e.g., 'vosk-en-us-small')"
    )
    parser.add_argument(
        "--model-path",
        default=transcription.get("model_path"),
        help="Path to custom model directory (optional)"
    )
    parser.add_argument(
        "--remote-url",
        default=transcription.get("remote_url"),
        help="Send chunks to a remote /transcribe endpoint instead of a local model"
    )
    parser.add_argument(
        "--host",
        default=config.get("host", "127.0.0.1"),
        help="Web server host (default: from config or 127.0.0.1)"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.get("port", 8000),
        help="Web server port (default: from config or 8000)"
    )
    parser.add_argument(
        "--device", "-d",
        type=int,
        default=config.get("audio_device"),
        help="Audio input device index"
    )
    parser.add_argument(
        "--chunk-ms",
        type=int,
        default=capture.get("chunk_duration_ms", 1500),
        help="Length of each captured audio chunk in milliseconds (default: 1500)"
    )
    parser.add_argument(
        "--gap-ms",
        type=int,
        default=capture.get("chunk_gap_ms", 100),
        help="Pause between chunks in milliseconds (default: 100)"
    )
    parser.add_argument(
        "--ordering",
        default=capture.get("ordering", "serial"),
        choices=list(ORDERINGS),
        help="'serial' waits for each chunk's result; 'reorder' overlaps sends"
    )
    parser.add_argument(
        "--window-size",
        type=int,
        default=matching.get("window_size", 30),
        help="Number of script words to match each chunk against (default: 30)"
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=matching.get("match_threshold", 0.6),
        help="Minimum match score (0-1) to count as on-script (default: 0.6)"
    )
    parser.add_argument(
        "--script",
        type=Path,
        default=None,
        help="Script file to load on start-up"
    )
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="List available audio input devices and exit"
    )
    parser.add_argument(
        "--list-models",
        action="store_true",
        help="List all available transcription models and exit"
    )
    parser.add_argument(
        "--download-model",
        action="store_true",
        help="Download the specified model and exit"
    )
    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Save current CLI options to config file and exit"
    )
    parser.add_argument(
        "--debug-log",
        action="store_true",
        help="Log every chunk's match decision to ./logs/matches.log"
    )
    return parser


def apply_args(config: Config, args: argparse.Namespace) -> Config:
    """Return the config with command-line overrides applied."""
    config["transcription"]["provider"] = args.provider
    config["transcription"]["model_id"] = args.model_id or DEFAULT_CONFIG["transcription"]["model_id"]
    config["transcription"]["model_path"] = args.model_path
    config["transcription"]["remote_url"] = args.remote_url
    config["host"] = args.host
    config["port"] = args.port
    config["audio_device"] = args.device
    config["capture"]["chunk_duration_ms"] = args.chunk_ms
    config["capture"]["chunk_gap_ms"] = args.gap_ms
    config["capture"]["ordering"] = args.ordering
    config["matching"]["window_size"] = args.window_size
    config["matching"]["match_threshold"] = args.threshold
    return config


def main() -> None:
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )
    # Per-chunk matcher output is only useful when debugging
    logging.getLogger("cuesync.matcher").setLevel(logging.WARNING)

    # Load config first to use as defaults
    config: Config = load_config()
    args: argparse.Namespace = build_parser(config).parse_args()

    if args.list_devices:
        list_devices()
        return

    if args.list_models:
        print("\nAvailable transcription models:")
        print("-" * 80)
        for model in sorted(get_all_available_models(), key=lambda m: (m.provider, m.name)):
            marker = " [downloaded]" if model.downloaded else ""
            print(f"  {model.id}{marker}")
            print(f"    Name: {model.name}")
            print(f"    Size: {model.size_mb}MB")
            if model.description:
                print(f"    Description: {model.description}")
            print()
        return

    config = apply_args(config, args)

    if args.download_model:
        model_id = config["transcription"]["model_id"]
        print(f"Downloading model: {model_id}")
        download_model(config["transcription"]["provider"], model_id)
        return

    if args.save_config:
        if save_config(config):
            print(f"Configuration saved to {get_config_path()}")
        return

    if args.debug_log:
        debug_log.enable()
        print("Debug logging enabled (logs will be saved to ./logs/)")

    app: CuesyncApp = CuesyncApp(config)

    loop: asyncio.AbstractEventLoop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def shutdown(sig: int, frame: object) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM) gracefully."""
        print("\nReceived shutdown signal...")
        loop.call_soon_threadsafe(app.request_shutdown)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        loop.run_until_complete(app.run(args.script))
    except KeyboardInterrupt:
        pass
    finally:
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
        # Cancel any remaining tasks
        pending: set[asyncio.Task[object]] = asyncio.all_tasks(loop)
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(
                *pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()

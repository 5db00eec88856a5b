"""Session orchestrator and command-line entry point for gemini-stt."""

import argparse
import json
import logging
import os
import sys
import tempfile
import time
from datetime import datetime, timezone
from enum import Enum
from typing import IO, Callable, Optional

from .audio.capture import AudioCapture, StopSignal
from .config import Config, LoggingConfig, load_config
from .errors import FilesystemError
from .transcription.provider import GeminiProvider
from .transcription.transcriber import Transcriber
from .transcription.uploader import UploadJob, UploadPoller

logger = logging.getLogger(__name__)

__version__ = "0.3.0"


class SessionState(Enum):
    """Whole-session lifecycle."""
    IDLE = "idle"
    RECORDING = "recording"
    UPLOADING = "uploading"
    TRANSCRIBING = "transcribing"
    DONE = "done"
    FAILED = "failed"


class SessionOrchestrator:
    """Runs capture, upload, polling and generation for one session."""

    def __init__(
        self,
        config: Config,
        stop_signal_factory: Callable[[], StopSignal] = StopSignal.from_stream,
        on_status: Optional[Callable[[str], None]] = None,
        on_progress: Optional[Callable[[UploadJob], None]] = None,
    ):
        self.config = config
        self.state = SessionState.IDLE
        self._stop_signal_factory = stop_signal_factory
        self._on_status = on_status
        self._on_progress = on_progress

        # Initialize components
        self._init_audio()
        self._init_transcription()

    def _init_audio(self) -> None:
        """Initialize the recorder."""
        self.audio_capture = AudioCapture(self.config.recording)

    def _init_transcription(self) -> None:
        """Initialize the provider, poller and transcriber."""
        settings = self.config.transcription
        self.provider = GeminiProvider(api_key=self.config.api_key)
        self.poller = UploadPoller(
            self.provider,
            interval=settings.poll_interval,
            timeout=settings.poll_timeout,
            display_name=settings.display_name,
            on_progress=self._on_progress,
        )
        self.transcriber = Transcriber(self.provider)

    def _status(self, message: str) -> None:
        if self._on_status is not None:
            self._on_status(message)

    def _set_state(self, state: SessionState) -> None:
        logger.debug(f"Session: {self.state.value} -> {state.value}")
        self.state = state

    def _temp_path(self) -> str:
        """Generate a fresh path for a throwaway recording."""
        directory = self.config.recording.temp_dir or tempfile.gettempdir()
        return os.path.join(directory, f"recording-{int(time.time() * 1000)}.wav")

    def _cleanup(self, path: str) -> None:
        """Delete a temporary recording; failures are only logged."""
        if not os.path.exists(path):
            return
        try:
            os.remove(path)
            logger.debug(f"Removed temporary recording {path}")
        except OSError as e:
            error = FilesystemError(f"Could not remove temporary recording {path}: {e}")
            logger.warning(str(error))

    def _validate_input(self, path: str) -> None:
        if not os.path.isfile(path):
            raise FilesystemError(f"Input file not found: {path}")
        if not os.access(path, os.R_OK):
            raise FilesystemError(f"Input file is not readable: {path}")

    def _upload_and_transcribe(self, path: str) -> str:
        settings = self.config.transcription

        self._set_state(SessionState.UPLOADING)
        self._status("Uploading audio file...")
        job = self.poller.submit(path, settings.mime_type)

        self._status("Processing audio...")
        job = self.poller.await_ready(job)

        self._set_state(SessionState.TRANSCRIBING)
        self._status("Generating transcription...")
        text = self.transcriber.generate(settings.prompt, settings.model, job)

        self._set_state(SessionState.DONE)
        return text

    def record_and_transcribe(self, output_path: Optional[str] = None) -> str:
        """
        Record from the microphone until Enter is pressed, then transcribe.

        Args:
            output_path: Where to keep the recording. When omitted a temporary
                file is used and deleted afterwards, whatever the outcome.

        Returns:
            The transcribed text
        """
        owns_file = output_path is None
        path = self._temp_path() if owns_file else output_path
        self.state = SessionState.IDLE

        try:
            self._set_state(SessionState.RECORDING)
            stop_signal = self._stop_signal_factory()
            self.audio_capture.record(path, stop_signal)
            self._status("Recording stopped.")
            return self._upload_and_transcribe(path)
        except BaseException:
            self._set_state(SessionState.FAILED)
            raise
        finally:
            if owns_file:
                self._cleanup(path)

    def transcribe_existing(self, path: str) -> str:
        """Transcribe an audio file that is already on disk."""
        self.state = SessionState.IDLE
        try:
            self._validate_input(path)
            return self._upload_and_transcribe(path)
        except BaseException:
            self._set_state(SessionState.FAILED)
            raise


class StatusReporter:
    """Writes human-facing progress to stderr when it is a terminal."""

    def __init__(self, stream: Optional[IO[str]] = None):
        self.stream = stream if stream is not None else sys.stderr
        self.enabled = self.stream.isatty()
        self._pending_dots = False

    def message(self, text: str) -> None:
        if not self.enabled:
            return
        if self._pending_dots:
            self.stream.write("\n")
            self._pending_dots = False
        self.stream.write(text + "\n")
        self.stream.flush()

    def progress(self, job: UploadJob) -> None:
        if not self.enabled:
            return
        self.stream.write(".")
        self.stream.flush()
        self._pending_dots = True


def build_result(text: str, args: argparse.Namespace, config: Config) -> dict:
    """Assemble the record printed for a finished session."""
    result = {
        "text": text,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if args.input:
        result["input"] = args.input
    if args.output:
        result["output"] = args.output
    result["sample_rate"] = config.recording.sample_rate
    result["channels"] = config.recording.channels
    result["model"] = config.transcription.model
    return result


def output_result(result: dict, output_format: str) -> None:
    """Print result as plain text or a single JSON line."""
    if output_format == "json":
        sys.stdout.write(json.dumps(result) + "\n")
    else:
        print("\nTranscription:")
        print(result["text"])
    sys.stdout.flush()


def build_parser() -> argparse.ArgumentParser:
    """Create the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="gemini-stt",
        description="Record from the microphone (or read a file) and transcribe it with Gemini",
        epilog=(
            "examples:\n"
            "  gemini-stt -k KEY                      record, press Enter to stop\n"
            "  gemini-stt -k KEY -o recording.wav     keep the recording\n"
            "  gemini-stt -k KEY -i audio.wav         transcribe an existing file\n"
            "  gemini-stt -k KEY -r 44100 -c 2        record 44.1kHz stereo\n"
            "  gemini-stt -k KEY | jq .text           pipe JSON output"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-k", "--api-key",
        help="Gemini API key (default: $GEMINI_API_KEY, $GOOGLE_API_KEY or config file)",
    )
    parser.add_argument(
        "-i", "--input",
        help="Audio file to transcribe instead of recording",
    )
    parser.add_argument(
        "-o", "--output",
        help="Keep the microphone recording at this path",
    )
    parser.add_argument(
        "-r", "--sample-rate",
        type=int,
        help="Recording sample rate in Hz (default: 16000)",
    )
    parser.add_argument(
        "-c", "--channels",
        type=int,
        help="Number of recording channels (default: 1)",
    )
    parser.add_argument(
        "-m", "--model",
        help="Gemini model to use",
    )
    parser.add_argument(
        "-p", "--prompt",
        help="Prompt sent along with the audio",
    )
    parser.add_argument(
        "-f", "--format",
        choices=["text", "json"],
        help="Output format (default: text on a terminal, json otherwise)",
    )
    parser.add_argument(
        "--config",
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds between upload status checks (default: 10)",
    )
    parser.add_argument(
        "--poll-timeout",
        type=float,
        help="Give up if the upload is still processing after this many seconds",
    )
    parser.add_argument(
        "--save-config",
        metavar="PATH",
        help="Write the effective configuration to PATH and exit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Layer command-line flags and environment over file settings."""
    config.api_key = (
        args.api_key
        or os.environ.get("GEMINI_API_KEY")
        or os.environ.get("GOOGLE_API_KEY")
        or config.api_key
    )
    if args.sample_rate is not None:
        config.recording.sample_rate = args.sample_rate
    if args.channels is not None:
        config.recording.channels = args.channels
    if args.model:
        config.transcription.model = args.model
    if args.prompt:
        config.transcription.prompt = args.prompt
    if args.poll_interval is not None:
        config.transcription.poll_interval = args.poll_interval
    if args.poll_timeout is not None:
        config.transcription.poll_timeout = args.poll_timeout
    if args.verbose:
        config.logging.level = "DEBUG"
    return config


def main():
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()

    # Format warnings raised while the config file itself is loaded
    Config(logging=LoggingConfig(level="DEBUG" if args.verbose else "WARNING")).setup_logging()
    config = apply_overrides(load_config(args.config), args)
    config.setup_logging(force=True)

    if args.save_config:
        config.to_yaml(args.save_config)
        print(f"Configuration saved to {args.save_config}", file=sys.stderr)
        return

    if not config.api_key:
        parser.error("an API key is required (--api-key, GEMINI_API_KEY or the config file)")

    output_format = args.format or ("text" if sys.stdout.isatty() else "json")
    reporter = StatusReporter()

    try:
        orchestrator = SessionOrchestrator(
            config,
            on_status=reporter.message,
            on_progress=reporter.progress,
        )

        if args.input:
            reporter.message(f"Transcribing file: {args.input}")
            text = orchestrator.transcribe_existing(args.input)
        else:
            if args.output:
                reporter.message(f"Recording to file: {args.output}")
            reporter.message("Starting recording... Press Enter to stop.")
            text = orchestrator.record_and_transcribe(args.output)
            if args.output:
                reporter.message(f"Recording saved to: {args.output}")

        output_result(build_result(text, args, config), output_format)
    except BrokenPipeError:
        # Reader went away (e.g. `| head`); silence the flush at interpreter exit.
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        sys.exit(0)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        logger.debug("Session failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

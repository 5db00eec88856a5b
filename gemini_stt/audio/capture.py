"""Microphone recording through an external sox process."""

import logging
import os
import subprocess
import sys
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import IO, Optional

from ..config import RecordingConfig
from ..errors import CaptureError

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 50


class RecordingState(Enum):
    """Lifecycle of a single recording."""
    IDLE = "idle"
    RECORDING = "recording"
    STOPPED = "stopped"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    RecordingState.IDLE: {RecordingState.RECORDING, RecordingState.FAILED},
    RecordingState.RECORDING: {RecordingState.STOPPED, RecordingState.FAILED},
    RecordingState.STOPPED: set(),
    RecordingState.FAILED: set(),
}


@dataclass
class RecordingSession:
    """A recording in progress or finished, and the process that owns it."""
    output_path: str
    sample_rate: int
    channels: int
    state: RecordingState = RecordingState.IDLE
    error: Optional[str] = None
    process: Optional[subprocess.Popen] = field(default=None, repr=False)
    stderr_lines: deque = field(default_factory=lambda: deque(maxlen=STDERR_TAIL_LINES), repr=False)
    stderr_reader: Optional[threading.Thread] = field(default=None, repr=False)

    def transition(self, new_state: RecordingState) -> None:
        """Move to a new state, refusing anything but forward progress."""
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid recording transition: {self.state.value} -> {new_state.value}"
            )
        logger.debug(f"Recording {self.output_path}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    @property
    def is_terminal(self) -> bool:
        return self.state in (RecordingState.STOPPED, RecordingState.FAILED)


class StopSignal:
    """Single-consumer stop channel awaited by the capture loop."""

    def __init__(self):
        self._event = threading.Event()
        self._reader: Optional[threading.Thread] = None

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    @classmethod
    def from_stream(cls, stream: Optional[IO[str]] = None) -> "StopSignal":
        """Create a signal that fires once a line (or EOF) is read from stream."""
        signal = cls()
        source = stream if stream is not None else sys.stdin

        def read_line():
            line = source.readline()
            if not line:
                logger.debug("Stop stream closed, stopping recording")
            signal.set()

        signal._reader = threading.Thread(target=read_line, daemon=True)
        signal._reader.start()
        return signal


class AudioCapture:
    """Records from the default input device into a file using sox."""

    def __init__(self, config: RecordingConfig, poll_interval: float = 0.1):
        self.config = config
        self.binary = config.binary
        self.sample_rate = config.sample_rate
        self.channels = config.channels
        self.stop_timeout = config.stop_timeout
        self.poll_interval = poll_interval

    def build_command(self, path: str, sample_rate: int, channels: int) -> list[str]:
        """Build the sox command line for recording to path."""
        return [
            self.binary,
            "-q",  # no progress meter on stderr
            "-d",  # default input device, overridable via AUDIODEV
            path,
            "rate", str(sample_rate),
            "channels", str(channels),
        ]

    def _build_env(self) -> Optional[dict]:
        if self.config.device == "default":
            return None
        env = dict(os.environ)
        env["AUDIODEV"] = self.config.device
        return env

    def start(
        self,
        path: str,
        sample_rate: Optional[int] = None,
        channels: Optional[int] = None,
    ) -> RecordingSession:
        """
        Start recording to path.

        Args:
            path: File to write; sox picks the container from the extension
            sample_rate: Target sample rate, defaults to the configured one
            channels: Channel count, defaults to the configured one

        Returns:
            The session owning the running process

        Raises:
            CaptureError: If the recording process cannot be started
        """
        session = RecordingSession(
            output_path=str(path),
            sample_rate=sample_rate or self.sample_rate,
            channels=channels or self.channels,
        )
        cmd = self.build_command(session.output_path, session.sample_rate, session.channels)

        logger.info(
            f"Starting recording: {session.sample_rate}Hz, {session.channels}ch -> {session.output_path}"
        )

        try:
            session.process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                env=self._build_env(),
            )
        except FileNotFoundError as e:
            session.error = f"{self.binary} not found. Please install SoX (https://sox.sourceforge.net)"
            session.transition(RecordingState.FAILED)
            raise CaptureError(session.error) from e
        except OSError as e:
            session.error = f"Failed to start recording: {e}"
            session.transition(RecordingState.FAILED)
            raise CaptureError(session.error) from e

        session.stderr_reader = threading.Thread(
            target=self._drain_stderr, args=(session,), daemon=True
        )
        session.stderr_reader.start()

        session.transition(RecordingState.RECORDING)
        return session

    def await_stop_signal(self, session: RecordingSession, stop_signal: StopSignal) -> None:
        """
        Block until stop_signal fires, watching the process meanwhile.

        Raises:
            CaptureError: If the process exits before being told to stop
        """
        while not stop_signal.wait(self.poll_interval):
            returncode = session.process.poll()
            if returncode is not None:
                stderr = self._read_stderr(session)
                session.error = f"Recording process exited with code {returncode}"
                if stderr:
                    session.error += f": {stderr}"
                logger.error(session.error)
                session.transition(RecordingState.FAILED)
                raise CaptureError(session.error)

    def stop(self, session: RecordingSession) -> None:
        """
        Terminate the recording process and check the file it produced.

        Raises:
            CaptureError: If no usable audio file was written
        """
        if session.is_terminal:
            return

        process = session.process
        if process is not None and process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=self.stop_timeout)
            except subprocess.TimeoutExpired:
                logger.warning(
                    f"Recording process did not exit within {self.stop_timeout}s, killing it"
                )
                process.kill()
                process.wait()

        if not os.path.exists(session.output_path) or os.path.getsize(session.output_path) == 0:
            stderr = self._read_stderr(session)
            session.error = f"No audio was recorded to {session.output_path}"
            if stderr:
                session.error += f": {stderr}"
            session.transition(RecordingState.FAILED)
            raise CaptureError(session.error)

        session.transition(RecordingState.STOPPED)
        logger.info("Recording stopped")

    def record(self, path: str, stop_signal: StopSignal) -> RecordingSession:
        """Record to path until stop_signal fires; the process never outlives this call."""
        session = self.start(path)
        try:
            self.await_stop_signal(session, stop_signal)
        except BaseException:
            self.abort(session)
            raise
        self.stop(session)
        return session

    def abort(self, session: RecordingSession) -> None:
        """Kill the recording process without checking its output."""
        process = session.process
        if process is not None and process.poll() is None:
            logger.warning("Aborting recording")
            process.kill()
            process.wait()
        if not session.is_terminal:
            session.error = "Recording aborted"
            session.transition(RecordingState.FAILED)

    @staticmethod
    def _drain_stderr(session: RecordingSession) -> None:
        """Keep the stderr pipe empty so sox never blocks, remembering the tail."""
        stream = session.process.stderr
        if stream is None:
            return
        try:
            for line in stream:
                line = line.rstrip()
                if line:
                    session.stderr_lines.append(line)
        except (OSError, ValueError):
            return

    @staticmethod
    def _read_stderr(session: RecordingSession) -> str:
        if session.stderr_reader is not None:
            session.stderr_reader.join(timeout=1.0)
        return "\n".join(session.stderr_lines)

"""Pytest configuration and shared fixtures."""

import io
import tempfile
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest


# ==================== Path Fixtures ====================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir):
    """Create a temporary config file."""
    config_path = temp_dir / "settings.yaml"
    config_content = """
api_key: "file-key"

recording:
  device: "default"
  sample_rate: 16000
  channels: 1
  temp_dir: "{temp_dir}"

transcription:
  model: "gemini-2.0-flash"
  poll_interval: 0.5

logging:
  level: "DEBUG"
  file: null
""".format(temp_dir=str(temp_dir))

    config_path.write_text(config_content)
    return config_path


@pytest.fixture
def sample_wav(temp_dir):
    """Write a small stand-in for a recorded WAV file."""
    path = temp_dir / "sample.wav"
    path.write_bytes(b"RIFF\x24\x00\x00\x00WAVEfmt " + b"\x00" * 32)
    return path


# ==================== Config Fixtures ====================

@pytest.fixture
def mock_recording_config(temp_dir):
    """Create a recording config writing temp files under temp_dir."""
    from gemini_stt.config import RecordingConfig
    return RecordingConfig(
        device="default",
        sample_rate=16000,
        channels=1,
        binary="sox",
        stop_timeout=1.0,
        temp_dir=str(temp_dir),
    )


@pytest.fixture
def mock_config(mock_recording_config):
    """Create a full config with a short poll interval."""
    from gemini_stt.config import Config, TranscriptionConfig
    return Config(
        api_key="test-key",
        recording=mock_recording_config,
        transcription=TranscriptionConfig(poll_interval=0.01),
    )


# ==================== Provider Fixtures ====================

def make_response(text):
    """Build an object shaped like a generate_content response."""
    part = SimpleNamespace(text=text)
    candidate = SimpleNamespace(
        content=SimpleNamespace(parts=[part]),
        finish_reason="STOP",
    )
    return SimpleNamespace(candidates=[candidate], prompt_feedback=None)


class FakeProvider:
    """Scripted stand-in for GeminiProvider that records every call."""

    def __init__(self, states=("ACTIVE",), upload_state="PROCESSING", text="hello world"):
        self.states = list(states)
        self.upload_state = upload_state
        self.text = text
        self.calls = []

    def upload_file(self, path, mime_type, display_name):
        from gemini_stt.transcription.provider import RemoteFile
        self.calls.append(("upload", str(path), mime_type, display_name))
        return RemoteFile(
            name="files/abc123",
            uri="https://generativelanguage.googleapis.com/v1beta/files/abc123",
            mime_type=mime_type,
            state=self.upload_state,
        )

    def get_file(self, name):
        from gemini_stt.transcription.provider import RemoteFile
        self.calls.append(("get", name))
        return RemoteFile(
            name=name,
            uri="https://generativelanguage.googleapis.com/v1beta/files/abc123",
            mime_type=None,
            state=self.states.pop(0),
        )

    def generate_content(self, model, prompt, file):
        self.calls.append(("generate", model, prompt, file.uri))
        return make_response(self.text)

    def call_names(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def make_provider():
    """Factory for scripted providers."""
    return FakeProvider


@pytest.fixture
def response_factory():
    """Factory for generate_content responses."""
    return make_response


@pytest.fixture
def mock_genai_client():
    """Create a mock google-genai Client."""
    client = MagicMock()
    client.files.upload.return_value = SimpleNamespace(
        name="files/abc123",
        uri="https://generativelanguage.googleapis.com/v1beta/files/abc123",
        mime_type="audio/wav",
        state="PROCESSING",
    )
    client.files.get.return_value = SimpleNamespace(
        name="files/abc123",
        uri="https://generativelanguage.googleapis.com/v1beta/files/abc123",
        mime_type="audio/wav",
        state="ACTIVE",
    )
    client.models.generate_content.return_value = make_response("hello world")
    return client


# ==================== Process Fixtures ====================

@pytest.fixture
def mock_process():
    """Create a mock sox process that is running until terminated."""
    process = MagicMock()
    process.poll.return_value = None
    process.wait.return_value = 0
    process.stderr = io.StringIO("")
    return process


@pytest.fixture
def mock_popen(mock_process):
    """Patch Popen in the capture module to hand out mock_process."""
    with patch("gemini_stt.audio.capture.subprocess.Popen") as popen:
        popen.return_value = mock_process
        yield popen

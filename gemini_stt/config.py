"""Configuration management for gemini-stt."""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/gemini-stt/settings.yaml")
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_PROMPT = "Transcribe this audio clip word for word."


@dataclass
class RecordingConfig:
    """Microphone recording configuration."""
    device: str = "default"
    sample_rate: int = 16000
    channels: int = 1
    binary: str = "sox"
    stop_timeout: float = 5.0  # seconds to let sox finalize the file
    temp_dir: Optional[str] = None


@dataclass
class TranscriptionConfig:
    """Upload and generation configuration."""
    model: str = DEFAULT_MODEL
    prompt: str = DEFAULT_PROMPT
    display_name: str = "Voice Recording"
    mime_type: Optional[str] = None
    poll_interval: float = 10.0  # seconds
    poll_timeout: Optional[float] = None  # None waits forever


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "WARNING"
    file: Optional[str] = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class Config:
    """Main configuration container."""
    api_key: Optional[str] = None
    recording: RecordingConfig = field(default_factory=RecordingConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML file."""
        path = Path(path).expanduser()
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls(
            api_key=data.get("api_key"),
            recording=RecordingConfig(**data.get("recording", {})),
            transcription=TranscriptionConfig(**data.get("transcription", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "api_key": self.api_key,
            "recording": asdict(self.recording),
            "transcription": asdict(self.transcription),
            "logging": asdict(self.logging),
        }

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def setup_logging(self, force: bool = False) -> None:
        """Configure logging based on settings; force replaces existing handlers."""
        log_level = getattr(logging, self.logging.level.upper(), logging.WARNING)

        handlers = [logging.StreamHandler()]

        if self.logging.file:
            log_path = Path(self.logging.file).expanduser()
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path))

        logging.basicConfig(
            level=log_level,
            format=self.logging.format,
            handlers=handlers,
            force=force,
        )


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from file or environment.

    An explicitly named file that is missing is reported; the default
    location is optional and silently falls back to built-in defaults.
    """
    if path is None:
        path = os.environ.get("GEMINI_STT_CONFIG")
    if path is None:
        default_path = DEFAULT_CONFIG_PATH.expanduser()
        if not default_path.exists():
            return Config()
        path = str(default_path)
    return Config.from_yaml(path)

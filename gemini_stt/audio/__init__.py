"""Audio recording components."""

from .capture import AudioCapture, RecordingSession, RecordingState, StopSignal

__all__ = ["AudioCapture", "RecordingSession", "RecordingState", "StopSignal"]

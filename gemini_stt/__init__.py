"""gemini-stt - record from the microphone and transcribe with Gemini."""

from .main import SessionOrchestrator, SessionState, __version__

__all__ = ["SessionOrchestrator", "SessionState", "__version__"]

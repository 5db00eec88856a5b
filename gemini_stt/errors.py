"""Exceptions raised by the recording and transcription pipeline."""


class SpeechToTextError(Exception):
    """Base class for all gemini-stt failures."""
    pass


class CaptureError(SpeechToTextError):
    """Exception raised when the recording process cannot produce audio."""
    pass


class ProcessingError(SpeechToTextError):
    """Exception raised when the uploaded file never becomes usable."""
    pass


class GenerationError(SpeechToTextError):
    """Exception raised when the model response carries no transcription."""
    pass


class FilesystemError(SpeechToTextError):
    """Exception raised for unreadable inputs or failed temp-file cleanup."""
    pass

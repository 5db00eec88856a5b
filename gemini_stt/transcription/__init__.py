"""Upload, polling and generation against the Gemini API."""

from .provider import GeminiProvider, RemoteFile
from .transcriber import Transcriber, TranscriptionRequest, TranscriptionResult
from .uploader import JobState, UploadJob, UploadPoller

__all__ = [
    "GeminiProvider",
    "RemoteFile",
    "Transcriber",
    "TranscriptionRequest",
    "TranscriptionResult",
    "JobState",
    "UploadJob",
    "UploadPoller",
]

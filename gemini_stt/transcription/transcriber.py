"""Turn a processed upload into text with a single generation call."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..errors import GenerationError
from .provider import GeminiProvider, RemoteFile
from .uploader import JobState, UploadJob

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscriptionRequest:
    """Prompt, model and ready upload for one generation call."""
    prompt: str
    model: str
    job: UploadJob

    def __post_init__(self):
        if self.job.state is not JobState.READY:
            raise ValueError(
                f"Upload {self.job.remote_id} is {self.job.state.value}, not ready"
            )


@dataclass
class TranscriptionResult:
    """Text returned by the model."""
    text: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def extract_text(response: Any) -> str:
    """Return the text of the first candidate or raise GenerationError."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        feedback = getattr(response, "prompt_feedback", None)
        reason = getattr(feedback, "block_reason", None)
        message = "Model returned no candidates"
        if reason:
            message += f" (blocked: {reason})"
        raise GenerationError(message)

    candidate = candidates[0]
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) or []
    texts = [part.text for part in parts if getattr(part, "text", None)]
    if not texts:
        reason = getattr(candidate, "finish_reason", None)
        message = "First candidate contains no text"
        if reason:
            message += f" (finish reason: {reason})"
        raise GenerationError(message)

    return "".join(texts)


class Transcriber:
    """Issues the generation request for a ready upload."""

    def __init__(self, provider: GeminiProvider):
        self.provider = provider

    def transcribe(self, request: TranscriptionRequest) -> TranscriptionResult:
        """Run one generation call for request."""
        job = request.job
        logger.info(f"Generating transcription with {request.model}")
        response = self.provider.generate_content(
            request.model,
            request.prompt,
            RemoteFile(
                name=job.remote_id,
                uri=job.uri,
                mime_type=job.mime_type,
                state="ACTIVE",
            ),
        )
        text = extract_text(response)
        logger.info(f"Transcribed: '{text[:50]}...'")
        return TranscriptionResult(text=text)

    def generate(self, prompt: str, model: str, job: UploadJob) -> str:
        """Transcribe job with prompt using model and return the text."""
        return self.transcribe(TranscriptionRequest(prompt=prompt, model=model, job=job)).text

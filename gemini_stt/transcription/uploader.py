"""Upload an audio file and wait for the provider to finish processing it."""

import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..errors import ProcessingError
from .provider import GeminiProvider, RemoteFile

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "audio/wav"

AUDIO_MIME_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mp3",
    ".aiff": "audio/aiff",
    ".aif": "audio/aiff",
    ".aac": "audio/aac",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
    ".m4a": "audio/mp4",
}


class JobState(Enum):
    """Processing state of an uploaded file."""
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"

    @classmethod
    def from_provider(cls, state: str) -> "JobState":
        """Map a provider state name; anything not processing or failed is usable."""
        if state == "PROCESSING":
            return cls.PROCESSING
        if state == "FAILED":
            return cls.FAILED
        return cls.READY


@dataclass
class UploadJob:
    """Reference to a file uploaded to the provider."""
    remote_id: str
    state: JobState
    mime_type: str
    uri: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state is not JobState.PROCESSING

    def advance(self, new_state: JobState) -> None:
        """Apply a polled state; terminal states never change."""
        if new_state is self.state:
            return
        if self.is_terminal:
            raise RuntimeError(
                f"Upload {self.remote_id} is already {self.state.value}, cannot become {new_state.value}"
            )
        logger.debug(f"Upload {self.remote_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state


def guess_mime_type(path: str) -> str:
    """Pick an audio MIME type from the file extension."""
    ext = os.path.splitext(path)[1].lower()
    return AUDIO_MIME_TYPES.get(ext, DEFAULT_MIME_TYPE)


class UploadPoller:
    """Submits audio files and polls them until they are ready or failed."""

    def __init__(
        self,
        provider: GeminiProvider,
        interval: float = 10.0,
        timeout: Optional[float] = None,
        display_name: str = "Voice Recording",
        on_progress: Optional[Callable[[UploadJob], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.provider = provider
        self.interval = interval
        self.timeout = timeout
        self.display_name = display_name
        self._on_progress = on_progress
        self._sleep = sleep
        self._clock = clock
        self._submitted: set[str] = set()

    def submit(self, path: str, mime_type: Optional[str] = None) -> UploadJob:
        """
        Upload path to the provider.

        Args:
            path: Local audio file
            mime_type: MIME type to declare, guessed from the extension if omitted

        Returns:
            A processing job, or a failed one if the upload was rejected outright
        """
        mime_type = mime_type or guess_mime_type(path)
        remote = self.provider.upload_file(path, mime_type, self.display_name)

        job = UploadJob(
            remote_id=remote.name,
            state=JobState.FAILED if remote.state == "FAILED" else JobState.PROCESSING,
            mime_type=remote.mime_type or mime_type,
            uri=remote.uri,
            display_name=self.display_name,
        )
        self._submitted.add(job.remote_id)
        logger.info(f"Uploaded {path} as {job.remote_id}")
        return job

    def _refresh(self, job: UploadJob) -> None:
        remote: RemoteFile = self.provider.get_file(job.remote_id)
        if remote.uri:
            job.uri = remote.uri
        if remote.mime_type:
            job.mime_type = remote.mime_type
        job.advance(JobState.from_provider(remote.state))

    def await_ready(self, job: UploadJob) -> UploadJob:
        """
        Poll job until the provider reports a terminal state.

        Returns:
            The same job, now ready

        Raises:
            ValueError: If job was not produced by submit()
            ProcessingError: If processing failed or the timeout elapsed
        """
        if job.remote_id not in self._submitted:
            raise ValueError(f"Upload {job.remote_id} was never submitted")

        if job.state is JobState.FAILED:
            raise ProcessingError("Audio processing failed.")

        logger.info(f"Waiting for {job.remote_id} to finish processing")
        started = self._clock()
        self._refresh(job)

        while job.state is JobState.PROCESSING:
            elapsed = self._clock() - started
            if self.timeout is not None and elapsed >= self.timeout:
                raise ProcessingError(
                    f"Upload {job.remote_id} still processing after {elapsed:.0f}s"
                )
            if self._on_progress is not None:
                self._on_progress(job)
            self._sleep(self.interval)
            self._refresh(job)

        if job.state is JobState.FAILED:
            logger.error(f"Provider failed to process {job.remote_id}")
            raise ProcessingError("Audio processing failed.")

        logger.info(f"Upload {job.remote_id} is ready")
        return job

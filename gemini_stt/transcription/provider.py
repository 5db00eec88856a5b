"""Gemini file and generation API adapter built on google-genai."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..errors import GenerationError, ProcessingError

logger = logging.getLogger(__name__)


@dataclass
class RemoteFile:
    """Provider-side view of an uploaded file."""
    name: str
    uri: Optional[str]
    mime_type: Optional[str]
    state: str


def _state_name(state: Any) -> str:
    """Normalize an SDK FileState (or raw string) to its upper-case name."""
    if state is None:
        return "STATE_UNSPECIFIED"
    return str(getattr(state, "value", state)).upper()


class GeminiProvider:
    """Thin wrapper over the three Gemini calls the pipeline needs."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[genai.Client] = None):
        if client is None:
            if not api_key:
                raise ValueError("A Gemini API key is required")
            client = genai.Client(api_key=api_key)
        self.client = client

    @staticmethod
    def _to_remote_file(file: Any) -> RemoteFile:
        return RemoteFile(
            name=file.name,
            uri=file.uri,
            mime_type=file.mime_type,
            state=_state_name(file.state),
        )

    def upload_file(self, path: str, mime_type: str, display_name: str) -> RemoteFile:
        """Upload a local file and return its remote handle."""
        logger.info(f"Uploading {path} ({mime_type})")
        try:
            file = self.client.files.upload(
                file=path,
                config=types.UploadFileConfig(
                    mime_type=mime_type,
                    display_name=display_name,
                ),
            )
        except genai_errors.APIError as e:
            logger.error(f"Upload failed: {e}")
            raise ProcessingError(f"Upload of {path} failed: {e}") from e
        return self._to_remote_file(file)

    def get_file(self, name: str) -> RemoteFile:
        """Fetch the current state of an uploaded file."""
        try:
            file = self.client.files.get(name=name)
        except genai_errors.APIError as e:
            logger.error(f"Status check failed for {name}: {e}")
            raise ProcessingError(f"Could not check status of {name}: {e}") from e
        return self._to_remote_file(file)

    def generate_content(self, model: str, prompt: str, file: RemoteFile) -> Any:
        """Ask model to respond to prompt with the uploaded file attached."""
        contents = [
            prompt,
            types.Part.from_uri(file_uri=file.uri, mime_type=file.mime_type),
        ]
        try:
            return self.client.models.generate_content(model=model, contents=contents)
        except genai_errors.APIError as e:
            logger.error(f"Generation failed: {e}")
            raise GenerationError(f"Model {model} failed to generate a transcription: {e}") from e

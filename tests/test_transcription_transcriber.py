"""Tests for the transcriber module."""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from gemini_stt.errors import GenerationError
from gemini_stt.transcription.transcriber import (
    Transcriber,
    TranscriptionRequest,
    TranscriptionResult,
    extract_text,
)
from gemini_stt.transcription.uploader import JobState, UploadJob


@pytest.fixture
def ready_job():
    """Create an upload that finished processing."""
    return UploadJob(
        remote_id="files/abc123",
        state=JobState.READY,
        mime_type="audio/wav",
        uri="https://generativelanguage.googleapis.com/v1beta/files/abc123",
    )


class TestTranscriptionRequest:
    """Tests for TranscriptionRequest."""

    def test_ready_job(self, ready_job):
        """Test a request can be built from a ready job."""
        request = TranscriptionRequest(prompt="p", model="m", job=ready_job)
        assert request.job is ready_job

    @pytest.mark.parametrize("state", [JobState.PROCESSING, JobState.FAILED])
    def test_not_ready_job(self, state):
        """Test a request refuses jobs that are not ready."""
        job = UploadJob(remote_id="files/x", state=state, mime_type="audio/wav")
        with pytest.raises(ValueError):
            TranscriptionRequest(prompt="p", model="m", job=job)


class TestExtractText:
    """Tests for response text extraction."""

    def test_first_candidate(self, response_factory):
        """Test the first candidate's text is returned."""
        response = response_factory("hello world")
        response.candidates.append(response_factory("second").candidates[0])
        assert extract_text(response) == "hello world"

    def test_joins_parts(self):
        """Test multi-part candidates are joined."""
        candidate = SimpleNamespace(
            content=SimpleNamespace(parts=[SimpleNamespace(text="hello "), SimpleNamespace(text="world")]),
        )
        assert extract_text(SimpleNamespace(candidates=[candidate])) == "hello world"

    def test_no_candidates(self):
        """Test an empty candidate list is an error."""
        response = SimpleNamespace(
            candidates=[],
            prompt_feedback=SimpleNamespace(block_reason="SAFETY"),
        )
        with pytest.raises(GenerationError, match="blocked: SAFETY"):
            extract_text(response)

    def test_candidate_without_text(self):
        """Test a candidate with no text parts is an error."""
        candidate = SimpleNamespace(content=None, finish_reason="MAX_TOKENS")
        with pytest.raises(GenerationError, match="MAX_TOKENS"):
            extract_text(SimpleNamespace(candidates=[candidate]))


class TestTranscriber:
    """Tests for Transcriber class."""

    def test_generate(self, make_provider, ready_job):
        """Test the prompt and file reference go out in one call."""
        provider = make_provider(text="hello world")
        transcriber = Transcriber(provider)

        text = transcriber.generate(
            "Transcribe this audio clip word for word.", "gemini-2.0-flash", ready_job
        )

        assert text == "hello world"
        assert provider.calls == [(
            "generate",
            "gemini-2.0-flash",
            "Transcribe this audio clip word for word.",
            ready_job.uri,
        )]

    def test_transcribe_result(self, make_provider, ready_job):
        """Test transcribe returns a timestamped result."""
        transcriber = Transcriber(make_provider(text="hello world"))

        result = transcriber.transcribe(TranscriptionRequest(prompt="p", model="m", job=ready_job))

        assert isinstance(result, TranscriptionResult)
        assert result.text == "hello world"
        assert isinstance(result.timestamp, datetime)

    def test_generate_not_ready(self, make_provider):
        """Test a processing job never reaches the provider."""
        provider = make_provider()
        job = UploadJob(remote_id="files/x", state=JobState.PROCESSING, mime_type="audio/wav")

        with pytest.raises(ValueError):
            Transcriber(provider).generate("p", "m", job)

        assert provider.calls == []

    def test_provider_error_propagates(self, ready_job):
        """Test provider failures are not retried."""
        provider = MagicMock()
        provider.generate_content.side_effect = GenerationError("boom")

        with pytest.raises(GenerationError):
            Transcriber(provider).generate("p", "m", ready_job)

        provider.generate_content.assert_called_once()

"""
EchoLog Backend — Speech Service Unit Tests (Mocked)
======================================================

What we test:
    ✅ Recognition config per format (WAV → LINEAR16, MP3 → unspecified)
    ✅ submit() returns the operation name without waiting
    ✅ Google API errors become ExternalServiceError / NotFoundError
    ✅ poll() reports running jobs, failed jobs and joined results
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as google_auth_exceptions
from google.cloud import speech

from echolog.exceptions import ExternalServiceError, NotFoundError, ValidationError
from echolog.services.speech_service import (
    GoogleSpeechService,
    SpeechAudio,
    SpeechConfig,
    _to_seconds,
)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def service(client):
    return GoogleSpeechService(client=client)


def _operation(done, response=None, error=None):
    op = MagicMock()
    op.done = done
    op.HasField.side_effect = lambda name: (
        (name == "error" and error is not None) or (name == "response" and response is not None)
    )
    if error is not None:
        op.error.message = error
        op.error.code = 3
    if response is not None:
        op.response.value = speech.LongRunningRecognizeResponse.serialize(response)
    return op


class TestRecognitionConfig:
    def test_wav_is_linear16_with_sample_rate(self, service):
        config = service.build_recognition_config("WAV", SpeechConfig(sample_rate_hertz=44100))

        assert config.encoding == speech.RecognitionConfig.AudioEncoding.LINEAR16
        assert config.sample_rate_hertz == 44100
        assert config.language_code == "it-IT"
        assert config.enable_automatic_punctuation is True
        assert config.enable_word_time_offsets is True
        assert config.use_enhanced is True

    def test_mp3_leaves_encoding_to_the_stream(self, service):
        config = service.build_recognition_config("MP3", SpeechConfig(language_code="en-US"))

        assert config.encoding == speech.RecognitionConfig.AudioEncoding.ENCODING_UNSPECIFIED
        assert config.sample_rate_hertz == 0
        assert config.language_code == "en-US"


class TestSubmit:
    @pytest.mark.asyncio
    async def test_returns_operation_name(self, service, client):
        client.long_running_recognize.return_value.operation.name = "operations/123"

        job_id = await service.submit(SpeechAudio(format="WAV", uri="gs://b/audio/x.wav"), SpeechConfig())

        assert job_id == "operations/123"
        kwargs = client.long_running_recognize.call_args.kwargs
        assert kwargs["audio"].uri == "gs://b/audio/x.wav"

    @pytest.mark.asyncio
    async def test_inline_content(self, service, client):
        client.long_running_recognize.return_value.operation.name = "operations/456"

        await service.submit(SpeechAudio(format="MP3", content=b"ID3"), SpeechConfig())

        assert client.long_running_recognize.call_args.kwargs["audio"].content == b"ID3"

    @pytest.mark.asyncio
    async def test_no_audio(self, service):
        with pytest.raises(ValidationError):
            await service.submit(SpeechAudio(format="WAV"), SpeechConfig())

    @pytest.mark.asyncio
    async def test_api_error(self, service, client):
        client.long_running_recognize.side_effect = google_exceptions.InvalidArgument("bad sample rate")

        with pytest.raises(ExternalServiceError) as exc_info:
            await service.submit(SpeechAudio(format="WAV", content=b"RIFF"), SpeechConfig())
        assert "bad sample rate" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_credential_error(self, service, client):
        client.long_running_recognize.side_effect = google_auth_exceptions.DefaultCredentialsError(
            "Could not automatically determine credentials"
        )

        with pytest.raises(ExternalServiceError) as exc_info:
            await service.submit(SpeechAudio(format="WAV", uri="gs://b/audio/x.wav"), SpeechConfig())
        assert "credentials" in exc_info.value.details


class TestPoll:
    @pytest.mark.asyncio
    async def test_running(self, service, client):
        client.transport.operations_client.get_operation.return_value = _operation(done=False)

        status = await service.poll("operations/1")

        assert status.done is False
        assert status.segments == []

    @pytest.mark.asyncio
    async def test_failed(self, service, client):
        client.transport.operations_client.get_operation.return_value = _operation(
            done=True, error="Invalid audio"
        )

        status = await service.poll("operations/1")

        assert status.done is True
        assert status.error == "Invalid audio"

    @pytest.mark.asyncio
    async def test_results_in_api_order(self, service, client):
        response = speech.LongRunningRecognizeResponse(
            results=[
                speech.SpeechRecognitionResult(
                    alternatives=[speech.SpeechRecognitionAlternative(transcript="Buongiorno.")],
                    result_end_time=timedelta(seconds=3),
                ),
                speech.SpeechRecognitionResult(
                    alternatives=[speech.SpeechRecognitionAlternative(transcript="Iniziamo.")],
                    result_end_time=timedelta(seconds=7, milliseconds=500),
                ),
            ]
        )
        client.transport.operations_client.get_operation.return_value = _operation(
            done=True, response=response
        )

        status = await service.poll("operations/1")

        assert [s.text for s in status.segments] == ["Buongiorno.", "Iniziamo."]
        assert status.duration_seconds == pytest.approx(7.5)

    @pytest.mark.asyncio
    async def test_unknown_job(self, service, client):
        client.transport.operations_client.get_operation.side_effect = google_exceptions.NotFound("nope")

        with pytest.raises(NotFoundError):
            await service.poll("operations/missing")

    @pytest.mark.asyncio
    async def test_api_error(self, service, client):
        client.transport.operations_client.get_operation.side_effect = (
            google_exceptions.ServiceUnavailable("try later")
        )

        with pytest.raises(ExternalServiceError):
            await service.poll("operations/1")


@pytest.mark.parametrize(
    "value, expected",
    [(None, 0.0), (timedelta(seconds=2, milliseconds=250), 2.25)],
)
def test_to_seconds(value, expected):
    assert _to_seconds(value) == pytest.approx(expected)

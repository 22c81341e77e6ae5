"""
EchoLog Backend — Speech-to-Text Service
==========================================

What:  Submits audio to Google Cloud Speech-to-Text as a long-running
       recognition job and reads the job's state back by name.
How:   submit() starts `long_running_recognize` and returns the operation
       name as the job id without waiting. poll() fetches the operation
       through the operations client; it never blocks on completion and
       has no side effects, so it can be repeated freely.
Who:   Built lazily by echolog.dependencies; called by TranscriptionCoordinator.

Recognition config:
    WAV → LINEAR16 at the configured sample rate
    MP3 → ENCODING_UNSPECIFIED (rate read from the stream)
    language it-IT by default, automatic punctuation, word time offsets,
    enhanced model
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as google_auth_exceptions
from google.cloud import speech

from echolog.config import settings
from echolog.exceptions import ExternalServiceError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class SpeechAudio:
    """Audio handed to the recognizer: a gs:// URI or inline bytes."""

    format: str
    uri: Optional[str] = None
    content: Optional[bytes] = None


@dataclass(frozen=True)
class SpeechConfig:
    language_code: str = "it-IT"
    sample_rate_hertz: int = 16000
    model: str = "default"
    enable_automatic_punctuation: bool = True
    enable_word_time_offsets: bool = True
    use_enhanced: bool = True

    @classmethod
    def from_settings(cls) -> "SpeechConfig":
        return cls(
            language_code=settings.speech_language_code,
            sample_rate_hertz=settings.speech_sample_rate_hertz,
            model=settings.speech_model,
        )


@dataclass
class TranscriptSegment:
    text: str
    end_seconds: float = 0.0


@dataclass
class SpeechJobStatus:
    """
    Snapshot of a recognition job.

    done=False → still running, `metadata` carries progress
    done=True, error set → terminal failure
    done=True, no error → `segments` hold the results in API order
    """

    done: bool
    segments: List[TranscriptSegment] = field(default_factory=list)
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        if not self.segments:
            return 0.0
        return self.segments[-1].end_seconds


class SpeechService(ABC):
    """Abstract speech recognizer with submit/poll job semantics."""

    @abstractmethod
    async def submit(self, audio: SpeechAudio, config: SpeechConfig) -> str:
        """Start a recognition job and return its opaque handle."""
        ...

    @abstractmethod
    async def poll(self, job_id: str) -> SpeechJobStatus:
        """Read the current state of a job."""
        ...


def _to_seconds(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, timedelta):
        return value.total_seconds()
    # protobuf Duration
    return float(getattr(value, "seconds", 0)) + float(getattr(value, "nanos", 0)) / 1e9


class GoogleSpeechService(SpeechService):
    """Google Cloud Speech-to-Text v1 long-running recognition."""

    def __init__(self, client: Optional[speech.SpeechClient] = None):
        self.client = client or speech.SpeechClient()
        logger.info("GoogleSpeechService initialized")

    def build_recognition_config(
        self, audio_format: str, config: SpeechConfig
    ) -> speech.RecognitionConfig:
        if audio_format == "WAV":
            return speech.RecognitionConfig(
                encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
                sample_rate_hertz=config.sample_rate_hertz,
                language_code=config.language_code,
                enable_automatic_punctuation=config.enable_automatic_punctuation,
                enable_word_time_offsets=config.enable_word_time_offsets,
                model=config.model,
                use_enhanced=config.use_enhanced,
            )
        return speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.ENCODING_UNSPECIFIED,
            language_code=config.language_code,
            enable_automatic_punctuation=config.enable_automatic_punctuation,
            enable_word_time_offsets=config.enable_word_time_offsets,
            model=config.model,
            use_enhanced=config.use_enhanced,
        )

    async def submit(self, audio: SpeechAudio, config: SpeechConfig) -> str:
        if audio.uri:
            recognition_audio = speech.RecognitionAudio(uri=audio.uri)
        elif audio.content:
            recognition_audio = speech.RecognitionAudio(content=audio.content)
        else:
            raise ValidationError(message="No audio was provided for transcription.", field="audio")

        recognition_config = self.build_recognition_config(audio.format, config)

        loop = asyncio.get_running_loop()
        try:
            operation = await loop.run_in_executor(
                None,
                lambda: self.client.long_running_recognize(
                    config=recognition_config, audio=recognition_audio
                ),
            )
        except (google_exceptions.GoogleAPIError, google_auth_exceptions.GoogleAuthError) as e:
            logger.error("Speech job submission failed: %s", str(e))
            raise ExternalServiceError(
                service="Speech-to-Text",
                upstream_message=str(e),
                context={"source": audio.uri or "inline"},
            ) from e

        job_id = operation.operation.name
        logger.info(
            "Speech job %s submitted (%s, %s)",
            job_id,
            audio.format,
            "uri" if audio.uri else "inline",
        )
        return job_id

    async def poll(self, job_id: str) -> SpeechJobStatus:
        loop = asyncio.get_running_loop()
        try:
            op = await loop.run_in_executor(
                None,
                self.client.transport.operations_client.get_operation,
                job_id,
            )
        except google_exceptions.NotFound as e:
            raise NotFoundError(resource="Transcription job", resource_id=job_id) from e
        except (google_exceptions.GoogleAPIError, google_auth_exceptions.GoogleAuthError) as e:
            logger.error("Speech job %s poll failed: %s", job_id, str(e))
            raise ExternalServiceError(
                service="Speech-to-Text",
                upstream_message=str(e),
                context={"job_id": job_id},
            ) from e

        metadata: Dict[str, Any] = {}
        if op.HasField("metadata"):
            meta = speech.LongRunningRecognizeMetadata.deserialize(op.metadata.value)
            metadata["progress_percent"] = meta.progress_percent
            if meta.start_time:
                metadata["start_time"] = meta.start_time.isoformat()
            if meta.last_update_time:
                metadata["last_update_time"] = meta.last_update_time.isoformat()

        if not op.done:
            return SpeechJobStatus(done=False, metadata=metadata)

        if op.HasField("error"):
            return SpeechJobStatus(
                done=True,
                error=op.error.message or f"Speech job failed with code {op.error.code}",
                metadata=metadata,
            )

        response = speech.LongRunningRecognizeResponse.deserialize(op.response.value)
        segments = [
            TranscriptSegment(
                text=result.alternatives[0].transcript,
                end_seconds=_to_seconds(result.result_end_time),
            )
            for result in response.results
            if result.alternatives
        ]
        return SpeechJobStatus(done=True, segments=segments, metadata=metadata)

"""
EchoLog Backend — Transcription Workflow Coordinator
======================================================

What:  Turns an audio upload, a stored recording, pasted text or a document
       into a transcript, and deletes transcripts with everything hanging
       off them.
How:   Collaborators (file staging, blob store, speech, document extractor)
       are passed to the constructor; the repository is passed per call, the
       same way routes hand a session to the services.
Who:   Called by the transcription and audio routes.

Workflow (audio):
    ┌──────────┐   ┌────────────┐   ┌───────────┐   ┌──────────────┐
    │ Validate │──▶│ Stage temp │──▶│ Blob put  │──▶│ Speech submit│──▶ job id
    └──────────┘   └────────────┘   └───────────┘   └──────────────┘
                         │ temp file removed on every exit path
    poll(job id):
        running   → in_progress (no side effects)
        error     → failed (nothing persisted)
        results   → joined transcript, saved once per job

Text and documents skip blob storage and speech entirely: the text is saved
synchronously under a virtual recording (format TEXT, duration 0).

Failure semantics:
    - Validation errors are raised before any external call
    - External failures propagate as ExternalServiceError; nothing is retried
    - When a transcript cannot be saved it is still returned, with a
      temporary id, persisted=False and a warning
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from echolog.exceptions import (
    BlobNotFoundError,
    DatabaseError,
    EchoLogError,
    EmptyExtractionError,
    NotFoundError,
    ValidationError,
)
from echolog.models.recording import (
    FORMAT_TEXT,
    STATUS_COMPLETED,
    STATUS_PROCESSING,
    Recording,
)
from echolog.schemas.audio import RecordingResponse, UploadResponse
from echolog.schemas.transcription import (
    DeletionReport,
    SubmissionResponse,
    TranscriptionResponse,
    TranscriptionStatusResponse,
)
from echolog.services.blob_store import BlobStore
from echolog.services.document_extractor import DocumentExtractor
from echolog.services.file_service import AUDIO_CONTENT_TYPES, FileService
from echolog.services.identifiers import IdentifierKind, classify_identifier, new_temporary_id
from echolog.services.repository import EchoLogRepository
from echolog.services.speech_service import SpeechAudio, SpeechConfig, SpeechService

logger = logging.getLogger(__name__)

NOT_SAVED_NO_RECORDING = (
    "The transcript was not saved: no recording is linked to this job."
)
NOT_SAVED_DATABASE = (
    "The transcript was not saved because of a database error. Copy it before leaving the page."
)
NOT_SAVED_RECORDING = (
    "The transcription was started but its recording could not be saved; "
    "the transcript will not be stored."
)


# ── Sources ───────────────────────────────────────────────────────────────
@dataclass
class AudioUpload:
    filename: str
    content_type: Optional[str]
    content: bytes
    title: Optional[str] = None


@dataclass
class RecordingReference:
    recording_id: uuid.UUID


@dataclass
class TextSource:
    text: str
    title: Optional[str] = None


@dataclass
class DocumentUpload:
    filename: str
    content: bytes
    title: Optional[str] = None


TranscriptionSource = Union[AudioUpload, RecordingReference, TextSource, DocumentUpload]


def join_segments(texts) -> str:
    """Joins result segments, in the order given, with single spaces."""
    return " ".join(t.strip() for t in texts if t and t.strip())


class TranscriptionCoordinator:
    """Sequences upload → speech job → poll → persist, and cascade deletion."""

    def __init__(
        self,
        files: FileService,
        blob_store: BlobStore,
        speech: SpeechService,
        extractor: DocumentExtractor,
        speech_config: Optional[SpeechConfig] = None,
    ):
        self.files = files
        self.blob_store = blob_store
        self.speech = speech
        self.extractor = extractor
        self.speech_config = speech_config or SpeechConfig.from_settings()

    # ── Submit ────────────────────────────────────────────────────────────
    async def submit(
        self,
        repo: EchoLogRepository,
        user_id: uuid.UUID,
        source: TranscriptionSource,
    ) -> SubmissionResponse:
        if isinstance(source, AudioUpload):
            return await self._submit_audio(repo, user_id, source)
        if isinstance(source, RecordingReference):
            return await self._submit_recording(repo, user_id, source)
        if isinstance(source, TextSource):
            return await self._submit_text(repo, user_id, source)
        if isinstance(source, DocumentUpload):
            return await self._submit_document(repo, user_id, source)
        raise ValidationError(message="Unsupported transcription source.")

    async def _submit_audio(
        self, repo: EchoLogRepository, user_id: uuid.UUID, source: AudioUpload
    ) -> SubmissionResponse:
        audio_format = self.files.validate_audio(
            source.filename, source.content_type, len(source.content)
        )

        async with self.files.staged(source.content, source.filename) as path:
            data = await self.files.read_file(path)
            stored = await self.blob_store.put(
                data, source.filename, AUDIO_CONTENT_TYPES[audio_format]
            )
            audio = self._speech_audio(stored.remote_ref, audio_format, data)
            try:
                job_id = await self.speech.submit(audio, self.speech_config)
            except EchoLogError:
                await self._discard_blob(stored.remote_ref)
                raise

        try:
            async with repo.savepoint("create_recording"):
                recording = await repo.create_recording(
                    user_id=user_id,
                    title=source.title or source.filename,
                    audio_url=stored.signed_url,
                    filename=stored.name,
                    blob_ref=stored.remote_ref,
                    duration=0.0,
                    format=audio_format,
                    size=stored.size,
                    status=STATUS_PROCESSING,
                    job_id=job_id,
                )
        except DatabaseError:
            logger.error("Recording for speech job %s could not be saved", job_id)
            return SubmissionResponse(
                status="processing",
                operation_id=job_id,
                audio_url=stored.signed_url,
                persisted=False,
                warning=NOT_SAVED_RECORDING,
            )

        logger.info("Recording %s submitted as speech job %s", recording.id, job_id)
        return SubmissionResponse(
            status="processing",
            operation_id=job_id,
            recording_id=recording.id,
            audio_url=stored.signed_url,
        )

    async def _submit_recording(
        self, repo: EchoLogRepository, user_id: uuid.UUID, source: RecordingReference
    ) -> SubmissionResponse:
        recording = await repo.get_recording(user_id, source.recording_id)
        if recording is None:
            raise NotFoundError(resource="Recording", resource_id=str(source.recording_id))
        if recording.is_virtual or not recording.blob_ref:
            raise ValidationError(
                message="This recording has no audio to transcribe.", field="recording_id"
            )
        if await repo.get_transcription_for_recording(user_id, recording.id) is not None:
            raise ValidationError(
                message="This recording is already transcribed. Delete the transcription first.",
                field="recording_id",
            )

        data = None
        if not recording.blob_ref.startswith("gs://"):
            data = await self.blob_store.get(recording.blob_ref)
        audio = self._speech_audio(recording.blob_ref, recording.format, data)
        job_id = await self.speech.submit(audio, self.speech_config)

        persisted = True
        try:
            async with repo.savepoint("link_recording_job"):
                await repo.update_recording(recording, job_id=job_id, status=STATUS_PROCESSING)
        except DatabaseError:
            logger.error("Could not link recording %s to speech job %s", recording.id, job_id)
            persisted = False

        return SubmissionResponse(
            status="processing",
            operation_id=job_id,
            recording_id=recording.id,
            audio_url=recording.audio_url,
            persisted=persisted,
            warning=None if persisted else NOT_SAVED_RECORDING,
        )

    async def _submit_text(
        self, repo: EchoLogRepository, user_id: uuid.UUID, source: TextSource
    ) -> SubmissionResponse:
        if not source.text or not source.text.strip():
            raise ValidationError(message="Text must not be empty.", field="text")
        return await self._store_text(repo, user_id, source.text, source.title or "Text entry")

    async def _submit_document(
        self, repo: EchoLogRepository, user_id: uuid.UUID, source: DocumentUpload
    ) -> SubmissionResponse:
        extension = self.files.validate_document(source.filename, len(source.content))

        async with self.files.staged(source.content, source.filename) as path:
            text = await self.extractor.extract(path, extension)
            if not text or not text.strip():
                raise EmptyExtractionError(filename=source.filename)

        return await self._store_text(repo, user_id, text, source.title or source.filename)

    async def _store_text(
        self, repo: EchoLogRepository, user_id: uuid.UUID, text: str, title: str
    ) -> SubmissionResponse:
        try:
            async with repo.savepoint("store_text_transcription"):
                recording = await repo.create_recording(
                    user_id=user_id,
                    title=title[:255],
                    audio_url="",
                    filename=f"text-{uuid.uuid4()}.txt",
                    blob_ref=None,
                    duration=0.0,
                    format=FORMAT_TEXT,
                    size=len(text.encode("utf-8")),
                    status=STATUS_COMPLETED,
                )
                transcription = await repo.create_transcription(
                    user_id=user_id,
                    recording_id=recording.id,
                    full_text=text,
                    language=self.speech_config.language_code,
                    status=STATUS_COMPLETED,
                )
        except DatabaseError:
            logger.error("Text transcript for user %s could not be saved", user_id)
            return SubmissionResponse(
                status="completed",
                transcription_id=new_temporary_id(),
                text=text,
                persisted=False,
                warning=NOT_SAVED_DATABASE,
            )

        logger.info("Stored text transcription %s (%d chars)", transcription.id, len(text))
        return SubmissionResponse(
            status="completed",
            recording_id=recording.id,
            transcription_id=str(transcription.id),
            text=text,
        )

    # ── Recordings ────────────────────────────────────────────────────────
    async def upload_audio(
        self, repo: EchoLogRepository, user_id: uuid.UUID, source: AudioUpload
    ) -> UploadResponse:
        """Stores audio without starting a speech job."""
        audio_format = self.files.validate_audio(
            source.filename, source.content_type, len(source.content)
        )

        async with self.files.staged(source.content, source.filename) as path:
            data = await self.files.read_file(path)
            stored = await self.blob_store.put(
                data, source.filename, AUDIO_CONTENT_TYPES[audio_format]
            )

        try:
            recording = await repo.create_recording(
                user_id=user_id,
                title=source.title or source.filename,
                audio_url=stored.signed_url,
                filename=stored.name,
                blob_ref=stored.remote_ref,
                duration=0.0,
                format=audio_format,
                size=stored.size,
                status=STATUS_COMPLETED,
            )
        except DatabaseError:
            await self._discard_blob(stored.remote_ref)
            raise

        logger.info("Recording %s uploaded (%d bytes)", recording.id, stored.size)
        return UploadResponse(recording=RecordingResponse.model_validate(recording))

    async def resolve_recording(
        self, repo: EchoLogRepository, user_id: uuid.UUID, identifier: str
    ) -> Recording:
        """Looks a recording up by id or by stored filename, never both."""
        kind = classify_identifier(identifier)
        if kind is IdentifierKind.RECORD_ID:
            recording = await repo.get_recording(user_id, uuid.UUID(identifier))
        elif kind is IdentifierKind.FILENAME:
            recording = await repo.get_recording_by_filename(user_id, identifier)
        else:
            raise ValidationError(
                message=f"'{identifier}' is neither a recording id nor a file name.",
                field="identifier",
            )
        if recording is None:
            raise NotFoundError(resource="Recording", resource_id=identifier)
        return recording

    async def get_transcription(
        self, repo: EchoLogRepository, user_id: uuid.UUID, transcription_id: uuid.UUID
    ) -> TranscriptionResponse:
        transcription = await repo.get_transcription(user_id, transcription_id)
        if transcription is None:
            raise NotFoundError(resource="Transcription", resource_id=str(transcription_id))
        return TranscriptionResponse.model_validate(transcription)

    # ── Poll ──────────────────────────────────────────────────────────────
    async def poll(
        self,
        repo: EchoLogRepository,
        user_id: uuid.UUID,
        job_id: str,
    ) -> TranscriptionStatusResponse:
        owners = await repo.job_owners(job_id)
        if owners and user_id not in owners:
            logger.warning("Refused poll of speech job %s by a user who does not own it", job_id)
            raise NotFoundError(resource="Transcription job", resource_id=job_id)

        status = await self.speech.poll(job_id)

        if not status.done:
            return TranscriptionStatusResponse(
                status="in_progress", operation_id=job_id, metadata=status.metadata
            )

        if status.error:
            logger.warning("Speech job %s failed: %s", job_id, status.error)
            return TranscriptionStatusResponse(
                status="failed", operation_id=job_id, metadata=status.metadata, error=status.error
            )

        text = join_segments(segment.text for segment in status.segments)
        if not text:
            logger.warning("Speech job %s finished without results", job_id)
            return TranscriptionStatusResponse(
                status="failed",
                operation_id=job_id,
                metadata=status.metadata,
                error="No transcription results were returned for this audio.",
            )

        completed = TranscriptionStatusResponse(
            status="completed",
            operation_id=job_id,
            metadata=status.metadata,
            text=text,
            duration=status.duration_seconds,
        )

        try:
            existing = await repo.get_transcription_by_job(user_id, job_id)
            if existing is not None:
                completed.transcription_id = str(existing.id)
                completed.recording_id = existing.recording_id
                completed.persisted = True
                return completed

            recording = await repo.get_recording_by_job(user_id, job_id)
            if recording is None:
                completed.transcription_id = new_temporary_id()
                completed.warning = NOT_SAVED_NO_RECORDING
                return completed

            async with repo.savepoint("persist_transcription"):
                transcription = await repo.create_transcription(
                    user_id=user_id,
                    recording_id=recording.id,
                    job_id=job_id,
                    full_text=text,
                    language=self.speech_config.language_code,
                    status=STATUS_COMPLETED,
                )
                await repo.update_recording(
                    recording, duration=status.duration_seconds, status=STATUS_COMPLETED
                )
        except DatabaseError:
            logger.error("Transcript for speech job %s could not be saved", job_id)
            completed.transcription_id = new_temporary_id()
            completed.warning = NOT_SAVED_DATABASE
            return completed

        logger.info("Speech job %s saved as transcription %s", job_id, transcription.id)
        completed.transcription_id = str(transcription.id)
        completed.recording_id = recording.id
        completed.persisted = True
        return completed

    # ── Delete ────────────────────────────────────────────────────────────
    async def cascade_delete(
        self,
        repo: EchoLogRepository,
        user_id: uuid.UUID,
        transcription_id: uuid.UUID,
    ) -> DeletionReport:
        """
        Deletes a transcription with its analyses, recording and audio blob.

        Order: analyses, recording row, blob, transcription. Each dependent
        step is attempted even if an earlier one fails; a missing or
        unreachable blob is logged and ignored. The transcription itself is
        deleted last, and a failure there is raised.
        """
        transcription = await repo.get_transcription(user_id, transcription_id)
        if transcription is None:
            raise NotFoundError(resource="Transcription", resource_id=str(transcription_id))

        report = DeletionReport(transcription_id=transcription.id)

        recording: Optional[Recording] = None
        if transcription.recording_id is not None:
            try:
                recording = await repo.get_recording(user_id, transcription.recording_id)
            except DatabaseError:
                report.warnings.append("recording lookup failed")

        try:
            async with repo.savepoint("delete_analyses"):
                report.analyses_deleted = await repo.delete_analyses_for_transcription(
                    user_id, transcription.id
                )
        except DatabaseError:
            report.warnings.append("analysis deletion failed")

        if recording is not None:
            try:
                async with repo.savepoint("delete_recording"):
                    await repo.delete_recording(recording)
                report.recording_deleted = True
            except DatabaseError:
                report.warnings.append("recording deletion failed")

            if recording.blob_ref:
                report.blob_deleted = await self._discard_blob(recording.blob_ref)

        await repo.delete_transcription(transcription)

        logger.info(
            "Deleted transcription %s (analyses=%d, recording=%s, blob=%s)",
            transcription.id,
            report.analyses_deleted,
            report.recording_deleted,
            report.blob_deleted,
        )
        return report

    async def delete_recording(
        self,
        repo: EchoLogRepository,
        user_id: uuid.UUID,
        recording: Recording,
    ) -> tuple:
        """
        Deletes a recording. When it has a transcription the full cascade runs.

        Returns (blob_deleted, transcription_deleted).
        """
        transcription = await repo.get_transcription_for_recording(user_id, recording.id)
        if transcription is not None:
            report = await self.cascade_delete(repo, user_id, transcription.id)
            return report.blob_deleted, True

        await repo.delete_recording(recording)
        blob_deleted = False
        if recording.blob_ref:
            blob_deleted = await self._discard_blob(recording.blob_ref)
        return blob_deleted, False

    # ── Helpers ───────────────────────────────────────────────────────────
    def _speech_audio(self, remote_ref: str, audio_format: str, data: Optional[bytes]) -> SpeechAudio:
        if remote_ref.startswith("gs://"):
            return SpeechAudio(format=audio_format, uri=remote_ref)
        return SpeechAudio(format=audio_format, content=data)

    async def _discard_blob(self, remote_ref: str) -> bool:
        """Best-effort blob deletion. Returns True when the blob was removed."""
        try:
            await self.blob_store.delete(remote_ref)
            return True
        except BlobNotFoundError:
            logger.info("Blob %s already gone (retention window or earlier delete)", remote_ref)
        except EchoLogError as e:
            logger.warning("Could not delete blob %s: %s", remote_ref, e.message)
        return False

"""
EchoLog Backend — Transcription Route Handlers
================================================

What:  Submit audio, stored recordings, text or documents for transcription;
       poll speech jobs; fetch and cascade-delete transcriptions.
How:   Routes read the request, build a source object and hand it to the
       TranscriptionCoordinator. Business rules live in the coordinator.

Route Inventory:
    POST   /api/transcribe                          multipart `audio`, optional `title`
    POST   /api/transcribe/recordings/{recording_id}
    GET    /api/transcribe/status/{operation_id}
    POST   /api/transcribe/text                     JSON {text, title}
    POST   /api/transcribe/document                 multipart `document`
    GET    /api/transcribe/{transcription_id}
    DELETE /api/transcribe/{transcription_id}

Results that could not be saved still return 200 with `persisted: false`,
a temporary "tr-..." id and a `warning`.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from echolog.dependencies import (
    get_current_user_id,
    get_repository,
    get_transcription_coordinator,
)
from echolog.schemas.common import ErrorResponse
from echolog.schemas.transcription import (
    DeletionReport,
    SubmissionResponse,
    TextTranscriptionRequest,
    TranscriptionResponse,
    TranscriptionStatusResponse,
)
from echolog.services.identifiers import parse_record_id
from echolog.services.repository import EchoLogRepository
from echolog.services.transcription_service import (
    AudioUpload,
    DocumentUpload,
    RecordingReference,
    TextSource,
    TranscriptionCoordinator,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transcribe", tags=["Transcription"])

_ERRORS = {
    400: {"description": "Invalid input", "model": ErrorResponse},
    401: {"description": "Missing or invalid token", "model": ErrorResponse},
    500: {"description": "External service or server error", "model": ErrorResponse},
}


@router.post(
    "",
    status_code=202,
    response_model=SubmissionResponse,
    responses=_ERRORS,
    summary="Upload audio and start a speech job",
)
async def transcribe_audio(
    audio: UploadFile = File(..., description="WAV or MP3 recording"),
    title: Optional[str] = Form(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    coordinator: TranscriptionCoordinator = Depends(get_transcription_coordinator),
) -> SubmissionResponse:
    content = await audio.read()
    logger.info(
        "Received transcription upload: filename=%s, size=%d bytes",
        audio.filename or "unknown",
        len(content),
    )
    try:
        return await coordinator.submit(
            repo,
            user_id,
            AudioUpload(
                filename=audio.filename or "recording.wav",
                content_type=audio.content_type,
                content=content,
                title=title,
            ),
        )
    finally:
        await audio.close()


@router.post(
    "/recordings/{recording_id}",
    status_code=202,
    response_model=SubmissionResponse,
    responses={**_ERRORS, 404: {"description": "Recording not found", "model": ErrorResponse}},
    summary="Start a speech job for an already stored recording",
)
async def transcribe_recording(
    recording_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    coordinator: TranscriptionCoordinator = Depends(get_transcription_coordinator),
) -> SubmissionResponse:
    source = RecordingReference(recording_id=parse_record_id(recording_id, "recording_id"))
    return await coordinator.submit(repo, user_id, source)


@router.get(
    "/status/{operation_id:path}",
    response_model=TranscriptionStatusResponse,
    responses={**_ERRORS, 404: {"description": "Unknown job", "model": ErrorResponse}},
    summary="Poll a speech job; saves the transcript once it completes",
)
async def transcription_status(
    operation_id: str,
    response: Response,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    coordinator: TranscriptionCoordinator = Depends(get_transcription_coordinator),
) -> TranscriptionStatusResponse:
    result = await coordinator.poll(repo, user_id, operation_id)
    response.headers["Cache-Control"] = "no-store"
    return result


@router.post(
    "/text",
    response_model=SubmissionResponse,
    responses=_ERRORS,
    summary="Store pasted text as a transcript",
)
async def transcribe_text(
    body: TextTranscriptionRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    coordinator: TranscriptionCoordinator = Depends(get_transcription_coordinator),
) -> SubmissionResponse:
    return await coordinator.submit(repo, user_id, TextSource(text=body.text, title=body.title))


@router.post(
    "/document",
    response_model=SubmissionResponse,
    responses=_ERRORS,
    summary="Extract text from a PDF, DOC, DOCX or TXT file and store it",
)
async def transcribe_document(
    document: UploadFile = File(..., description="PDF, DOC, DOCX or TXT file"),
    title: Optional[str] = Form(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    coordinator: TranscriptionCoordinator = Depends(get_transcription_coordinator),
) -> SubmissionResponse:
    content = await document.read()
    logger.info(
        "Received document: filename=%s, size=%d bytes",
        document.filename or "unknown",
        len(content),
    )
    try:
        return await coordinator.submit(
            repo,
            user_id,
            DocumentUpload(
                filename=document.filename or "document.txt",
                content=content,
                title=title,
            ),
        )
    finally:
        await document.close()


@router.get(
    "/{transcription_id}",
    response_model=TranscriptionResponse,
    responses={**_ERRORS, 404: {"model": ErrorResponse}},
    summary="Get a saved transcription",
)
async def get_transcription(
    transcription_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    coordinator: TranscriptionCoordinator = Depends(get_transcription_coordinator),
) -> TranscriptionResponse:
    return await coordinator.get_transcription(
        repo, user_id, parse_record_id(transcription_id, "transcription_id")
    )


@router.delete(
    "/{transcription_id}",
    response_model=DeletionReport,
    responses={**_ERRORS, 404: {"model": ErrorResponse}},
    summary="Delete a transcription with its analyses, recording and audio",
)
async def delete_transcription(
    transcription_id: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    coordinator: TranscriptionCoordinator = Depends(get_transcription_coordinator),
) -> DeletionReport:
    return await coordinator.cascade_delete(
        repo, user_id, parse_record_id(transcription_id, "transcription_id")
    )

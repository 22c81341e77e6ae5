"""
EchoLog Backend — Audio Route Handlers
========================================

What:  Upload, fetch and delete stored audio recordings.
How:   GET and DELETE accept either a recording id or the stored file name;
       the identifier is classified first and looked up exactly one way.
       GCS-backed audio is served by redirecting to a signed URL; the local
       backend streams the bytes itself. /api/audio/signed/{name} serves
       local signed links and is the one route here without a Bearer token.
Who:   Called by the frontend recorder and audio player.
"""

import logging
import uuid
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import RedirectResponse, Response

from echolog.dependencies import (
    get_blob_store,
    get_current_user_id,
    get_repository,
    get_transcription_coordinator,
)
from echolog.exceptions import NotFoundError
from echolog.schemas.audio import AudioDeleteResponse, UploadResponse
from echolog.schemas.common import ErrorResponse
from echolog.services.blob_store import BlobStore
from echolog.services.file_service import AUDIO_CONTENT_TYPES
from echolog.services.repository import EchoLogRepository
from echolog.services.transcription_service import AudioUpload, TranscriptionCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/audio", tags=["Audio"])


@router.post(
    "/upload",
    status_code=201,
    response_model=UploadResponse,
    responses={
        400: {"description": "Invalid file type or size", "model": ErrorResponse},
        500: {"description": "Storage failure", "model": ErrorResponse},
    },
    summary="Store an audio recording (WAV or MP3)",
)
async def upload_audio(
    audio: UploadFile = File(..., description="WAV or MP3 recording"),
    title: Optional[str] = Form(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    coordinator: TranscriptionCoordinator = Depends(get_transcription_coordinator),
) -> UploadResponse:
    content = await audio.read()
    logger.info(
        "Received audio upload: filename=%s, size=%d bytes",
        audio.filename or "unknown",
        len(content),
    )
    try:
        return await coordinator.upload_audio(
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


@router.get(
    "/signed/{name}",
    responses={
        200: {"description": "Audio bytes"},
        401: {"description": "Link invalid or expired", "model": ErrorResponse},
        404: {"description": "Blob not found", "model": ErrorResponse},
    },
    summary="Fetch audio through a signed link (local backend, no Bearer header)",
)
async def get_signed_audio(
    name: str,
    token: str = Query(..., description="Signature issued with the link"),
    blob_store: BlobStore = Depends(get_blob_store),
) -> Response:
    data = await blob_store.read_signed(name, token)
    return Response(
        content=data,
        media_type=AUDIO_CONTENT_TYPES.get(Path(name).suffix.lstrip(".").upper(), "application/octet-stream"),
        headers={"Cache-Control": "private, max-age=3600"},
    )


@router.get(
    "/{identifier}",
    responses={
        200: {"description": "Audio bytes (local backend)"},
        307: {"description": "Redirect to a signed URL (GCS backend)"},
        404: {"description": "Recording or blob not found", "model": ErrorResponse},
    },
    summary="Fetch a recording's audio by id or file name",
)
async def get_audio(
    identifier: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    coordinator: TranscriptionCoordinator = Depends(get_transcription_coordinator),
) -> Response:
    recording = await coordinator.resolve_recording(repo, user_id, identifier)
    if not recording.blob_ref:
        raise NotFoundError(resource="Audio", resource_id=identifier)

    blob_store = coordinator.blob_store
    if blob_store.supports_redirect:
        url = await blob_store.signed_url(recording.blob_ref)
        return RedirectResponse(url=url, status_code=307)

    data = await blob_store.get(recording.blob_ref)
    return Response(
        content=data,
        media_type=AUDIO_CONTENT_TYPES.get(recording.format, "application/octet-stream"),
        headers={"Cache-Control": "private, max-age=3600"},
    )


@router.delete(
    "/{identifier}",
    response_model=AudioDeleteResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a recording and its audio",
)
async def delete_audio(
    identifier: str,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    coordinator: TranscriptionCoordinator = Depends(get_transcription_coordinator),
) -> AudioDeleteResponse:
    recording = await coordinator.resolve_recording(repo, user_id, identifier)
    recording_id = recording.id
    blob_deleted, transcription_deleted = await coordinator.delete_recording(
        repo, user_id, recording
    )
    return AudioDeleteResponse(
        recording_id=recording_id,
        blob_deleted=blob_deleted,
        transcription_deleted=transcription_deleted,
    )

"""
EchoLog Backend — Audio Schemas
=================================
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class RecordingResponse(BaseModel):
    """A stored recording (real audio or virtual text anchor)."""
    id: uuid.UUID
    title: str
    filename: str = Field(description="Unique blob name, usable as an identifier")
    audio_url: str = Field(description="Signed URL at upload time; may have expired")
    duration: float = Field(description="Seconds (0 until transcribed, 0 for text)")
    format: str = Field(description="WAV, MP3 or TEXT")
    size: int = Field(description="Bytes")
    status: str = Field(description="processing, completed or error")
    created_at: datetime

    model_config = {"from_attributes": True}


class UploadResponse(BaseModel):
    message: str = "Audio uploaded successfully"
    recording: RecordingResponse


class AudioDeleteResponse(BaseModel):
    message: str = "Audio deleted"
    recording_id: uuid.UUID
    blob_deleted: bool
    transcription_deleted: bool

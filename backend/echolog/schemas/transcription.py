"""
EchoLog Backend — Transcription Schemas
=========================================

What:  Request and response models for the transcription workflow.

Persistence flag:
    Every result that carries a transcript also carries `persisted`. When it
    is false the transcript was NOT saved, `transcription_id` is a temporary
    id ("tr-...") and `warning` says why.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class TextTranscriptionRequest(BaseModel):
    text: str = Field(description="Plain text to store as a transcript")
    title: Optional[str] = Field(default=None, max_length=255)

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Text must not be empty")
        return v


class SubmissionResponse(BaseModel):
    """
    Result of submitting a source.

    Audio:          status 'processing' with an operation_id to poll
    Text/document:  status 'completed' with the transcript inline
    """
    status: str = Field(description="processing or completed")
    operation_id: Optional[str] = Field(default=None, description="Speech job handle to poll")
    recording_id: Optional[uuid.UUID] = None
    transcription_id: Optional[str] = Field(
        default=None, description="Record id, or a temporary id when not persisted"
    )
    audio_url: Optional[str] = None
    text: Optional[str] = None
    persisted: bool = True
    warning: Optional[str] = None


class TranscriptionStatusResponse(BaseModel):
    """Result of polling a speech job."""
    status: str = Field(description="in_progress, completed or failed")
    operation_id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    text: Optional[str] = None
    transcription_id: Optional[str] = None
    recording_id: Optional[uuid.UUID] = None
    duration: Optional[float] = None
    error: Optional[str] = None
    persisted: bool = False
    warning: Optional[str] = None


class TranscriptionResponse(BaseModel):
    id: uuid.UUID
    recording_id: Optional[uuid.UUID] = None
    full_text: str
    language: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class DeletionReport(BaseModel):
    """What a cascade delete removed; `warnings` lists the steps that failed."""
    transcription_id: uuid.UUID
    analyses_deleted: int = 0
    recording_deleted: bool = False
    blob_deleted: bool = False
    warnings: List[str] = Field(default_factory=list)

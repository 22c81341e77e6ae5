"""
EchoLog Backend — Analysis Schemas
====================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class AnalyzeRequest(BaseModel):
    text: str = Field(description="Transcript text to analyse")
    transcription_id: str = Field(
        min_length=1,
        description="Saved transcription id or temporary id ('tr-...')",
    )

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Text must not be empty")
        return v


class AnalysisSection(BaseModel):
    title: str = ""
    content: str = ""
    keywords: List[str] = Field(default_factory=list)


class AnalysisResponse(BaseModel):
    id: uuid.UUID
    transcription_id: Optional[str] = None
    summary: str
    tone: str
    keywords: List[str] = Field(default_factory=list)
    sections: List[AnalysisSection] = Field(default_factory=list)
    created_at: datetime
    existing: bool = Field(default=False, description="True when returned from a previous run")


class AnalysisDetailResponse(AnalysisResponse):
    transcription_text: str = ""


class AnalysisHistoryItem(BaseModel):
    id: uuid.UUID
    transcription_id: Optional[str] = None
    summary: str
    keywords: List[str] = Field(default_factory=list)
    text_preview: str = Field(description="First 100 characters of the analysed text")
    created_at: datetime


class AnalysisHistoryResponse(BaseModel):
    analyses: List[AnalysisHistoryItem]
    total: int
    limit: int
    skip: int


class AnalysisPayload(BaseModel):
    """The JSON document the model is asked to return."""
    summary: str
    tone: str = ""
    keywords: List[str] = Field(default_factory=list)
    sections: List[AnalysisSection] = Field(default_factory=list)

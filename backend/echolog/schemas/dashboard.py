"""
EchoLog Backend — Dashboard Schemas
=====================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class KeywordCount(BaseModel):
    keyword: str
    count: int


class StorageUsage(BaseModel):
    used_mb: float
    limit_mb: int
    usage_percent: int


class DashboardStatsResponse(BaseModel):
    total_transcriptions: int
    total_audio_minutes: float
    average_words: int = Field(description="Mean word count of analysed texts")
    most_frequent_keywords: List[KeywordCount]
    storage: StorageUsage


class AudioAvailability(BaseModel):
    available: bool
    days_remaining: int
    expires_on: Optional[datetime] = None


class DashboardHistoryItem(BaseModel):
    id: uuid.UUID
    transcription_id: Optional[uuid.UUID] = None
    recording_id: Optional[uuid.UUID] = None
    audio_filename: Optional[str] = None
    summary: str
    keywords: List[str] = Field(default_factory=list)
    created_at: datetime
    audio: AudioAvailability


class DashboardHistoryResponse(BaseModel):
    analyses: List[DashboardHistoryItem]
    total: int
    limit: int
    skip: int

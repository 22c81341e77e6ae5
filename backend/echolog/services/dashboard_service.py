"""
EchoLog Backend — Dashboard Service
=====================================

What:  Per-user statistics and the analysis history shown on the dashboard.
How:   Aggregates come from the repository; keyword frequencies and word
       counts are computed here from the stored analyses.

Audio availability:
    Audio blobs are removed by the bucket's lifecycle rule after
    FILE_RETENTION_DAYS. An entry's audio counts as available while its age
    in whole days (rounded up) is within that window.
"""

import logging
import math
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from echolog.config import settings
from echolog.models.recording import Recording
from echolog.schemas.dashboard import (
    AudioAvailability,
    DashboardHistoryItem,
    DashboardHistoryResponse,
    DashboardStatsResponse,
    KeywordCount,
    StorageUsage,
)
from echolog.services.repository import EchoLogRepository

logger = logging.getLogger(__name__)

TOP_KEYWORDS = 10
BYTES_PER_MB = 1024 * 1024


def audio_availability(
    recording: Optional[Recording],
    created_at: datetime,
    now: datetime,
    retention_days: int,
) -> AudioAvailability:
    if recording is None or recording.is_virtual:
        return AudioAvailability(available=False, days_remaining=0)

    age_days = math.ceil(abs((now - created_at).total_seconds()) / 86400)
    if age_days > retention_days:
        return AudioAvailability(available=False, days_remaining=0)

    return AudioAvailability(
        available=True,
        days_remaining=retention_days - age_days,
        expires_on=created_at + timedelta(days=retention_days),
    )


class DashboardService:
    def __init__(
        self,
        retention_days: Optional[int] = None,
        storage_quota_mb: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.retention_days = retention_days or settings.file_retention_days
        self.storage_quota_mb = storage_quota_mb or settings.storage_quota_mb
        self.clock = clock

    async def stats(self, repo: EchoLogRepository, user_id: uuid.UUID) -> DashboardStatsResponse:
        total_transcriptions = await repo.count_transcriptions(user_id)
        total_seconds, total_bytes = await repo.recording_totals(user_id)
        analysed = await repo.analysis_texts_and_keywords(user_id)

        keyword_counts: Counter = Counter()
        word_total = 0
        for text, keywords in analysed:
            word_total += len(text.split())
            keyword_counts.update(k for k in keywords if k)

        average_words = round(word_total / len(analysed)) if analysed else 0

        used_mb = round(total_bytes / BYTES_PER_MB, 2)
        usage_percent = min(100, round(used_mb / self.storage_quota_mb * 100))

        return DashboardStatsResponse(
            total_transcriptions=total_transcriptions,
            total_audio_minutes=round(total_seconds / 60, 1),
            average_words=average_words,
            most_frequent_keywords=[
                KeywordCount(keyword=k, count=c) for k, c in keyword_counts.most_common(TOP_KEYWORDS)
            ],
            storage=StorageUsage(
                used_mb=used_mb,
                limit_mb=self.storage_quota_mb,
                usage_percent=usage_percent,
            ),
        )

    async def history(
        self, repo: EchoLogRepository, user_id: uuid.UUID, limit: int, skip: int
    ) -> DashboardHistoryResponse:
        rows, total = await repo.list_analysis_history(user_id, limit, skip)
        now = self.clock()

        items = []
        for analysis, transcription, recording in rows:
            created_at = recording.created_at if recording is not None else analysis.created_at
            items.append(
                DashboardHistoryItem(
                    id=analysis.id,
                    transcription_id=transcription.id if transcription is not None else None,
                    recording_id=recording.id if recording is not None else None,
                    audio_filename=recording.filename if recording is not None else None,
                    summary=analysis.summary,
                    keywords=list(analysis.keywords or []),
                    created_at=analysis.created_at,
                    audio=audio_availability(recording, created_at, now, self.retention_days),
                )
            )

        return DashboardHistoryResponse(analyses=items, total=total, limit=limit, skip=skip)

"""
EchoLog Backend — Recording SQLAlchemy Model
==============================================

What:  ORM model representing the `recordings` table.
Why:   A Recording anchors everything a user submitted: an uploaded audio
       blob, or a "virtual" recording standing in for pasted text or an
       uploaded document.
Who:   Written by TranscriptionCoordinator and the audio routes; read by the
       dashboard and by cascade deletion.

Lifecycle:
    1. Audio submitted for transcription → status 'processing', job_id set
    2. Speech job completes and transcript is saved → status 'completed',
       duration taken from the last result segment
    3. Plain upload (no transcription) or text/document input → created
       directly as 'completed'
    4. Deleted together with its Transcription and Analysis

Format values:
    WAV / MP3 → a real audio blob exists in the blob store
    TEXT      → virtual recording, no blob, duration 0
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Float, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID, TIMESTAMP

from echolog.database import Base


FORMAT_WAV = "WAV"
FORMAT_MP3 = "MP3"
FORMAT_TEXT = "TEXT"

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_ERROR = "error"


class Recording(Base):
    """An uploaded audio file or a virtual recording for text input."""

    __tablename__ = "recordings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Blob Location ─────────────────────────────────────────────────────
    # audio_url: signed URL handed out at upload time (expires; re-signed on demand)
    # filename:  unique blob name inside the store (e.g. "<uuid>-meeting.wav")
    # blob_ref:  backend-specific remote reference (gs://... or local path)
    audio_url: Mapped[str] = mapped_column(String(2048), nullable=False, default="")
    filename: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    blob_ref: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    duration: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, server_default=text("0"),
        comment="Audio length in seconds (0 for virtual recordings)",
    )
    format: Mapped[str] = mapped_column(String(10), nullable=False)
    size: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default=text("0"),
        comment="Blob size in bytes",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=STATUS_PROCESSING,
        server_default=text("'processing'"),
    )

    # What: Speech job handle while the transcription is in flight
    job_id: Mapped[str | None] = mapped_column(String(512), nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_recordings_user_created_at", "user_id", created_at.desc()),
    )

    @property
    def is_virtual(self) -> bool:
        return self.format == FORMAT_TEXT

    def __repr__(self) -> str:
        return (
            f"<Recording(id={self.id}, format='{self.format}', "
            f"status='{self.status}')>"
        )

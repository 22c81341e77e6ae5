"""
EchoLog Backend — Transcription SQLAlchemy Model
==================================================

What:  ORM model representing the `transcriptions` table.
How:   One row per completed transcript. `job_id` is unique so a speech job
       is persisted at most once no matter how often it is polled.
       `recording_id` is nullable: when a recording is deleted first the
       transcript survives with a NULL link until it is deleted itself.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID, TIMESTAMP

from echolog.database import Base


class Transcription(Base):
    """Full transcript text produced from a Recording."""

    __tablename__ = "transcriptions"

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
    recording_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("recordings.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )

    # Idempotency key: the speech job this transcript came from
    job_id: Mapped[str | None] = mapped_column(String(512), nullable=True, unique=True)

    full_text: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str] = mapped_column(String(20), nullable=False, default="it-IT")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="completed", server_default=text("'completed'")
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_transcriptions_user_created_at", "user_id", created_at.desc()),
    )

    def __repr__(self) -> str:
        return f"<Transcription(id={self.id}, recording_id={self.recording_id})>"

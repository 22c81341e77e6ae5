"""
EchoLog Backend — Analysis SQLAlchemy Model
=============================================

What:  ORM model representing the `analyses` table: Gemini's structured
       reading of a transcript (summary, tone, keywords, sections).
How:   An analysis references either a saved Transcription (`transcription_id`)
       or, when the transcript was never persisted, the temporary id the
       client received for it (`transcription_ref`, e.g. "tr-3f9c...").
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB, UUID, TIMESTAMP

from echolog.database import Base


class Analysis(Base):
    """AI analysis of a transcript."""

    __tablename__ = "analyses"

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
    transcription_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("transcriptions.id", ondelete="CASCADE"),
        nullable=True,
        unique=True,
    )
    transcription_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)

    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    tone: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    keywords: Mapped[List[str]] = mapped_column(JSONB, nullable=False, default=list)
    # Each section: {"title": str, "content": str, "keywords": [str]}
    sections: Mapped[List[Dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)

    # What: The transcript text that was analysed (kept for history previews)
    raw_text: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_analyses_user_created_at", "user_id", created_at.desc()),
        Index("idx_analyses_transcription_ref", "transcription_ref"),
    )

    def __repr__(self) -> str:
        return f"<Analysis(id={self.id}, transcription_id={self.transcription_id})>"

"""Create users, recordings, transcriptions and analyses

Revision ID: 001
Revises: None
Create Date: 2025-01-10 00:00:00.000000+00:00

What:  Initial EchoLog schema.
       users ─┬─< recordings ──1:1── transcriptions ──1:1── analyses
              └── every table carries user_id (ON DELETE CASCADE)

Unique job_id columns are the idempotency keys for persisting a finished
speech job at most once.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        server_default=sa.text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        _id_column(),
        sa.Column("google_id", sa.String(255), nullable=False, comment="Google `sub` claim"),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default=sa.text("''")),
        sa.Column("picture", sa.String(1024), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("google_id", name="uq_users_google_id"),
    )

    op.create_table(
        "recordings",
        _id_column(),
        _user_fk(),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("audio_url", sa.String(2048), nullable=False, server_default=sa.text("''")),
        sa.Column("filename", sa.String(512), nullable=False, comment="Unique blob name"),
        sa.Column("blob_ref", sa.String(1024), nullable=True, comment="NULL for text entries"),
        sa.Column("duration", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("format", sa.String(10), nullable=False, comment="WAV, MP3 or TEXT"),
        sa.Column("size", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'processing'")),
        sa.Column("job_id", sa.String(512), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("filename", name="uq_recordings_filename"),
        sa.UniqueConstraint("job_id", name="uq_recordings_job_id"),
    )
    op.create_index(
        "idx_recordings_user_created_at",
        "recordings",
        ["user_id", sa.text("created_at DESC")],
    )

    op.create_table(
        "transcriptions",
        _id_column(),
        _user_fk(),
        sa.Column(
            "recording_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("recordings.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("job_id", sa.String(512), nullable=True),
        sa.Column("full_text", sa.Text(), nullable=False),
        sa.Column("language", sa.String(20), nullable=False, server_default=sa.text("'it-IT'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'completed'")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("recording_id", name="uq_transcriptions_recording_id"),
        sa.UniqueConstraint("job_id", name="uq_transcriptions_job_id"),
    )
    op.create_index(
        "idx_transcriptions_user_created_at",
        "transcriptions",
        ["user_id", sa.text("created_at DESC")],
    )

    op.create_table(
        "analyses",
        _id_column(),
        _user_fk(),
        sa.Column(
            "transcription_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("transcriptions.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "transcription_ref",
            sa.String(64),
            nullable=True,
            comment="Temporary id of a transcript that was never saved",
        ),
        sa.Column("summary", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("tone", sa.String(255), nullable=False, server_default=sa.text("''")),
        sa.Column("keywords", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("sections", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("raw_text", sa.Text(), nullable=False, server_default=sa.text("''")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transcription_id", name="uq_analyses_transcription_id"),
    )
    op.create_index(
        "idx_analyses_user_created_at",
        "analyses",
        ["user_id", sa.text("created_at DESC")],
    )
    op.create_index("idx_analyses_transcription_ref", "analyses", ["transcription_ref"])


def downgrade() -> None:
    op.drop_index("idx_analyses_transcription_ref", table_name="analyses")
    op.drop_index("idx_analyses_user_created_at", table_name="analyses")
    op.drop_table("analyses")
    op.drop_index("idx_transcriptions_user_created_at", table_name="transcriptions")
    op.drop_table("transcriptions")
    op.drop_index("idx_recordings_user_created_at", table_name="recordings")
    op.drop_table("recordings")
    op.drop_table("users")

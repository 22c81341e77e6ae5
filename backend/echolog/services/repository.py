"""
EchoLog Backend — Repository (all database access)
=====================================================

What:  Every SQL statement the application issues, behind one class.
How:   Wraps the request's AsyncSession. Reads of user data are always
       scoped by `user_id`, so a record owned by someone else looks exactly
       like a missing one. The one exception is job_owners(), which exists to
       refuse a speech job that belongs to another user. SQLAlchemy errors
       are translated to DatabaseError.
Who:   Created per request in echolog.dependencies; passed to the services.

Savepoints:
    `async with repo.savepoint("label"):` runs a block inside a nested
    transaction. If the block fails only the savepoint is rolled back, so
    optional writes (and each step of a cascade delete) cannot poison the
    request transaction that get_db_session commits at the end.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Sequence, Set, Tuple

from sqlalchemy import delete, desc, func, or_, select, union
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from echolog.exceptions import DatabaseError
from echolog.models import Analysis, Recording, Transcription, User

logger = logging.getLogger(__name__)


class EchoLogRepository:
    """Data access for users, recordings, transcriptions and analyses."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ── Plumbing ──────────────────────────────────────────────────────────
    @asynccontextmanager
    async def _translate(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.error("Database error during %s: %s", operation, str(e))
            raise DatabaseError(
                context={"operation": operation, "error_type": type(e).__name__}
            ) from e

    @asynccontextmanager
    async def savepoint(self, operation: str) -> AsyncIterator[None]:
        async with self._translate(operation):
            async with self.session.begin_nested():
                yield

    async def _add(self, obj: Any, operation: str) -> Any:
        async with self._translate(operation):
            self.session.add(obj)
            await self.session.flush()
        return obj

    async def _first(self, statement, operation: str):
        async with self._translate(operation):
            result = await self.session.execute(statement)
            return result.scalar_one_or_none()

    async def ping(self) -> None:
        async with self._translate("ping"):
            await self.session.execute(select(1))

    # ── Users ─────────────────────────────────────────────────────────────
    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        return await self._first(select(User).where(User.id == user_id), "get_user")

    async def upsert_user(
        self,
        google_id: str,
        email: str,
        name: str,
        picture: Optional[str],
    ) -> User:
        user = await self._first(
            select(User).where(User.google_id == google_id), "find_user_by_google_id"
        )
        if user is None:
            user = User(google_id=google_id, email=email, name=name, picture=picture)
            return await self._add(user, "create_user")

        user.email = email
        user.name = name
        user.picture = picture
        async with self._translate("update_user"):
            await self.session.flush()
        return user

    # ── Recordings ────────────────────────────────────────────────────────
    async def create_recording(self, **fields: Any) -> Recording:
        return await self._add(Recording(**fields), "create_recording")

    async def get_recording(self, user_id: uuid.UUID, recording_id: uuid.UUID) -> Optional[Recording]:
        return await self._first(
            select(Recording).where(Recording.id == recording_id, Recording.user_id == user_id),
            "get_recording",
        )

    async def get_recording_by_filename(self, user_id: uuid.UUID, filename: str) -> Optional[Recording]:
        return await self._first(
            select(Recording).where(Recording.filename == filename, Recording.user_id == user_id),
            "get_recording_by_filename",
        )

    async def get_recording_by_job(self, user_id: uuid.UUID, job_id: str) -> Optional[Recording]:
        return await self._first(
            select(Recording).where(Recording.job_id == job_id, Recording.user_id == user_id),
            "get_recording_by_job",
        )

    async def update_recording(self, recording: Recording, **fields: Any) -> Recording:
        for key, value in fields.items():
            setattr(recording, key, value)
        async with self._translate("update_recording"):
            await self.session.flush()
        return recording

    async def delete_recording(self, recording: Recording) -> None:
        async with self._translate("delete_recording"):
            await self.session.delete(recording)
            await self.session.flush()

    async def recording_totals(self, user_id: uuid.UUID) -> Tuple[float, int]:
        """Returns (total duration in seconds, total size in bytes)."""
        async with self._translate("recording_totals"):
            result = await self.session.execute(
                select(
                    func.coalesce(func.sum(Recording.duration), 0.0),
                    func.coalesce(func.sum(Recording.size), 0),
                ).where(Recording.user_id == user_id)
            )
            duration, size = result.one()
        return float(duration or 0.0), int(size or 0)

    # ── Transcriptions ────────────────────────────────────────────────────
    async def create_transcription(self, **fields: Any) -> Transcription:
        return await self._add(Transcription(**fields), "create_transcription")

    async def get_transcription(
        self, user_id: uuid.UUID, transcription_id: uuid.UUID
    ) -> Optional[Transcription]:
        return await self._first(
            select(Transcription).where(
                Transcription.id == transcription_id, Transcription.user_id == user_id
            ),
            "get_transcription",
        )

    async def get_transcription_by_job(self, user_id: uuid.UUID, job_id: str) -> Optional[Transcription]:
        return await self._first(
            select(Transcription).where(
                Transcription.job_id == job_id, Transcription.user_id == user_id
            ),
            "get_transcription_by_job",
        )

    async def job_owners(self, job_id: str) -> Set[uuid.UUID]:
        """Users whose recordings or transcriptions reference a speech job."""
        async with self._translate("job_owners"):
            result = await self.session.execute(
                union(
                    select(Recording.user_id).where(Recording.job_id == job_id),
                    select(Transcription.user_id).where(Transcription.job_id == job_id),
                )
            )
            return set(result.scalars().all())

    async def get_transcription_for_recording(
        self, user_id: uuid.UUID, recording_id: uuid.UUID
    ) -> Optional[Transcription]:
        return await self._first(
            select(Transcription).where(
                Transcription.recording_id == recording_id, Transcription.user_id == user_id
            ),
            "get_transcription_for_recording",
        )

    async def delete_transcription(self, transcription: Transcription) -> None:
        async with self._translate("delete_transcription"):
            await self.session.delete(transcription)
            await self.session.flush()

    async def count_transcriptions(self, user_id: uuid.UUID) -> int:
        async with self._translate("count_transcriptions"):
            result = await self.session.execute(
                select(func.count(Transcription.id)).where(Transcription.user_id == user_id)
            )
            return result.scalar() or 0

    # ── Analyses ──────────────────────────────────────────────────────────
    async def create_analysis(self, **fields: Any) -> Analysis:
        return await self._add(Analysis(**fields), "create_analysis")

    async def get_analysis(self, user_id: uuid.UUID, analysis_id: uuid.UUID) -> Optional[Analysis]:
        return await self._first(
            select(Analysis).where(Analysis.id == analysis_id, Analysis.user_id == user_id),
            "get_analysis",
        )

    async def find_analysis(
        self,
        user_id: uuid.UUID,
        transcription_id: Optional[uuid.UUID] = None,
        transcription_ref: Optional[str] = None,
    ) -> Optional[Analysis]:
        """Finds the analysis for a saved transcription or a temporary transcript id."""
        conditions = []
        if transcription_id is not None:
            conditions.append(Analysis.transcription_id == transcription_id)
        if transcription_ref:
            conditions.append(Analysis.transcription_ref == transcription_ref)
        if not conditions:
            return None
        return await self._first(
            select(Analysis)
            .where(Analysis.user_id == user_id, or_(*conditions))
            .order_by(desc(Analysis.created_at))
            .limit(1),
            "find_analysis",
        )

    async def delete_analyses_for_transcription(
        self, user_id: uuid.UUID, transcription_id: uuid.UUID
    ) -> int:
        async with self._translate("delete_analyses"):
            result = await self.session.execute(
                delete(Analysis).where(
                    Analysis.transcription_id == transcription_id,
                    Analysis.user_id == user_id,
                )
            )
            return result.rowcount or 0

    async def list_analyses(
        self, user_id: uuid.UUID, limit: int, skip: int
    ) -> Tuple[List[Analysis], int]:
        async with self._translate("list_analyses"):
            result = await self.session.execute(
                select(Analysis)
                .where(Analysis.user_id == user_id)
                .order_by(desc(Analysis.created_at))
                .offset(skip)
                .limit(limit)
            )
            items = list(result.scalars().all())
            count = await self.session.execute(
                select(func.count(Analysis.id)).where(Analysis.user_id == user_id)
            )
            return items, count.scalar() or 0

    async def list_analysis_history(
        self, user_id: uuid.UUID, limit: int, skip: int
    ) -> Tuple[List[Tuple[Analysis, Optional[Transcription], Optional[Recording]]], int]:
        """Analyses newest first, each with its transcription and recording when they exist."""
        async with self._translate("list_analysis_history"):
            result = await self.session.execute(
                select(Analysis, Transcription, Recording)
                .outerjoin(Transcription, Analysis.transcription_id == Transcription.id)
                .outerjoin(Recording, Transcription.recording_id == Recording.id)
                .where(Analysis.user_id == user_id)
                .order_by(desc(Analysis.created_at))
                .offset(skip)
                .limit(limit)
            )
            rows = [tuple(row) for row in result.all()]
            count = await self.session.execute(
                select(func.count(Analysis.id)).where(Analysis.user_id == user_id)
            )
            return rows, count.scalar() or 0

    async def analysis_texts_and_keywords(
        self, user_id: uuid.UUID
    ) -> Sequence[Tuple[str, List[str]]]:
        async with self._translate("analysis_texts_and_keywords"):
            result = await self.session.execute(
                select(Analysis.raw_text, Analysis.keywords).where(Analysis.user_id == user_id)
            )
            return [(text or "", keywords or []) for text, keywords in result.all()]

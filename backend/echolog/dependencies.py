"""
EchoLog Backend — Dependency Providers
========================================

What:  FastAPI dependencies that hand routes their services, the
       request-scoped repository and the authenticated user id.
How:   Each collaborator is built lazily on first use and cached for the
       process (lru_cache), so importing the app never opens a cloud
       client. Tests replace any provider through app.dependency_overrides.
"""

import logging
import uuid
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from echolog.config import settings
from echolog.database import get_db_session
from echolog.exceptions import UnauthenticatedError
from echolog.services.analysis_service import AnalysisService
from echolog.services.auth_service import AuthService
from echolog.services.billing_service import BigQueryBillingWarehouse, BillingService
from echolog.services.blob_store import BlobStore, GCSBlobStore, LocalBlobStore
from echolog.services.dashboard_service import DashboardService
from echolog.services.document_extractor import DocumentExtractor
from echolog.services.file_service import FileService
from echolog.services.gemini_service import GeminiService
from echolog.services.llm_base import LLMService
from echolog.services.repository import EchoLogRepository
from echolog.services.speech_service import GoogleSpeechService, SpeechService
from echolog.services.transcription_service import TranscriptionCoordinator

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


# ── Collaborators ─────────────────────────────────────────────────────────
@lru_cache
def get_file_service() -> FileService:
    return FileService()


@lru_cache
def get_blob_store() -> BlobStore:
    if settings.blob_backend == "gcs":
        return GCSBlobStore()
    logger.info("Using local blob store at %s", settings.storage_root)
    return LocalBlobStore()


@lru_cache
def get_speech_service() -> SpeechService:
    return GoogleSpeechService()


@lru_cache
def get_document_extractor() -> DocumentExtractor:
    return DocumentExtractor()


@lru_cache
def get_llm_service() -> LLMService:
    return GeminiService()


# ── Services ──────────────────────────────────────────────────────────────
def get_transcription_coordinator(
    files: FileService = Depends(get_file_service),
    blob_store: BlobStore = Depends(get_blob_store),
    speech: SpeechService = Depends(get_speech_service),
    extractor: DocumentExtractor = Depends(get_document_extractor),
) -> TranscriptionCoordinator:
    return TranscriptionCoordinator(files, blob_store, speech, extractor)


def get_analysis_service(llm: LLMService = Depends(get_llm_service)) -> AnalysisService:
    return AnalysisService(llm)


@lru_cache
def get_dashboard_service() -> DashboardService:
    return DashboardService()


@lru_cache
def get_billing_service() -> BillingService:
    return BillingService(BigQueryBillingWarehouse())


@lru_cache
def get_auth_service() -> AuthService:
    return AuthService()


# ── Request scope ─────────────────────────────────────────────────────────
async def get_repository(db: AsyncSession = Depends(get_db_session)) -> EchoLogRepository:
    return EchoLogRepository(db)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    auth: AuthService = Depends(get_auth_service),
) -> uuid.UUID:
    """Resolves the caller from the `Authorization: Bearer <token>` header."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthenticatedError()
    return auth.decode_token(credentials.credentials)

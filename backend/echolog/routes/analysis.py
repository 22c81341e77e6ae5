"""
EchoLog Backend — Analysis Route Handlers
===========================================

What:  POST /api/analyze, GET /api/analyze/{id} and GET /api/analyze (history).
Who:   Called by the frontend analysis panel and history page.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Query, Response

from echolog.dependencies import get_analysis_service, get_current_user_id, get_repository
from echolog.schemas.analysis import (
    AnalysisDetailResponse,
    AnalysisHistoryResponse,
    AnalysisResponse,
    AnalyzeRequest,
)
from echolog.schemas.common import ErrorResponse
from echolog.services.analysis_service import AnalysisService
from echolog.services.identifiers import parse_record_id
from echolog.services.repository import EchoLogRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analyze", tags=["Analysis"])


@router.post(
    "",
    response_model=AnalysisResponse,
    responses={
        400: {"description": "Empty text or bad transcription id", "model": ErrorResponse},
        404: {"description": "Transcription not found", "model": ErrorResponse},
        500: {"description": "Gemini failed or replied with malformed JSON", "model": ErrorResponse},
    },
    summary="Analyse a transcript (returns the stored analysis if one exists)",
)
async def analyze(
    body: AnalyzeRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    service: AnalysisService = Depends(get_analysis_service),
) -> AnalysisResponse:
    return await service.analyze(repo, user_id, body.text, body.transcription_id)


@router.get(
    "",
    response_model=AnalysisHistoryResponse,
    summary="List the caller's analyses, newest first",
)
async def analysis_history(
    response: Response,
    limit: int = Query(default=10, ge=1, le=100),
    skip: int = Query(default=0, ge=0),
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    service: AnalysisService = Depends(get_analysis_service),
) -> AnalysisHistoryResponse:
    result = await service.history(repo, user_id, limit, skip)
    response.headers["X-Total-Count"] = str(result.total)
    return result


@router.get(
    "/{analysis_id}",
    response_model=AnalysisDetailResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get one analysis with its transcript text",
)
async def get_analysis(
    analysis_id: str,
    response: Response,
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    service: AnalysisService = Depends(get_analysis_service),
) -> AnalysisDetailResponse:
    result = await service.get(repo, user_id, parse_record_id(analysis_id, "analysis_id"))
    # Analyses are immutable once stored
    response.headers["Cache-Control"] = "private, max-age=3600"
    return result

"""
EchoLog Backend — Health Check Route
======================================

What:  GET /health for Docker health checks and load balancer checks.
How:   Runs SELECT 1 against the database and lists Gemini models.

Status levels:
    healthy    database and Gemini reachable                   (HTTP 200)
    degraded   database up, Gemini unreachable                 (HTTP 200)
    unhealthy  database unreachable                            (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from echolog import __version__
from echolog.config import settings
from echolog.database import engine
from echolog.dependencies import get_llm_service
from echolog.schemas.common import HealthResponse
from echolog.services.llm_base import LLMService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


async def check_database() -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Health check: database unreachable: %s", str(e))
        return False


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(
    response: Response,
    llm: LLMService = Depends(get_llm_service),
) -> HealthResponse:
    db_ok = await check_database()
    gemini_ok = await llm.health_check()

    if not db_ok:
        overall = "unhealthy"
        response.status_code = 503
    elif not gemini_ok:
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=__version__,
        database="connected" if db_ok else "disconnected",
        gemini="available" if gemini_ok else "unavailable",
        blob_backend=settings.blob_backend,
        uptime_seconds=round(time.time() - _start_time, 2),
    )

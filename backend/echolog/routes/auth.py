"""
EchoLog Backend — Auth Route Handlers
=======================================

What:  POST /api/auth/google (sign in, get a bearer token) and
       GET /api/auth/verify (who does this token belong to).
Who:   Called by the frontend login page and on app start.
"""

import logging
import uuid

from fastapi import APIRouter, Depends

from echolog.dependencies import get_auth_service, get_current_user_id, get_repository
from echolog.schemas.auth import GoogleLoginRequest, LoginResponse, VerifyResponse
from echolog.schemas.common import ErrorResponse
from echolog.services.auth_service import AuthService
from echolog.services.repository import EchoLogRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/google",
    response_model=LoginResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Sign in with a Google profile",
)
async def google_login(
    profile: GoogleLoginRequest,
    repo: EchoLogRepository = Depends(get_repository),
    auth: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    return await auth.login(repo, profile)


@router.get(
    "/verify",
    response_model=VerifyResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Return the user behind the bearer token",
)
async def verify(
    user_id: uuid.UUID = Depends(get_current_user_id),
    repo: EchoLogRepository = Depends(get_repository),
    auth: AuthService = Depends(get_auth_service),
) -> VerifyResponse:
    return await auth.verify(repo, user_id)

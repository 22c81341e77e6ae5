"""
EchoLog Backend — Authentication Service
==========================================

What:  Signs users in from a verified Google profile and issues the bearer
       token every other endpoint requires.
How:   The Google profile is upserted by its `sub` id, then an HS256 JWT
       (python-jose) carrying the user id is issued for JWT_EXPIRY_DAYS.
       Decoding validates signature and expiry; any failure is reported
       as UnauthenticatedError (401).
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import JWTError, jwt

from echolog.config import settings
from echolog.exceptions import NotFoundError, UnauthenticatedError
from echolog.schemas.auth import GoogleLoginRequest, LoginResponse, UserResponse, VerifyResponse
from echolog.services.repository import EchoLogRepository

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        expiry_days: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.secret = secret or settings.jwt_secret
        if not self.secret:
            raise ValueError("JWT_SECRET is required to issue tokens")
        self.algorithm = algorithm or settings.jwt_algorithm
        self.expiry = timedelta(days=expiry_days or settings.jwt_expiry_days)
        self.clock = clock

    def issue_token(self, user_id: uuid.UUID, email: str) -> str:
        now = self.clock()
        claims = {
            "sub": str(user_id),
            "email": email,
            "iat": int(now.timestamp()),
            "exp": int((now + self.expiry).timestamp()),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def decode_token(self, token: str) -> uuid.UUID:
        """Returns the user id carried by a valid token."""
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            logger.info("Rejected bearer token: %s", str(e))
            message = "Invalid authentication credentials"
            if "expired" in str(e).lower():
                message = "Token expired. Please sign in again."
            raise UnauthenticatedError(message) from e

        try:
            return uuid.UUID(str(claims.get("sub")))
        except ValueError as e:
            raise UnauthenticatedError("Token does not identify a user") from e

    async def login(self, repo: EchoLogRepository, profile: GoogleLoginRequest) -> LoginResponse:
        user = await repo.upsert_user(
            google_id=profile.sub,
            email=profile.email,
            name=profile.name,
            picture=profile.picture,
        )
        logger.info("User %s signed in", user.id)
        return LoginResponse(
            user=UserResponse.model_validate(user),
            token=self.issue_token(user.id, user.email),
        )

    async def verify(self, repo: EchoLogRepository, user_id: uuid.UUID) -> VerifyResponse:
        user = await repo.get_user(user_id)
        if user is None:
            raise NotFoundError(resource="User", resource_id=str(user_id))
        return VerifyResponse(user=UserResponse.model_validate(user))

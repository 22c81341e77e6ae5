"""
EchoLog Backend — Auth Schemas
================================

What:  Google sign-in payload and the user/token responses.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, Field


class GoogleLoginRequest(BaseModel):
    """Profile fields from a verified Google sign-in."""
    sub: str = Field(min_length=1, description="Google account subject id")
    email: str = Field(min_length=3, max_length=320)
    name: str = Field(default="")
    picture: Optional[str] = None


class UserResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    picture: Optional[str] = None

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    user: UserResponse
    token: str = Field(description="Bearer token (HS256 JWT)")


class VerifyResponse(BaseModel):
    user: UserResponse

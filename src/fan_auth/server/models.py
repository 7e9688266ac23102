"""Pydantic request/response models for the fan-auth HTTP server."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class RespondRequest(BaseModel):
    """JSON body for POST /auth (a raw ``application/jose`` body is also accepted)."""

    jws: str = Field(min_length=1)


class AuthResultResponse(BaseModel):
    """Response body for a successful POST /auth."""

    authenticated: bool
    attempt_id: str
    subject_did: str
    status: str


class ChallengeIssuedResponse(BaseModel):
    """Response body for GET /auth when the client asks for JSON."""

    attempt_id: str
    subject_did: str
    expires_at: str
    challenge: str


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str = "ok"
    version: str
    roles: list[str] = Field(default_factory=list)
    pending_attempts: Optional[int] = None
    cached_documents: Optional[int] = None


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str = ""

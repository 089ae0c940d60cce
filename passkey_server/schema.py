# (c) Copyright Datacraft, 2026
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RegisterStartRequest(BaseModel):
    """Request to start passkey registration."""
    email: str
    name: str | None = None
    display_name: str | None = None


class LoginStartRequest(BaseModel):
    """Request to start passkey login."""
    email: str


class CeremonyStartResponse(BaseModel):
    """WebAuthn options and the token that resumes the ceremony."""
    token: str
    options: dict[str, Any]
    expires_at: datetime


class CeremonyFinishRequest(BaseModel):
    """Authenticator response for a started ceremony.

    The token may also arrive in the X-Ceremony-Token header.
    """
    token: str | None = None
    credential: dict[str, Any]
    email: str | None = None


class SessionResponse(BaseModel):
    """Issued authenticated session."""
    session_token: str
    user_id: str
    expires_at: datetime
    clone_warning: bool = False


class UserProfile(BaseModel):
    """Profile returned by /me."""
    id: str
    email: str
    name: str
    display_name: str
    created_at: datetime
    credential_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class CredentialLabelsResponse(BaseModel):
    """Labels of the passkeys registered for an identity."""
    labels: list[str] = Field(default_factory=list)


class SignupStartRequest(BaseModel):
    """Request to start code-based signup."""
    email: str
    name: str = ""
    display_name: str = ""


class CodeLoginStartRequest(BaseModel):
    """Request to start code-based login."""
    email: str


class CodeFinishRequest(BaseModel):
    """Redeem a verification code."""
    email: str
    code: str


class MessageResponse(BaseModel):
    """Generic operation response."""
    success: bool = True
    message: str | None = None

"""
Schemas per login e rinnovo dei token
Progetto: Gestion Commerciale (Back-office)
"""

from datetime import datetime

from pydantic import BaseModel, Field

__all__ = ["LoginRequest", "TokenResponse", "TokenRefresh", "TokenPayload"]


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """Coppia di token restituita da /auth/login e /auth/refresh."""

    success: bool = True
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenRefresh(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TokenPayload(BaseModel):
    """Claim decodificate: sub è l'operatore, type distingue access da refresh."""

    sub: str
    exp: datetime
    type: str = "access"

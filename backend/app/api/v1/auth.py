"""
Router per l'autenticazione
Progetto: Gestion Commerciale (Back-office)

Endpoints per login e refresh token dell'operatore.
"""

from fastapi import APIRouter, Depends

from app.schemas.token import LoginRequest, TokenRefresh, TokenResponse
from app.services.auth_service import AuthService, get_auth_service

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
)


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login operatore",
)
async def login(
    data: LoginRequest,
    service: AuthService = Depends(get_auth_service),
):
    """
    Autentica l'operatore e restituisce access e refresh token.

    Raises:
        AuthenticationError: Credenziali non valide
    """
    return service.login(data)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Rinnova i token",
)
async def refresh_token(
    data: TokenRefresh,
    service: AuthService = Depends(get_auth_service),
):
    return service.refresh(data.refresh_token)

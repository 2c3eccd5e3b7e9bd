"""
Servizio per l'autenticazione
Progetto: Gestion Commerciale (Back-office)

Il back-office ha un solo operatore, configurato tramite
ADMIN_USERNAME e ADMIN_PASSWORD_HASH. Il servizio emette e rinnova
i token JWT.
"""

import logging

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)
from app.schemas.token import LoginRequest, TokenResponse

logger = logging.getLogger(__name__)


class AuthService:
    """Servizio per la gestione dell'autenticazione."""

    def _issue_tokens(self, username: str) -> TokenResponse:
        return TokenResponse(
            access_token=create_access_token(username),
            refresh_token=create_refresh_token(username),
        )

    def login(self, data: LoginRequest) -> TokenResponse:
        """
        Autentica l'operatore e restituisce i token JWT.

        Args:
            data: Credenziali di login

        Returns:
            TokenResponse con access e refresh token

        Raises:
            AuthenticationError: Se le credenziali non sono valide
        """
        if (
            data.username != settings.admin_username
            or not settings.admin_password_hash
            or not verify_password(data.password, settings.admin_password_hash)
        ):
            logger.warning("Tentativo di login fallito per %s", data.username)
            raise AuthenticationError("Identifiants invalides")

        logger.info("Login effettuato: %s", data.username)
        return self._issue_tokens(data.username)

    def refresh(self, refresh_token: str) -> TokenResponse:
        """
        Rinnova i token a partire da un refresh token valido.

        Raises:
            AuthenticationError: Token invalido, scaduto o non di tipo refresh
        """
        token_data = decode_token(refresh_token)

        if token_data.type != "refresh":
            raise AuthenticationError("Un jeton de rafraîchissement est requis")

        if token_data.sub != settings.admin_username:
            raise AuthenticationError("Utilisateur inconnu")

        return self._issue_tokens(token_data.sub)


# Singleton instance
auth_service = AuthService()


def get_auth_service() -> AuthService:
    """Dependency per ottenere il servizio di autenticazione."""
    return auth_service

"""
Dependency Injection per autenticazione
Progetto: Gestion Commerciale (Back-office)

Il back-office gira di norma in locale con l'autenticazione disattivata
(settings.auth_enabled = False). Quando attiva, ogni router di risorsa
richiede un access token JWT valido.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.core.security import decode_token

# OAuth2 scheme - estrae il token dall'header Authorization
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/api/v1/auth/login",
    auto_error=False,
)


async def require_auth(
    token: Optional[str] = Depends(oauth2_scheme),
) -> Optional[str]:
    """
    Verifica il token di accesso se l'autenticazione è attiva.

    Returns:
        Username dell'operatore, oppure None con autenticazione disattivata

    Raises:
        AuthenticationError: Token mancante, invalido o di tipo refresh
    """
    if not settings.auth_enabled:
        return None

    if not token:
        raise AuthenticationError("Jeton d'authentification manquant")

    token_data = decode_token(token)
    if token_data.type != "access":
        raise AuthenticationError("Un jeton de rafraîchissement ne donne pas accès à l'API")

    if token_data.sub != settings.admin_username:
        raise AuthenticationError("Utilisateur inconnu")

    return token_data.sub


__all__ = [
    "oauth2_scheme",
    "require_auth",
]

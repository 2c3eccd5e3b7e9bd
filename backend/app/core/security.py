"""
Password e token JWT dell'operatore
Progetto: Gestion Commerciale (Back-office)

Due tipi di token firmati con la stessa chiave: "access" per le
chiamate alle API, "refresh" solo per ottenere un nuovo access token.
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings
from app.core.exceptions import AuthenticationError
from app.schemas.token import TokenPayload

__all__ = [
    "hash_password",
    "verify_password",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
]

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash bcrypt, da copiare in ADMIN_PASSWORD_HASH."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _encode(subject: str, token_type: str, lifetime: timedelta) -> str:
    claims = {
        "sub": subject,
        "type": token_type,
        "exp": datetime.now(timezone.utc) + lifetime,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(subject: str) -> str:
    return _encode(subject, "access", timedelta(minutes=settings.access_token_expire_minutes))


def create_refresh_token(subject: str) -> str:
    return _encode(subject, "refresh", timedelta(days=settings.refresh_token_expire_days))


def decode_token(token: str) -> TokenPayload:
    """
    Verifica firma e scadenza e restituisce le claim.

    Raises:
        AuthenticationError: firma errata, token scaduto o senza "sub"
    """
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise AuthenticationError(f"Jeton invalide ou expiré: {exc}")

    subject = claims.get("sub")
    if not subject:
        raise AuthenticationError("Jeton invalide: sujet manquant")

    return TokenPayload(
        sub=subject,
        exp=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        type=claims.get("type", "access"),
    )

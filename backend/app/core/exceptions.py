"""
Eccezioni di dominio del back-office
Progetto: Gestion Commerciale (Back-office)

Ogni eccezione porta lo status HTTP e il codice errore con cui
l'handler di main.py costruisce la busta {success: false, message, error}.

BusinessValidationError (regole di business) non va confusa con
gli errori di formato di pydantic: entrambe producono un 400, ma con
codici errore diversi.
"""

from typing import Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "DuplicateError",
    "BusinessValidationError",
    "ConflictError",
    "AuthenticationError",
]


class AppException(Exception):
    """
    Base delle eccezioni applicative.

    Attributes:
        status_code: Status HTTP della risposta
        error_code: Codice stabile letto dal frontend
        detail: Messaggio per l'operatore (in francese)
    """

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"
    default_detail: str = "Erreur interne du serveur"

    def __init__(self, detail: Optional[str] = None, error_code: Optional[str] = None) -> None:
        self.detail = detail or self.default_detail
        if error_code is not None:
            self.error_code = error_code
        super().__init__(self.detail)


class NotFoundError(AppException):
    """Documento, prodotto o controparte inesistente."""

    status_code = 404
    error_code = "RESOURCE_NOT_FOUND"
    default_detail = "Ressource introuvable"


class DuplicateError(AppException):
    """
    Violazione di unicità rilevata dal service.

    Telefono o riferimento del fornitore, riferimento del prodotto.
    """

    status_code = 409
    error_code = "DUPLICATE_RESOURCE"
    default_detail = "Ressource déjà existante"


class BusinessValidationError(ValueError, AppException):
    """
    Regola di business violata.

    Esempi:
        - "Stock insuffisant pour Vis M6. Stock disponible: 3"
        - "Impossible de supprimer un bon de livraison livré"
        - "Transition de statut non autorisée ..."

    Deriva anche da ValueError: sollevata dentro un validatore
    pydantic diventa un normale errore di validazione.
    """

    status_code = 400
    error_code = "BUSINESS_VALIDATION_ERROR"
    default_detail = "Données invalides"

    def __init__(self, detail: Optional[str] = None, error_code: Optional[str] = None) -> None:
        AppException.__init__(self, detail, error_code)


class ConflictError(AppException):
    """L'operazione è incompatibile con i documenti collegati alla risorsa."""

    status_code = 409
    error_code = "CONFLICT_STATE"
    default_detail = "Conflit d'état"


class AuthenticationError(AppException):
    """Token mancante, scaduto o credenziali errate."""

    status_code = 401
    error_code = "UNAUTHENTICATED"
    default_detail = "Authentification requise"

"""
Schemas Pydantic per l'entità Client
Progetto: Gestion Commerciale (Back-office)
"""
# Definisce gli schemi di validazione e serializzazione per l'API.

import datetime
import re
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.common import ApiResponse


class ClientDocumentType(str, Enum):
    """Tipi di documento nello storico prodotti del cliente."""
    QUOTE = "devis"
    DELIVERY_NOTE = "bon-livraison"
    INVOICE = "facture"


# -------------------------------------------------------------------
# Funzioni di normalizzazione e validazione
# -------------------------------------------------------------------

def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalizza il numero di telefono.

    Rimuove spazi e accetta solo + iniziale e cifre.

    Args:
        phone: Numero di telefono da normalizzare

    Returns:
        Numero di telefono normalizzato o None

    Raises:
        ValueError: Se il formato non è valido
    """
    if phone is None:
        return None

    normalized = phone.strip().replace(" ", "")
    if normalized == "":
        return None

    # Regex: + seguito da numeri, oppure solo numeri
    if not re.match(r"^\+?\d+$", normalized):
        raise ValueError("Numéro de téléphone invalide")

    return normalized


def normalize_text(value: Optional[str]) -> Optional[str]:
    """Strip dei campi testuali, stringa vuota -> None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


# -------------------------------------------------------------------
# Schemas Client
# -------------------------------------------------------------------

class ClientBase(BaseModel):
    """
    Campi anagrafici del cliente.

    Solo full_name è obbligatorio.
    """
    full_name: str = Field(..., min_length=1, max_length=200, description="Nome completo o ragione sociale")
    reference: Optional[str] = Field(None, max_length=200, description="Codice interno")
    city: Optional[str] = Field(None, max_length=100, description="Città")
    address: Optional[str] = Field(None, max_length=500, description="Indirizzo")
    phone: Optional[str] = Field(None, max_length=20, description="Telefono")

    @field_validator("full_name", mode="before")
    @classmethod
    def strip_full_name(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("reference", "city", "address", mode="before")
    @classmethod
    def strip_optional(cls, v: Any) -> Any:
        if isinstance(v, str):
            return normalize_text(v)
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)


class ClientCreate(ClientBase):
    pass


class ClientUpdate(BaseModel):
    """Aggiornamento parziale: solo i campi inviati vengono modificati."""
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    reference: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = Field(None, max_length=20)

    @field_validator("reference", "city", "address", mode="before")
    @classmethod
    def strip_optional(cls, v: Any) -> Any:
        if isinstance(v, str):
            return normalize_text(v)
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)


class ClientRead(ClientBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: datetime.datetime
    updated_at: datetime.datetime


class ClientSummary(BaseModel):
    """Cliente ridotto, incluso nei documenti."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    phone: Optional[str] = None
    city: Optional[str] = None


# -------------------------------------------------------------------
# Envelope
# -------------------------------------------------------------------

class ClientResponse(ApiResponse):
    client: ClientRead


class ClientListResponse(ApiResponse):
    clients: list[ClientRead]
    count: int


class ClientStats(BaseModel):
    total_clients: int
    new_clients_this_month: int
    clients_by_city: list[dict[str, Any]] = Field(default_factory=list)


class ClientStatsResponse(ApiResponse):
    statistics: ClientStats


class ClientPaymentStatus(BaseModel):
    """Situazione pagamenti del cliente su fatture e BL non fatturati."""
    total_invoiced: Decimal = Decimal("0")
    total_paid: Decimal = Decimal("0")
    total_due: Decimal = Decimal("0")
    delivery_notes_due: Decimal = Decimal("0")
    unpaid_invoices: list[dict[str, Any]] = Field(default_factory=list)
    unpaid_delivery_notes: list[dict[str, Any]] = Field(default_factory=list)


class ClientPaymentStatusResponse(ApiResponse):
    client: ClientSummary
    payment_status: ClientPaymentStatus


class ClientHistoryResponse(ApiResponse):
    """Storico documenti del cliente, raggruppato per tipo."""
    client: ClientSummary
    history: dict[str, Any]


class ClientSummaryResponse(ApiResponse):
    client: ClientSummary
    summary: dict[str, Any]


class ClientProductsResponse(ApiResponse):
    """Prodotti acquistati dal cliente con quantità e importi aggregati."""
    client: ClientSummary
    products: list[dict[str, Any]]
    count: int


class ClientProductsByReferenceResponse(ApiResponse):
    """Righe documento per riferimento prodotto, con statistiche per prodotto."""
    client: ClientSummary
    history: list[dict[str, Any]]
    products: list[dict[str, Any]]
    count: int

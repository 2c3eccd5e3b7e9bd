"""
Schemas Pydantic per i Preventivi (Devis)
Progetto: Gestion Commerciale (Back-office)

Definisce gli stati del preventivo, la matrice delle transizioni
e gli schemi di validazione e serializzazione per l'API.
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.client import ClientSummary
from app.schemas.common import ApiResponse, DocumentLineCreate, DocumentLineRead, PaymentMethod
from app.schemas.delivery_note import DeliveryNoteRead
from app.schemas.invoice import InvoiceRead


# -------------------------------------------------------------------
# Enum per gli stati del preventivo
# -------------------------------------------------------------------

class QuoteStatus(str, Enum):
    """Stati possibili di un preventivo."""
    DRAFT = "brouillon"
    SENT = "envoyé"
    PENDING = "en_attente"
    ACCEPTED = "accepté"
    REFUSED = "refusé"
    EXPIRED = "expiré"
    CONVERTED_TO_ORDER = "transformé_en_commande"
    CONVERTED_TO_INVOICE = "transformé_en_facture"
    CONVERTED_TO_DELIVERY_NOTE = "transformé_en_bl"


CONVERTED_STATUSES = {
    QuoteStatus.CONVERTED_TO_ORDER,
    QuoteStatus.CONVERTED_TO_INVOICE,
    QuoteStatus.CONVERTED_TO_DELIVERY_NOTE,
}

_OPEN_TARGETS = [
    QuoteStatus.ACCEPTED,
    QuoteStatus.REFUSED,
    QuoteStatus.EXPIRED,
    QuoteStatus.CONVERTED_TO_ORDER,
    QuoteStatus.CONVERTED_TO_INVOICE,
    QuoteStatus.CONVERTED_TO_DELIVERY_NOTE,
]

# -------------------------------------------------------------------
# Matrice delle transizioni di stato valide
# -------------------------------------------------------------------

# La validazione avviene nel service layer (quote_service.py).
VALID_TRANSITIONS: dict[QuoteStatus, list[QuoteStatus]] = {
    QuoteStatus.DRAFT: [QuoteStatus.SENT, QuoteStatus.PENDING, *_OPEN_TARGETS],
    QuoteStatus.SENT: [QuoteStatus.DRAFT, QuoteStatus.PENDING, *_OPEN_TARGETS],
    QuoteStatus.PENDING: [QuoteStatus.DRAFT, QuoteStatus.SENT, *_OPEN_TARGETS],
    QuoteStatus.ACCEPTED: [
        QuoteStatus.CONVERTED_TO_ORDER,
        QuoteStatus.CONVERTED_TO_INVOICE,
        QuoteStatus.CONVERTED_TO_DELIVERY_NOTE,
    ],
    QuoteStatus.REFUSED: [QuoteStatus.DRAFT],
    QuoteStatus.EXPIRED: [QuoteStatus.DRAFT],
    QuoteStatus.CONVERTED_TO_ORDER: [],  # Stato finale
    QuoteStatus.CONVERTED_TO_INVOICE: [],  # Stato finale
    QuoteStatus.CONVERTED_TO_DELIVERY_NOTE: [],  # Stato finale
}


# -------------------------------------------------------------------
# Schemas Quote
# -------------------------------------------------------------------

class QuoteCreate(BaseModel):
    """Creazione preventivo: cliente e almeno una riga obbligatori."""
    client_id: uuid.UUID = Field(..., description="UUID del cliente")
    lines: list[DocumentLineCreate] = Field(..., min_length=1, description="Righe prodotto")
    issue_date: datetime.date = Field(default_factory=datetime.date.today)
    discount: Decimal = Field(default=Decimal("0"), ge=0, description="Sconto globale")
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="TVA da applicare in fattura")
    notes: Optional[str] = None


class QuoteUpdate(BaseModel):
    """
    Aggiornamento preventivo.

    Uno status transformé_en_bl / transformé_en_facture esegue
    la conversione corrispondente.
    """
    client_id: Optional[uuid.UUID] = None
    lines: Optional[list[DocumentLineCreate]] = Field(None, min_length=1)
    issue_date: Optional[datetime.date] = None
    discount: Optional[Decimal] = Field(None, ge=0)
    payment_method: Optional[PaymentMethod] = None
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    notes: Optional[str] = None
    status: Optional[QuoteStatus] = None


class QuoteStatusUpdate(BaseModel):
    status: QuoteStatus


class QuoteConversion(BaseModel):
    """Parametri opzionali per la conversione in BL o fattura."""
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Solo per la fattura")
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None


class QuoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    number: str
    client_id: uuid.UUID
    client: Optional[ClientSummary] = None
    issue_date: datetime.date
    status: QuoteStatus
    discount: Decimal
    total_ht: Decimal
    total_ttc: Decimal
    payment_method: str
    vat_rate: Optional[Decimal] = None
    accepted_on: Optional[datetime.date] = None
    delivery_note_id: Optional[uuid.UUID] = None
    invoice_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    lines: list[DocumentLineRead] = Field(default_factory=list)
    created_at: datetime.datetime
    updated_at: datetime.datetime


# -------------------------------------------------------------------
# Envelope
# -------------------------------------------------------------------

class QuoteResponse(ApiResponse):
    quote: QuoteRead


class QuoteListResponse(ApiResponse):
    quotes: list[QuoteRead]
    count: int


class QuoteStatsResponse(ApiResponse):
    statistics: dict[str, Any]


class QuoteToDeliveryNoteResponse(ApiResponse):
    quote: QuoteRead
    delivery_note: DeliveryNoteRead


class QuoteToInvoiceResponse(ApiResponse):
    quote: QuoteRead
    invoice: InvoiceRead

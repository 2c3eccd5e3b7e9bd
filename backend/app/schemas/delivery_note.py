"""
Schemas Pydantic per i Bons de Livraison (BL)
Progetto: Gestion Commerciale (Back-office)
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.client import ClientSummary
from app.schemas.common import (
    AdvancementCreate,
    AdvancementRead,
    ApiResponse,
    DocumentLineCreate,
    DocumentLineRead,
    PaymentMethod,
    PaymentTotalsMixin,
)


# -------------------------------------------------------------------
# Enum per gli stati del BL
# -------------------------------------------------------------------

class DeliveryNoteStatus(str, Enum):
    """Stati possibili di un bon de livraison."""
    DRAFT = "brouillon"
    SENT = "envoyée"
    VALIDATED = "validé"
    PARTIALLY_PAID = "partiellement_payée"
    PAID = "payé"
    DELIVERED = "livré"
    INVOICED = "facturé"
    CANCELLED = "annulée"


# Stati del ciclo di vita: non vengono sovrascritti dal ricalcolo dei pagamenti
LIFECYCLE_STATUSES = {
    DeliveryNoteStatus.DELIVERED,
    DeliveryNoteStatus.INVOICED,
    DeliveryNoteStatus.CANCELLED,
}

# -------------------------------------------------------------------
# Matrice delle transizioni di stato valide
# -------------------------------------------------------------------

# La validazione avviene nel service layer (delivery_note_service.py).
VALID_TRANSITIONS: dict[DeliveryNoteStatus, list[DeliveryNoteStatus]] = {
    DeliveryNoteStatus.DRAFT: [
        DeliveryNoteStatus.SENT,
        DeliveryNoteStatus.VALIDATED,
        DeliveryNoteStatus.DELIVERED,
        DeliveryNoteStatus.CANCELLED,
    ],
    DeliveryNoteStatus.SENT: [
        DeliveryNoteStatus.DRAFT,
        DeliveryNoteStatus.VALIDATED,
        DeliveryNoteStatus.DELIVERED,
        DeliveryNoteStatus.CANCELLED,
    ],
    DeliveryNoteStatus.VALIDATED: [
        DeliveryNoteStatus.DRAFT,
        DeliveryNoteStatus.DELIVERED,
        DeliveryNoteStatus.CANCELLED,
    ],
    DeliveryNoteStatus.PARTIALLY_PAID: [
        DeliveryNoteStatus.VALIDATED,
        DeliveryNoteStatus.DELIVERED,
        DeliveryNoteStatus.CANCELLED,
    ],
    DeliveryNoteStatus.PAID: [DeliveryNoteStatus.DELIVERED, DeliveryNoteStatus.INVOICED],
    DeliveryNoteStatus.DELIVERED: [DeliveryNoteStatus.INVOICED],
    DeliveryNoteStatus.INVOICED: [],  # Stato finale
    # Il ritorno a brouillon riscarica il magazzino
    DeliveryNoteStatus.CANCELLED: [DeliveryNoteStatus.DRAFT],
}


# -------------------------------------------------------------------
# Schemas DeliveryNote
# -------------------------------------------------------------------

class DeliveryNoteCreate(BaseModel):
    """Creazione BL: scarica il magazzino per ogni riga."""
    client_id: uuid.UUID = Field(..., description="UUID del cliente")
    lines: list[DocumentLineCreate] = Field(..., min_length=1)
    issue_date: datetime.date = Field(default_factory=datetime.date.today)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)
    advancements: list[AdvancementCreate] = Field(default_factory=list, description="Acconti iniziali")
    notes: Optional[str] = None


class DeliveryNoteUpdate(BaseModel):
    """
    Aggiornamento BL.

    lines sostituisce integralmente le righe (con storno e riapplicazione
    del magazzino); advancements viene riconciliato per id.
    """
    client_id: Optional[uuid.UUID] = None
    lines: Optional[list[DocumentLineCreate]] = Field(None, min_length=1)
    issue_date: Optional[datetime.date] = None
    discount: Optional[Decimal] = Field(None, ge=0)
    payment_method: Optional[PaymentMethod] = None
    advancements: Optional[list[AdvancementCreate]] = None
    delivery_date: Optional[datetime.date] = None
    notes: Optional[str] = None


class DeliveryNoteStatusUpdate(BaseModel):
    status: DeliveryNoteStatus


class DeliveryNoteRead(PaymentTotalsMixin):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    number: str
    client_id: uuid.UUID
    client: Optional[ClientSummary] = None
    quote_id: Optional[uuid.UUID] = None
    issue_date: datetime.date
    delivery_date: Optional[datetime.date] = None
    status: DeliveryNoteStatus
    discount: Decimal
    total_ht: Decimal
    total_ttc: Decimal
    payment_method: str
    is_invoiced: bool
    notes: Optional[str] = None
    lines: list[DocumentLineRead] = Field(default_factory=list)
    advancements: list[AdvancementRead] = Field(default_factory=list)
    created_at: datetime.datetime
    updated_at: datetime.datetime


# -------------------------------------------------------------------
# Envelope
# -------------------------------------------------------------------

class DeliveryNoteResponse(ApiResponse):
    delivery_note: DeliveryNoteRead


class DeliveryNoteListResponse(ApiResponse):
    delivery_notes: list[DeliveryNoteRead]
    count: int


class DeliveryNoteStatsResponse(ApiResponse):
    statistics: dict[str, Any]

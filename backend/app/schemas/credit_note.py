"""
Schemas Pydantic per i Bons d'Avoir
Progetto: Gestion Commerciale (Back-office)
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.schemas.client import ClientSummary
from app.schemas.common import ApiResponse, DocumentLineCreate, DocumentLineRead


class CreditNoteReason(str, Enum):
    """Motivo dell'avoir."""
    PRODUCT_RETURN = "retour_produit"
    BILLING_ERROR = "erreur_facturation"
    COMMERCIAL_DISCOUNT = "remise_commerciale"
    CANCELLATION = "annulation"
    OTHER = "autre"


class CreditNoteStatus(str, Enum):
    DRAFT = "brouillon"
    VALID = "valide"
    USED = "utilise"
    CANCELLED = "annule"


# La validazione avviene nel service layer (credit_note_service.py).
VALID_TRANSITIONS: dict[CreditNoteStatus, list[CreditNoteStatus]] = {
    CreditNoteStatus.DRAFT: [CreditNoteStatus.VALID, CreditNoteStatus.CANCELLED],
    CreditNoteStatus.VALID: [CreditNoteStatus.USED, CreditNoteStatus.CANCELLED],
    CreditNoteStatus.USED: [],  # Stato finale
    CreditNoteStatus.CANCELLED: [],  # Stato finale
}


class CreditNoteCreate(BaseModel):
    """
    Creazione avoir.

    Serve il cliente oppure il BL di origine (da cui si ricava il cliente).
    """
    client_id: Optional[uuid.UUID] = None
    delivery_note_id: Optional[uuid.UUID] = None
    reason: CreditNoteReason = Field(..., description="Motivo")
    lines: list[DocumentLineCreate] = Field(..., min_length=1)
    issue_date: datetime.date = Field(default_factory=datetime.date.today)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def require_client_or_delivery_note(self) -> "CreditNoteCreate":
        if self.client_id is None and self.delivery_note_id is None:
            raise ValueError("Client ou bon de livraison requis")
        return self


class CreditNoteUpdate(BaseModel):
    """Modifica consentita solo in brouillon."""
    reason: Optional[CreditNoteReason] = None
    lines: Optional[list[DocumentLineCreate]] = Field(None, min_length=1)
    notes: Optional[str] = None


class CreditNoteUse(BaseModel):
    delivery_note_id: uuid.UUID = Field(..., description="BL sul quale imputare l'avoir")


class CreditNoteStatusUpdate(BaseModel):
    status: CreditNoteStatus


class CreditNoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    number: str
    client_id: uuid.UUID
    client: Optional[ClientSummary] = None
    delivery_note_id: Optional[uuid.UUID] = None
    issue_date: datetime.date
    reason: CreditNoteReason
    status: CreditNoteStatus
    total_ht: Decimal
    total_ttc: Decimal
    used_at: Optional[datetime.datetime] = None
    used_on_delivery_note_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None
    lines: list[DocumentLineRead] = Field(default_factory=list)
    created_at: datetime.datetime
    updated_at: datetime.datetime


class CreditNoteResponse(ApiResponse):
    credit_note: CreditNoteRead


class CreditNoteListResponse(ApiResponse):
    credit_notes: list[CreditNoteRead]
    count: int


class CreditNoteUseResponse(ApiResponse):
    credit_note: CreditNoteRead
    applied_amount: Decimal
    new_delivery_note_total: Decimal


class AvailableCreditNotesResponse(ApiResponse):
    credit_notes: list[CreditNoteRead]
    count: int
    total_available: Decimal


class CreditNoteStatsResponse(ApiResponse):
    statistics: dict[str, Any]

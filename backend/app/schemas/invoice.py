"""
Schemas Pydantic per la Fatturazione
Progetto: Gestion Commerciale (Back-office)

Contiene:
- Enum InvoiceStatus e matrice delle transizioni
- Schemas per creazione diretta, da BL, aggiornamento, pagamento
- Envelope di risposta
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

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
# Enum
# -------------------------------------------------------------------

class InvoiceStatus(str, Enum):
    """
    Stato della fattura.

    brouillon / partiellement_payée / payée sono derivati dai pagamenti,
    annulée è impostato dall'annullamento.
    """
    DRAFT = "brouillon"
    PARTIALLY_PAID = "partiellement_payée"
    PAID = "payée"
    CANCELLED = "annulée"


# La validazione avviene nel service layer (invoice_service.py).
VALID_TRANSITIONS: dict[InvoiceStatus, list[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: [InvoiceStatus.CANCELLED],
    InvoiceStatus.PARTIALLY_PAID: [InvoiceStatus.CANCELLED],
    InvoiceStatus.PAID: [InvoiceStatus.CANCELLED],
    # Ripristino: le fatture dirette riscaricano il magazzino
    InvoiceStatus.CANCELLED: [InvoiceStatus.DRAFT],
}


# -------------------------------------------------------------------
# Schemas Invoice
# -------------------------------------------------------------------

class InvoiceCreate(BaseModel):
    """
    Fattura diretta (senza BL): scarica il magazzino.

    Se vat_rate è omesso si usa l'aliquota di default configurata.
    """
    client_id: uuid.UUID = Field(..., description="UUID del cliente")
    lines: list[DocumentLineCreate] = Field(..., min_length=1)
    invoice_date: datetime.date = Field(default_factory=datetime.date.today)
    due_date: Optional[datetime.date] = None
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Aliquota TVA in percentuale")
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)
    advancements: list[AdvancementCreate] = Field(default_factory=list)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_dates(self) -> "InvoiceCreate":
        """Valida che la scadenza non preceda la data fattura."""
        if self.due_date is not None and self.due_date < self.invoice_date:
            raise ValueError("La date d'échéance ne peut pas précéder la date de facture")
        return self


class InvoiceFromDeliveryNote(BaseModel):
    """Fattura generata da un BL: nessun movimento di magazzino."""
    delivery_note_id: uuid.UUID = Field(..., description="UUID del BL")
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Default 20%")
    invoice_date: datetime.date = Field(default_factory=datetime.date.today)
    due_date: Optional[datetime.date] = None
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    """
    Aggiornamento fattura (vietato se payée o annulée).

    Le righe si possono sostituire solo sulle fatture dirette.
    """
    client_id: Optional[uuid.UUID] = None
    lines: Optional[list[DocumentLineCreate]] = Field(None, min_length=1)
    invoice_date: Optional[datetime.date] = None
    due_date: Optional[datetime.date] = None
    discount: Optional[Decimal] = Field(None, ge=0)
    vat_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    payment_method: Optional[PaymentMethod] = None
    advancements: Optional[list[AdvancementCreate]] = None
    notes: Optional[str] = None


class InvoicePayment(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod
    payment_date: datetime.date = Field(default_factory=datetime.date.today)
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def reject_credit_note_method(self) -> "InvoicePayment":
        if self.payment_method == PaymentMethod.CREDIT_NOTE:
            raise ValueError("La modalità 'avoir' non può essere usata per un pagamento")
        return self


class InvoiceCancel(BaseModel):
    reason: Optional[str] = Field(None, description="Motivo dell'annullamento")


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus


class InvoiceRead(PaymentTotalsMixin):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    number: str
    client_id: uuid.UUID
    client: Optional[ClientSummary] = None
    delivery_note_id: Optional[uuid.UUID] = None
    quote_id: Optional[uuid.UUID] = None
    issue_date: datetime.date
    invoice_date: datetime.date
    due_date: Optional[datetime.date] = None
    status: InvoiceStatus
    discount: Decimal
    total_ht: Decimal
    vat_rate: Decimal
    vat_amount: Decimal
    total_ttc: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    payment_method: str
    notes: Optional[str] = None
    lines: list[DocumentLineRead] = Field(default_factory=list)
    advancements: list[AdvancementRead] = Field(default_factory=list)
    created_at: datetime.datetime
    updated_at: datetime.datetime


# -------------------------------------------------------------------
# Envelope
# -------------------------------------------------------------------

class InvoiceResponse(ApiResponse):
    invoice: InvoiceRead


class InvoiceListResponse(ApiResponse):
    invoices: list[InvoiceRead]
    count: int


class InvoiceStatsResponse(ApiResponse):
    statistics: dict[str, Any]

"""
Schemas Pydantic condivisi tra i documenti commerciali
Progetto: Gestion Commerciale (Back-office)

Contiene:
- PaymentMethod: modalità di pagamento
- Schemi per le righe documento (creazione e lettura)
- Schemi per gli acconti (Advancement)
- Envelope base delle risposte API
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class PaymentMethod(str, Enum):
    """Modalità di pagamento supportate."""
    CASH = "espèces"
    CARD = "carte_bancaire"
    CHECK = "chèque"
    BANK_TRANSFER = "virement"
    CREDIT = "crédit"
    OTHER = "autre"
    # Rimborso registrato all'annullamento di una fattura pagata
    CREDIT_NOTE = "avoir"


# -------------------------------------------------------------------
# Envelope
# -------------------------------------------------------------------

class ApiResponse(BaseModel):
    """Envelope base: ogni risposta riporta success e un messaggio opzionale."""
    success: bool = True
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Envelope di errore restituito dagli exception handler."""
    success: bool = False
    message: str
    error: Optional[str] = None


# -------------------------------------------------------------------
# Righe documento
# -------------------------------------------------------------------

class ProductSummary(BaseModel):
    """Dati essenziali del prodotto riportati sulle righe."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    reference: str
    designation: str


class DocumentLineCreate(BaseModel):
    """
    Riga in ingresso per qualsiasi documento.

    Se unit_price è omesso il service usa il prezzo del prodotto
    (vendita per i documenti cliente, acquisto per i bons d'achat).
    """
    product_id: uuid.UUID = Field(..., description="UUID del prodotto")
    quantity: int = Field(..., gt=0, description="Quantità")
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Prezzo unitario")
    line_discount: Decimal = Field(default=Decimal("0"), ge=0, description="Sconto di riga")


class DocumentLineRead(BaseModel):
    """Riga documento in lettura."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    quantity: int
    unit_price: Decimal
    line_discount: Decimal
    line_total: Decimal
    product: Optional[ProductSummary] = None


# -------------------------------------------------------------------
# Acconti
# -------------------------------------------------------------------

class AdvancementCreate(BaseModel):
    """
    Acconto in ingresso.

    Nella riconciliazione (update di BL o fattura) un acconto con id
    aggiorna la riga esistente, senza id ne crea una nuova.
    """
    id: Optional[uuid.UUID] = Field(None, description="UUID acconto esistente")
    amount: Decimal = Field(..., gt=0, description="Importo")
    payment_method: PaymentMethod = Field(..., description="Modalità di pagamento")
    payment_date: datetime.date = Field(default_factory=datetime.date.today)
    reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    @field_validator("payment_method")
    @classmethod
    def reject_credit_note_method(cls, v: PaymentMethod) -> PaymentMethod:
        """Il metodo 'avoir' è riservato ai rimborsi generati dal sistema."""
        if v == PaymentMethod.CREDIT_NOTE:
            raise ValueError("La modalità 'avoir' non può essere usata per un acconto")
        return v


class AdvancementRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    amount: Decimal
    payment_method: str
    payment_date: datetime.date
    reference: Optional[str] = None
    notes: Optional[str] = None
    invoice_id: Optional[uuid.UUID] = None
    delivery_note_id: Optional[uuid.UUID] = None
    created_at: datetime.datetime


def sum_paid(advancements: list) -> Decimal:
    """Somma degli acconti che contano come incasso (esclusi i rimborsi 'avoir')."""
    return sum(
        (Decimal(str(a.amount)) for a in advancements if a.payment_method != PaymentMethod.CREDIT_NOTE.value),
        Decimal("0"),
    )


class PaymentTotalsMixin(BaseModel):
    """
    Campi derivati sui pagamenti, calcolati in lettura.

    Richiede i campi total_ttc e advancements sullo schema che lo eredita.
    """

    @computed_field
    @property
    def total_paid(self) -> Decimal:
        return sum_paid(self.advancements)

    @computed_field
    @property
    def remaining(self) -> Decimal:
        """Residuo da incassare, mai negativo."""
        return max(self.total_ttc - self.total_paid, Decimal("0"))

    @computed_field
    @property
    def is_fully_paid(self) -> bool:
        return self.total_ttc > 0 and self.remaining == 0


# -------------------------------------------------------------------
# Filtri di lista
# -------------------------------------------------------------------

class DocumentFilters(BaseModel):
    """Filtri comuni alle liste documento (query string)."""
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    status: Optional[str] = None
    search: Optional[str] = None
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=100, ge=1, le=1000)

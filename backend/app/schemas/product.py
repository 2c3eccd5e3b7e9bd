"""
Schemas Pydantic per Prodotti e Magazzino
Progetto: Gestion Commerciale (Back-office)

Contiene tutti gli schemi per la validazione e serializzazione
dei dati relativi a prodotti, rettifiche e movimenti di magazzino.
"""

import datetime
import logging
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from app.schemas.common import ApiResponse
from app.schemas.supplier import SupplierSummary

logger = logging.getLogger(__name__)


class StockOperation(str, Enum):
    """Operazioni di rettifica manuale della giacenza."""
    SET = "set"
    ADD = "add"
    SUBTRACT = "subtract"


class StockDocumentType(str, Enum):
    """Tipi di documento che generano movimenti nel ledger."""
    DELIVERY_NOTE = "delivery_note"
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"
    PURCHASE_ORDER = "purchase_order"
    MANUAL = "manual"


def _normalize_reference(v: Any) -> Any:
    """Normalizza il riferimento: strip e uppercase (unicità case-insensitive)."""
    if isinstance(v, str):
        v = v.strip().upper()
    return v


# ------------------------------------------------------------
# Schemas Product
# ------------------------------------------------------------

class ProductBase(BaseModel):
    """
    Schema base per i prodotti.

    Include tutti i campi modificabili comuni a create e update.
    """
    reference: str = Field(..., min_length=1, max_length=100, description="Riferimento univoco")
    designation: str = Field(..., min_length=1, description="Designazione")
    observation: Optional[str] = Field(None, description="Osservazioni")
    purchase_price: Decimal = Field(default=Decimal("0"), ge=0, description="Prezzo di acquisto")
    sale_price: Decimal = Field(default=Decimal("0"), ge=0, description="Prezzo di vendita")
    supplier_id: Optional[uuid.UUID] = Field(None, description="UUID del fornitore")

    @field_validator("reference", mode="before")
    @classmethod
    def normalize_reference(cls, v: Any) -> Any:
        return _normalize_reference(v)

    @model_validator(mode="after")
    def validate_prices(self):
        """Segnala (senza bloccare) un prezzo di vendita non superiore all'acquisto."""
        if self.purchase_price and self.sale_price is not None:
            if self.sale_price <= self.purchase_price:
                logger.warning(
                    "Prezzo di vendita non superiore al prezzo di acquisto per il prodotto %s: "
                    "acquisto=%s, vendita=%s",
                    self.reference,
                    self.purchase_price,
                    self.sale_price,
                )
        return self


class ProductCreate(ProductBase):
    """
    Schema per la creazione di un prodotto.

    La giacenza iniziale viene registrata come movimento manuale nel ledger.
    """
    quantity: int = Field(default=0, ge=0, description="Giacenza iniziale")


class ProductUpdate(BaseModel):
    """
    Schema per l'aggiornamento di un prodotto.

    La giacenza non si modifica qui: usare PATCH /produits/{id}/stock.
    """
    reference: Optional[str] = Field(None, min_length=1, max_length=100)
    designation: Optional[str] = Field(None, min_length=1)
    observation: Optional[str] = None
    purchase_price: Optional[Decimal] = Field(None, ge=0)
    sale_price: Optional[Decimal] = Field(None, ge=0)
    supplier_id: Optional[uuid.UUID] = None

    @field_validator("reference", mode="before")
    @classmethod
    def normalize_reference(cls, v: Any) -> Any:
        return _normalize_reference(v)


class ProductRead(ProductBase):
    """
    Schema per la lettura di un prodotto.

    Include tutti i campi del database e i computed fields.
    """
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    quantity: int = Field(..., description="Giacenza attuale")
    created_at: datetime.datetime
    updated_at: datetime.datetime
    supplier: Optional[SupplierSummary] = None

    @computed_field
    @property
    def margin(self) -> Decimal:
        """Margine unitario (vendita - acquisto)."""
        return self.sale_price - self.purchase_price

    @computed_field
    @property
    def stock_value(self) -> Decimal:
        """Valore della giacenza al prezzo di acquisto."""
        return self.purchase_price * self.quantity


# ------------------------------------------------------------
# Schemas Stock
# ------------------------------------------------------------

class StockUpdate(BaseModel):
    """Rettifica manuale della giacenza."""
    quantity: int = Field(..., ge=0, description="Quantità della rettifica")
    operation: StockOperation = Field(default=StockOperation.SET, description="set, add o subtract")
    notes: Optional[str] = Field(None, description="Motivo della rettifica")


class StockMovementRead(BaseModel):
    """Movimento del ledger di magazzino."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    document_type: StockDocumentType
    document_id: Optional[uuid.UUID] = None
    document_number: Optional[str] = None
    delta: int
    quantity_before: int
    quantity_after: int
    reason: str
    notes: Optional[str] = None
    created_at: datetime.datetime


# ------------------------------------------------------------
# Envelope
# ------------------------------------------------------------

class ProductResponse(ApiResponse):
    product: ProductRead


class ProductListResponse(ApiResponse):
    products: list[ProductRead]
    count: int


class StockUpdateResponse(ApiResponse):
    product: ProductRead
    movement: Optional[StockMovementRead] = None


class StockMovementListResponse(ApiResponse):
    movements: list[StockMovementRead]
    count: int


class ProductStatsResponse(ApiResponse):
    statistics: dict[str, Any]

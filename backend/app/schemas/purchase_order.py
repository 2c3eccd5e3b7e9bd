"""
Schemas Pydantic per i Bons d'Achat
Progetto: Gestion Commerciale (Back-office)
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from app.schemas.common import ApiResponse, DocumentLineCreate, DocumentLineRead, PaymentMethod
from app.schemas.supplier import SupplierSummary


class PurchaseOrderStatus(str, Enum):
    DRAFT = "brouillon"
    ORDERED = "commandé"
    PARTIALLY_RECEIVED = "partiellement_reçu"
    RECEIVED = "reçu"
    PARTIALLY_PAID = "partiellement_payé"
    PAID = "payé"
    CANCELLED = "annulé"


# Stati raggiunti solo tramite registrazione delle ricezioni
RECEIPT_STATUSES = {PurchaseOrderStatus.PARTIALLY_RECEIVED, PurchaseOrderStatus.RECEIVED}

# La validazione avviene nel service layer (purchase_order_service.py).
VALID_TRANSITIONS: dict[PurchaseOrderStatus, list[PurchaseOrderStatus]] = {
    PurchaseOrderStatus.DRAFT: [PurchaseOrderStatus.ORDERED, PurchaseOrderStatus.CANCELLED],
    PurchaseOrderStatus.ORDERED: [PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.CANCELLED],
    PurchaseOrderStatus.PARTIALLY_RECEIVED: [
        PurchaseOrderStatus.PARTIALLY_PAID,
        PurchaseOrderStatus.PAID,
        PurchaseOrderStatus.CANCELLED,
    ],
    PurchaseOrderStatus.RECEIVED: [
        PurchaseOrderStatus.PARTIALLY_PAID,
        PurchaseOrderStatus.PAID,
        PurchaseOrderStatus.CANCELLED,
    ],
    PurchaseOrderStatus.PARTIALLY_PAID: [PurchaseOrderStatus.PAID],
    PurchaseOrderStatus.PAID: [],  # Stato finale
    PurchaseOrderStatus.CANCELLED: [],  # Stato finale
}


class PurchaseOrderLineRead(DocumentLineRead):
    received_quantity: int

    @computed_field
    @property
    def pending_quantity(self) -> int:
        return self.quantity - self.received_quantity


class PurchaseOrderCreate(BaseModel):
    """
    Creazione bon d'achat.

    Il prezzo unitario omesso vale il prezzo di acquisto del prodotto.
    """
    supplier_id: uuid.UUID = Field(..., description="UUID del fornitore")
    lines: list[DocumentLineCreate] = Field(..., min_length=1)
    issue_date: datetime.date = Field(default_factory=datetime.date.today)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)
    purchase_type: Optional[str] = Field(None, max_length=50)
    supplier_invoice_ref: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class PurchaseOrderUpdate(BaseModel):
    """Le righe si sostituiscono solo finché nulla è stato ricevuto."""
    supplier_id: Optional[uuid.UUID] = None
    lines: Optional[list[DocumentLineCreate]] = Field(None, min_length=1)
    issue_date: Optional[datetime.date] = None
    discount: Optional[Decimal] = Field(None, ge=0)
    payment_method: Optional[PaymentMethod] = None
    purchase_type: Optional[str] = Field(None, max_length=50)
    supplier_invoice_ref: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    status: Optional[PurchaseOrderStatus] = None


class ReceiptLine(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(..., gt=0, description="Quantità ricevuta in questa consegna")


class PurchaseOrderReceipt(BaseModel):
    lines: list[ReceiptLine] = Field(..., min_length=1)
    received_on: datetime.date = Field(default_factory=datetime.date.today)
    supplier_invoice_ref: Optional[str] = Field(None, max_length=100)


class PurchaseOrderPayment(BaseModel):
    paid_on: datetime.date = Field(default_factory=datetime.date.today)
    payment_method: Optional[PaymentMethod] = None


class PurchaseOrderStatusUpdate(BaseModel):
    status: PurchaseOrderStatus


class PurchaseOrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    number: str
    supplier_id: uuid.UUID
    supplier: Optional[SupplierSummary] = None
    issue_date: datetime.date
    status: PurchaseOrderStatus
    discount: Decimal
    total_ht: Decimal
    total_ttc: Decimal
    payment_method: str
    purchase_type: Optional[str] = None
    supplier_invoice_ref: Optional[str] = None
    received_on: Optional[datetime.date] = None
    paid_on: Optional[datetime.date] = None
    notes: Optional[str] = None
    lines: list[PurchaseOrderLineRead] = Field(default_factory=list)
    created_at: datetime.datetime
    updated_at: datetime.datetime


class PurchaseOrderResponse(ApiResponse):
    purchase_order: PurchaseOrderRead


class PurchaseOrderListResponse(ApiResponse):
    purchase_orders: list[PurchaseOrderRead]
    count: int


class PurchaseOrderStatsResponse(ApiResponse):
    statistics: dict[str, Any]

"""
Schemas Pydantic per il progetto Gestion Commerciale

Questo modulo contiene gli schemi Pydantic utilizzati per la validazione
delle richieste e la serializzazione delle risposte API.
"""

# Import degli schemi per renderli disponibili tramite import diretto
# es: from app.schemas import ClientRead, InvoiceCreate, etc.

from app.schemas.common import (
    AdvancementCreate,
    AdvancementRead,
    ApiResponse,
    DocumentLineCreate,
    DocumentLineRead,
    ErrorResponse,
    PaymentMethod,
)
from app.schemas.client import ClientCreate, ClientRead, ClientSummary, ClientUpdate
from app.schemas.supplier import SupplierCreate, SupplierRead, SupplierSummary, SupplierUpdate
from app.schemas.product import (
    ProductCreate,
    ProductRead,
    ProductUpdate,
    StockDocumentType,
    StockMovementRead,
    StockOperation,
    StockUpdate,
)
from app.schemas.quote import QuoteConversion, QuoteCreate, QuoteRead, QuoteStatus, QuoteUpdate
from app.schemas.delivery_note import (
    DeliveryNoteCreate,
    DeliveryNoteRead,
    DeliveryNoteStatus,
    DeliveryNoteUpdate,
)
from app.schemas.invoice import (
    InvoiceCreate,
    InvoiceFromDeliveryNote,
    InvoicePayment,
    InvoiceRead,
    InvoiceStatus,
    InvoiceUpdate,
)
from app.schemas.credit_note import (
    CreditNoteCreate,
    CreditNoteReason,
    CreditNoteRead,
    CreditNoteStatus,
    CreditNoteUpdate,
)
from app.schemas.purchase_order import (
    PurchaseOrderCreate,
    PurchaseOrderRead,
    PurchaseOrderReceipt,
    PurchaseOrderStatus,
    PurchaseOrderUpdate,
)
from app.schemas.report import ReportGranularity, ReportResponse
from app.schemas.token import LoginRequest, TokenPayload, TokenRefresh, TokenResponse

__all__ = [
    # Comuni
    "AdvancementCreate",
    "AdvancementRead",
    "ApiResponse",
    "DocumentLineCreate",
    "DocumentLineRead",
    "ErrorResponse",
    "PaymentMethod",
    # Anagrafiche
    "ClientCreate",
    "ClientRead",
    "ClientSummary",
    "ClientUpdate",
    "SupplierCreate",
    "SupplierRead",
    "SupplierSummary",
    "SupplierUpdate",
    # Catalogo
    "ProductCreate",
    "ProductRead",
    "ProductUpdate",
    "StockDocumentType",
    "StockMovementRead",
    "StockOperation",
    "StockUpdate",
    # Documenti
    "QuoteConversion",
    "QuoteCreate",
    "QuoteRead",
    "QuoteStatus",
    "QuoteUpdate",
    "DeliveryNoteCreate",
    "DeliveryNoteRead",
    "DeliveryNoteStatus",
    "DeliveryNoteUpdate",
    "InvoiceCreate",
    "InvoiceFromDeliveryNote",
    "InvoicePayment",
    "InvoiceRead",
    "InvoiceStatus",
    "InvoiceUpdate",
    "CreditNoteCreate",
    "CreditNoteReason",
    "CreditNoteRead",
    "CreditNoteStatus",
    "CreditNoteUpdate",
    "PurchaseOrderCreate",
    "PurchaseOrderRead",
    "PurchaseOrderReceipt",
    "PurchaseOrderStatus",
    "PurchaseOrderUpdate",
    # Report
    "ReportGranularity",
    "ReportResponse",
    # Auth
    "LoginRequest",
    "TokenPayload",
    "TokenRefresh",
    "TokenResponse",
]

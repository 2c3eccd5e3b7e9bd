"""
Modelli Database SQLAlchemy
Progetto: Gestion Commerciale (Back-office)

Import centralizzato di tutti i modelli per create_all e usage generico.

Modelli:
- Client, Supplier: Anagrafiche
- Product, StockMovement: Catalogo e ledger di magazzino
- Quote, QuoteLine: Preventivi
- DeliveryNote, DeliveryNoteLine: Bons de livraison
- Invoice, InvoiceLine, Advancement: Fatture e acconti
- CreditNote, CreditNoteLine: Bons d'avoir
- PurchaseOrder, PurchaseOrderLine: Bons d'achat
"""

# SQLAlchemy 2.0 Base declarativa
# Importato qui per essere disponibile per tutti i modelli
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


from app.models.client import Client
from app.models.supplier import Supplier
from app.models.product import Product, StockMovement
from app.models.quote import Quote, QuoteLine
from app.models.delivery_note import DeliveryNote, DeliveryNoteLine
from app.models.invoice import Advancement, Invoice, InvoiceLine
from app.models.credit_note import CreditNote, CreditNoteLine
from app.models.purchase_order import PurchaseOrder, PurchaseOrderLine

__all__ = [
    "Base",
    "Client",
    "Supplier",
    "Product",
    "StockMovement",
    "Quote",
    "QuoteLine",
    "DeliveryNote",
    "DeliveryNoteLine",
    "Invoice",
    "InvoiceLine",
    "Advancement",
    "CreditNote",
    "CreditNoteLine",
    "PurchaseOrder",
    "PurchaseOrderLine",
]

"""
Modelli SQLAlchemy per Prodotti e Magazzino
Progetto: Gestion Commerciale (Back-office)

Contiene:
- Product: Anagrafica prodotti con giacenza materializzata
- StockMovement: Registro (ledger) dei movimenti di magazzino
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.supplier import Supplier


class Product(Base, UUIDMixin, TimestampMixin):
    """
    Modello per l'anagrafica prodotti.

    Attributes:
        id: UUID primary key, generato automaticamente
        reference: Codice prodotto univoco
        designation: Descrizione commerciale
        observation: Note interne
        quantity: Giacenza attuale (somma dei movimenti del ledger)
        purchase_price: Prezzo di acquisto
        sale_price: Prezzo di vendita
        supplier_id: Fornitore abituale (opzionale)

    Relationships:
        supplier: Fornitore associato
        stock_movements: Storico movimenti di magazzino
    """

    __tablename__ = "products"

    # ------------------------------------------------------------
    # Colonne
    # ------------------------------------------------------------
    reference: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
        doc="Codice prodotto univoco",
    )

    designation: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Designazione del prodotto",
    )

    observation: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="Osservazioni",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Giacenza attuale",
    )

    purchase_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Prezzo di acquisto",
    )

    sale_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Prezzo di vendita",
    )

    supplier_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("suppliers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        doc="UUID del fornitore",
    )

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    supplier: Mapped[Optional["Supplier"]] = relationship(
        "Supplier",
        lazy="selectin",
        doc="Fornitore del prodotto",
    )

    stock_movements: Mapped[List["StockMovement"]] = relationship(
        "StockMovement",
        back_populates="product",
        lazy="noload",
        doc="Storico movimenti di magazzino",
    )

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_products_quantity_positive"),
    )

    @property
    def margin(self) -> Decimal:
        """Margine unitario (vendita - acquisto)."""
        return (self.sale_price or Decimal("0")) - (self.purchase_price or Decimal("0"))

    def __repr__(self) -> str:
        return f"Product(reference={self.reference!r}, quantity={self.quantity})"


class StockMovement(Base, UUIDMixin, TimestampMixin):
    """
    Riga del ledger di magazzino.

    Ogni variazione di giacenza produce un movimento con delta firmato,
    collegato al documento che l'ha generata. La somma dei delta di un
    documento è il suo effetto netto sulle scorte: annullamento ed
    eliminazione stornano quel netto.

    Attributes:
        product_id: UUID del prodotto
        document_type: delivery_note, invoice, credit_note, purchase_order, manual
        document_id: UUID del documento sorgente (None per rettifiche manuali)
        document_number: Numero leggibile del documento
        delta: Variazione firmata della giacenza
        quantity_before: Giacenza prima del movimento
        quantity_after: Giacenza dopo il movimento
        reason: Causale (create, cancel, restore, delete, update, receipt, adjustment...)
    """

    __tablename__ = "stock_movements"

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="UUID del prodotto",
    )

    document_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        doc="Tipo documento sorgente",
    )

    document_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        nullable=True,
        doc="UUID documento sorgente",
    )

    document_number: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
        doc="Numero documento sorgente",
    )

    delta: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Variazione firmata",
    )

    quantity_before: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Giacenza prima del movimento",
    )

    quantity_after: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Giacenza dopo il movimento",
    )

    reason: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        doc="Causale del movimento",
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="Note aggiuntive",
    )

    product: Mapped["Product"] = relationship(
        "Product",
        back_populates="stock_movements",
        lazy="noload",
        doc="Prodotto movimentato",
    )

    __table_args__ = (
        CheckConstraint(
            "document_type IN ('delivery_note', 'invoice', 'credit_note', 'purchase_order', 'manual')",
            name="ck_stock_movements_document_type",
        ),
        Index("ix_stock_movements_document", "document_type", "document_id"),
    )

    def __repr__(self) -> str:
        return (
            f"StockMovement(product_id={self.product_id}, document={self.document_number}, "
            f"delta={self.delta})"
        )

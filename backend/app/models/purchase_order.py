"""
Modelli SQLAlchemy per i Bons d'Achat (ordini fornitore)
Progetto: Gestion Commerciale (Back-office)

L'ordine non tocca il magazzino alla creazione: le scorte
aumentano solo alla registrazione delle ricezioni.
"""

from __future__ import annotations

import datetime
import uuid
from typing import TYPE_CHECKING, List

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import CommercialDocumentMixin, DocumentLineMixin, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.supplier import Supplier


class PurchaseOrder(Base, UUIDMixin, TimestampMixin, CommercialDocumentMixin):
    """
    Bon d'achat verso un fornitore.

    Attributes:
        supplier_id: Fornitore
        payment_method: Modalità di pagamento
        purchase_type: Tipo di acquisto (libero, es. "local", "import")
        supplier_invoice_ref: Riferimento fattura del fornitore
        received_on: Data dell'ultima ricezione
        paid_on: Data di pagamento
    """

    __tablename__ = "purchase_orders"

    supplier_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("suppliers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    payment_method: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="espèces",
    )

    purchase_type: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    supplier_invoice_ref: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        doc="Numero fattura fornitore",
    )

    received_on: Mapped[datetime.date | None] = mapped_column(
        Date,
        nullable=True,
    )

    paid_on: Mapped[datetime.date | None] = mapped_column(
        Date,
        nullable=True,
    )

    supplier: Mapped["Supplier"] = relationship("Supplier", lazy="selectin")

    lines: Mapped[List["PurchaseOrderLine"]] = relationship(
        "PurchaseOrderLine",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_fully_received(self) -> bool:
        return bool(self.lines) and all(
            line.received_quantity >= line.quantity for line in self.lines
        )

    def __repr__(self) -> str:
        return f"PurchaseOrder(number={self.number!r}, status={self.status!r})"


class PurchaseOrderLine(Base, UUIDMixin, TimestampMixin, DocumentLineMixin):
    """Riga di bon d'achat, con quantità già ricevuta."""

    __tablename__ = "purchase_order_lines"

    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    received_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Quantità ricevuta",
    )

    purchase_order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder", back_populates="lines")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_purchase_order_lines_quantity"),
        CheckConstraint(
            "received_quantity >= 0 AND received_quantity <= quantity",
            name="ck_purchase_order_lines_received",
        ),
    )

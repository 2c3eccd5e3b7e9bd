"""
Modelli SQLAlchemy per Fatture e Acconti
Progetto: Gestion Commerciale (Back-office)

Contiene:
- Invoice: Fattura (diretta, da BL o da preventivo)
- InvoiceLine: Righe fattura
- Advancement: Acconti/pagamenti su fattura o su BL
"""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, List

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import CommercialDocumentMixin, DocumentLineMixin, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.client import Client


class Invoice(Base, UUIDMixin, TimestampMixin, CommercialDocumentMixin):
    """
    Modello per le fatture.

    Gli importi amount_paid/amount_due sono denormalizzati e
    ricalcolati da ogni scrittura che tocca gli acconti.

    Attributes:
        client_id: Cliente intestatario
        delivery_note_id: BL di origine (None per fattura diretta)
        quote_id: Preventivo di origine
        vat_rate: Aliquota TVA in percentuale
        vat_amount: Importo TVA = HT * vat_rate / 100
        amount_paid: Totale incassato
        amount_due: max(0, TTC - amount_paid)
        invoice_date: Data di fatturazione
        due_date: Data di scadenza

    Properties:
        is_standalone: True se la fattura ha scaricato direttamente il magazzino
    """

    __tablename__ = "invoices"

    # ------------------------------------------------------------
    # Colonne Relazioni
    # ------------------------------------------------------------
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    delivery_note_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("delivery_notes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    quote_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("quotes.id", ondelete="SET NULL"),
        nullable=True,
    )

    # ------------------------------------------------------------
    # Colonne Importi
    # ------------------------------------------------------------
    vat_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
    )

    vat_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )

    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )

    amount_due: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )

    # ------------------------------------------------------------
    # Colonne Date e Pagamento
    # ------------------------------------------------------------
    invoice_date: Mapped[datetime.date] = mapped_column(
        Date,
        nullable=False,
        default=datetime.date.today,
    )

    due_date: Mapped[datetime.date | None] = mapped_column(
        Date,
        nullable=True,
    )

    payment_method: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="espèces",
    )

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    client: Mapped["Client"] = relationship("Client", lazy="selectin")

    lines: Mapped[List["InvoiceLine"]] = relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Gli acconti trasferiti da un BL restano anche sul BL:
    # la cancellazione è gestita esplicitamente dal service.
    advancements: Mapped[List["Advancement"]] = relationship(
        "Advancement",
        foreign_keys="[Advancement.invoice_id]",
        cascade="save-update, merge",
        lazy="selectin",
        order_by="Advancement.payment_date",
    )

    __table_args__ = (
        Index("ix_invoices_invoice_date", "invoice_date"),
        CheckConstraint("amount_due >= 0", name="ck_invoices_amount_due"),
    )

    @property
    def is_standalone(self) -> bool:
        """True se la fattura non deriva da un BL."""
        return self.delivery_note_id is None

    def __repr__(self) -> str:
        return f"Invoice(number={self.number!r}, status={self.status!r})"


class InvoiceLine(Base, UUIDMixin, TimestampMixin, DocumentLineMixin):
    """Riga di fattura (importi HT, la TVA è calcolata sul totale)."""

    __tablename__ = "invoice_lines"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="lines")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_lines_quantity"),
    )


class Advancement(Base, UUIDMixin, TimestampMixin):
    """
    Acconto (pagamento parziale) su fattura o BL.

    Gli acconti con payment_method "avoir" registrano il rimborso
    generato dall'annullamento di una fattura e non contano nel pagato.
    """

    __tablename__ = "advancements"

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    payment_date: Mapped[datetime.date] = mapped_column(
        Date,
        nullable=False,
        default=datetime.date.today,
        index=True,
    )

    payment_method: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
    )

    reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    invoice_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    delivery_note_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("delivery_notes.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_advancements_amount"),
    )

    def __repr__(self) -> str:
        return f"Advancement(amount={self.amount}, method={self.payment_method!r})"

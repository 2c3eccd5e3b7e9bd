"""
Modelli SQLAlchemy per i Preventivi (Devis)
Progetto: Gestion Commerciale (Back-office)
"""

from __future__ import annotations

import datetime
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, List

from sqlalchemy import CheckConstraint, Date, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import CommercialDocumentMixin, DocumentLineMixin, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.client import Client


class Quote(Base, UUIDMixin, TimestampMixin, CommercialDocumentMixin):
    """
    Preventivo al cliente. Nessun effetto sulle scorte, TTC = HT.

    Conversioni: un preventivo può generare un BL o una fattura,
    i riferimenti al documento prodotto sono salvati qui.
    """

    __tablename__ = "quotes"

    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    payment_method: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="espèces",
    )

    vat_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2),
        nullable=True,
        doc="Aliquota TVA da applicare in caso di conversione in fattura",
    )

    accepted_on: Mapped[datetime.date | None] = mapped_column(
        Date,
        nullable=True,
        doc="Data di accettazione",
    )

    delivery_note_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("delivery_notes.id", ondelete="SET NULL", use_alter=True, name="fk_quotes_delivery_note_id"),
        nullable=True,
        doc="BL generato dal preventivo",
    )

    invoice_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="SET NULL", use_alter=True, name="fk_quotes_invoice_id"),
        nullable=True,
        doc="Fattura generata dal preventivo",
    )

    client: Mapped["Client"] = relationship("Client", lazy="selectin")

    lines: Mapped[List["QuoteLine"]] = relationship(
        "QuoteLine",
        back_populates="quote",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"Quote(number={self.number!r}, status={self.status!r})"


class QuoteLine(Base, UUIDMixin, TimestampMixin, DocumentLineMixin):
    """Riga di preventivo."""

    __tablename__ = "quote_lines"

    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quotes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    quote: Mapped["Quote"] = relationship("Quote", back_populates="lines")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_quote_lines_quantity"),
    )

"""
Modelli SQLAlchemy per i Bons de Livraison (BL)
Progetto: Gestion Commerciale (Back-office)

Il BL scarica il magazzino alla creazione; la fattura generata
da un BL non scarica una seconda volta.
"""

from __future__ import annotations

import datetime
import uuid
from typing import TYPE_CHECKING, List

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import CommercialDocumentMixin, DocumentLineMixin, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.client import Client
    from app.models.invoice import Advancement


class DeliveryNote(Base, UUIDMixin, TimestampMixin, CommercialDocumentMixin):
    """
    Bon de livraison.

    Attributes:
        client_id: Cliente destinatario
        quote_id: Preventivo di origine (opzionale)
        payment_method: Modalità di pagamento prevista
        delivery_date: Data di consegna (valorizzata al passaggio a "livré")
        is_invoiced: True se esiste una fattura generata dal BL

    Relationships:
        lines: Righe prodotto
        advancements: Acconti incassati sul BL
    """

    __tablename__ = "delivery_notes"

    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    quote_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("quotes.id", ondelete="SET NULL"),
        nullable=True,
    )

    payment_method: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="espèces",
    )

    delivery_date: Mapped[datetime.date | None] = mapped_column(
        Date,
        nullable=True,
    )

    is_invoiced: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Già fatturato",
    )

    client: Mapped["Client"] = relationship("Client", lazy="selectin")

    lines: Mapped[List["DeliveryNoteLine"]] = relationship(
        "DeliveryNoteLine",
        back_populates="delivery_note",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    advancements: Mapped[List["Advancement"]] = relationship(
        "Advancement",
        foreign_keys="[Advancement.delivery_note_id]",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Advancement.payment_date",
    )

    __table_args__ = (
        Index("ix_delivery_notes_client_date", "client_id", "issue_date"),
    )

    def __repr__(self) -> str:
        return f"DeliveryNote(number={self.number!r}, status={self.status!r})"


class DeliveryNoteLine(Base, UUIDMixin, TimestampMixin, DocumentLineMixin):
    """Riga di BL."""

    __tablename__ = "delivery_note_lines"

    delivery_note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("delivery_notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    delivery_note: Mapped["DeliveryNote"] = relationship("DeliveryNote", back_populates="lines")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_delivery_note_lines_quantity"),
    )

"""
Modelli SQLAlchemy per i Bons d'Avoir (note di credito)
Progetto: Gestion Commerciale (Back-office)

Contiene:
- CreditNote: Bon d'avoir emesso a un cliente
- CreditNoteLine: Righe prodotto restituite/accreditate
"""

from __future__ import annotations

import datetime
import uuid
from typing import TYPE_CHECKING, List

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models import Base
from app.models.mixins import CommercialDocumentMixin, DocumentLineMixin, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.client import Client


class CreditNote(Base, UUIDMixin, TimestampMixin, CommercialDocumentMixin):
    """
    Bon d'avoir.

    La creazione incrementa sempre le scorte per ogni riga,
    qualunque sia il motivo dell'avoir.

    Attributes:
        client_id: Cliente beneficiario
        delivery_note_id: BL di origine (opzionale)
        reason: retour_produit, erreur_facturation, remise_commerciale, annulation, autre
        status: brouillon, valide, utilise, annule
        used_at: Data/ora di utilizzo
        used_on_delivery_note_id: BL sul quale l'avoir è stato imputato
    """

    __tablename__ = "credit_notes"

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
        doc="BL di origine",
    )

    reason: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="retour_produit",
        doc="Motivo dell'avoir",
    )

    used_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    used_on_delivery_note_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("delivery_notes.id", ondelete="SET NULL"),
        nullable=True,
        doc="BL sul quale è stato utilizzato",
    )

    client: Mapped["Client"] = relationship("Client", lazy="selectin")

    lines: Mapped[List["CreditNoteLine"]] = relationship(
        "CreditNoteLine",
        back_populates="credit_note",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "reason IN ('retour_produit', 'erreur_facturation', 'remise_commerciale', 'annulation', 'autre')",
            name="ck_credit_notes_reason",
        ),
    )

    def __repr__(self) -> str:
        return f"CreditNote(number={self.number!r}, status={self.status!r})"


class CreditNoteLine(Base, UUIDMixin, TimestampMixin, DocumentLineMixin):
    """Riga di bon d'avoir."""

    __tablename__ = "credit_note_lines"

    credit_note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("credit_notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    credit_note: Mapped["CreditNote"] = relationship("CreditNote", back_populates="lines")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_credit_note_lines_quantity"),
    )

"""
Modello SQLAlchemy per l'entità Client
Progetto: Gestion Commerciale (Back-office)

Anagrafica dei clienti destinatari di preventivi, BL, fatture e avoir.
"""


from __future__ import annotations

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class Client(Base, UUIDMixin, TimestampMixin):
    """
    Modello per l'anagrafica clienti.

    Attributes:
        id: UUID primary key, generato automaticamente
        full_name: Nome completo o ragione sociale (obbligatorio)
        reference: Codice interno libero
        city: Città
        address: Indirizzo completo
        phone: Numero di telefono
        created_at: Data/ora creazione record
        updated_at: Data/ora ultimo aggiornamento
    """

    __tablename__ = "clients"

    # ------------------------------------------------------------
    # Colonne
    # ------------------------------------------------------------
    full_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Nome completo o ragione sociale",
    )

    reference: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
        doc="Codice interno del cliente",
    )

    city: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        doc="Città",
    )

    address: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        doc="Indirizzo",
    )

    phone: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        doc="Telefono",
    )

    # ------------------------------------------------------------
    # Indici e Vincoli
    # ------------------------------------------------------------
    __table_args__ = (
        Index("ix_clients_full_name", "full_name"),
        Index("ix_clients_phone", "phone"),
    )

    def __repr__(self) -> str:
        return f"Client(full_name={self.full_name!r})"

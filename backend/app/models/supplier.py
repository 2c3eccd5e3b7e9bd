"""
Modello SQLAlchemy per l'entità Supplier (fornisseur)
Progetto: Gestion Commerciale (Back-office)
"""


from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.models import Base
from app.models.mixins import TimestampMixin, UUIDMixin


class Supplier(Base, UUIDMixin, TimestampMixin):
    """
    Modello per l'anagrafica fornitori.

    Il telefono è obbligatorio e univoco, il riferimento è opzionale
    ma univoco quando presente.
    """

    __tablename__ = "suppliers"

    full_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        index=True,
        doc="Nome completo o ragione sociale",
    )

    phone: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        doc="Telefono (univoco)",
    )

    reference: Mapped[str | None] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
        doc="Riferimento fornitore (univoco)",
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

    def __repr__(self) -> str:
        return f"Supplier(full_name={self.full_name!r}, phone={self.phone!r})"

"""
Generazione dei numeri documento
Progetto: Gestion Commerciale (Back-office)

Formato: prefisso + progressivo a 4 cifre (BL0001, FAC0002, DEV0003...).
Il progressivo si ricava dall'ultimo documento creato con lo stesso prefisso.

Nota: la lettura dell'ultimo numero e l'inserimento del nuovo non sono
atomici. Si assume un solo scrittore alla volta; in caso di corsa il vincolo
unique sulla colonna number fa fallire la seconda transazione (409).
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings

logger = logging.getLogger(__name__)

DELIVERY_NOTE_PREFIX = "BL"
INVOICE_PREFIX = "FAC"
QUOTE_PREFIX = "DEV"
PURCHASE_ORDER_PREFIX = "BAC"
CREDIT_NOTE_PREFIX = "BAV"


def next_number(prefix: str, last_number: str | None, width: int | None = None) -> str:
    """
    Calcola il numero successivo a partire dall'ultimo emesso.

    Le ultime `width` cifre del numero precedente sono interpretate come intero;
    un suffisso non numerico vale 0.

    Args:
        prefix: Prefisso del tipo documento
        last_number: Ultimo numero emesso (None se nessun documento)
        width: Numero di cifre del progressivo

    Returns:
        Nuovo numero documento
    """
    width = width or settings.document_number_width
    sequence = 0
    if last_number:
        suffix = last_number[-width:]
        if suffix.isdigit():
            sequence = int(suffix)
        else:
            logger.warning("Suffisso non numerico nel numero %s, progressivo ripartito da 0", last_number)
    return f"{prefix}{sequence + 1:0{width}d}"


async def generate_number(db: AsyncSession, model, prefix: str) -> str:
    """
    Genera il numero per un nuovo documento del modello indicato.

    L'ultimo documento è quello creato più di recente; a parità di
    created_at decide il numero stesso.
    """
    result = await db.execute(
        select(model.number)
        .where(model.number.like(f"{prefix}%"))
        .order_by(model.created_at.desc(), model.number.desc())
        .limit(1)
    )
    last_number = result.scalar_one_or_none()
    return next_number(prefix, last_number)

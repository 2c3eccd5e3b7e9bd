"""
Service Layer per i Preventivi (Devis)
Progetto: Gestion Commerciale (Back-office)

Il preventivo non ha effetti sul magazzino. Le conversioni in BL o
fattura creano il documento di destinazione, che scarica le scorte
con la consueta verifica di disponibilità.
"""

import datetime
import logging
import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Any, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models import Client, DeliveryNote, Invoice, Quote, QuoteLine
from app.schemas.quote import (
    CONVERTED_STATUSES,
    VALID_TRANSITIONS,
    QuoteConversion,
    QuoteCreate,
    QuoteStatus,
    QuoteUpdate,
)
from app.services.delivery_note_service import delivery_note_service
from app.services.document_utils import (
    ZERO,
    apply_list_filters,
    compute_total_ht,
    copy_lines,
    price_lines,
    quantize,
    validate_transition,
)
from app.services.invoice_service import invoice_service
from app.services.numbering import QUOTE_PREFIX, generate_number
from app.services.product_service import product_service

logger = logging.getLogger(__name__)


class QuoteService:
    """Service per i preventivi e le loro conversioni."""

    async def get_all(
        self,
        db: AsyncSession,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
        status: Optional[str] = None,
        client_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[list[Quote], int]:
        query = apply_list_filters(select(Quote), Quote, start_date, end_date, status, search)
        count_query = apply_list_filters(select(func.count(Quote.id)), Quote, start_date, end_date, status, search)
        if client_id is not None:
            query = query.where(Quote.client_id == client_id)
            count_query = count_query.where(Quote.client_id == client_id)

        query = query.order_by(Quote.issue_date.desc(), Quote.number.desc())
        result = await db.execute(query.offset(skip).limit(limit))
        total = (await db.execute(count_query)).scalar() or 0
        return list(result.scalars().all()), total

    async def get_by_id(self, db: AsyncSession, quote_id: uuid.UUID) -> Quote:
        """
        Raises:
            NotFoundError: Se il preventivo non esiste
        """
        result = await db.execute(
            select(Quote).where(Quote.id == quote_id).execution_options(populate_existing=True)
        )
        quote = result.scalar_one_or_none()
        if not quote:
            logger.warning("Preventivo non trovato: %s", quote_id)
            raise NotFoundError(f"Devis {quote_id} non trouvé")
        return quote

    async def get_by_client(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[list[Quote], int]:
        await self._ensure_client(db, client_id)
        return await self.get_all(db, client_id=client_id, skip=skip, limit=limit)

    async def _ensure_client(self, db: AsyncSession, client_id: uuid.UUID) -> None:
        exists = (await db.execute(select(Client.id).where(Client.id == client_id))).scalar_one_or_none()
        if exists is None:
            raise NotFoundError(f"Client {client_id} non trouvé")

    # ------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------

    async def create(self, db: AsyncSession, data: QuoteCreate) -> Quote:
        """
        Crea un preventivo in brouillon (TTC = HT).

        Raises:
            NotFoundError: Cliente o prodotto inesistente
        """
        await self._ensure_client(db, data.client_id)
        products = await product_service.get_many(db, [line.product_id for line in data.lines])
        priced = price_lines(data.lines, products)

        total_ht = compute_total_ht(priced, data.discount)
        quote = Quote(
            number=await generate_number(db, Quote, QUOTE_PREFIX),
            client_id=data.client_id,
            issue_date=data.issue_date,
            status=QuoteStatus.DRAFT.value,
            discount=quantize(data.discount),
            total_ht=total_ht,
            total_ttc=total_ht,
            payment_method=data.payment_method.value,
            vat_rate=data.vat_rate,
            notes=data.notes,
            lines=[QuoteLine(**line.as_dict()) for line in priced],
        )
        db.add(quote)
        await db.flush()

        logger.info("Creato preventivo %s per cliente %s: totale %s", quote.number, data.client_id, total_ht)
        return await self.get_by_id(db, quote.id)

    async def update(self, db: AsyncSession, quote_id: uuid.UUID, data: QuoteUpdate) -> Quote:
        """
        Aggiorna un preventivo non ancora convertito.

        Un cambio di status passa dalla matrice delle transizioni
        (ed esegue la conversione se richiesta).

        Raises:
            BusinessValidationError: Preventivo già convertito
        """
        quote = await self.get_by_id(db, quote_id)
        update_data = data.model_dump(exclude_unset=True)

        if QuoteStatus(quote.status) in CONVERTED_STATUSES:
            raise BusinessValidationError(f"Le devis {quote.number} est déjà transformé")

        if data.client_id is not None and data.client_id != quote.client_id:
            await self._ensure_client(db, data.client_id)
            quote.client_id = data.client_id

        if data.lines is not None:
            products = await product_service.get_many(db, [line.product_id for line in data.lines])
            priced = price_lines(data.lines, products)
            quote.lines = [QuoteLine(**line.as_dict()) for line in priced]

        if data.discount is not None:
            quote.discount = quantize(data.discount)
        if data.lines is not None or data.discount is not None:
            quote.total_ht = compute_total_ht(quote.lines, quote.discount)
            quote.total_ttc = quote.total_ht

        if data.issue_date is not None:
            quote.issue_date = data.issue_date
        if data.payment_method is not None:
            quote.payment_method = data.payment_method.value
        if "vat_rate" in update_data:
            quote.vat_rate = data.vat_rate
        if "notes" in update_data:
            quote.notes = data.notes

        await db.flush()
        logger.info("Aggiornato preventivo %s - campi: %s", quote.number, list(update_data.keys()))

        if data.status is not None and data.status.value != quote.status:
            return await self.update_status(db, quote_id, data.status)
        return await self.get_by_id(db, quote_id)

    async def update_status(self, db: AsyncSession, quote_id: uuid.UUID, target: QuoteStatus) -> Quote:
        """
        Cambia lo stato del preventivo.

        transformé_en_bl e transformé_en_facture eseguono la conversione;
        accepté registra la data di accettazione.
        """
        if target == QuoteStatus.CONVERTED_TO_DELIVERY_NOTE:
            quote, _ = await self.convert_to_delivery_note(db, quote_id)
            return quote
        if target == QuoteStatus.CONVERTED_TO_INVOICE:
            quote, _ = await self.convert_to_invoice(db, quote_id)
            return quote

        quote = await self.get_by_id(db, quote_id)
        validate_transition(quote.status, target, VALID_TRANSITIONS, f"le devis {quote.number}")
        previous = quote.status

        if target == QuoteStatus.ACCEPTED:
            quote.accepted_on = datetime.date.today()

        quote.status = target.value
        await db.flush()

        logger.info("Preventivo %s: stato %s -> %s", quote.number, previous, target.value)
        return await self.get_by_id(db, quote_id)

    async def delete(self, db: AsyncSession, quote_id: uuid.UUID) -> None:
        """
        Raises:
            BusinessValidationError: Preventivo accettato o convertito
        """
        quote = await self.get_by_id(db, quote_id)
        status = QuoteStatus(quote.status)
        if status == QuoteStatus.ACCEPTED or status in CONVERTED_STATUSES:
            raise BusinessValidationError(f"Impossible de supprimer un devis {quote.status}")

        for model in (DeliveryNote, Invoice):
            linked = await db.execute(select(model).where(model.quote_id == quote_id))
            for document in linked.scalars().all():
                document.quote_id = None

        await db.delete(quote)
        await db.flush()
        logger.info("Eliminato preventivo %s", quote.number)

    # ------------------------------------------------------------
    # Conversioni
    # ------------------------------------------------------------

    async def convert_to_delivery_note(
        self,
        db: AsyncSession,
        quote_id: uuid.UUID,
        data: Optional[QuoteConversion] = None,
    ) -> Tuple[Quote, DeliveryNote]:
        """
        Genera un BL dalle righe del preventivo.

        Raises:
            BusinessValidationError: Transizione non consentita o stock insufficiente
        """
        data = data or QuoteConversion()
        quote = await self.get_by_id(db, quote_id)
        validate_transition(
            quote.status, QuoteStatus.CONVERTED_TO_DELIVERY_NOTE, VALID_TRANSITIONS, f"le devis {quote.number}"
        )

        note = await delivery_note_service.create_from_lines(
            db,
            client_id=quote.client_id,
            lines=copy_lines(quote.lines),
            discount=quote.discount,
            payment_method=data.payment_method.value if data.payment_method else quote.payment_method,
            notes=data.notes if data.notes is not None else quote.notes,
            quote_id=quote.id,
        )

        quote.delivery_note_id = note.id
        quote.status = QuoteStatus.CONVERTED_TO_DELIVERY_NOTE.value
        await db.flush()

        logger.info("Preventivo %s convertito nel BL %s", quote.number, note.number)
        return await self.get_by_id(db, quote_id), note

    async def convert_to_invoice(
        self,
        db: AsyncSession,
        quote_id: uuid.UUID,
        data: Optional[QuoteConversion] = None,
    ) -> Tuple[Quote, Invoice]:
        """
        Genera una fattura diretta dal preventivo.

        TVA: quella del preventivo, altrimenti quella richiesta,
        altrimenti settings.conversion_vat_rate.
        """
        data = data or QuoteConversion()
        quote = await self.get_by_id(db, quote_id)
        validate_transition(
            quote.status, QuoteStatus.CONVERTED_TO_INVOICE, VALID_TRANSITIONS, f"le devis {quote.number}"
        )

        if quote.vat_rate is not None:
            vat_rate = quote.vat_rate
        elif data.vat_rate is not None:
            vat_rate = data.vat_rate
        else:
            vat_rate = settings.conversion_vat_rate

        invoice = await invoice_service.create_from_lines(
            db,
            client_id=quote.client_id,
            lines=copy_lines(quote.lines),
            vat_rate=vat_rate,
            discount=quote.discount,
            payment_method=data.payment_method.value if data.payment_method else quote.payment_method,
            notes=data.notes if data.notes is not None else quote.notes,
            quote_id=quote.id,
        )

        quote.invoice_id = invoice.id
        quote.status = QuoteStatus.CONVERTED_TO_INVOICE.value
        await db.flush()

        logger.info("Preventivo %s convertito nella fattura %s", quote.number, invoice.number)
        return await self.get_by_id(db, quote_id), invoice

    # ------------------------------------------------------------
    # Statistiche
    # ------------------------------------------------------------

    async def get_stats(
        self,
        db: AsyncSession,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
    ) -> dict[str, Any]:
        query = apply_list_filters(select(Quote), Quote, start_date, end_date)
        quotes = list((await db.execute(query)).scalars().all())

        by_status: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "total": ZERO})
        for quote in quotes:
            by_status[quote.status]["count"] += 1
            by_status[quote.status]["total"] = quantize(by_status[quote.status]["total"] + quote.total_ttc)

        converted = [q for q in quotes if QuoteStatus(q.status) in CONVERTED_STATUSES]
        accepted = [q for q in quotes if q.status == QuoteStatus.ACCEPTED.value or q in converted]
        total_amount = quantize(sum((q.total_ttc for q in quotes), ZERO))
        return {
            "total_quotes": len(quotes),
            "total_amount": total_amount,
            "accepted_amount": quantize(sum((q.total_ttc for q in accepted), ZERO)),
            "converted_count": len(converted),
            "conversion_rate": (
                quantize(Decimal(len(converted)) * 100 / Decimal(len(quotes))) if quotes else ZERO
            ),
            "average_amount": quantize(total_amount / len(quotes)) if quotes else ZERO,
            "by_status": dict(by_status),
        }


quote_service = QuoteService()

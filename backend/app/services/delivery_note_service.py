"""
Service Layer per i Bons de Livraison
Progetto: Gestion Commerciale (Back-office)

Il BL scarica il magazzino alla creazione e lo ricarica
all'annullamento o all'eliminazione. Gli acconti incassati sul BL
determinano lo stato di pagamento.
"""

import datetime
import logging
import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Any, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models import Advancement, Client, DeliveryNote, DeliveryNoteLine, Invoice, Quote
from app.schemas.common import AdvancementCreate, PaymentMethod
from app.schemas.delivery_note import (
    LIFECYCLE_STATUSES,
    VALID_TRANSITIONS,
    DeliveryNoteCreate,
    DeliveryNoteStatus,
    DeliveryNoteUpdate,
)
from app.schemas.product import StockDocumentType
from app.services.document_utils import (
    ZERO,
    PricedLine,
    apply_list_filters,
    compute_total_ht,
    paid_amount,
    payment_status,
    price_lines,
    quantize,
    validate_transition,
)
from app.services.numbering import DELIVERY_NOTE_PREFIX, generate_number
from app.services.stock_service import stock_service

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = {DeliveryNoteStatus.PAID.value, DeliveryNoteStatus.PARTIALLY_PAID.value}


def build_advancement(data: AdvancementCreate) -> Advancement:
    """Crea un acconto a partire dallo schema in ingresso."""
    return Advancement(
        amount=quantize(data.amount),
        payment_method=data.payment_method.value,
        payment_date=data.payment_date,
        reference=data.reference,
        notes=data.notes,
    )


def apply_advancement(advancement: Advancement, data: AdvancementCreate) -> None:
    """Aggiorna un acconto esistente."""
    advancement.amount = quantize(data.amount)
    advancement.payment_method = data.payment_method.value
    advancement.payment_date = data.payment_date
    advancement.reference = data.reference
    advancement.notes = data.notes


class DeliveryNoteService:
    """
    Service per i bons de livraison.

    Non esegue commit: la transazione appartiene al router.
    """

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------

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
    ) -> Tuple[list[DeliveryNote], int]:
        query = apply_list_filters(select(DeliveryNote), DeliveryNote, start_date, end_date, status, search)
        count_query = apply_list_filters(
            select(func.count(DeliveryNote.id)), DeliveryNote, start_date, end_date, status, search
        )
        if client_id is not None:
            query = query.where(DeliveryNote.client_id == client_id)
            count_query = count_query.where(DeliveryNote.client_id == client_id)

        query = query.order_by(DeliveryNote.issue_date.desc(), DeliveryNote.number.desc())
        result = await db.execute(query.offset(skip).limit(limit))
        total = (await db.execute(count_query)).scalar() or 0
        return list(result.scalars().all()), total

    async def get_by_id(self, db: AsyncSession, note_id: uuid.UUID) -> DeliveryNote:
        """
        Raises:
            NotFoundError: Se il BL non esiste
        """
        result = await db.execute(
            select(DeliveryNote)
            .where(DeliveryNote.id == note_id)
            .execution_options(populate_existing=True)
        )
        note = result.scalar_one_or_none()
        if not note:
            logger.warning("BL non trovato: %s", note_id)
            raise NotFoundError(f"Bon de livraison {note_id} non trouvé")
        return note

    async def get_by_client(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[list[DeliveryNote], int]:
        await self._ensure_client(db, client_id)
        return await self.get_all(db, client_id=client_id, skip=skip, limit=limit)

    async def _ensure_client(self, db: AsyncSession, client_id: uuid.UUID) -> None:
        exists = (await db.execute(select(Client.id).where(Client.id == client_id))).scalar_one_or_none()
        if exists is None:
            raise NotFoundError(f"Client {client_id} non trouvé")

    # ------------------------------------------------------------
    # Creazione
    # ------------------------------------------------------------

    async def create(self, db: AsyncSession, data: DeliveryNoteCreate) -> DeliveryNote:
        """
        Crea un BL e scarica il magazzino.

        Raises:
            NotFoundError: Cliente o prodotto inesistente
            BusinessValidationError: Stock insufficiente per una riga
        """
        await self._ensure_client(db, data.client_id)
        products = await stock_service.lock_products(db, [line.product_id for line in data.lines])
        priced = price_lines(data.lines, products)

        return await self.create_from_lines(
            db,
            client_id=data.client_id,
            lines=priced,
            discount=data.discount,
            payment_method=data.payment_method.value,
            issue_date=data.issue_date,
            notes=data.notes,
            advancements=data.advancements,
        )

    async def create_from_lines(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        lines: Sequence[PricedLine],
        discount: Decimal = ZERO,
        payment_method: str = PaymentMethod.CASH.value,
        issue_date: Optional[datetime.date] = None,
        notes: Optional[str] = None,
        advancements: Sequence[AdvancementCreate] = (),
        quote_id: Optional[uuid.UUID] = None,
    ) -> DeliveryNote:
        """
        Persiste un BL da righe già calcolate (creazione diretta o da preventivo).

        TTC = HT: il BL non applica TVA.
        """
        await self._ensure_client(db, client_id)

        total_ht = compute_total_ht(lines, discount)
        number = await generate_number(db, DeliveryNote, DELIVERY_NOTE_PREFIX)

        note = DeliveryNote(
            number=number,
            client_id=client_id,
            quote_id=quote_id,
            issue_date=issue_date or datetime.date.today(),
            payment_method=payment_method,
            discount=quantize(discount or ZERO),
            total_ht=total_ht,
            total_ttc=total_ht,
            notes=notes,
            is_invoiced=False,
            lines=[DeliveryNoteLine(**line.as_dict()) for line in lines],
            advancements=[build_advancement(a) for a in advancements],
        )
        note.status = payment_status(
            note.total_ttc,
            paid_amount(note.advancements),
            DeliveryNoteStatus.PAID.value,
            DeliveryNoteStatus.PARTIALLY_PAID.value,
            DeliveryNoteStatus.DRAFT.value,
        )
        db.add(note)
        await db.flush()

        await stock_service.decrement_document(
            db,
            [(line.product_id, line.quantity) for line in lines],
            StockDocumentType.DELIVERY_NOTE,
            note.id,
            note.number,
        )

        logger.info("Creato BL %s per cliente %s: totale %s", note.number, client_id, note.total_ttc)
        return await self.get_by_id(db, note.id)

    # ------------------------------------------------------------
    # Aggiornamento
    # ------------------------------------------------------------

    def refresh_payment_status(self, note: DeliveryNote) -> None:
        """
        Ricalcola lo stato dai pagamenti.

        Gli stati del ciclo di vita (livré, facturé, annulée) restano invariati;
        envoyée e validé restano tali finché nulla è stato incassato.
        """
        if DeliveryNoteStatus(note.status) in LIFECYCLE_STATUSES:
            return
        derived = payment_status(
            note.total_ttc,
            paid_amount(note.advancements),
            DeliveryNoteStatus.PAID.value,
            DeliveryNoteStatus.PARTIALLY_PAID.value,
            DeliveryNoteStatus.DRAFT.value,
        )
        if derived != DeliveryNoteStatus.DRAFT.value or note.status in PAYMENT_STATUSES:
            note.status = derived

    def _reconcile_advancements(self, note: DeliveryNote, incoming: list[AdvancementCreate]) -> None:
        """
        Allinea gli acconti del BL alla lista ricevuta.

        Con id: aggiornamento; senza id: nuovo acconto; gli acconti
        assenti dalla lista vengono eliminati.
        """
        existing = {a.id: a for a in note.advancements}
        keep: set[uuid.UUID] = set()

        for data in incoming:
            if data.id is None:
                note.advancements.append(build_advancement(data))
                continue
            advancement = existing.get(data.id)
            if advancement is None:
                raise BusinessValidationError(f"Avance {data.id} introuvable sur le bon {note.number}")
            apply_advancement(advancement, data)
            keep.add(data.id)

        for advancement_id, advancement in existing.items():
            if advancement_id not in keep:
                note.advancements.remove(advancement)

    async def update(self, db: AsyncSession, note_id: uuid.UUID, data: DeliveryNoteUpdate) -> DeliveryNote:
        """
        Aggiorna un BL.

        La sostituzione delle righe storna il magazzino del BL e lo
        riscarica con le nuove righe (verificando la disponibilità).

        Raises:
            BusinessValidationError: BL fatturato/annullato/consegnato con
                nuove righe, oppure stock insufficiente
        """
        note = await self.get_by_id(db, note_id)
        update_data = data.model_dump(exclude_unset=True)

        if note.is_invoiced and ("lines" in update_data or "advancements" in update_data):
            raise BusinessValidationError(
                f"Le bon {note.number} est déjà facturé: lignes et avances ne sont plus modifiables"
            )

        if data.client_id is not None and data.client_id != note.client_id:
            await self._ensure_client(db, data.client_id)
            note.client_id = data.client_id

        if data.lines is not None:
            if DeliveryNoteStatus(note.status) in LIFECYCLE_STATUSES:
                raise BusinessValidationError(
                    f"Impossible de modifier les lignes d'un bon {note.status}"
                )
            await stock_service.reverse_document(
                db, StockDocumentType.DELIVERY_NOTE, note.id, note.number, reason="update"
            )
            products = await stock_service.lock_products(db, [line.product_id for line in data.lines])
            priced = price_lines(data.lines, products)
            note.lines = [DeliveryNoteLine(**line.as_dict()) for line in priced]
            await db.flush()
            await stock_service.decrement_document(
                db,
                [(line.product_id, line.quantity) for line in priced],
                StockDocumentType.DELIVERY_NOTE,
                note.id,
                note.number,
                reason="update",
            )

        if data.discount is not None:
            note.discount = quantize(data.discount)
        if data.lines is not None or data.discount is not None:
            note.total_ht = compute_total_ht(note.lines, note.discount)
            note.total_ttc = note.total_ht

        if data.advancements is not None:
            self._reconcile_advancements(note, data.advancements)

        if data.issue_date is not None:
            note.issue_date = data.issue_date
        if data.payment_method is not None:
            note.payment_method = data.payment_method.value
        if "delivery_date" in update_data:
            note.delivery_date = data.delivery_date
        if "notes" in update_data:
            note.notes = data.notes

        self.refresh_payment_status(note)
        await db.flush()

        logger.info("Aggiornato BL %s - campi: %s", note.number, list(update_data.keys()))
        return await self.get_by_id(db, note_id)

    async def update_status(
        self,
        db: AsyncSession,
        note_id: uuid.UUID,
        target: DeliveryNoteStatus,
    ) -> DeliveryNote:
        """
        Cambia lo stato secondo la matrice delle transizioni.

        - annulée: ricarica il magazzino
        - da annulée a brouillon: riscarica (con verifica disponibilità)
        - livré: valorizza la data di consegna se assente
        """
        note = await self.get_by_id(db, note_id)
        validate_transition(note.status, target, VALID_TRANSITIONS, f"le bon {note.number}")
        previous = note.status

        if target == DeliveryNoteStatus.CANCELLED:
            await stock_service.reverse_document(
                db, StockDocumentType.DELIVERY_NOTE, note.id, note.number, reason="cancel"
            )
        elif previous == DeliveryNoteStatus.CANCELLED.value:
            await stock_service.decrement_document(
                db,
                [(line.product_id, line.quantity) for line in note.lines],
                StockDocumentType.DELIVERY_NOTE,
                note.id,
                note.number,
                reason="restore",
            )

        if target == DeliveryNoteStatus.DELIVERED and note.delivery_date is None:
            note.delivery_date = datetime.date.today()

        note.status = target.value
        await db.flush()

        logger.info("BL %s: stato %s -> %s", note.number, previous, target.value)
        return await self.get_by_id(db, note_id)

    # ------------------------------------------------------------
    # Eliminazione
    # ------------------------------------------------------------

    async def delete(self, db: AsyncSession, note_id: uuid.UUID) -> None:
        """
        Elimina un BL e ricarica il magazzino per il suo effetto netto.

        Raises:
            BusinessValidationError: BL consegnato, fatturato o collegato a una fattura
        """
        note = await self.get_by_id(db, note_id)

        if note.status in (DeliveryNoteStatus.DELIVERED.value, DeliveryNoteStatus.INVOICED.value):
            raise BusinessValidationError(f"Impossible de supprimer un bon de livraison {note.status}")
        if note.is_invoiced:
            raise BusinessValidationError("Impossible de supprimer un bon de livraison déjà facturé")

        linked_invoices = (
            await db.execute(select(func.count(Invoice.id)).where(Invoice.delivery_note_id == note_id))
        ).scalar() or 0
        if linked_invoices:
            raise BusinessValidationError(
                f"Impossible de supprimer le bon {note.number}: il est lié à {linked_invoices} facture(s)"
            )

        await stock_service.reverse_document(
            db, StockDocumentType.DELIVERY_NOTE, note.id, note.number, reason="delete"
        )

        quotes = await db.execute(select(Quote).where(Quote.delivery_note_id == note_id))
        for quote in quotes.scalars().all():
            quote.delivery_note_id = None

        await db.delete(note)
        await db.flush()
        logger.info("Eliminato BL %s", note.number)

    # ------------------------------------------------------------
    # Statistiche
    # ------------------------------------------------------------

    async def get_stats(
        self,
        db: AsyncSession,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
    ) -> dict[str, Any]:
        """Conteggi e importi per stato, incassato e residuo."""
        query = apply_list_filters(select(DeliveryNote), DeliveryNote, start_date, end_date)
        notes = list((await db.execute(query)).scalars().all())

        by_status: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "total": ZERO})
        for note in notes:
            by_status[note.status]["count"] += 1
            by_status[note.status]["total"] = quantize(by_status[note.status]["total"] + note.total_ttc)

        active = [n for n in notes if n.status != DeliveryNoteStatus.CANCELLED.value]
        total_amount = quantize(sum((n.total_ttc for n in active), ZERO))
        total_paid = quantize(sum((paid_amount(n.advancements) for n in active), ZERO))
        return {
            "total_delivery_notes": len(notes),
            "total_amount": total_amount,
            "total_paid": total_paid,
            "total_remaining": quantize(
                sum((max(n.total_ttc - paid_amount(n.advancements), ZERO) for n in active), ZERO)
            ),
            "invoiced_count": sum(1 for n in notes if n.is_invoiced),
            "average_amount": quantize(total_amount / len(active)) if active else ZERO,
            "by_status": dict(by_status),
        }


delivery_note_service = DeliveryNoteService()

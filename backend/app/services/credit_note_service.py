"""
Service Layer per i Bons d'Avoir
Progetto: Gestion Commerciale (Back-office)

Ciclo di vita: brouillon -> valide -> utilise, con annullamento
possibile finché l'avoir non è stato utilizzato.

La creazione ricarica sempre il magazzino per le righe dell'avoir.
L'annullamento di un avoir "retour_produit" valido lo riscarica
(senza scendere sotto zero).
"""

import datetime
import logging
import uuid
from collections import defaultdict
from typing import Any, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models import Client, CreditNote, CreditNoteLine, DeliveryNote
from app.schemas.credit_note import (
    VALID_TRANSITIONS,
    CreditNoteCreate,
    CreditNoteReason,
    CreditNoteStatus,
    CreditNoteUpdate,
)
from app.schemas.delivery_note import DeliveryNoteStatus
from app.schemas.product import StockDocumentType
from app.services.delivery_note_service import delivery_note_service
from app.services.document_utils import (
    ZERO,
    apply_list_filters,
    compute_total_ht,
    price_lines,
    quantize,
    validate_transition,
)
from app.services.numbering import CREDIT_NOTE_PREFIX, generate_number
from app.services.stock_service import aggregate_quantities, stock_service

logger = logging.getLogger(__name__)


class CreditNoteService:
    """Service per i bons d'avoir."""

    async def get_all(
        self,
        db: AsyncSession,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
        status: Optional[str] = None,
        client_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[list[CreditNote], int]:
        query = apply_list_filters(select(CreditNote), CreditNote, start_date, end_date, status, search)
        count_query = apply_list_filters(
            select(func.count(CreditNote.id)), CreditNote, start_date, end_date, status, search
        )
        if client_id is not None:
            query = query.where(CreditNote.client_id == client_id)
            count_query = count_query.where(CreditNote.client_id == client_id)
        if reason:
            query = query.where(CreditNote.reason == reason)
            count_query = count_query.where(CreditNote.reason == reason)

        query = query.order_by(CreditNote.issue_date.desc(), CreditNote.number.desc())
        result = await db.execute(query.offset(skip).limit(limit))
        total = (await db.execute(count_query)).scalar() or 0
        return list(result.scalars().all()), total

    async def get_by_id(self, db: AsyncSession, credit_note_id: uuid.UUID) -> CreditNote:
        """
        Raises:
            NotFoundError: Se l'avoir non esiste
        """
        result = await db.execute(
            select(CreditNote).where(CreditNote.id == credit_note_id).execution_options(populate_existing=True)
        )
        credit_note = result.scalar_one_or_none()
        if not credit_note:
            logger.warning("Avoir non trovato: %s", credit_note_id)
            raise NotFoundError(f"Bon d'avoir {credit_note_id} non trouvé")
        return credit_note

    async def _ensure_client(self, db: AsyncSession, client_id: uuid.UUID) -> None:
        exists = (await db.execute(select(Client.id).where(Client.id == client_id))).scalar_one_or_none()
        if exists is None:
            raise NotFoundError(f"Client {client_id} non trouvé")

    def _check_returned_quantities(self, note: DeliveryNote, lines) -> None:
        """
        Le quantità restituite non possono superare quelle vendute sul BL.

        Raises:
            BusinessValidationError: Prodotto assente dal BL o quantità eccessiva
        """
        sold = aggregate_quantities((line.product_id, line.quantity) for line in note.lines)
        returned = aggregate_quantities((line.product_id, line.quantity) for line in lines)
        for product_id, quantity in returned.items():
            if product_id not in sold:
                raise BusinessValidationError(
                    f"Le produit {product_id} ne figure pas sur le bon de livraison {note.number}"
                )
            if quantity > sold[product_id]:
                raise BusinessValidationError(
                    f"Quantité retournée ({quantity}) supérieure à la quantité livrée "
                    f"({sold[product_id]}) sur le bon {note.number}"
                )

    # ------------------------------------------------------------
    # Creazione e modifica
    # ------------------------------------------------------------

    async def create(self, db: AsyncSession, data: CreditNoteCreate) -> CreditNote:
        """
        Crea un avoir in brouillon e ricarica il magazzino.

        Con un BL di origine il cliente è quello del BL e le righe
        devono corrispondere a prodotti effettivamente consegnati.

        Raises:
            NotFoundError: Cliente, BL o prodotto inesistente
            BusinessValidationError: Cliente diverso da quello del BL, quantità eccessive
        """
        client_id = data.client_id
        if data.delivery_note_id is not None:
            note = await delivery_note_service.get_by_id(db, data.delivery_note_id)
            if client_id is not None and client_id != note.client_id:
                raise BusinessValidationError(
                    f"Le bon de livraison {note.number} n'appartient pas à ce client"
                )
            client_id = note.client_id
            self._check_returned_quantities(note, data.lines)

        await self._ensure_client(db, client_id)
        products = await stock_service.lock_products(db, [line.product_id for line in data.lines])
        priced = price_lines(data.lines, products)
        total = compute_total_ht(priced)

        credit_note = CreditNote(
            number=await generate_number(db, CreditNote, CREDIT_NOTE_PREFIX),
            client_id=client_id,
            delivery_note_id=data.delivery_note_id,
            issue_date=data.issue_date,
            reason=data.reason.value,
            status=CreditNoteStatus.DRAFT.value,
            total_ht=total,
            total_ttc=total,
            notes=data.notes,
            lines=[CreditNoteLine(**line.as_dict()) for line in priced],
        )
        db.add(credit_note)
        await db.flush()

        await stock_service.increment_document(
            db,
            [(line.product_id, line.quantity) for line in priced],
            StockDocumentType.CREDIT_NOTE,
            credit_note.id,
            credit_note.number,
        )

        logger.info(
            "Creato avoir %s per cliente %s: totale %s (%s)",
            credit_note.number,
            client_id,
            total,
            credit_note.reason,
        )
        return await self.get_by_id(db, credit_note.id)

    async def update(self, db: AsyncSession, credit_note_id: uuid.UUID, data: CreditNoteUpdate) -> CreditNote:
        """
        Modifica un avoir in brouillon.

        La sostituzione delle righe storna il carico precedente e
        ricarica con le nuove righe.
        """
        credit_note = await self.get_by_id(db, credit_note_id)
        update_data = data.model_dump(exclude_unset=True)

        if credit_note.status != CreditNoteStatus.DRAFT.value:
            raise BusinessValidationError("Seul un bon d'avoir en brouillon peut être modifié")

        if data.lines is not None:
            if credit_note.delivery_note_id is not None:
                note = await delivery_note_service.get_by_id(db, credit_note.delivery_note_id)
                self._check_returned_quantities(note, data.lines)

            await stock_service.reverse_document(
                db,
                StockDocumentType.CREDIT_NOTE,
                credit_note.id,
                credit_note.number,
                reason="update",
                clamp=True,
            )
            products = await stock_service.lock_products(db, [line.product_id for line in data.lines])
            priced = price_lines(data.lines, products)
            credit_note.lines = [CreditNoteLine(**line.as_dict()) for line in priced]
            credit_note.total_ht = compute_total_ht(priced)
            credit_note.total_ttc = credit_note.total_ht
            await db.flush()
            await stock_service.increment_document(
                db,
                [(line.product_id, line.quantity) for line in priced],
                StockDocumentType.CREDIT_NOTE,
                credit_note.id,
                credit_note.number,
                reason="update",
            )

        if data.reason is not None:
            credit_note.reason = data.reason.value
        if "notes" in update_data:
            credit_note.notes = data.notes

        await db.flush()
        logger.info("Aggiornato avoir %s - campi: %s", credit_note.number, list(update_data.keys()))
        return await self.get_by_id(db, credit_note_id)

    # ------------------------------------------------------------
    # Ciclo di vita
    # ------------------------------------------------------------

    async def validate(self, db: AsyncSession, credit_note_id: uuid.UUID) -> CreditNote:
        """brouillon -> valide."""
        credit_note = await self.get_by_id(db, credit_note_id)
        if credit_note.status != CreditNoteStatus.DRAFT.value:
            raise BusinessValidationError("Seul un bon d'avoir en brouillon peut être validé")

        credit_note.status = CreditNoteStatus.VALID.value
        await db.flush()
        logger.info("Validato avoir %s", credit_note.number)
        return await self.get_by_id(db, credit_note_id)

    async def use(
        self,
        db: AsyncSession,
        credit_note_id: uuid.UUID,
        delivery_note_id: uuid.UUID,
    ) -> Tuple[CreditNote, Any, Any]:
        """
        Imputa un avoir valido su un BL dello stesso cliente.

        Il totale del BL viene ridotto dell'importo dell'avoir (minimo 0).

        Returns:
            Tuple (avoir, importo imputato, nuovo totale del BL)

        Raises:
            BusinessValidationError: Avoir non valido o BL di un altro cliente
        """
        credit_note = await self.get_by_id(db, credit_note_id)
        if credit_note.status != CreditNoteStatus.VALID.value:
            raise BusinessValidationError(
                f"Le bon d'avoir {credit_note.number} doit être validé avant utilisation"
            )

        note = await delivery_note_service.get_by_id(db, delivery_note_id)
        if note.client_id != credit_note.client_id:
            raise BusinessValidationError("Le bon d'avoir et le bon de livraison concernent des clients différents")
        if note.status == DeliveryNoteStatus.CANCELLED.value or note.is_invoiced:
            raise BusinessValidationError(
                f"Impossible d'utiliser un avoir sur le bon {note.number} ({note.status})"
            )

        applied = min(credit_note.total_ttc, note.total_ttc)
        note.total_ttc = max(quantize(note.total_ttc - credit_note.total_ttc), ZERO)
        usage = f"Avoir {credit_note.number} appliqué: -{quantize(credit_note.total_ttc)}"
        note.notes = f"{note.notes}\n{usage}" if note.notes else usage
        delivery_note_service.refresh_payment_status(note)

        credit_note.status = CreditNoteStatus.USED.value
        credit_note.used_at = datetime.datetime.now(datetime.timezone.utc)
        credit_note.used_on_delivery_note_id = note.id
        await db.flush()

        logger.info(
            "Avoir %s utilizzato sul BL %s: imputati %s, nuovo totale %s",
            credit_note.number,
            note.number,
            applied,
            note.total_ttc,
        )
        return await self.get_by_id(db, credit_note_id), quantize(applied), note.total_ttc

    async def cancel(self, db: AsyncSession, credit_note_id: uuid.UUID) -> CreditNote:
        """
        Annulla un avoir non utilizzato.

        Un avoir "retour_produit" già validato riscarica il magazzino
        (la giacenza non scende sotto zero).
        """
        credit_note = await self.get_by_id(db, credit_note_id)
        if credit_note.status == CreditNoteStatus.USED.value:
            raise BusinessValidationError("Impossible d'annuler un bon d'avoir déjà utilisé")
        if credit_note.status == CreditNoteStatus.CANCELLED.value:
            raise BusinessValidationError(f"Le bon d'avoir {credit_note.number} est déjà annulé")

        if (
            credit_note.reason == CreditNoteReason.PRODUCT_RETURN.value
            and credit_note.status == CreditNoteStatus.VALID.value
        ):
            await stock_service.reverse_document(
                db,
                StockDocumentType.CREDIT_NOTE,
                credit_note.id,
                credit_note.number,
                reason="cancel",
                clamp=True,
            )

        credit_note.status = CreditNoteStatus.CANCELLED.value
        await db.flush()
        logger.info("Annullato avoir %s", credit_note.number)
        return await self.get_by_id(db, credit_note_id)

    async def update_status(
        self,
        db: AsyncSession,
        credit_note_id: uuid.UUID,
        target: CreditNoteStatus,
    ) -> CreditNote:
        """Cambio di stato generico, instradato sulle operazioni dedicate."""
        credit_note = await self.get_by_id(db, credit_note_id)
        validate_transition(credit_note.status, target, VALID_TRANSITIONS, f"le bon d'avoir {credit_note.number}")

        if target == CreditNoteStatus.USED:
            raise BusinessValidationError("Utilisez l'opération d'utilisation pour imputer un avoir")
        if target == CreditNoteStatus.VALID:
            return await self.validate(db, credit_note_id)
        return await self.cancel(db, credit_note_id)

    async def delete(self, db: AsyncSession, credit_note_id: uuid.UUID) -> None:
        """
        Elimina un avoir annullato. Nessun effetto sul magazzino.

        Raises:
            BusinessValidationError: Avoir non annullato
        """
        credit_note = await self.get_by_id(db, credit_note_id)
        if credit_note.status != CreditNoteStatus.CANCELLED.value:
            raise BusinessValidationError("Seul un bon d'avoir annulé peut être supprimé")

        await db.delete(credit_note)
        await db.flush()
        logger.info("Eliminato avoir %s", credit_note.number)

    # ------------------------------------------------------------
    # Viste
    # ------------------------------------------------------------

    async def get_available(self, db: AsyncSession, client_id: uuid.UUID) -> Tuple[list[CreditNote], Any]:
        """Avoir validi e non ancora utilizzati del cliente, con il totale disponibile."""
        await self._ensure_client(db, client_id)
        result = await db.execute(
            select(CreditNote)
            .where(CreditNote.client_id == client_id, CreditNote.status == CreditNoteStatus.VALID.value)
            .order_by(CreditNote.issue_date.asc(), CreditNote.number.asc())
        )
        credit_notes = list(result.scalars().all())
        return credit_notes, quantize(sum((c.total_ttc for c in credit_notes), ZERO))

    async def get_stats(
        self,
        db: AsyncSession,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
    ) -> dict[str, Any]:
        query = apply_list_filters(select(CreditNote), CreditNote, start_date, end_date)
        credit_notes = list((await db.execute(query)).scalars().all())

        by_status: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "total": ZERO})
        by_reason: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "total": ZERO})
        for credit_note in credit_notes:
            by_status[credit_note.status]["count"] += 1
            by_status[credit_note.status]["total"] = quantize(
                by_status[credit_note.status]["total"] + credit_note.total_ttc
            )
            by_reason[credit_note.reason]["count"] += 1
            by_reason[credit_note.reason]["total"] = quantize(
                by_reason[credit_note.reason]["total"] + credit_note.total_ttc
            )

        active = [c for c in credit_notes if c.status != CreditNoteStatus.CANCELLED.value]
        return {
            "total_credit_notes": len(credit_notes),
            "total_amount": quantize(sum((c.total_ttc for c in active), ZERO)),
            "available_amount": quantize(
                sum((c.total_ttc for c in active if c.status == CreditNoteStatus.VALID.value), ZERO)
            ),
            "used_amount": quantize(
                sum((c.total_ttc for c in active if c.status == CreditNoteStatus.USED.value), ZERO)
            ),
            "by_status": dict(by_status),
            "by_reason": dict(by_reason),
        }


credit_note_service = CreditNoteService()

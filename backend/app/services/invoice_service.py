"""
Service Layer per la Fatturazione
Progetto: Gestion Commerciale (Back-office)

Definisce la logica di business per la gestione delle fatture:
- Fattura diretta (scarica il magazzino)
- Fattura da BL (nessun movimento, acconti trasferiti dal BL)
- Acconti e stato di pagamento derivato
- Annullamento con rimborso "avoir" e ripristino
- Statistiche di fatturazione
"""

import datetime
import logging
import uuid
from collections import defaultdict
from datetime import timedelta
from decimal import Decimal
from typing import Any, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models import Advancement, Client, DeliveryNote, Invoice, InvoiceLine, Quote
from app.schemas.common import AdvancementCreate, PaymentMethod
from app.schemas.delivery_note import DeliveryNoteStatus
from app.schemas.invoice import (
    VALID_TRANSITIONS,
    InvoiceCreate,
    InvoiceFromDeliveryNote,
    InvoicePayment,
    InvoiceStatus,
    InvoiceUpdate,
)
from app.schemas.product import StockDocumentType
from app.services.delivery_note_service import apply_advancement, build_advancement
from app.services.document_utils import (
    ZERO,
    PricedLine,
    apply_list_filters,
    compute_total_ht,
    compute_vat,
    copy_lines,
    paid_amount,
    payment_status,
    price_lines,
    quantize,
    validate_transition,
)
from app.services.numbering import INVOICE_PREFIX, generate_number
from app.services.stock_service import stock_service

# Logger per questo modulo
logger = logging.getLogger(__name__)


class InvoiceService:
    """
    Service per la gestione delle operazioni sulle fatture.

    Fornisce metodi asincroni per interagire con il database
    in modo centralizzato, senza dipendenze da FastAPI.

    Una fattura è "diretta" quando non deriva da un BL: solo in quel
    caso ha movimenti di magazzino propri.
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
    ) -> Tuple[list[Invoice], int]:
        query = apply_list_filters(
            select(Invoice), Invoice, start_date, end_date, status, search, date_column=Invoice.invoice_date
        )
        count_query = apply_list_filters(
            select(func.count(Invoice.id)),
            Invoice,
            start_date,
            end_date,
            status,
            search,
            date_column=Invoice.invoice_date,
        )
        if client_id is not None:
            query = query.where(Invoice.client_id == client_id)
            count_query = count_query.where(Invoice.client_id == client_id)

        query = query.order_by(Invoice.invoice_date.desc(), Invoice.number.desc())
        result = await db.execute(query.offset(skip).limit(limit))
        total = (await db.execute(count_query)).scalar() or 0
        return list(result.scalars().all()), total

    async def get_by_id(self, db: AsyncSession, invoice_id: uuid.UUID) -> Invoice:
        """
        Raises:
            NotFoundError: Se la fattura non esiste
        """
        result = await db.execute(
            select(Invoice).where(Invoice.id == invoice_id).execution_options(populate_existing=True)
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            logger.warning("Fattura non trovata: %s", invoice_id)
            raise NotFoundError(f"Facture {invoice_id} non trouvée")
        return invoice

    async def get_by_client(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[list[Invoice], int]:
        await self._ensure_client(db, client_id)
        return await self.get_all(db, client_id=client_id, skip=skip, limit=limit)

    async def _ensure_client(self, db: AsyncSession, client_id: uuid.UUID) -> None:
        exists = (await db.execute(select(Client.id).where(Client.id == client_id))).scalar_one_or_none()
        if exists is None:
            raise NotFoundError(f"Client {client_id} non trouvé")

    async def _get_delivery_note(self, db: AsyncSession, note_id: uuid.UUID) -> DeliveryNote:
        result = await db.execute(
            select(DeliveryNote).where(DeliveryNote.id == note_id).execution_options(populate_existing=True)
        )
        note = result.scalar_one_or_none()
        if not note:
            raise NotFoundError(f"Bon de livraison {note_id} non trouvé")
        return note

    async def _active_invoice_for_note(
        self,
        db: AsyncSession,
        note_id: uuid.UUID,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> Optional[Invoice]:
        """Fattura non annullata già emessa per il BL, se esiste."""
        query = select(Invoice).where(
            Invoice.delivery_note_id == note_id,
            Invoice.status != InvoiceStatus.CANCELLED.value,
        )
        if exclude_id is not None:
            query = query.where(Invoice.id != exclude_id)
        return (await db.execute(query.limit(1))).scalar_one_or_none()

    # ------------------------------------------------------------
    # Pagamenti
    # ------------------------------------------------------------

    def refresh_payments(self, invoice: Invoice) -> None:
        """
        Ricalcola amount_paid, amount_due e lo stato.

        payée: nulla da incassare e (TTC > 0 oppure incassato > 0);
        partiellement_payée: incasso parziale; altrimenti brouillon.
        Una fattura annullata resta annullata.
        """
        paid = paid_amount(invoice.advancements)
        invoice.amount_paid = paid
        invoice.amount_due = max(quantize(invoice.total_ttc - paid), ZERO)

        if invoice.status == InvoiceStatus.CANCELLED.value:
            invoice.amount_due = ZERO
            return

        invoice.status = payment_status(
            invoice.total_ttc,
            paid,
            InvoiceStatus.PAID.value,
            InvoiceStatus.PARTIALLY_PAID.value,
            InvoiceStatus.DRAFT.value,
        )

    def _recompute_totals(self, invoice: Invoice) -> None:
        invoice.total_ht = compute_total_ht(invoice.lines, invoice.discount)
        invoice.vat_amount = compute_vat(invoice.total_ht, invoice.vat_rate)
        invoice.total_ttc = quantize(invoice.total_ht + invoice.vat_amount)

    # ------------------------------------------------------------
    # Creazione
    # ------------------------------------------------------------

    async def create(self, db: AsyncSession, data: InvoiceCreate) -> Invoice:
        """
        Crea una fattura diretta e scarica il magazzino.

        TVA di default: settings.default_invoice_vat_rate.

        Raises:
            NotFoundError: Cliente o prodotto inesistente
            BusinessValidationError: Stock insufficiente
        """
        await self._ensure_client(db, data.client_id)
        products = await stock_service.lock_products(db, [line.product_id for line in data.lines])
        priced = price_lines(data.lines, products)

        vat_rate = data.vat_rate if data.vat_rate is not None else settings.default_invoice_vat_rate
        return await self.create_from_lines(
            db,
            client_id=data.client_id,
            lines=priced,
            vat_rate=vat_rate,
            discount=data.discount,
            payment_method=data.payment_method.value,
            invoice_date=data.invoice_date,
            due_date=data.due_date,
            notes=data.notes,
            advancements=data.advancements,
        )

    async def create_from_lines(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        lines: Sequence[PricedLine],
        vat_rate: Decimal,
        discount: Decimal = ZERO,
        payment_method: str = PaymentMethod.CASH.value,
        invoice_date: Optional[datetime.date] = None,
        due_date: Optional[datetime.date] = None,
        notes: Optional[str] = None,
        advancements: Sequence[AdvancementCreate] = (),
        quote_id: Optional[uuid.UUID] = None,
    ) -> Invoice:
        """Persiste una fattura diretta da righe già calcolate e scarica il magazzino."""
        await self._ensure_client(db, client_id)

        invoice = await self._build_invoice(
            db,
            client_id=client_id,
            lines=lines,
            vat_rate=vat_rate,
            discount=discount,
            payment_method=payment_method,
            invoice_date=invoice_date,
            due_date=due_date,
            notes=notes,
            quote_id=quote_id,
        )
        for advancement in advancements:
            invoice.advancements.append(build_advancement(advancement))
        self.refresh_payments(invoice)
        await db.flush()

        await stock_service.decrement_document(
            db,
            [(line.product_id, line.quantity) for line in lines],
            StockDocumentType.INVOICE,
            invoice.id,
            invoice.number,
        )

        logger.info(
            "Creata fattura diretta %s per cliente %s: HT=%s, TVA=%s, TTC=%s",
            invoice.number,
            client_id,
            invoice.total_ht,
            invoice.vat_amount,
            invoice.total_ttc,
        )
        return await self.get_by_id(db, invoice.id)

    async def _build_invoice(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        lines: Sequence[PricedLine],
        vat_rate: Decimal,
        discount: Decimal,
        payment_method: str,
        invoice_date: Optional[datetime.date],
        due_date: Optional[datetime.date],
        notes: Optional[str],
        quote_id: Optional[uuid.UUID] = None,
        delivery_note_id: Optional[uuid.UUID] = None,
    ) -> Invoice:
        invoice_date = invoice_date or datetime.date.today()
        if due_date is None:
            due_date = invoice_date + timedelta(days=settings.invoice_due_days)

        number = await generate_number(db, Invoice, INVOICE_PREFIX)
        invoice = Invoice(
            number=number,
            client_id=client_id,
            delivery_note_id=delivery_note_id,
            quote_id=quote_id,
            issue_date=invoice_date,
            invoice_date=invoice_date,
            due_date=due_date,
            payment_method=payment_method,
            discount=quantize(discount or ZERO),
            vat_rate=Decimal(str(vat_rate)),
            status=InvoiceStatus.DRAFT.value,
            notes=notes,
            lines=[InvoiceLine(**line.as_dict()) for line in lines],
            advancements=[],
        )
        self._recompute_totals(invoice)
        db.add(invoice)
        await db.flush()
        return invoice

    async def create_from_delivery_note(self, db: AsyncSession, data: InvoiceFromDeliveryNote) -> Invoice:
        """
        Genera una fattura da un BL.

        Steps:
        1. Verifica che il BL esista, non sia annullato né già fatturato
        2. Copia righe e sconto, TVA di default settings.conversion_vat_rate
        3. Trasferisce gli acconti del BL sulla fattura
        4. Marca il BL come fatturato (lo stato del BL non cambia)

        Nessun movimento di magazzino: il BL ha già scaricato.

        Raises:
            NotFoundError: BL inesistente
            BusinessValidationError: BL annullato o già fatturato
        """
        note = await self._get_delivery_note(db, data.delivery_note_id)

        if note.status == DeliveryNoteStatus.CANCELLED.value:
            raise BusinessValidationError(f"Impossible de facturer le bon annulé {note.number}")
        if note.is_invoiced:
            raise BusinessValidationError(f"Le bon de livraison {note.number} est déjà facturé")
        existing = await self._active_invoice_for_note(db, note.id)
        if existing is not None:
            raise BusinessValidationError(
                f"Une facture existe déjà pour le bon {note.number}: {existing.number}"
            )

        vat_rate = data.vat_rate if data.vat_rate is not None else settings.conversion_vat_rate
        invoice = await self._build_invoice(
            db,
            client_id=note.client_id,
            lines=copy_lines(note.lines),
            vat_rate=vat_rate,
            discount=note.discount,
            payment_method=data.payment_method.value if data.payment_method else note.payment_method,
            invoice_date=data.invoice_date,
            due_date=data.due_date,
            notes=data.notes if data.notes is not None else note.notes,
            quote_id=note.quote_id,
            delivery_note_id=note.id,
        )

        for advancement in note.advancements:
            if advancement.invoice_id is None:
                invoice.advancements.append(advancement)
        note.is_invoiced = True

        self.refresh_payments(invoice)
        await db.flush()

        logger.info(
            "Creata fattura %s dal BL %s: TTC=%s, acconti trasferiti=%s",
            invoice.number,
            note.number,
            invoice.total_ttc,
            len(invoice.advancements),
        )
        return await self.get_by_id(db, invoice.id)

    # ------------------------------------------------------------
    # Aggiornamento
    # ------------------------------------------------------------

    async def _reconcile_advancements(
        self,
        db: AsyncSession,
        invoice: Invoice,
        incoming: list[AdvancementCreate],
    ) -> None:
        """
        Allinea gli acconti della fattura alla lista ricevuta.

        Un acconto rimosso che proviene dal BL viene solo staccato dalla
        fattura; gli acconti propri della fattura vengono eliminati.
        """
        existing = {a.id: a for a in invoice.advancements}
        keep: set[uuid.UUID] = set()

        for data in incoming:
            if data.id is None:
                invoice.advancements.append(build_advancement(data))
                continue
            advancement = existing.get(data.id)
            if advancement is None:
                raise BusinessValidationError(f"Avance {data.id} introuvable sur la facture {invoice.number}")
            apply_advancement(advancement, data)
            keep.add(data.id)

        for advancement_id, advancement in existing.items():
            if advancement_id in keep or advancement.payment_method == PaymentMethod.CREDIT_NOTE.value:
                continue
            invoice.advancements.remove(advancement)
            if advancement.delivery_note_id is None:
                await db.delete(advancement)

    async def update(self, db: AsyncSession, invoice_id: uuid.UUID, data: InvoiceUpdate) -> Invoice:
        """
        Aggiorna una fattura.

        Le righe sono sostituibili solo sulle fatture dirette (storno e
        riapplicazione del magazzino). Un aggiornamento con acconti li
        riconcilia e ricalcola lo stato.

        Raises:
            BusinessValidationError: Fattura payée o annulée, righe di una fattura da BL
        """
        invoice = await self.get_by_id(db, invoice_id)
        update_data = data.model_dump(exclude_unset=True)

        if invoice.status in (InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value):
            raise BusinessValidationError(f"Impossible de modifier une facture {invoice.status}")

        if data.client_id is not None and data.client_id != invoice.client_id:
            if not invoice.is_standalone:
                raise BusinessValidationError("Le client d'une facture issue d'un bon de livraison est fixe")
            await self._ensure_client(db, data.client_id)
            invoice.client_id = data.client_id

        if data.lines is not None:
            if not invoice.is_standalone:
                raise BusinessValidationError(
                    "Les lignes d'une facture issue d'un bon de livraison ne sont pas modifiables"
                )
            await stock_service.reverse_document(
                db, StockDocumentType.INVOICE, invoice.id, invoice.number, reason="update"
            )
            products = await stock_service.lock_products(db, [line.product_id for line in data.lines])
            priced = price_lines(data.lines, products)
            invoice.lines = [InvoiceLine(**line.as_dict()) for line in priced]
            await db.flush()
            await stock_service.decrement_document(
                db,
                [(line.product_id, line.quantity) for line in priced],
                StockDocumentType.INVOICE,
                invoice.id,
                invoice.number,
                reason="update",
            )

        if data.discount is not None:
            invoice.discount = quantize(data.discount)
        if data.vat_rate is not None:
            invoice.vat_rate = data.vat_rate
        if data.lines is not None or data.discount is not None or data.vat_rate is not None:
            self._recompute_totals(invoice)

        if data.invoice_date is not None:
            invoice.invoice_date = data.invoice_date
            invoice.issue_date = data.invoice_date
        if "due_date" in update_data:
            invoice.due_date = data.due_date
        if invoice.due_date is not None and invoice.due_date < invoice.invoice_date:
            raise BusinessValidationError("La date d'échéance doit suivre la date de facture")
        if data.payment_method is not None:
            invoice.payment_method = data.payment_method.value
        if "notes" in update_data:
            invoice.notes = data.notes

        if data.advancements is not None:
            await self._reconcile_advancements(db, invoice, data.advancements)

        self.refresh_payments(invoice)
        await db.flush()

        logger.info("Aggiornata fattura %s - campi: %s", invoice.number, list(update_data.keys()))
        return await self.get_by_id(db, invoice_id)

    async def add_payment(self, db: AsyncSession, invoice_id: uuid.UUID, data: InvoicePayment) -> Invoice:
        """
        Registra un acconto sulla fattura.

        Raises:
            BusinessValidationError: Fattura annullata
        """
        invoice = await self.get_by_id(db, invoice_id)

        if invoice.status == InvoiceStatus.CANCELLED.value:
            raise BusinessValidationError("Impossible d'encaisser une facture annulée")

        invoice.advancements.append(
            Advancement(
                amount=quantize(data.amount),
                payment_method=data.payment_method.value,
                payment_date=data.payment_date,
                reference=data.reference,
                notes=data.notes,
            )
        )
        self.refresh_payments(invoice)
        await db.flush()

        logger.info(
            "Pagamento %s registrato su fattura %s: residuo %s",
            data.amount,
            invoice.number,
            invoice.amount_due,
        )
        return await self.get_by_id(db, invoice_id)

    # ------------------------------------------------------------
    # Annullamento e ripristino
    # ------------------------------------------------------------

    async def cancel(self, db: AsyncSession, invoice_id: uuid.UUID, reason: Optional[str] = None) -> Invoice:
        """
        Annulla una fattura.

        - fattura diretta: il magazzino viene ricaricato
        - se qualcosa era stato incassato, un acconto "avoir" registra il rimborso
        - fattura da BL: il BL torna fatturabile e riprende i suoi acconti

        Raises:
            BusinessValidationError: Fattura già annullata
        """
        invoice = await self.get_by_id(db, invoice_id)

        if invoice.status == InvoiceStatus.CANCELLED.value:
            raise BusinessValidationError(f"La facture {invoice.number} est déjà annulée")

        if invoice.is_standalone:
            await stock_service.reverse_document(
                db, StockDocumentType.INVOICE, invoice.id, invoice.number, reason="cancel"
            )

        # Gli acconti del BL tornano al BL: la fattura rimborsa solo i propri
        for advancement in [a for a in invoice.advancements if a.delivery_note_id is not None]:
            invoice.advancements.remove(advancement)

        paid = paid_amount(invoice.advancements)
        if paid > 0:
            invoice.advancements.append(
                Advancement(
                    amount=paid,
                    payment_method=PaymentMethod.CREDIT_NOTE.value,
                    payment_date=datetime.date.today(),
                    notes=f"Remboursement suite à l'annulation de la facture {invoice.number}",
                )
            )

        if invoice.delivery_note_id is not None:
            note = await self._get_delivery_note(db, invoice.delivery_note_id)
            note.is_invoiced = False

        if reason:
            invoice.notes = f"{invoice.notes}\n{reason}" if invoice.notes else reason

        invoice.status = InvoiceStatus.CANCELLED.value
        self.refresh_payments(invoice)
        await db.flush()

        logger.info("Annullata fattura %s (rimborso %s)", invoice.number, paid)
        return await self.get_by_id(db, invoice_id)

    async def _restore(self, db: AsyncSession, invoice: Invoice) -> None:
        """
        Ripristina una fattura annullata.

        Diretta: riscarica il magazzino (con verifica disponibilità).
        Da BL: il BL torna fatturato (se non già fatturato altrove) e i suoi
        acconti tornano sulla fattura.
        I rimborsi "avoir" vengono eliminati.
        """
        if invoice.is_standalone:
            await stock_service.decrement_document(
                db,
                [(line.product_id, line.quantity) for line in invoice.lines],
                StockDocumentType.INVOICE,
                invoice.id,
                invoice.number,
                reason="restore",
            )
        else:
            note = await self._get_delivery_note(db, invoice.delivery_note_id)
            other = await self._active_invoice_for_note(db, note.id, exclude_id=invoice.id)
            if note.is_invoiced or other is not None:
                raise BusinessValidationError(
                    f"Le bon {note.number} est déjà facturé par une autre facture"
                )
            note.is_invoiced = True
            for advancement in note.advancements:
                if advancement.invoice_id is None:
                    invoice.advancements.append(advancement)

        for advancement in list(invoice.advancements):
            if advancement.payment_method == PaymentMethod.CREDIT_NOTE.value:
                invoice.advancements.remove(advancement)
                await db.delete(advancement)

        invoice.status = InvoiceStatus.DRAFT.value
        self.refresh_payments(invoice)

    async def update_status(self, db: AsyncSession, invoice_id: uuid.UUID, target: InvoiceStatus) -> Invoice:
        """
        Cambio di stato manuale: annulée oppure ripristino a brouillon.

        Gli stati di pagamento sono derivati dagli acconti.
        """
        invoice = await self.get_by_id(db, invoice_id)
        validate_transition(invoice.status, target, VALID_TRANSITIONS, f"la facture {invoice.number}")

        if target == InvoiceStatus.CANCELLED:
            return await self.cancel(db, invoice_id)

        await self._restore(db, invoice)
        await db.flush()

        logger.info("Ripristinata fattura %s: stato %s", invoice.number, invoice.status)
        return await self.get_by_id(db, invoice_id)

    # ------------------------------------------------------------
    # Eliminazione
    # ------------------------------------------------------------

    async def delete(self, db: AsyncSession, invoice_id: uuid.UUID) -> None:
        """
        Elimina una fattura.

        Raises:
            BusinessValidationError: Fattura payée o partiellement_payée
        """
        invoice = await self.get_by_id(db, invoice_id)

        if invoice.status in (InvoiceStatus.PAID.value, InvoiceStatus.PARTIALLY_PAID.value):
            raise BusinessValidationError(f"Impossible de supprimer une facture {invoice.status}")

        if invoice.is_standalone:
            await stock_service.reverse_document(
                db, StockDocumentType.INVOICE, invoice.id, invoice.number, reason="delete"
            )
        elif invoice.status != InvoiceStatus.CANCELLED.value:
            note = await self._get_delivery_note(db, invoice.delivery_note_id)
            note.is_invoiced = False

        for advancement in list(invoice.advancements):
            if advancement.delivery_note_id is not None:
                advancement.invoice_id = None
            else:
                await db.delete(advancement)

        quotes = await db.execute(select(Quote).where(Quote.invoice_id == invoice_id))
        for quote in quotes.scalars().all():
            quote.invoice_id = None

        await db.delete(invoice)
        await db.flush()
        logger.info("Eliminata fattura %s", invoice.number)

    # ------------------------------------------------------------
    # Statistiche
    # ------------------------------------------------------------

    async def get_stats(
        self,
        db: AsyncSession,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
    ) -> dict[str, Any]:
        """Totali, ripartizione per stato e per mese (fatture non annullate)."""
        query = apply_list_filters(
            select(Invoice), Invoice, start_date, end_date, date_column=Invoice.invoice_date
        )
        invoices = list((await db.execute(query)).scalars().all())

        by_status: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "total": ZERO})
        by_month: dict[str, dict[str, Any]] = defaultdict(
            lambda: {"count": 0, "total_ht": ZERO, "total_ttc": ZERO, "paid": ZERO}
        )
        for invoice in invoices:
            by_status[invoice.status]["count"] += 1
            by_status[invoice.status]["total"] = quantize(by_status[invoice.status]["total"] + invoice.total_ttc)

        active = [i for i in invoices if i.status != InvoiceStatus.CANCELLED.value]
        for invoice in active:
            month = by_month[invoice.invoice_date.strftime("%Y-%m")]
            month["count"] += 1
            month["total_ht"] = quantize(month["total_ht"] + invoice.total_ht)
            month["total_ttc"] = quantize(month["total_ttc"] + invoice.total_ttc)
            month["paid"] = quantize(month["paid"] + invoice.amount_paid)

        today = datetime.date.today()
        return {
            "total_invoices": len(invoices),
            "total_ht": quantize(sum((i.total_ht for i in active), ZERO)),
            "total_vat": quantize(sum((i.vat_amount for i in active), ZERO)),
            "total_ttc": quantize(sum((i.total_ttc for i in active), ZERO)),
            "total_paid": quantize(sum((i.amount_paid for i in active), ZERO)),
            "total_due": quantize(sum((i.amount_due for i in active), ZERO)),
            "overdue_count": sum(
                1 for i in active if i.amount_due > 0 and i.due_date is not None and i.due_date < today
            ),
            "by_status": dict(by_status),
            "by_month": dict(sorted(by_month.items())),
        }


invoice_service = InvoiceService()

"""
Service Layer per i Bons d'Achat
Progetto: Gestion Commerciale (Back-office)

L'ordine al fornitore non tocca il magazzino: le scorte aumentano
solo con le ricezioni, che aggiornano anche il prezzo di acquisto
dei prodotti ricevuti.
"""

import datetime
import logging
import uuid
from collections import defaultdict
from typing import Any, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models import PurchaseOrder, PurchaseOrderLine, Supplier
from app.schemas.product import StockDocumentType
from app.schemas.purchase_order import (
    RECEIPT_STATUSES,
    VALID_TRANSITIONS,
    PurchaseOrderCreate,
    PurchaseOrderPayment,
    PurchaseOrderReceipt,
    PurchaseOrderStatus,
    PurchaseOrderUpdate,
)
from app.services.document_utils import (
    ZERO,
    apply_list_filters,
    compute_total_ht,
    price_lines,
    quantize,
    validate_transition,
)
from app.services.numbering import PURCHASE_ORDER_PREFIX, generate_number
from app.services.stock_service import aggregate_quantities, stock_service

logger = logging.getLogger(__name__)

# Stati dai quali si può registrare una ricezione
RECEIVABLE_STATUSES = {
    PurchaseOrderStatus.DRAFT.value,
    PurchaseOrderStatus.ORDERED.value,
    PurchaseOrderStatus.PARTIALLY_RECEIVED.value,
}

PENDING_STATUSES = [PurchaseOrderStatus.ORDERED.value, PurchaseOrderStatus.PARTIALLY_RECEIVED.value]


class PurchaseOrderService:
    """Service per i bons d'achat e le ricezioni merce."""

    async def get_all(
        self,
        db: AsyncSession,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
        status: Optional[str] = None,
        supplier_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[list[PurchaseOrder], int]:
        query = apply_list_filters(select(PurchaseOrder), PurchaseOrder, start_date, end_date, status, search)
        count_query = apply_list_filters(
            select(func.count(PurchaseOrder.id)), PurchaseOrder, start_date, end_date, status, search
        )
        if supplier_id is not None:
            query = query.where(PurchaseOrder.supplier_id == supplier_id)
            count_query = count_query.where(PurchaseOrder.supplier_id == supplier_id)

        query = query.order_by(PurchaseOrder.issue_date.desc(), PurchaseOrder.number.desc())
        result = await db.execute(query.offset(skip).limit(limit))
        total = (await db.execute(count_query)).scalar() or 0
        return list(result.scalars().all()), total

    async def get_pending(self, db: AsyncSession) -> list[PurchaseOrder]:
        """Ordini in attesa di consegna (commandé o partiellement_reçu)."""
        result = await db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.status.in_(PENDING_STATUSES))
            .order_by(PurchaseOrder.issue_date.asc(), PurchaseOrder.number.asc())
        )
        return list(result.scalars().all())

    async def get_by_id(self, db: AsyncSession, order_id: uuid.UUID) -> PurchaseOrder:
        """
        Raises:
            NotFoundError: Se il bon d'achat non esiste
        """
        result = await db.execute(
            select(PurchaseOrder).where(PurchaseOrder.id == order_id).execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if not order:
            logger.warning("Bon d'achat non trovato: %s", order_id)
            raise NotFoundError(f"Bon d'achat {order_id} non trouvé")
        return order

    async def _ensure_supplier(self, db: AsyncSession, supplier_id: uuid.UUID) -> None:
        exists = (await db.execute(select(Supplier.id).where(Supplier.id == supplier_id))).scalar_one_or_none()
        if exists is None:
            raise NotFoundError(f"Fournisseur {supplier_id} non trouvé")

    # ------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------

    async def create(self, db: AsyncSession, data: PurchaseOrderCreate) -> PurchaseOrder:
        """
        Crea un bon d'achat in brouillon. Nessun movimento di magazzino.

        Raises:
            NotFoundError: Fornitore o prodotto inesistente
        """
        await self._ensure_supplier(db, data.supplier_id)
        products = await stock_service.lock_products(db, [line.product_id for line in data.lines])
        priced = price_lines(data.lines, products, use_purchase_price=True)

        total_ht = compute_total_ht(priced, data.discount)
        order = PurchaseOrder(
            number=await generate_number(db, PurchaseOrder, PURCHASE_ORDER_PREFIX),
            supplier_id=data.supplier_id,
            issue_date=data.issue_date,
            status=PurchaseOrderStatus.DRAFT.value,
            discount=quantize(data.discount),
            total_ht=total_ht,
            total_ttc=total_ht,
            payment_method=data.payment_method.value,
            purchase_type=data.purchase_type,
            supplier_invoice_ref=data.supplier_invoice_ref,
            notes=data.notes,
            lines=[PurchaseOrderLine(**line.as_dict(), received_quantity=0) for line in priced],
        )
        db.add(order)
        await db.flush()

        logger.info("Creato bon d'achat %s per fornitore %s: totale %s", order.number, data.supplier_id, total_ht)
        return await self.get_by_id(db, order.id)

    async def update(self, db: AsyncSession, order_id: uuid.UUID, data: PurchaseOrderUpdate) -> PurchaseOrder:
        """
        Aggiorna un bon d'achat.

        Raises:
            BusinessValidationError: Ordine payé/annulé, righe già ricevute
        """
        order = await self.get_by_id(db, order_id)
        update_data = data.model_dump(exclude_unset=True)

        if order.status in (PurchaseOrderStatus.PAID.value, PurchaseOrderStatus.CANCELLED.value):
            raise BusinessValidationError(f"Impossible de modifier un bon d'achat {order.status}")

        if data.supplier_id is not None and data.supplier_id != order.supplier_id:
            await self._ensure_supplier(db, data.supplier_id)
            order.supplier_id = data.supplier_id

        if data.lines is not None:
            if any(line.received_quantity for line in order.lines):
                raise BusinessValidationError(
                    "Les lignes ne sont plus modifiables: des réceptions ont déjà été enregistrées"
                )
            products = await stock_service.lock_products(db, [line.product_id for line in data.lines])
            priced = price_lines(data.lines, products, use_purchase_price=True)
            order.lines = [PurchaseOrderLine(**line.as_dict(), received_quantity=0) for line in priced]

        if data.discount is not None:
            order.discount = quantize(data.discount)
        if data.lines is not None or data.discount is not None:
            order.total_ht = compute_total_ht(order.lines, order.discount)
            order.total_ttc = order.total_ht

        for field in ("issue_date", "purchase_type", "supplier_invoice_ref", "notes"):
            if field in update_data and (field != "issue_date" or update_data[field] is not None):
                setattr(order, field, update_data[field])
        if data.payment_method is not None:
            order.payment_method = data.payment_method.value

        await db.flush()
        logger.info("Aggiornato bon d'achat %s - campi: %s", order.number, list(update_data.keys()))

        if data.status is not None and data.status.value != order.status:
            return await self.update_status(db, order_id, data.status)
        return await self.get_by_id(db, order_id)

    async def delete(self, db: AsyncSession, order_id: uuid.UUID) -> None:
        """
        Raises:
            BusinessValidationError: Ordine non in brouillon né annulé
        """
        order = await self.get_by_id(db, order_id)
        if order.status not in (PurchaseOrderStatus.DRAFT.value, PurchaseOrderStatus.CANCELLED.value):
            raise BusinessValidationError("Seuls les bons d'achat en brouillon ou annulés peuvent être supprimés")

        await db.delete(order)
        await db.flush()
        logger.info("Eliminato bon d'achat %s", order.number)

    # ------------------------------------------------------------
    # Ricezioni, pagamento, annullamento
    # ------------------------------------------------------------

    async def receive(self, db: AsyncSession, order_id: uuid.UUID, data: PurchaseOrderReceipt) -> PurchaseOrder:
        """
        Registra una consegna (anche parziale).

        La quantità ricevuta cumulata non può superare quella ordinata.
        Le scorte aumentano, il prezzo di acquisto del prodotto diventa
        il prezzo unitario della riga.

        Raises:
            BusinessValidationError: Stato non ricevibile, prodotto non ordinato,
                quantità oltre il residuo
        """
        order = await self.get_by_id(db, order_id)
        if order.status not in RECEIVABLE_STATUSES:
            raise BusinessValidationError(
                f"Impossible d'enregistrer une réception pour un bon d'achat {order.status}"
            )

        received = aggregate_quantities((line.product_id, line.quantity) for line in data.lines)
        lines_by_product: dict[uuid.UUID, list[PurchaseOrderLine]] = defaultdict(list)
        for line in order.lines:
            lines_by_product[line.product_id].append(line)

        for product_id, quantity in received.items():
            if product_id not in lines_by_product:
                raise BusinessValidationError(
                    f"Le produit {product_id} ne figure pas sur le bon d'achat {order.number}"
                )
            pending = sum(line.quantity - line.received_quantity for line in lines_by_product[product_id])
            if quantity > pending:
                raise BusinessValidationError(
                    f"Quantité reçue ({quantity}) supérieure au reste à recevoir ({pending}) "
                    f"sur le bon {order.number}"
                )

        for product_id, quantity in received.items():
            remaining = quantity
            for line in lines_by_product[product_id]:
                take = min(remaining, line.quantity - line.received_quantity)
                line.received_quantity += take
                remaining -= take
                if remaining == 0:
                    break

        await stock_service.increment_document(
            db,
            received.items(),
            StockDocumentType.PURCHASE_ORDER,
            order.id,
            order.number,
            reason="receipt",
        )

        products = await stock_service.lock_products(db, received.keys())
        for product_id in received:
            products[product_id].purchase_price = lines_by_product[product_id][-1].unit_price

        order.status = (
            PurchaseOrderStatus.RECEIVED.value if order.is_fully_received
            else PurchaseOrderStatus.PARTIALLY_RECEIVED.value
        )
        order.received_on = data.received_on
        if data.supplier_invoice_ref:
            order.supplier_invoice_ref = data.supplier_invoice_ref
        await db.flush()

        logger.info("Ricezione registrata su %s: %s prodotti, stato %s", order.number, len(received), order.status)
        return await self.get_by_id(db, order_id)

    async def mark_paid(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        data: Optional[PurchaseOrderPayment] = None,
    ) -> PurchaseOrder:
        """
        Raises:
            BusinessValidationError: Merce non ancora ricevuta
        """
        data = data or PurchaseOrderPayment()
        order = await self.get_by_id(db, order_id)
        payable = {s.value for s in RECEIPT_STATUSES} | {PurchaseOrderStatus.PARTIALLY_PAID.value}
        if order.status not in payable:
            raise BusinessValidationError(
                f"Le bon d'achat {order.number} doit être reçu avant d'être payé (statut: {order.status})"
            )

        order.status = PurchaseOrderStatus.PAID.value
        order.paid_on = data.paid_on
        if data.payment_method is not None:
            order.payment_method = data.payment_method.value
        await db.flush()

        logger.info("Bon d'achat %s pagato il %s", order.number, order.paid_on)
        return await self.get_by_id(db, order_id)

    async def cancel(self, db: AsyncSession, order_id: uuid.UUID) -> PurchaseOrder:
        """
        Annulla un bon d'achat: la merce ricevuta esce dal magazzino
        (senza scendere sotto zero).

        Raises:
            BusinessValidationError: Ordine già pagato o annullato
        """
        order = await self.get_by_id(db, order_id)
        if order.status == PurchaseOrderStatus.PAID.value:
            raise BusinessValidationError("Impossible d'annuler un bon d'achat payé")
        if order.status == PurchaseOrderStatus.CANCELLED.value:
            raise BusinessValidationError(f"Le bon d'achat {order.number} est déjà annulé")

        await stock_service.reverse_document(
            db,
            StockDocumentType.PURCHASE_ORDER,
            order.id,
            order.number,
            reason="cancel",
            clamp=True,
        )
        for line in order.lines:
            line.received_quantity = 0

        order.status = PurchaseOrderStatus.CANCELLED.value
        await db.flush()
        logger.info("Annullato bon d'achat %s", order.number)
        return await self.get_by_id(db, order_id)

    async def update_status(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        target: PurchaseOrderStatus,
    ) -> PurchaseOrder:
        """
        Cambio di stato manuale.

        Gli stati di ricezione si raggiungono solo registrando una consegna.
        """
        order = await self.get_by_id(db, order_id)
        validate_transition(order.status, target, VALID_TRANSITIONS, f"le bon d'achat {order.number}")

        if target == PurchaseOrderStatus.CANCELLED:
            return await self.cancel(db, order_id)
        if target == PurchaseOrderStatus.PAID:
            return await self.mark_paid(db, order_id)

        previous = order.status
        order.status = target.value
        await db.flush()
        logger.info("Bon d'achat %s: stato %s -> %s", order.number, previous, target.value)
        return await self.get_by_id(db, order_id)

    # ------------------------------------------------------------
    # Statistiche
    # ------------------------------------------------------------

    async def get_stats(
        self,
        db: AsyncSession,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
    ) -> dict[str, Any]:
        query = apply_list_filters(select(PurchaseOrder), PurchaseOrder, start_date, end_date)
        orders = list((await db.execute(query)).scalars().all())

        by_status: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "total": ZERO})
        for order in orders:
            by_status[order.status]["count"] += 1
            by_status[order.status]["total"] = quantize(by_status[order.status]["total"] + order.total_ttc)

        active = [o for o in orders if o.status != PurchaseOrderStatus.CANCELLED.value]
        return {
            "total_purchase_orders": len(orders),
            "total_amount": quantize(sum((o.total_ttc for o in active), ZERO)),
            "paid_amount": quantize(
                sum((o.total_ttc for o in active if o.status == PurchaseOrderStatus.PAID.value), ZERO)
            ),
            "pending_count": sum(1 for o in orders if o.status in PENDING_STATUSES),
            "by_status": dict(by_status),
        }


purchase_order_service = PurchaseOrderService()

"""
Servizio Ledger di Magazzino
Progetto: Gestion Commerciale (Back-office)

Ogni variazione di giacenza passa da qui: il movimento firmato viene
registrato in stock_movements e Product.quantity aggiornato nella stessa
transazione. I prodotti coinvolti sono letti con SELECT ... FOR UPDATE.

Lo storno di un documento (annullamento, eliminazione, sostituzione righe)
applica l'opposto della somma netta dei suoi movimenti, quindi un documento
già stornato non viene stornato una seconda volta.
"""

import logging
import uuid
from collections import defaultdict
from typing import Iterable, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessValidationError, NotFoundError
from app.models.product import Product, StockMovement
from app.schemas.product import StockDocumentType, StockOperation

logger = logging.getLogger(__name__)


def aggregate_quantities(lines: Iterable[Tuple[uuid.UUID, int]]) -> dict[uuid.UUID, int]:
    """Somma le quantità per prodotto (un prodotto può comparire su più righe)."""
    totals: dict[uuid.UUID, int] = defaultdict(int)
    for product_id, quantity in lines:
        totals[product_id] += quantity
    return dict(totals)


def insufficient_stock_message(product: Product) -> str:
    return f"Stock insuffisant pour {product.designation}. Stock disponible: {product.quantity}"


class StockService:
    """
    Service per il ledger di magazzino.

    Non esegue commit: il chiamante possiede la transazione.
    """

    # ------------------------------------------------------------
    # Lock prodotti
    # ------------------------------------------------------------

    async def lock_products(
        self,
        db: AsyncSession,
        product_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, Product]:
        """
        Carica e blocca i prodotti indicati.

        I lock sono acquisiti in ordine di id per evitare deadlock tra
        transazioni concorrenti.

        Raises:
            NotFoundError: Se un prodotto non esiste
        """
        ids = sorted(set(product_ids), key=str)
        if not ids:
            return {}

        result = await db.execute(
            select(Product)
            .where(Product.id.in_(ids))
            .order_by(Product.id)
            .with_for_update(of=Product)
            .execution_options(populate_existing=True)
        )
        products = {p.id: p for p in result.scalars().all()}

        for product_id in ids:
            if product_id not in products:
                logger.warning("Prodotto non trovato: %s", product_id)
                raise NotFoundError(f"Produit {product_id} non trouvé")
        return products

    # ------------------------------------------------------------
    # Movimenti
    # ------------------------------------------------------------

    def _record(
        self,
        db: AsyncSession,
        product: Product,
        delta: int,
        document_type: StockDocumentType,
        document_id: Optional[uuid.UUID],
        document_number: Optional[str],
        reason: str,
        notes: Optional[str] = None,
        clamp: bool = False,
    ) -> Optional[StockMovement]:
        """
        Applica un delta al prodotto e registra il movimento.

        Con clamp=True un decremento oltre la giacenza porta la giacenza a 0
        invece di sollevare errore.
        """
        before = product.quantity or 0
        after = before + delta
        if after < 0:
            if not clamp:
                raise BusinessValidationError(insufficient_stock_message(product))
            after = 0
            delta = -before
        if delta == 0:
            return None

        product.quantity = after
        movement = StockMovement(
            product_id=product.id,
            document_type=document_type.value,
            document_id=document_id,
            document_number=document_number,
            delta=delta,
            quantity_before=before,
            quantity_after=after,
            reason=reason,
            notes=notes,
        )
        db.add(movement)
        logger.debug(
            "Movimento %s %s su %s: %s -> %s",
            document_type.value,
            document_number,
            product.reference,
            before,
            after,
        )
        return movement

    async def apply_document(
        self,
        db: AsyncSession,
        lines: Iterable[Tuple[uuid.UUID, int]],
        document_type: StockDocumentType,
        document_id: uuid.UUID,
        document_number: str,
        sign: int,
        reason: str = "create",
    ) -> None:
        """
        Applica le righe di un documento al magazzino.

        Per i decrementi (sign=-1) verifica la disponibilità di tutti i
        prodotti prima di toccare qualsiasi giacenza: o passano tutte le
        righe o nessuna.

        Args:
            lines: Coppie (product_id, quantità)
            sign: -1 per scaricare, +1 per caricare
            reason: Causale registrata sul movimento
        """
        required = aggregate_quantities(lines)
        products = await self.lock_products(db, required.keys())

        if sign < 0:
            for product_id, quantity in required.items():
                product = products[product_id]
                if quantity > (product.quantity or 0):
                    logger.warning(
                        "Stock insufficiente per %s: disponibili=%s, richiesti=%s",
                        product.reference,
                        product.quantity,
                        quantity,
                    )
                    raise BusinessValidationError(insufficient_stock_message(product))

        for product_id, quantity in required.items():
            self._record(
                db,
                products[product_id],
                sign * quantity,
                document_type,
                document_id,
                document_number,
                reason,
            )
        await db.flush()

    async def decrement_document(self, db: AsyncSession, lines, document_type, document_id, document_number, reason="create") -> None:
        await self.apply_document(db, lines, document_type, document_id, document_number, -1, reason)

    async def increment_document(self, db: AsyncSession, lines, document_type, document_id, document_number, reason="create") -> None:
        await self.apply_document(db, lines, document_type, document_id, document_number, 1, reason)

    async def document_net(
        self,
        db: AsyncSession,
        document_type: StockDocumentType,
        document_id: uuid.UUID,
    ) -> dict[uuid.UUID, int]:
        """Effetto netto del documento sulle scorte, per prodotto."""
        await db.flush()
        result = await db.execute(
            select(StockMovement.product_id, func.sum(StockMovement.delta))
            .where(
                StockMovement.document_type == document_type.value,
                StockMovement.document_id == document_id,
            )
            .group_by(StockMovement.product_id)
        )
        return {product_id: int(total or 0) for product_id, total in result.all()}

    async def reverse_document(
        self,
        db: AsyncSession,
        document_type: StockDocumentType,
        document_id: uuid.UUID,
        document_number: str,
        reason: str,
        clamp: bool = False,
    ) -> dict[uuid.UUID, int]:
        """
        Storna l'effetto netto del documento.

        Returns:
            Delta applicati per prodotto
        """
        net = {pid: qty for pid, qty in (await self.document_net(db, document_type, document_id)).items() if qty}
        if not net:
            return {}

        products = await self.lock_products(db, net.keys())
        applied: dict[uuid.UUID, int] = {}
        for product_id, total in net.items():
            movement = self._record(
                db,
                products[product_id],
                -total,
                document_type,
                document_id,
                document_number,
                reason,
                clamp=clamp,
            )
            if movement is not None:
                applied[product_id] = movement.delta
        await db.flush()

        logger.info(
            "Stornati i movimenti di %s %s (%s prodotti)",
            document_type.value,
            document_number,
            len(applied),
        )
        return applied

    # ------------------------------------------------------------
    # Rettifiche manuali e storico
    # ------------------------------------------------------------

    async def adjust(
        self,
        db: AsyncSession,
        product_id: uuid.UUID,
        operation: StockOperation,
        quantity: int,
        notes: Optional[str] = None,
    ) -> Tuple[Product, Optional[StockMovement]]:
        """
        Rettifica manuale: set, add o subtract. La giacenza non scende sotto 0.

        Raises:
            BusinessValidationError: Se subtract porterebbe la giacenza sotto 0
        """
        products = await self.lock_products(db, [product_id])
        product = products[product_id]
        current = product.quantity or 0

        if operation == StockOperation.SET:
            delta = quantity - current
        elif operation == StockOperation.ADD:
            delta = quantity
        else:
            delta = -quantity

        movement = self._record(
            db,
            product,
            delta,
            StockDocumentType.MANUAL,
            None,
            None,
            f"adjustment_{operation.value}",
            notes=notes,
        )
        await db.flush()

        logger.info(
            "Rettifica %s su %s: %s -> %s",
            operation.value,
            product.reference,
            current,
            product.quantity,
        )
        return product, movement

    async def get_movements(
        self,
        db: AsyncSession,
        product_id: uuid.UUID,
        document_type: Optional[StockDocumentType] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[list[StockMovement], int]:
        """Storico movimenti di un prodotto, più recenti prima."""
        query = select(StockMovement).where(StockMovement.product_id == product_id)
        count_query = select(func.count(StockMovement.id)).where(StockMovement.product_id == product_id)

        if document_type is not None:
            query = query.where(StockMovement.document_type == document_type.value)
            count_query = count_query.where(StockMovement.document_type == document_type.value)

        query = query.order_by(StockMovement.created_at.desc()).offset(skip).limit(limit)

        result = await db.execute(query)
        items = list(result.scalars().all())
        total = (await db.execute(count_query)).scalar() or 0
        return items, total


stock_service = StockService()

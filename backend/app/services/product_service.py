"""
Servizi per la gestione dei Prodotti
Progetto: Gestion Commerciale (Back-office)

Contiene le funzioni di business logic per:
- CRUD prodotti (riferimento univoco, case-insensitive)
- Rettifiche di giacenza tramite ledger
- Storico movimenti
- Statistiche di magazzino
"""

import logging
import uuid
from typing import Any, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, DuplicateError, NotFoundError
from app.models import (
    CreditNoteLine,
    DeliveryNoteLine,
    InvoiceLine,
    Product,
    PurchaseOrderLine,
    QuoteLine,
    StockMovement,
    Supplier,
)
from app.schemas.product import ProductCreate, ProductUpdate, StockDocumentType, StockOperation
from app.services.document_utils import ZERO, quantize
from app.services.stock_service import stock_service

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD = 5


class ProductService:
    """
    Service per la gestione dei prodotti.

    Fornisce metodi asincroni per interagire con il database
    in modo centralizzato, senza dipendenze da FastAPI.
    """

    # ------------------------------------------------------------
    # CRUD Prodotti
    # ------------------------------------------------------------

    async def get_all(
        self,
        db: AsyncSession,
        search: Optional[str] = None,
        supplier_id: Optional[uuid.UUID] = None,
        in_stock: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[list[Product], int]:
        """
        Recupera i prodotti con filtri.

        Args:
            db: Sessione database
            search: Termine di ricerca (riferimento, designazione)
            supplier_id: Filtro per fornitore
            in_stock: True solo disponibili, False solo esauriti

        Returns:
            Tuple (lista prodotti, totale)
        """
        conditions = []
        if search:
            search_term = f"%{search.strip()}%"
            conditions.append(
                or_(
                    Product.reference.ilike(search_term),
                    Product.designation.ilike(search_term),
                    Product.observation.ilike(search_term),
                )
            )
        if supplier_id is not None:
            conditions.append(Product.supplier_id == supplier_id)
        if in_stock is True:
            conditions.append(Product.quantity > 0)
        elif in_stock is False:
            conditions.append(Product.quantity <= 0)

        query = select(Product).order_by(Product.reference.asc())
        count_query = select(func.count(Product.id))
        if conditions:
            query = query.where(*conditions)
            count_query = count_query.where(*conditions)

        result = await db.execute(query.offset(skip).limit(limit))
        items = list(result.scalars().all())
        total = (await db.execute(count_query)).scalar() or 0
        return items, total

    async def get_by_id(self, db: AsyncSession, product_id: uuid.UUID) -> Product:
        """
        Recupera un prodotto per ID.

        Raises:
            NotFoundError: Se il prodotto non esiste
        """
        result = await db.execute(
            select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
        )
        product = result.scalar_one_or_none()

        if not product:
            logger.warning("Prodotto non trovato: %s", product_id)
            raise NotFoundError(f"Produit {product_id} non trouvé")

        return product

    async def get_many(self, db: AsyncSession, product_ids) -> dict[uuid.UUID, Product]:
        """
        Carica più prodotti senza lock (documenti senza effetto sulle scorte).

        Raises:
            NotFoundError: Se uno dei prodotti non esiste
        """
        ids = set(product_ids)
        result = await db.execute(select(Product).where(Product.id.in_(ids)))
        products = {p.id: p for p in result.scalars().all()}
        missing = ids - products.keys()
        if missing:
            raise NotFoundError(f"Produit {next(iter(missing))} non trouvé")
        return products

    async def _check_reference(
        self,
        db: AsyncSession,
        reference: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(Product.id).where(func.lower(Product.reference) == reference.lower())
        if exclude_id is not None:
            query = query.where(Product.id != exclude_id)
        if (await db.execute(query.limit(1))).scalar_one_or_none() is not None:
            logger.warning("Riferimento prodotto duplicato: %s", reference)
            raise DuplicateError(f"Un produit avec la référence {reference} existe déjà")

    async def _check_supplier(self, db: AsyncSession, supplier_id: Optional[uuid.UUID]) -> None:
        if supplier_id is None:
            return
        exists = (await db.execute(select(Supplier.id).where(Supplier.id == supplier_id))).scalar_one_or_none()
        if exists is None:
            raise NotFoundError(f"Fournisseur {supplier_id} non trouvé")

    async def create(self, db: AsyncSession, data: ProductCreate) -> Product:
        """
        Crea un nuovo prodotto.

        La giacenza iniziale, se presente, viene registrata come
        movimento manuale.

        Raises:
            DuplicateError: Se il riferimento esiste già
        """
        await self._check_reference(db, data.reference)
        await self._check_supplier(db, data.supplier_id)

        initial_quantity = data.quantity
        product = Product(**data.model_dump(exclude={"quantity"}), quantity=0)
        db.add(product)
        await db.flush()

        if initial_quantity:
            await stock_service.adjust(
                db, product.id, StockOperation.SET, initial_quantity, notes="Stock initial"
            )

        logger.info("Creato prodotto: %s - %s (giacenza %s)", product.id, product.reference, initial_quantity)
        return await self.get_by_id(db, product.id)

    async def update(self, db: AsyncSession, product_id: uuid.UUID, data: ProductUpdate) -> Product:
        """
        Aggiorna un prodotto.

        Raises:
            NotFoundError: Se il prodotto non esiste
            DuplicateError: Se il nuovo riferimento è già in uso
        """
        product = await self.get_by_id(db, product_id)
        update_data = data.model_dump(exclude_unset=True)

        for required in ("reference", "designation", "purchase_price", "sale_price"):
            if required in update_data and update_data[required] is None:
                update_data.pop(required)

        if "reference" in update_data and update_data["reference"].lower() != product.reference.lower():
            await self._check_reference(db, update_data["reference"], exclude_id=product_id)
        if "supplier_id" in update_data:
            await self._check_supplier(db, update_data["supplier_id"])

        for field, value in update_data.items():
            setattr(product, field, value)

        if product.purchase_price and product.sale_price <= product.purchase_price:
            logger.warning(
                "Prezzo di vendita non superiore al prezzo di acquisto per il prodotto %s: acquisto=%s, vendita=%s",
                product.reference,
                product.purchase_price,
                product.sale_price,
            )

        await db.flush()
        logger.info("Aggiornato prodotto: %s - campi: %s", product.reference, list(update_data.keys()))
        return await self.get_by_id(db, product_id)

    async def delete(self, db: AsyncSession, product_id: uuid.UUID) -> None:
        """
        Elimina un prodotto.

        Raises:
            ConflictError: Se il prodotto compare su righe documento
        """
        product = await self.get_by_id(db, product_id)

        for line_model in (QuoteLine, DeliveryNoteLine, InvoiceLine, CreditNoteLine, PurchaseOrderLine):
            used = (
                await db.execute(select(func.count(line_model.id)).where(line_model.product_id == product_id))
            ).scalar() or 0
            if used:
                logger.warning("Eliminazione prodotto %s rifiutata: usato su %s righe", product.reference, used)
                raise ConflictError(
                    f"Impossible de supprimer le produit {product.reference}: il est utilisé dans des documents"
                )

        await db.delete(product)
        await db.flush()
        logger.info("Eliminato prodotto: %s", product.reference)

    # ------------------------------------------------------------
    # Magazzino
    # ------------------------------------------------------------

    async def update_stock(
        self,
        db: AsyncSession,
        product_id: uuid.UUID,
        operation: StockOperation,
        quantity: int,
        notes: Optional[str] = None,
    ) -> Tuple[Product, Optional[StockMovement]]:
        """
        Rettifica manuale della giacenza (set / add / subtract).

        Raises:
            NotFoundError: Se il prodotto non esiste
            BusinessValidationError: Se la giacenza scenderebbe sotto 0
        """
        await self.get_by_id(db, product_id)
        product, movement = await stock_service.adjust(db, product_id, operation, quantity, notes)
        return product, movement

    async def get_movements(
        self,
        db: AsyncSession,
        product_id: uuid.UUID,
        document_type: Optional[StockDocumentType] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[list[StockMovement], int]:
        await self.get_by_id(db, product_id)
        return await stock_service.get_movements(db, product_id, document_type, skip, limit)

    async def get_stats(self, db: AsyncSession) -> dict[str, Any]:
        """Conteggi e valore di magazzino."""
        products = list((await db.execute(select(Product))).scalars().all())

        stock_value = quantize(sum((p.purchase_price * p.quantity for p in products), ZERO))
        sale_value = quantize(sum((p.sale_price * p.quantity for p in products), ZERO))

        top = sorted(products, key=lambda p: p.sale_price * p.quantity, reverse=True)[:5]
        return {
            "total_products": len(products),
            "total_quantity": sum(p.quantity for p in products),
            "out_of_stock": sum(1 for p in products if p.quantity <= 0),
            "low_stock": sum(1 for p in products if 0 < p.quantity <= LOW_STOCK_THRESHOLD),
            "stock_value": stock_value,
            "sale_value": sale_value,
            "potential_margin": quantize(sale_value - stock_value),
            "top_by_value": [
                {
                    "id": str(p.id),
                    "reference": p.reference,
                    "designation": p.designation,
                    "quantity": p.quantity,
                    "value": quantize(p.sale_price * p.quantity),
                }
                for p in top
            ],
        }

    async def get_by_supplier(
        self,
        db: AsyncSession,
        supplier_id: uuid.UUID,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[list[Product], int]:
        await self._check_supplier(db, supplier_id)
        return await self.get_all(db, supplier_id=supplier_id, skip=skip, limit=limit)


product_service = ProductService()

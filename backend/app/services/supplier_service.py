"""
Service Layer per i Fornitori
Progetto: Gestion Commerciale (Back-office)

Anagrafica fornitori con unicità di telefono e riferimento,
più le viste sui bons d'achat del fornitore.
"""

import datetime
import logging
import uuid
from collections import defaultdict
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DuplicateError, NotFoundError
from app.models import Product, PurchaseOrder, PurchaseOrderLine, Supplier
from app.schemas.product import StockDocumentType
from app.schemas.supplier import SupplierCreate, SupplierUpdate
from app.services.document_utils import ZERO, quantize
from app.services.stock_service import stock_service

logger = logging.getLogger(__name__)


class SupplierService:
    """Operazioni CRUD e statistiche sui fornitori."""

    async def get_all(
        self,
        db: AsyncSession,
        skip: int = 0,
        limit: int = 100,
        search: Optional[str] = None,
    ) -> tuple[list[Supplier], int]:
        conditions = []
        if search:
            search_term = f"%{search.strip()}%"
            conditions.append(
                or_(
                    Supplier.full_name.ilike(search_term),
                    Supplier.phone.ilike(search_term),
                    Supplier.reference.ilike(search_term),
                    Supplier.city.ilike(search_term),
                )
            )

        query = select(Supplier).order_by(Supplier.full_name.asc())
        count_query = select(func.count()).select_from(Supplier)
        if conditions:
            query = query.where(*conditions)
            count_query = count_query.where(*conditions)

        result = await db.execute(query.offset(skip).limit(limit))
        suppliers = list(result.scalars().all())
        total = (await db.execute(count_query)).scalar() or 0
        return suppliers, total

    async def get_by_id(self, db: AsyncSession, supplier_id: uuid.UUID) -> Supplier:
        """
        Raises:
            NotFoundError: Se il fornitore non esiste
        """
        result = await db.execute(select(Supplier).where(Supplier.id == supplier_id))
        supplier = result.scalar_one_or_none()
        if not supplier:
            logger.warning("Fornitore non trovato: %s", supplier_id)
            raise NotFoundError(f"Fournisseur {supplier_id} non trouvé")
        return supplier

    async def _check_unique(
        self,
        db: AsyncSession,
        phone: Optional[str],
        reference: Optional[str],
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        """
        Validazione proattiva dei campi univoci.

        Raises:
            DuplicateError: Se telefono o riferimento sono già usati
        """
        checks = []
        if phone:
            checks.append((Supplier.phone == phone, f"Un fournisseur avec le téléphone {phone} existe déjà"))
        if reference:
            checks.append(
                (
                    func.lower(Supplier.reference) == reference.lower(),
                    f"Un fournisseur avec la référence {reference} existe déjà",
                )
            )

        for condition, message in checks:
            query = select(Supplier.id).where(condition)
            if exclude_id is not None:
                query = query.where(Supplier.id != exclude_id)
            if (await db.execute(query.limit(1))).scalar_one_or_none() is not None:
                logger.warning("Fornitore duplicato: %s", message)
                raise DuplicateError(message)

    async def create(self, db: AsyncSession, data: SupplierCreate) -> Supplier:
        """
        Crea un fornitore.

        Raises:
            DuplicateError: Se telefono o riferimento sono già registrati
        """
        await self._check_unique(db, data.phone, data.reference)

        supplier = Supplier(**data.model_dump())
        try:
            db.add(supplier)
            await db.flush()
        except IntegrityError as e:
            logger.error("Errore IntegrityError creazione fornitore: %s", e.orig)
            raise DuplicateError("Téléphone ou référence déjà utilisé")
        await db.refresh(supplier)

        logger.info("Creato fornitore: %s - %s", supplier.id, supplier.full_name)
        return supplier

    async def update(self, db: AsyncSession, supplier_id: uuid.UUID, data: SupplierUpdate) -> Supplier:
        supplier = await self.get_by_id(db, supplier_id)
        update_data = data.model_dump(exclude_unset=True)
        if update_data.get("phone") is None:
            update_data.pop("phone", None)
        if "full_name" in update_data and not update_data["full_name"]:
            update_data.pop("full_name")

        await self._check_unique(db, update_data.get("phone"), update_data.get("reference"), exclude_id=supplier_id)

        for field, value in update_data.items():
            setattr(supplier, field, value)

        await db.flush()
        await db.refresh(supplier)
        logger.info("Aggiornato fornitore: %s - campi: %s", supplier.id, list(update_data.keys()))
        return supplier

    async def delete(self, db: AsyncSession, supplier_id: uuid.UUID) -> None:
        """
        Elimina un fornitore e i suoi bons d'achat.

        La merce già ricevuta sui bons viene stornata dal magazzino (mai
        sotto zero); i prodotti collegati perdono il fornitore.
        """
        supplier = await self.get_by_id(db, supplier_id)

        orders = (
            await db.execute(select(PurchaseOrder).where(PurchaseOrder.supplier_id == supplier_id))
        ).scalars().all()
        for order in orders:
            await stock_service.reverse_document(
                db, StockDocumentType.PURCHASE_ORDER, order.id, order.number, reason="delete", clamp=True
            )
            await db.delete(order)

        products = await db.execute(select(Product).where(Product.supplier_id == supplier_id))
        for product in products.scalars().all():
            product.supplier_id = None

        await db.flush()
        await db.delete(supplier)
        await db.flush()
        logger.info("Eliminato fornitore %s - %s con %s bons d'achat", supplier.id, supplier.full_name, len(orders))

    # ------------------------------------------------------------
    # Statistiche e viste sui bons d'achat
    # ------------------------------------------------------------

    async def get_stats(self, db: AsyncSession) -> dict[str, Any]:
        total = (await db.execute(select(func.count(Supplier.id)))).scalar() or 0
        city_count = func.count(Supplier.id).label("count")
        rows = await db.execute(
            select(Supplier.city, city_count)
            .where(Supplier.city.is_not(None))
            .group_by(Supplier.city)
            .order_by(city_count.desc())
            .limit(10)
        )
        with_orders = (
            await db.execute(select(func.count(func.distinct(PurchaseOrder.supplier_id))))
        ).scalar() or 0
        return {
            "total_suppliers": total,
            "suppliers_with_orders": with_orders,
            "suppliers_by_city": [{"city": city, "count": count} for city, count in rows.all()],
        }

    async def get_purchase_orders(
        self,
        db: AsyncSession,
        supplier_id: uuid.UUID,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> tuple[list[PurchaseOrder], int]:
        await self.get_by_id(db, supplier_id)

        query = select(PurchaseOrder).where(PurchaseOrder.supplier_id == supplier_id)
        count_query = select(func.count(PurchaseOrder.id)).where(PurchaseOrder.supplier_id == supplier_id)
        if status and status != "all":
            query = query.where(PurchaseOrder.status == status)
            count_query = count_query.where(PurchaseOrder.status == status)

        query = query.order_by(PurchaseOrder.issue_date.desc(), PurchaseOrder.number.desc())
        result = await db.execute(query.offset(skip).limit(limit))
        total = (await db.execute(count_query)).scalar() or 0
        return list(result.scalars().all()), total

    async def get_purchase_order_stats(self, db: AsyncSession, supplier_id: uuid.UUID) -> dict[str, Any]:
        """Conteggi e importi dei bons d'achat del fornitore, per stato."""
        orders, _ = await self.get_purchase_orders(db, supplier_id, limit=100000)

        by_status: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "total": ZERO})
        for order in orders:
            by_status[order.status]["count"] += 1
            by_status[order.status]["total"] = quantize(by_status[order.status]["total"] + order.total_ttc)

        active = [o for o in orders if o.status != "annulé"]
        total_amount = quantize(sum((o.total_ttc for o in active), ZERO))
        return {
            "total_orders": len(orders),
            "total_amount": total_amount,
            "paid_amount": quantize(sum((o.total_ttc for o in active if o.status == "payé"), ZERO)),
            "average_amount": quantize(total_amount / len(active)) if active else ZERO,
            "last_order_date": max((o.issue_date for o in orders), default=None),
            "by_status": dict(by_status),
        }

    async def get_recent_purchase_orders(
        self, db: AsyncSession, supplier_id: uuid.UUID, limit: int = 5
    ) -> list[PurchaseOrder]:
        """Ultimi bons d'achat del fornitore, dal più recente."""
        orders, _ = await self.get_purchase_orders(db, supplier_id, limit=limit)
        return orders

    async def get_products_summary(
        self,
        db: AsyncSession,
        supplier_id: uuid.UUID,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
    ) -> tuple[Supplier, dict[str, Any], list[dict[str, Any]]]:
        """
        Riepilogo degli acquisti per prodotto sui bons non annullati:
        quantità ordinate e ricevute, importo, prezzo medio, prima e ultima data.
        """
        supplier = await self.get_by_id(db, supplier_id)

        query = (
            select(PurchaseOrderLine, PurchaseOrder.issue_date)
            .join(PurchaseOrder, PurchaseOrderLine.purchase_order_id == PurchaseOrder.id)
            .where(PurchaseOrder.supplier_id == supplier_id, PurchaseOrder.status != "annulé")
        )
        if start_date is not None:
            query = query.where(PurchaseOrder.issue_date >= start_date)
        if end_date is not None:
            query = query.where(PurchaseOrder.issue_date <= end_date)

        aggregated: dict[uuid.UUID, dict[str, Any]] = {}
        orders_per_product: dict[uuid.UUID, set] = defaultdict(set)
        for line, issue_date in (await db.execute(query)).all():
            entry = aggregated.setdefault(
                line.product_id,
                {
                    "product_id": str(line.product_id),
                    "reference": line.product.reference,
                    "designation": line.product.designation,
                    "ordered_quantity": 0,
                    "received_quantity": 0,
                    "total_amount": ZERO,
                    "first_order": issue_date,
                    "last_order": issue_date,
                },
            )
            entry["ordered_quantity"] += line.quantity
            entry["received_quantity"] += line.received_quantity
            entry["total_amount"] = quantize(entry["total_amount"] + line.line_total)
            entry["first_order"] = min(entry["first_order"], issue_date)
            entry["last_order"] = max(entry["last_order"], issue_date)
            orders_per_product[line.product_id].add(line.purchase_order_id)

        for product_id, entry in aggregated.items():
            entry["order_count"] = len(orders_per_product[product_id])
            entry["pending_quantity"] = entry["ordered_quantity"] - entry["received_quantity"]
            entry["average_unit_price"] = (
                quantize(entry["total_amount"] / entry["ordered_quantity"]) if entry["ordered_quantity"] else ZERO
            )

        products = sorted(aggregated.values(), key=lambda p: p["total_amount"], reverse=True)
        summary = {
            "total_products": len(products),
            "ordered_quantity": sum(p["ordered_quantity"] for p in products),
            "received_quantity": sum(p["received_quantity"] for p in products),
            "pending_quantity": sum(p["pending_quantity"] for p in products),
            "total_amount": quantize(sum((p["total_amount"] for p in products), ZERO)),
        }
        return supplier, summary, products

    async def get_product_history(
        self,
        db: AsyncSession,
        supplier_id: uuid.UUID,
        reference: Optional[str] = None,
    ) -> tuple[Supplier, list[dict[str, Any]]]:
        """Prodotti acquistati dal fornitore, aggregati per prodotto."""
        supplier = await self.get_by_id(db, supplier_id)

        query = (
            select(PurchaseOrderLine, PurchaseOrder.number, PurchaseOrder.issue_date)
            .join(PurchaseOrder, PurchaseOrderLine.purchase_order_id == PurchaseOrder.id)
            .where(PurchaseOrder.supplier_id == supplier_id, PurchaseOrder.status != "annulé")
            .order_by(PurchaseOrder.issue_date.asc())
        )
        if reference:
            query = query.join(Product, PurchaseOrderLine.product_id == Product.id).where(
                Product.reference.ilike(f"%{reference.strip()}%")
            )

        aggregated: dict[uuid.UUID, dict[str, Any]] = {}
        for line, number, issue_date in (await db.execute(query)).all():
            entry = aggregated.setdefault(
                line.product_id,
                {
                    "product_id": str(line.product_id),
                    "reference": line.product.reference if line.product else None,
                    "designation": line.product.designation if line.product else None,
                    "ordered_quantity": 0,
                    "received_quantity": 0,
                    "total_amount": ZERO,
                    "last_unit_price": None,
                    "purchases": [],
                },
            )
            entry["ordered_quantity"] += line.quantity
            entry["received_quantity"] += line.received_quantity
            entry["total_amount"] = quantize(entry["total_amount"] + line.line_total)
            entry["last_unit_price"] = quantize(line.unit_price)
            entry["purchases"].append(
                {"number": number, "date": issue_date, "quantity": line.quantity, "unit_price": quantize(line.unit_price)}
            )

        return supplier, sorted(aggregated.values(), key=lambda p: p["ordered_quantity"], reverse=True)

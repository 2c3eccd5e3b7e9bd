"""
Service Layer per l'entità Client
Progetto: Gestion Commerciale (Back-office)

Definisce la logica di business per la gestione dei clienti:
- CRUD anagrafica
- Ricerca e statistiche
- Storico documenti, riepilogo finanziario, prodotti acquistati
"""

import datetime
import logging
import uuid
from collections import defaultdict
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.models import (
    Client,
    CreditNote,
    DeliveryNote,
    DeliveryNoteLine,
    Invoice,
    InvoiceLine,
    Product,
    Quote,
    QuoteLine,
)
from app.schemas.client import ClientCreate, ClientDocumentType, ClientPaymentStatus, ClientStats, ClientUpdate
from app.schemas.product import StockDocumentType
from app.services.document_utils import ZERO, paid_amount, quantize
from app.services.stock_service import stock_service

# Logger per questo modulo
logger = logging.getLogger(__name__)


def _document_brief(document, total_field: str = "total_ttc") -> dict[str, Any]:
    return {
        "id": str(document.id),
        "number": document.number,
        "issue_date": document.issue_date.isoformat(),
        "status": document.status,
        "total_ttc": quantize(getattr(document, total_field)),
    }


class ClientService:
    """
    Service per la gestione delle operazioni sui clienti.

    Fornisce metodi asincroni per interagire con il database
    in modo centralizzato, senza dipendenze da FastAPI.

    Usage with Dependency Injection:
        from app.services.client_service import ClientService

        @router.get("/clients")
        async def get_clients(service: ClientService = Depends(get_client_service)):
            return await service.get_all(db)
    """

    async def get_all(
        self,
        db: AsyncSession,
        skip: int = 0,
        limit: int = 100,
        search: Optional[str] = None,
    ) -> tuple[list[Client], int]:
        """
        Recupera la lista dei clienti ordinata per nome.

        Args:
            db: Sessione database
            skip: Record da saltare
            limit: Numero massimo di record
            search: Termine di ricerca opzionale

        Returns:
            Tuple di (lista clienti, totale count)
        """
        conditions = []
        if search:
            search_term = f"%{search.strip()}%"
            conditions.append(
                or_(
                    Client.full_name.ilike(search_term),
                    Client.reference.ilike(search_term),
                    Client.phone.ilike(search_term),
                    Client.city.ilike(search_term),
                )
            )

        query = select(Client).order_by(Client.full_name.asc())
        count_query = select(func.count()).select_from(Client)
        if conditions:
            query = query.where(*conditions)
            count_query = count_query.where(*conditions)

        result = await db.execute(query.offset(skip).limit(limit))
        clients = list(result.scalars().all())
        total = (await db.execute(count_query)).scalar() or 0

        logger.info("Recuperati %s clienti su %s totali", len(clients), total)
        return clients, total

    async def search(self, db: AsyncSession, query: str, limit: int = 20) -> list[Client]:
        clients, _ = await self.get_all(db, skip=0, limit=limit, search=query)
        return clients

    async def get_by_id(self, db: AsyncSession, client_id: uuid.UUID) -> Client:
        """
        Recupera un cliente per ID.

        Raises:
            NotFoundError: Se il cliente non esiste
        """
        result = await db.execute(select(Client).where(Client.id == client_id))
        client = result.scalar_one_or_none()

        if not client:
            logger.warning("Cliente non trovato: %s", client_id)
            raise NotFoundError(f"Client {client_id} non trouvé")

        return client

    async def create(self, db: AsyncSession, client_data: ClientCreate) -> Client:
        """
        Crea un nuovo cliente.

        Args:
            db: Sessione database
            client_data: Dati del cliente da creare

        Returns:
            Oggetto Client appena creato
        """
        client = Client(**client_data.model_dump())
        db.add(client)
        await db.flush()
        await db.refresh(client)

        logger.info("Creato nuovo cliente: %s - %s", client.id, client.full_name)
        return client

    async def update(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        client_data: ClientUpdate,
    ) -> Client:
        """
        Aggiorna un cliente esistente (solo i campi inviati).

        Raises:
            NotFoundError: Se il cliente non esiste
        """
        client = await self.get_by_id(db, client_id)

        update_data = client_data.model_dump(exclude_unset=True)
        if "full_name" in update_data and not update_data["full_name"]:
            update_data.pop("full_name")

        for field, value in update_data.items():
            setattr(client, field, value)

        await db.flush()
        await db.refresh(client)

        logger.info("Aggiornato cliente: %s - campi: %s", client.id, list(update_data.keys()))
        return client

    async def delete(self, db: AsyncSession, client_id: uuid.UUID) -> None:
        """
        Elimina un cliente insieme a tutti i suoi documenti.

        Ogni documento viene eliminato come farebbe il suo service: il
        ledger storna l'effetto netto sulle scorte (mai sotto zero per gli
        avoirs), poi righe, acconti e documento spariscono.

        Raises:
            NotFoundError: Se il cliente non esiste
        """
        client = await self.get_by_id(db, client_id)

        credit_notes = await self._documents(db, CreditNote, client_id)
        invoices = await self._documents(db, Invoice, client_id)
        quotes = await self._documents(db, Quote, client_id)
        notes = await self._documents(db, DeliveryNote, client_id)

        # I collegamenti tra documenti dello stesso cliente vanno sciolti prima
        for credit_note in credit_notes:
            credit_note.delivery_note_id = None
            credit_note.used_on_delivery_note_id = None
        for invoice in invoices:
            invoice.delivery_note_id = None
            invoice.quote_id = None
        for quote in quotes:
            quote.delivery_note_id = None
            quote.invoice_id = None
        for note in notes:
            note.quote_id = None
        await db.flush()

        for credit_note in credit_notes:
            await stock_service.reverse_document(
                db, StockDocumentType.CREDIT_NOTE, credit_note.id, credit_note.number, reason="delete", clamp=True
            )
            await db.delete(credit_note)

        for invoice in invoices:
            await stock_service.reverse_document(
                db, StockDocumentType.INVOICE, invoice.id, invoice.number, reason="delete"
            )
            for advancement in list(invoice.advancements):
                invoice.advancements.remove(advancement)
                if advancement.delivery_note_id is None:
                    await db.delete(advancement)
            await db.delete(invoice)

        for quote in quotes:
            await db.delete(quote)

        for note in notes:
            await stock_service.reverse_document(
                db, StockDocumentType.DELIVERY_NOTE, note.id, note.number, reason="delete"
            )
            await db.delete(note)

        await db.flush()
        await db.delete(client)
        await db.flush()

        logger.info(
            "Eliminato cliente %s - %s con %s devis, %s BL, %s fatture, %s avoirs",
            client.id,
            client.full_name,
            len(quotes),
            len(notes),
            len(invoices),
            len(credit_notes),
        )

    # ------------------------------------------------------------
    # Statistiche e storico
    # ------------------------------------------------------------

    async def get_stats(self, db: AsyncSession) -> ClientStats:
        """Totale clienti, nuovi clienti del mese, prime 10 città."""
        total = (await db.execute(select(func.count(Client.id)))).scalar() or 0

        today = datetime.date.today()
        start_of_month = datetime.datetime(today.year, today.month, 1, tzinfo=datetime.timezone.utc)
        new_this_month = (
            await db.execute(select(func.count(Client.id)).where(Client.created_at >= start_of_month))
        ).scalar() or 0

        city_count = func.count(Client.id).label("count")
        rows = await db.execute(
            select(Client.city, city_count)
            .where(Client.city.is_not(None))
            .group_by(Client.city)
            .order_by(city_count.desc())
            .limit(10)
        )
        return ClientStats(
            total_clients=total,
            new_clients_this_month=new_this_month,
            clients_by_city=[{"city": city, "count": count} for city, count in rows.all()],
        )

    async def _documents(self, db: AsyncSession, model, client_id: uuid.UUID) -> list:
        result = await db.execute(
            select(model).where(model.client_id == client_id).order_by(model.issue_date.desc(), model.number.desc())
        )
        return list(result.scalars().all())

    async def get_history(self, db: AsyncSession, client_id: uuid.UUID) -> tuple[Client, dict[str, Any]]:
        """
        Storico completo dei documenti del cliente.

        Returns:
            Tuple (cliente, dizionario con devis, bons de livraison, factures, avoirs e totali)
        """
        client = await self.get_by_id(db, client_id)

        quotes = await self._documents(db, Quote, client_id)
        delivery_notes = await self._documents(db, DeliveryNote, client_id)
        invoices = await self._documents(db, Invoice, client_id)
        credit_notes = await self._documents(db, CreditNote, client_id)

        history = {
            "quotes": [_document_brief(q) for q in quotes],
            "delivery_notes": [
                {**_document_brief(d), "is_invoiced": d.is_invoiced, "paid": paid_amount(d.advancements)}
                for d in delivery_notes
            ],
            "invoices": [
                {**_document_brief(i), "amount_paid": quantize(i.amount_paid), "amount_due": quantize(i.amount_due)}
                for i in invoices
            ],
            "credit_notes": [{**_document_brief(c), "reason": c.reason} for c in credit_notes],
            "totals": {
                "quotes": len(quotes),
                "delivery_notes": len(delivery_notes),
                "invoices": len(invoices),
                "credit_notes": len(credit_notes),
                "invoiced_amount": quantize(
                    sum((i.total_ttc for i in invoices if i.status != "annulée"), ZERO)
                ),
            },
        }
        return client, history

    async def get_summary(self, db: AsyncSession, client_id: uuid.UUID) -> tuple[Client, dict[str, Any]]:
        """Ultimi documenti, conteggi per stato e riepilogo finanziario."""
        client, history = await self.get_history(db, client_id)

        def status_counts(items: list[dict]) -> dict[str, int]:
            counts: dict[str, int] = defaultdict(int)
            for item in items:
                counts[item["status"]] += 1
            return dict(counts)

        active_invoices = [i for i in history["invoices"] if i["status"] != "annulée"]
        total_sales = sum((i["total_ttc"] for i in active_invoices), ZERO)
        total_paid = sum((i["amount_paid"] for i in active_invoices), ZERO)
        total_outstanding = sum((i["amount_due"] for i in active_invoices if i["status"] != "payée"), ZERO)

        summary = {
            "latest_documents": {
                "quote": history["quotes"][0] if history["quotes"] else None,
                "delivery_note": history["delivery_notes"][0] if history["delivery_notes"] else None,
                "invoice": history["invoices"][0] if history["invoices"] else None,
            },
            "counts": {
                key: history["totals"][key]
                for key in ("quotes", "delivery_notes", "invoices", "credit_notes")
            },
            "status_counts": {
                "quotes": status_counts(history["quotes"]),
                "delivery_notes": status_counts(history["delivery_notes"]),
                "invoices": status_counts(history["invoices"]),
            },
            "financial": {
                "total_sales": quantize(total_sales),
                "total_paid": quantize(total_paid),
                "total_outstanding": quantize(total_outstanding),
                "payment_percentage": (
                    round(float(total_paid / total_sales * 100), 2) if total_sales > 0 else 0.0
                ),
            },
        }
        return client, summary

    async def get_products(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
    ) -> tuple[Client, list[dict[str, Any]]]:
        """
        Prodotti acquistati dal cliente.

        Considera i BL e le fatture dirette non annullati; le fatture
        generate da un BL sono escluse per non contare due volte le righe.
        """
        client = await self.get_by_id(db, client_id)

        dn_query = (
            select(DeliveryNoteLine, DeliveryNote.number, DeliveryNote.issue_date)
            .join(DeliveryNote, DeliveryNoteLine.delivery_note_id == DeliveryNote.id)
            .where(DeliveryNote.client_id == client_id, DeliveryNote.status != "annulée")
        )
        inv_query = (
            select(InvoiceLine, Invoice.number, Invoice.issue_date)
            .join(Invoice, InvoiceLine.invoice_id == Invoice.id)
            .where(
                Invoice.client_id == client_id,
                Invoice.status != "annulée",
                Invoice.delivery_note_id.is_(None),
            )
        )
        if start_date is not None:
            dn_query = dn_query.where(DeliveryNote.issue_date >= start_date)
            inv_query = inv_query.where(Invoice.issue_date >= start_date)
        if end_date is not None:
            dn_query = dn_query.where(DeliveryNote.issue_date <= end_date)
            inv_query = inv_query.where(Invoice.issue_date <= end_date)

        aggregated: dict[uuid.UUID, dict[str, Any]] = {}
        for query in (dn_query, inv_query):
            for line, number, issue_date in (await db.execute(query)).all():
                entry = aggregated.setdefault(
                    line.product_id,
                    {
                        "product_id": str(line.product_id),
                        "reference": line.product.reference if line.product else None,
                        "designation": line.product.designation if line.product else None,
                        "total_quantity": 0,
                        "total_amount": ZERO,
                        "documents": [],
                        "last_purchase": None,
                    },
                )
                entry["total_quantity"] += line.quantity
                entry["total_amount"] = quantize(entry["total_amount"] + line.line_total)
                entry["documents"].append(number)
                if entry["last_purchase"] is None or issue_date > entry["last_purchase"]:
                    entry["last_purchase"] = issue_date

        products = sorted(aggregated.values(), key=lambda p: p["total_quantity"], reverse=True)
        return client, products

    async def get_products_by_reference(
        self,
        db: AsyncSession,
        client_id: uuid.UUID,
        reference: str,
        exact_match: bool = False,
        document_type: Optional[ClientDocumentType] = None,
        start_date: Optional[datetime.date] = None,
        end_date: Optional[datetime.date] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> tuple[Client, list[dict[str, Any]], list[dict[str, Any]], int]:
        """
        Righe di devis, BL e fatture del cliente per i prodotti il cui
        riferimento corrisponde alla ricerca.

        Ricerca parziale e senza distinzione di maiuscole, oppure esatta
        con exact_match. Tutti gli stati sono inclusi: lo storico mostra
        anche i documenti annullati.

        Returns:
            (cliente, righe paginate dalla più recente, statistiche per prodotto, totale righe)
        """
        client = await self.get_by_id(db, client_id)

        term = reference.strip().upper()
        if exact_match:
            reference_filter = func.upper(Product.reference) == term
        else:
            reference_filter = Product.reference.ilike(f"%{term}%")

        sources = (
            (ClientDocumentType.QUOTE, Quote, QuoteLine, QuoteLine.quote_id),
            (ClientDocumentType.DELIVERY_NOTE, DeliveryNote, DeliveryNoteLine, DeliveryNoteLine.delivery_note_id),
            (ClientDocumentType.INVOICE, Invoice, InvoiceLine, InvoiceLine.invoice_id),
        )

        entries: list[dict[str, Any]] = []
        for kind, model, line_model, parent_column in sources:
            if document_type is not None and document_type != kind:
                continue
            query = (
                select(line_model, model)
                .join(model, parent_column == model.id)
                .join(Product, line_model.product_id == Product.id)
                .where(model.client_id == client_id, reference_filter)
            )
            if start_date is not None:
                query = query.where(model.issue_date >= start_date)
            if end_date is not None:
                query = query.where(model.issue_date <= end_date)

            for line, document in (await db.execute(query)).all():
                entries.append(
                    {
                        "document_type": kind.value,
                        "document": _document_brief(document),
                        "product": {
                            "id": str(line.product_id),
                            "reference": line.product.reference,
                            "designation": line.product.designation,
                        },
                        "quantity": line.quantity,
                        "unit_price": quantize(line.unit_price),
                        "line_total": quantize(line.line_total),
                    }
                )

        entries.sort(key=lambda e: (e["document"]["issue_date"], e["document"]["number"]), reverse=True)

        stats: dict[str, dict[str, Any]] = {}
        for entry in entries:
            product = entry["product"]
            issued = entry["document"]["issue_date"]
            item = stats.setdefault(
                product["id"],
                {
                    "product": product,
                    "total_quantity": 0,
                    "total_amount": ZERO,
                    "appearances": 0,
                    "first_seen": issued,
                    "last_seen": issued,
                    "by_document_type": {
                        kind.value: {"count": 0, "total_quantity": 0, "total_amount": ZERO}
                        for kind in ClientDocumentType
                    },
                },
            )
            item["total_quantity"] += entry["quantity"]
            item["total_amount"] = quantize(item["total_amount"] + entry["line_total"])
            item["appearances"] += 1
            item["first_seen"] = min(item["first_seen"], issued)
            item["last_seen"] = max(item["last_seen"], issued)
            by_type = item["by_document_type"][entry["document_type"]]
            by_type["count"] += 1
            by_type["total_quantity"] += entry["quantity"]
            by_type["total_amount"] = quantize(by_type["total_amount"] + entry["line_total"])

        products = sorted(stats.values(), key=lambda p: p["total_quantity"], reverse=True)
        return client, entries[skip : skip + limit], products, len(entries)

    async def get_payment_status(self, db: AsyncSession, client_id: uuid.UUID) -> tuple[Client, ClientPaymentStatus]:
        """Fatture non saldate e BL non fatturati con residuo da incassare."""
        client = await self.get_by_id(db, client_id)
        invoices = [i for i in await self._documents(db, Invoice, client_id) if i.status != "annulée"]
        delivery_notes = [
            d
            for d in await self._documents(db, DeliveryNote, client_id)
            if d.status != "annulée" and not d.is_invoiced
        ]

        status = ClientPaymentStatus(
            total_invoiced=quantize(sum((i.total_ttc for i in invoices), ZERO)),
            total_paid=quantize(sum((i.amount_paid for i in invoices), ZERO)),
            total_due=quantize(sum((i.amount_due for i in invoices), ZERO)),
        )
        status.unpaid_invoices = [
            {**_document_brief(i), "amount_due": quantize(i.amount_due), "due_date": i.due_date}
            for i in invoices
            if i.amount_due > 0
        ]

        dn_due = Decimal("0")
        for note in delivery_notes:
            remaining = max(quantize(note.total_ttc) - paid_amount(note.advancements), ZERO)
            if remaining > 0:
                dn_due += remaining
                status.unpaid_delivery_notes.append({**_document_brief(note), "remaining": remaining})
        status.delivery_notes_due = quantize(dn_due)
        return client, status

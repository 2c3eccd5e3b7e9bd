"""
Service per i Report
Progetto: Gestion Commerciale (Back-office)

Aggregati in sola lettura su fatture, BL e acconti.
I raggruppamenti per periodo sono calcolati in Python, così i report
funzionano su qualsiasi backend SQL.

Periodo di default: dal 1 gennaio dell'anno corrente a oggi.
"""

import datetime
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Any, Callable, Iterable, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Advancement, DeliveryNote, DeliveryNoteLine, Invoice
from app.schemas.common import PaymentMethod
from app.schemas.delivery_note import DeliveryNoteStatus
from app.schemas.invoice import InvoiceStatus
from app.schemas.report import ReportGranularity
from app.services.document_utils import ZERO, paid_amount, quantize

logger = logging.getLogger(__name__)

AGING_BUCKETS = ("0-30", "31-60", "61-90", "90+")
TOP_LIMIT = 5


def resolve_period(
    start_date: Optional[datetime.date],
    end_date: Optional[datetime.date],
) -> Tuple[datetime.date, datetime.date]:
    """Applica il periodo di default (inizio anno -> oggi)."""
    today = datetime.date.today()
    return start_date or datetime.date(today.year, 1, 1), end_date or today


def period_key(value: datetime.date, granularity: ReportGranularity) -> str:
    """Chiave del periodo: 2024-03-15, 2024-W11, 2024-03, 2024."""
    if granularity == ReportGranularity.DAY:
        return value.isoformat()
    if granularity == ReportGranularity.WEEK:
        year, week, _ = value.isocalendar()
        return f"{year}-W{week:02d}"
    if granularity == ReportGranularity.YEAR:
        return str(value.year)
    return value.strftime("%Y-%m")


def aging_bucket(days: int) -> str:
    if days <= 30:
        return "0-30"
    if days <= 60:
        return "31-60"
    if days <= 90:
        return "61-90"
    return "90+"


def rate(part: Decimal, total: Decimal) -> float:
    """Percentuale con un decimale, 0.0 se il totale è nullo."""
    if not total:
        return 0.0
    return round(float(Decimal(part) * 100 / Decimal(total)), 1)


def percent_change(current, previous) -> float:
    """Variazione percentuale; con precedente nullo vale 100.0 se corrente > 0, altrimenti 0.0."""
    current = Decimal(str(current))
    previous = Decimal(str(previous))
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round(float((current - previous) * 100 / previous), 1)


def _sum(items: Iterable, getter: Callable[[Any], Decimal]) -> Decimal:
    return quantize(sum((getter(item) for item in items), ZERO))


def _client_name(document) -> Optional[str]:
    return document.client.full_name if document.client else None


class ReportService:
    """Report di sintesi per la dashboard del back-office."""

    # ------------------------------------------------------------
    # Caricamento dati
    # ------------------------------------------------------------

    async def _invoices(
        self,
        db: AsyncSession,
        start: datetime.date,
        end: datetime.date,
    ) -> list[Invoice]:
        query = select(Invoice).where(
            Invoice.invoice_date >= start,
            Invoice.invoice_date <= end,
            Invoice.status != InvoiceStatus.CANCELLED.value,
        )
        return list((await db.execute(query)).scalars().all())

    async def _delivery_notes(
        self,
        db: AsyncSession,
        start: datetime.date,
        end: datetime.date,
    ) -> list[DeliveryNote]:
        query = select(DeliveryNote).where(
            DeliveryNote.issue_date >= start,
            DeliveryNote.issue_date <= end,
            DeliveryNote.status != DeliveryNoteStatus.CANCELLED.value,
        )
        return list((await db.execute(query)).scalars().all())

    async def _advancements(self, db: AsyncSession, start: datetime.date, end: datetime.date) -> list[Advancement]:
        """Incassi del periodo (esclusi i rimborsi 'avoir')."""
        result = await db.execute(
            select(Advancement).where(
                Advancement.payment_date >= start,
                Advancement.payment_date <= end,
                Advancement.payment_method != PaymentMethod.CREDIT_NOTE.value,
            )
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------
    # Report
    # ------------------------------------------------------------

    async def dashboard(self, db: AsyncSession, start: datetime.date, end: datetime.date) -> dict[str, Any]:
        """KPI di fatture e BL per stato, tasso di incasso, top clienti."""
        invoices = await self._invoices(db, start, end)
        notes = await self._delivery_notes(db, start, end)
        advancements = await self._advancements(db, start, end)

        invoice_by_status: dict[str, dict[str, Any]] = defaultdict(
            lambda: {"count": 0, "total_ht": ZERO, "total_ttc": ZERO, "paid": ZERO, "due": ZERO}
        )
        for invoice in invoices:
            row = invoice_by_status[invoice.status]
            row["count"] += 1
            row["total_ht"] = quantize(row["total_ht"] + invoice.total_ht)
            row["total_ttc"] = quantize(row["total_ttc"] + invoice.total_ttc)
            row["paid"] = quantize(row["paid"] + invoice.amount_paid)
            row["due"] = quantize(row["due"] + invoice.amount_due)

        note_by_status: dict[str, dict[str, Any]] = defaultdict(
            lambda: {"count": 0, "total_ht": ZERO, "total_ttc": ZERO}
        )
        for note in notes:
            row = note_by_status[note.status]
            row["count"] += 1
            row["total_ht"] = quantize(row["total_ht"] + note.total_ht)
            row["total_ttc"] = quantize(row["total_ttc"] + note.total_ttc)

        invoice_ttc = _sum(invoices, lambda i: i.total_ttc)
        invoice_paid = _sum(invoices, lambda i: i.amount_paid)

        return {
            "invoices": {
                "totals": {
                    "count": len(invoices),
                    "total_ht": _sum(invoices, lambda i: i.total_ht),
                    "total_ttc": invoice_ttc,
                    "total_paid": invoice_paid,
                    "total_due": _sum(invoices, lambda i: i.amount_due),
                    "collection_rate": rate(invoice_paid, invoice_ttc),
                },
                "by_status": dict(invoice_by_status),
            },
            "delivery_notes": {
                "totals": {
                    "count": len(notes),
                    "total_ht": _sum(notes, lambda n: n.total_ht),
                    "total_ttc": _sum(notes, lambda n: n.total_ttc),
                },
                "by_status": dict(note_by_status),
            },
            "advancements": {
                "count": len(advancements),
                "total_collected": _sum(advancements, lambda a: a.amount),
            },
            "top_clients_invoices": self._top_clients(invoices),
            "top_clients_delivery_notes": self._top_clients(notes),
        }

    def _top_clients(self, documents: list, limit: int = TOP_LIMIT) -> list[dict[str, Any]]:
        totals: dict[Any, dict[str, Any]] = {}
        for document in documents:
            entry = totals.setdefault(
                document.client_id,
                {"client_id": str(document.client_id), "full_name": _client_name(document), "count": 0, "total_ttc": ZERO},
            )
            entry["count"] += 1
            entry["total_ttc"] = quantize(entry["total_ttc"] + document.total_ttc)
        return sorted(totals.values(), key=lambda e: e["total_ttc"], reverse=True)[:limit]

    async def revenue_over_time(
        self,
        db: AsyncSession,
        start: datetime.date,
        end: datetime.date,
        granularity: ReportGranularity = ReportGranularity.MONTH,
    ) -> dict[str, Any]:
        """Serie temporali di fatture, BL e incassi."""
        invoices = await self._invoices(db, start, end)
        notes = await self._delivery_notes(db, start, end)
        advancements = await self._advancements(db, start, end)

        invoice_series: dict[str, dict[str, Any]] = defaultdict(
            lambda: {"count": 0, "total_ht": ZERO, "total_ttc": ZERO, "paid": ZERO}
        )
        for invoice in invoices:
            row = invoice_series[period_key(invoice.invoice_date, granularity)]
            row["count"] += 1
            row["total_ht"] = quantize(row["total_ht"] + invoice.total_ht)
            row["total_ttc"] = quantize(row["total_ttc"] + invoice.total_ttc)
            row["paid"] = quantize(row["paid"] + invoice.amount_paid)

        note_series: dict[str, dict[str, Any]] = defaultdict(
            lambda: {"count": 0, "total_ht": ZERO, "total_ttc": ZERO}
        )
        for note in notes:
            row = note_series[period_key(note.issue_date, granularity)]
            row["count"] += 1
            row["total_ht"] = quantize(row["total_ht"] + note.total_ht)
            row["total_ttc"] = quantize(row["total_ttc"] + note.total_ttc)

        payment_series: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "amount": ZERO})
        for advancement in advancements:
            row = payment_series[period_key(advancement.payment_date, granularity)]
            row["count"] += 1
            row["amount"] = quantize(row["amount"] + advancement.amount)

        def as_list(series: dict[str, dict[str, Any]]) -> list[dict[str, Any]]:
            return [{"period": key, **values} for key, values in sorted(series.items())]

        return {
            "granularity": granularity.value,
            "invoices": as_list(invoice_series),
            "delivery_notes": as_list(note_series),
            "payments": as_list(payment_series),
        }

    async def payment_status(self, db: AsyncSession, start: datetime.date, end: datetime.date) -> dict[str, Any]:
        """Crediti aperti per anzianità e ripartizione per modalità di pagamento."""
        today = datetime.date.today()
        invoices = await self._invoices(db, start, end)
        notes = await self._delivery_notes(db, start, end)
        advancements = await self._advancements(db, start, end)

        outstanding_invoices = [
            i for i in invoices
            if i.status in (InvoiceStatus.DRAFT.value, InvoiceStatus.PARTIALLY_PAID.value) and i.amount_due > 0
        ]
        outstanding_notes = [
            n for n in notes
            if not n.is_invoiced and max(n.total_ttc - paid_amount(n.advancements), ZERO) > 0
        ]

        def aging(items: list, reference_date, remaining) -> list[dict[str, Any]]:
            buckets = {bucket: [] for bucket in AGING_BUCKETS}
            for item in items:
                buckets[aging_bucket((today - reference_date(item)).days)].append(item)
            return [
                {
                    "bucket": bucket,
                    "count": len(entries),
                    "total_remaining": _sum(entries, remaining),
                    "items": [
                        {
                            "id": str(entry.id),
                            "number": entry.number,
                            "client": _client_name(entry),
                            "date": reference_date(entry),
                            "total_ttc": quantize(entry.total_ttc),
                            "remaining": quantize(remaining(entry)),
                            "status": entry.status,
                            "payment_method": entry.payment_method,
                        }
                        for entry in entries
                    ],
                }
                for bucket, entries in buckets.items()
            ]

        def note_remaining(note: DeliveryNote) -> Decimal:
            return max(note.total_ttc - paid_amount(note.advancements), ZERO)

        by_method: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "total": ZERO})
        for advancement in advancements:
            row = by_method[advancement.payment_method]
            row["count"] += 1
            row["total"] = quantize(row["total"] + advancement.amount)

        invoice_outstanding = _sum(outstanding_invoices, lambda i: i.amount_due)
        note_outstanding = _sum(outstanding_notes, note_remaining)
        return {
            "invoices": {
                "aging": aging(
                    outstanding_invoices, lambda i: i.invoice_date, lambda i: i.amount_due
                ),
                "total_outstanding": invoice_outstanding,
                "count": len(outstanding_invoices),
            },
            "delivery_notes": {
                "aging": aging(
                    outstanding_notes,
                    lambda n: n.delivery_date or n.issue_date,
                    note_remaining,
                ),
                "total_outstanding": note_outstanding,
                "count": len(outstanding_notes),
            },
            "combined": {
                "total_outstanding": quantize(invoice_outstanding + note_outstanding),
                "count": len(outstanding_invoices) + len(outstanding_notes),
            },
            "payment_methods": dict(by_method),
        }

    async def clients(
        self,
        db: AsyncSession,
        start: datetime.date,
        end: datetime.date,
        limit: int = 10,
    ) -> dict[str, Any]:
        """Classifica clienti per fatturato, con tasso di pagamento e BL."""
        invoices = await self._invoices(db, start, end)
        notes = await self._delivery_notes(db, start, end)

        stats: dict[Any, dict[str, Any]] = {}
        for invoice in invoices:
            entry = stats.setdefault(
                invoice.client_id,
                {
                    "client_id": str(invoice.client_id),
                    "full_name": _client_name(invoice),
                    "invoice_count": 0,
                    "total_ht": ZERO,
                    "total_ttc": ZERO,
                    "total_paid": ZERO,
                    "total_due": ZERO,
                    "last_invoice_date": None,
                },
            )
            entry["invoice_count"] += 1
            entry["total_ht"] = quantize(entry["total_ht"] + invoice.total_ht)
            entry["total_ttc"] = quantize(entry["total_ttc"] + invoice.total_ttc)
            entry["total_paid"] = quantize(entry["total_paid"] + invoice.amount_paid)
            entry["total_due"] = quantize(entry["total_due"] + invoice.amount_due)
            if entry["last_invoice_date"] is None or invoice.invoice_date > entry["last_invoice_date"]:
                entry["last_invoice_date"] = invoice.invoice_date

        notes_by_client: dict[str, list[DeliveryNote]] = defaultdict(list)
        for note in notes:
            notes_by_client[str(note.client_id)].append(note)

        ranking = sorted(stats.values(), key=lambda e: e["total_ttc"], reverse=True)[:limit]
        for entry in ranking:
            client_notes = notes_by_client.get(entry["client_id"], [])
            entry["average_invoice"] = quantize(entry["total_ttc"] / entry["invoice_count"])
            entry["payment_rate"] = rate(entry["total_paid"], entry["total_ttc"])
            entry["delivery_note_count"] = len(client_notes)
            entry["delivery_note_total"] = _sum(client_notes, lambda n: n.total_ttc)

        return {"clients": ranking, "count": len(ranking)}

    async def products(
        self,
        db: AsyncSession,
        start: datetime.date,
        end: datetime.date,
        limit: int = 10,
    ) -> dict[str, Any]:
        """Prodotti più venduti (righe dei BL non annullati)."""
        result = await db.execute(
            select(DeliveryNoteLine)
            .join(DeliveryNote, DeliveryNoteLine.delivery_note_id == DeliveryNote.id)
            .where(
                DeliveryNote.issue_date >= start,
                DeliveryNote.issue_date <= end,
                DeliveryNote.status != DeliveryNoteStatus.CANCELLED.value,
            )
        )
        stats: dict[Any, dict[str, Any]] = {}
        for line in result.scalars().all():
            entry = stats.setdefault(
                line.product_id,
                {
                    "product_id": str(line.product_id),
                    "reference": line.product.reference if line.product else None,
                    "designation": line.product.designation if line.product else None,
                    "line_count": 0,
                    "total_quantity": 0,
                    "total_revenue": ZERO,
                    "_price_sum": ZERO,
                },
            )
            entry["line_count"] += 1
            entry["total_quantity"] += line.quantity
            entry["total_revenue"] = quantize(entry["total_revenue"] + line.line_total)
            entry["_price_sum"] += line.unit_price

        ranking = sorted(stats.values(), key=lambda e: e["total_revenue"], reverse=True)[:limit]
        for entry in ranking:
            entry["average_unit_price"] = quantize(entry.pop("_price_sum") / entry["line_count"])
        return {"products": ranking, "count": len(ranking)}

    async def _period_totals(self, db: AsyncSession, start: datetime.date, end: datetime.date) -> dict[str, Any]:
        invoices = await self._invoices(db, start, end)
        notes = await self._delivery_notes(db, start, end)
        return {
            "invoices": {
                "count": len(invoices),
                "total_ttc": _sum(invoices, lambda i: i.total_ttc),
                "total_paid": _sum(invoices, lambda i: i.amount_paid),
            },
            "delivery_notes": {
                "count": len(notes),
                "total_ttc": _sum(notes, lambda n: n.total_ttc),
            },
        }

    async def comparison(self, db: AsyncSession, start: datetime.date, end: datetime.date) -> dict[str, Any]:
        """Periodo corrente contro il periodo precedente di pari durata."""
        previous_end = start - datetime.timedelta(days=1)
        previous_start = previous_end - (end - start)

        current = await self._period_totals(db, start, end)
        previous = await self._period_totals(db, previous_start, previous_end)

        changes = {
            section: {
                f"{key}_change": percent_change(current[section][key], previous[section][key])
                for key in current[section]
            }
            for section in current
        }
        return {
            "periods": {
                "current": {"start_date": start, "end_date": end},
                "previous": {"start_date": previous_start, "end_date": previous_end},
            },
            "current": current,
            "previous": previous,
            "changes": changes,
        }

    async def tva(
        self,
        db: AsyncSession,
        start: datetime.date,
        end: datetime.date,
        granularity: ReportGranularity = ReportGranularity.MONTH,
    ) -> dict[str, Any]:
        """TVA per periodo e per aliquota, con totale generale."""
        invoices = await self._invoices(db, start, end)

        by_period: dict[str, dict[str, Any]] = defaultdict(
            lambda: {"count": 0, "base_ht": ZERO, "total_vat": ZERO, "total_ttc": ZERO}
        )
        by_rate: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "base_ht": ZERO, "total_vat": ZERO})
        for invoice in invoices:
            row = by_period[period_key(invoice.invoice_date, granularity)]
            row["count"] += 1
            row["base_ht"] = quantize(row["base_ht"] + invoice.total_ht)
            row["total_vat"] = quantize(row["total_vat"] + invoice.vat_amount)
            row["total_ttc"] = quantize(row["total_ttc"] + invoice.total_ttc)

            rate_row = by_rate[str(quantize(invoice.vat_rate))]
            rate_row["count"] += 1
            rate_row["base_ht"] = quantize(rate_row["base_ht"] + invoice.total_ht)
            rate_row["total_vat"] = quantize(rate_row["total_vat"] + invoice.vat_amount)

        return {
            "granularity": granularity.value,
            "by_period": [{"period": key, **values} for key, values in sorted(by_period.items())],
            "by_rate": [
                {"vat_rate": key, **values}
                for key, values in sorted(by_rate.items(), key=lambda item: Decimal(item[0]))
            ],
            "grand_total": {
                "count": len(invoices),
                "base_ht": _sum(invoices, lambda i: i.total_ht),
                "total_vat": _sum(invoices, lambda i: i.vat_amount),
                "total_ttc": _sum(invoices, lambda i: i.total_ttc),
            },
        }

    async def bl_conversion(self, db: AsyncSession, start: datetime.date, end: datetime.date) -> dict[str, Any]:
        """BL fatturati contro BL in attesa di fattura."""
        notes = await self._delivery_notes(db, start, end)
        converted = [n for n in notes if n.is_invoiced]
        pending = sorted(
            (n for n in notes if not n.is_invoiced),
            key=lambda n: (n.issue_date, n.number),
            reverse=True,
        )
        return {
            "summary": {
                "total": len(notes),
                "converted": len(converted),
                "not_converted": len(pending),
                "conversion_rate": rate(Decimal(len(converted)), Decimal(len(notes))),
                "value_converted": _sum(converted, lambda n: n.total_ttc),
                "value_pending": _sum(pending, lambda n: n.total_ttc),
            },
            "pending": [
                {
                    "id": str(n.id),
                    "number": n.number,
                    "client": _client_name(n),
                    "issue_date": n.issue_date,
                    "total_ttc": quantize(n.total_ttc),
                    "status": n.status,
                }
                for n in pending
            ],
        }


report_service = ReportService()

"""
Funzioni comuni ai servizi documento
Progetto: Gestion Commerciale (Back-office)

Calcolo importi (righe, sconto globale, TVA), stato dei pagamenti,
validazione delle transizioni di stato e filtri di lista.
"""

import datetime
import logging
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Optional, Sequence, TypeVar

from sqlalchemy import Select

from app.core.exceptions import BusinessValidationError
from app.models.product import Product
from app.schemas.common import DocumentLineCreate, PaymentMethod

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")

StatusT = TypeVar("StatusT", bound=Enum)


def quantize(value) -> Decimal:
    """Arrotonda al centesimo (ROUND_HALF_UP)."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class PricedLine:
    """Riga calcolata, pronta per essere persistita."""
    product_id: uuid.UUID
    quantity: int
    unit_price: Decimal
    line_discount: Decimal
    line_total: Decimal

    def as_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_discount": self.line_discount,
            "line_total": self.line_total,
        }


def price_lines(
    lines: Sequence[DocumentLineCreate],
    products: dict[uuid.UUID, Product],
    use_purchase_price: bool = False,
) -> list[PricedLine]:
    """
    Calcola le righe: line_total = unit_price * quantity - line_discount.

    Il prezzo omesso vale il prezzo di vendita del prodotto
    (di acquisto per i bons d'achat).

    Raises:
        BusinessValidationError: Se lo sconto di riga supera l'importo della riga
    """
    priced = []
    for line in lines:
        product = products[line.product_id]
        if line.unit_price is not None:
            unit_price = quantize(line.unit_price)
        else:
            default = product.purchase_price if use_purchase_price else product.sale_price
            unit_price = quantize(default or ZERO)
        line_discount = quantize(line.line_discount or ZERO)
        line_total = quantize(unit_price * line.quantity - line_discount)
        if line_total < 0:
            raise BusinessValidationError(
                f"Remise de ligne supérieure au montant pour {product.designation}"
            )
        priced.append(
            PricedLine(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=unit_price,
                line_discount=line_discount,
                line_total=line_total,
            )
        )
    return priced


def copy_lines(source_lines: Iterable) -> list[PricedLine]:
    """Copia le righe di un documento esistente (conversioni)."""
    return [
        PricedLine(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=quantize(line.unit_price),
            line_discount=quantize(line.line_discount or ZERO),
            line_total=quantize(line.line_total),
        )
        for line in source_lines
    ]


def compute_total_ht(lines: Iterable[PricedLine], discount: Decimal | None = None) -> Decimal:
    """Totale HT = somma righe - sconto globale, mai negativo."""
    subtotal = sum((line.line_total for line in lines), ZERO)
    return max(quantize(subtotal - (discount or ZERO)), ZERO)


def compute_vat(total_ht: Decimal, vat_rate: Decimal) -> Decimal:
    return quantize(total_ht * Decimal(str(vat_rate)) / Decimal("100"))


def paid_amount(advancements: Iterable) -> Decimal:
    """Totale incassato: gli acconti 'avoir' (rimborsi) sono esclusi."""
    return quantize(
        sum(
            (Decimal(str(a.amount)) for a in advancements if a.payment_method != PaymentMethod.CREDIT_NOTE.value),
            ZERO,
        )
    )


def payment_status(total_ttc: Decimal, paid: Decimal, paid_value: str, partial_value: str, draft_value: str) -> str:
    """
    Stato derivato dai pagamenti.

    pagato quando paid >= TTC e qualcosa è stato incassato, parziale
    quando 0 < paid < TTC, altrimenti bozza.
    """
    if paid > 0 and paid >= total_ttc:
        return paid_value
    if paid > 0:
        return partial_value
    return draft_value


def validate_transition(
    current: str,
    target: StatusT,
    transitions: dict[StatusT, list[StatusT]],
    label: str,
) -> None:
    """
    Verifica che la transizione sia nella matrice.

    Raises:
        BusinessValidationError: Se la transizione non è consentita
    """
    status_enum = type(target)
    try:
        current_status = status_enum(current)
    except ValueError:
        raise BusinessValidationError(f"Statut actuel invalide pour {label}: {current}")

    if target not in transitions.get(current_status, []):
        logger.warning("Transizione non consentita per %s: %s -> %s", label, current, target.value)
        allowed = ", ".join(s.value for s in transitions.get(current_status, [])) or "aucune"
        raise BusinessValidationError(
            f"Transition de statut non autorisée pour {label}: {current} -> {target.value} "
            f"(transitions possibles: {allowed})"
        )


def apply_list_filters(
    query: Select,
    model,
    start_date: Optional[datetime.date] = None,
    end_date: Optional[datetime.date] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    date_column=None,
) -> Select:
    """Filtri comuni: intervallo date, stato, ricerca sul numero."""
    column = date_column if date_column is not None else model.issue_date
    if start_date is not None:
        query = query.where(column >= start_date)
    if end_date is not None:
        query = query.where(column <= end_date)
    if status and status != "all":
        query = query.where(model.status == status)
    if search:
        query = query.where(model.number.ilike(f"%{search.strip()}%"))
    return query

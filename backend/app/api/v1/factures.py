"""
Router per le Fatture
Progetto: Gestion Commerciale (Back-office)

Endpoints per fatture dirette, fatture generate da BL, pagamenti,
annullamento e statistiche.
"""

import datetime
import uuid
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.common import ApiResponse
from app.schemas.invoice import (
    InvoiceCancel,
    InvoiceCreate,
    InvoiceFromDeliveryNote,
    InvoiceListResponse,
    InvoicePayment,
    InvoiceRead,
    InvoiceResponse,
    InvoiceStatsResponse,
    InvoiceStatus,
    InvoiceStatusUpdate,
    InvoiceUpdate,
)
from app.services.invoice_service import invoice_service

router = APIRouter(
    prefix="/factures",
    tags=["Factures"],
)


def _invoice_response(invoice, message: Optional[str] = None) -> InvoiceResponse:
    return InvoiceResponse(message=message, invoice=InvoiceRead.model_validate(invoice))


@router.get("/", response_model=InvoiceListResponse, summary="Lista fatture")
async def list_invoices(
    start_date: Optional[datetime.date] = Query(None, description="Data fattura da"),
    end_date: Optional[datetime.date] = Query(None, description="Data fattura a"),
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    client_id: Optional[uuid.UUID] = Query(None),
    search: Optional[str] = Query(None, description="Ricerca sul numero"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    invoices, total = await invoice_service.get_all(
        db,
        start_date=start_date,
        end_date=end_date,
        status=status_filter.value if status_filter else None,
        client_id=client_id,
        search=search,
        skip=skip,
        limit=limit,
    )
    return InvoiceListResponse(
        invoices=[InvoiceRead.model_validate(i) for i in invoices],
        count=total,
    )


@router.get("/stats", response_model=InvoiceStatsResponse, summary="Statistiche fatture")
async def get_invoice_stats(
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Totali HT, TVA, TTC, incassato e residuo, per stato e per mese."""
    return InvoiceStatsResponse(
        statistics=await invoice_service.get_stats(db, start_date=start_date, end_date=end_date),
    )


@router.get("/client/{client_id}", response_model=InvoiceListResponse, summary="Fatture di un cliente")
async def list_invoices_by_client(
    client_id: uuid.UUID,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    invoices, total = await invoice_service.get_by_client(db, client_id, skip=skip, limit=limit)
    return InvoiceListResponse(
        invoices=[InvoiceRead.model_validate(i) for i in invoices],
        count=total,
    )


@router.get("/{invoice_id}", response_model=InvoiceResponse, summary="Dettaglio fattura")
async def get_invoice(
    invoice_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    invoice = await invoice_service.get_by_id(db, invoice_id)
    return _invoice_response(invoice)


@router.post(
    "/",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crea fattura diretta",
)
async def create_invoice(
    data: InvoiceCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Crea una fattura diretta (senza BL) e scala la giacenza.

    La scadenza, se omessa, è la data fattura più invoice_due_days.
    """
    invoice = await invoice_service.create(db, data)
    await db.commit()
    return _invoice_response(invoice, "Facture créée avec succès")


@router.post(
    "/from-bonlivraison",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crea fattura da BL",
)
async def create_invoice_from_delivery_note(
    data: InvoiceFromDeliveryNote,
    db: AsyncSession = Depends(get_db),
):
    """
    Genera la fattura di un BL.

    Copia le righe e trasferisce gli acconti; la giacenza non cambia
    perché è già stata scalata dal BL.
    """
    invoice = await invoice_service.create_from_delivery_note(db, data)
    await db.commit()
    return _invoice_response(invoice, "Facture créée à partir du bon de livraison")


@router.put("/{invoice_id}", response_model=InvoiceResponse, summary="Aggiorna fattura")
async def update_invoice(
    invoice_id: uuid.UUID,
    data: InvoiceUpdate,
    db: AsyncSession = Depends(get_db),
):
    invoice = await invoice_service.update(db, invoice_id, data)
    await db.commit()
    return _invoice_response(invoice, "Facture mise à jour avec succès")


@router.patch("/{invoice_id}/payment", response_model=InvoiceResponse, summary="Registra pagamento")
async def add_invoice_payment(
    invoice_id: uuid.UUID,
    data: InvoicePayment,
    db: AsyncSession = Depends(get_db),
):
    invoice = await invoice_service.add_payment(db, invoice_id, data)
    await db.commit()
    return _invoice_response(invoice, "Paiement enregistré avec succès")


@router.patch("/{invoice_id}/cancel", response_model=InvoiceResponse, summary="Annulla fattura")
async def cancel_invoice(
    invoice_id: uuid.UUID,
    data: Optional[InvoiceCancel] = Body(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Annulla la fattura.

    Una fattura diretta restituisce la giacenza; se era stato incassato
    qualcosa viene registrato un rimborso 'avoir'.
    """
    invoice = await invoice_service.cancel(db, invoice_id, reason=data.reason if data else None)
    await db.commit()
    return _invoice_response(invoice, "Facture annulée avec succès")


@router.patch("/{invoice_id}/status", response_model=InvoiceResponse, summary="Cambia stato fattura")
async def update_invoice_status(
    invoice_id: uuid.UUID,
    data: InvoiceStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    invoice = await invoice_service.update_status(db, invoice_id, data.status)
    await db.commit()
    return _invoice_response(invoice, "Statut de la facture mis à jour")


@router.delete("/{invoice_id}", response_model=ApiResponse, summary="Elimina fattura")
async def delete_invoice(
    invoice_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    await invoice_service.delete(db, invoice_id)
    await db.commit()
    return ApiResponse(message="Facture supprimée avec succès")

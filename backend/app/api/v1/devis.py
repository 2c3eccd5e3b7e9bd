"""
Router per i Preventivi (devis)
Progetto: Gestion Commerciale (Back-office)

I preventivi non toccano la giacenza; la conversione in BL o fattura
crea il documento di destinazione che scala il magazzino una sola volta.
"""

import datetime
import uuid
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.common import ApiResponse
from app.schemas.delivery_note import DeliveryNoteRead
from app.schemas.invoice import InvoiceRead
from app.schemas.quote import (
    QuoteConversion,
    QuoteCreate,
    QuoteListResponse,
    QuoteRead,
    QuoteResponse,
    QuoteStatsResponse,
    QuoteStatus,
    QuoteStatusUpdate,
    QuoteToDeliveryNoteResponse,
    QuoteToInvoiceResponse,
    QuoteUpdate,
)
from app.services.quote_service import quote_service

router = APIRouter(
    prefix="/devis",
    tags=["Devis"],
)


@router.get("/", response_model=QuoteListResponse, summary="Lista preventivi")
async def list_quotes(
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
    status_filter: Optional[QuoteStatus] = Query(None, alias="status"),
    client_id: Optional[uuid.UUID] = Query(None),
    search: Optional[str] = Query(None, description="Ricerca sul numero"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    quotes, total = await quote_service.get_all(
        db,
        start_date=start_date,
        end_date=end_date,
        status=status_filter.value if status_filter else None,
        client_id=client_id,
        search=search,
        skip=skip,
        limit=limit,
    )
    return QuoteListResponse(quotes=[QuoteRead.model_validate(q) for q in quotes], count=total)


@router.get("/stats", response_model=QuoteStatsResponse, summary="Statistiche preventivi")
async def get_quote_stats(
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return QuoteStatsResponse(
        statistics=await quote_service.get_stats(db, start_date=start_date, end_date=end_date),
    )


@router.get("/client/{client_id}", response_model=QuoteListResponse, summary="Preventivi di un cliente")
async def list_quotes_by_client(
    client_id: uuid.UUID,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    quotes, total = await quote_service.get_by_client(db, client_id, skip=skip, limit=limit)
    return QuoteListResponse(quotes=[QuoteRead.model_validate(q) for q in quotes], count=total)


@router.get("/{quote_id}", response_model=QuoteResponse, summary="Dettaglio preventivo")
async def get_quote(
    quote_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    quote = await quote_service.get_by_id(db, quote_id)
    return QuoteResponse(quote=QuoteRead.model_validate(quote))


@router.post("/", response_model=QuoteResponse, status_code=status.HTTP_201_CREATED, summary="Crea preventivo")
async def create_quote(
    data: QuoteCreate,
    db: AsyncSession = Depends(get_db),
):
    quote = await quote_service.create(db, data)
    await db.commit()
    return QuoteResponse(message="Devis créé avec succès", quote=QuoteRead.model_validate(quote))


@router.put("/{quote_id}", response_model=QuoteResponse, summary="Aggiorna preventivo")
async def update_quote(
    quote_id: uuid.UUID,
    data: QuoteUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Aggiorna il preventivo.

    Uno stato transformé_en_bl o transformé_en_facture avvia la conversione.
    """
    quote = await quote_service.update(db, quote_id, data)
    await db.commit()
    return QuoteResponse(message="Devis mis à jour avec succès", quote=QuoteRead.model_validate(quote))


@router.patch("/{quote_id}/status", response_model=QuoteResponse, summary="Cambia stato preventivo")
async def update_quote_status(
    quote_id: uuid.UUID,
    data: QuoteStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    quote = await quote_service.update_status(db, quote_id, data.status)
    await db.commit()
    return QuoteResponse(message="Statut du devis mis à jour", quote=QuoteRead.model_validate(quote))


@router.post(
    "/{quote_id}/convert-to-bl",
    response_model=QuoteToDeliveryNoteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Converti in BL",
)
async def convert_quote_to_delivery_note(
    quote_id: uuid.UUID,
    data: Optional[QuoteConversion] = Body(None),
    db: AsyncSession = Depends(get_db),
):
    quote, note = await quote_service.convert_to_delivery_note(db, quote_id, data)
    await db.commit()
    return QuoteToDeliveryNoteResponse(
        message="Devis transformé en bon de livraison",
        quote=QuoteRead.model_validate(quote),
        delivery_note=DeliveryNoteRead.model_validate(note),
    )


@router.post(
    "/{quote_id}/convert-to-facture",
    response_model=QuoteToInvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Converti in fattura",
)
async def convert_quote_to_invoice(
    quote_id: uuid.UUID,
    data: Optional[QuoteConversion] = Body(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Converte il preventivo in fattura diretta.

    TVA: quella del preventivo se presente, altrimenti quella della
    richiesta, altrimenti conversion_vat_rate.
    """
    quote, invoice = await quote_service.convert_to_invoice(db, quote_id, data)
    await db.commit()
    return QuoteToInvoiceResponse(
        message="Devis transformé en facture",
        quote=QuoteRead.model_validate(quote),
        invoice=InvoiceRead.model_validate(invoice),
    )


@router.delete("/{quote_id}", response_model=ApiResponse, summary="Elimina preventivo")
async def delete_quote(
    quote_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    await quote_service.delete(db, quote_id)
    await db.commit()
    return ApiResponse(message="Devis supprimé avec succès")

"""
Router per i Bons de Livraison
Progetto: Gestion Commerciale (Back-office)

Endpoints per creazione, aggiornamento, cambio di stato ed eliminazione
dei BL. Ogni operazione che tocca le righe passa dal ledger di magazzino.
"""

import datetime
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.common import ApiResponse
from app.schemas.delivery_note import (
    DeliveryNoteCreate,
    DeliveryNoteListResponse,
    DeliveryNoteRead,
    DeliveryNoteResponse,
    DeliveryNoteStatsResponse,
    DeliveryNoteStatus,
    DeliveryNoteStatusUpdate,
    DeliveryNoteUpdate,
)
from app.services.delivery_note_service import delivery_note_service

router = APIRouter(
    prefix="/bon-livraisons",
    tags=["Bons de livraison"],
)


def _note_list(notes: list, count: int) -> DeliveryNoteListResponse:
    return DeliveryNoteListResponse(
        delivery_notes=[DeliveryNoteRead.model_validate(n) for n in notes],
        count=count,
    )


@router.get("/", response_model=DeliveryNoteListResponse, summary="Lista BL")
async def list_delivery_notes(
    start_date: Optional[datetime.date] = Query(None, description="Data emissione da"),
    end_date: Optional[datetime.date] = Query(None, description="Data emissione a"),
    status_filter: Optional[DeliveryNoteStatus] = Query(None, alias="status"),
    client_id: Optional[uuid.UUID] = Query(None),
    search: Optional[str] = Query(None, description="Ricerca sul numero"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """
    Lista BL con cliente, righe e acconti.

    Ogni BL riporta total_paid, remaining e is_fully_paid calcolati.
    """
    notes, total = await delivery_note_service.get_all(
        db,
        start_date=start_date,
        end_date=end_date,
        status=status_filter.value if status_filter else None,
        client_id=client_id,
        search=search,
        skip=skip,
        limit=limit,
    )
    return _note_list(notes, total)


@router.get("/stats", response_model=DeliveryNoteStatsResponse, summary="Statistiche BL")
async def get_delivery_note_stats(
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return DeliveryNoteStatsResponse(
        statistics=await delivery_note_service.get_stats(db, start_date=start_date, end_date=end_date),
    )


@router.get("/client/{client_id}", response_model=DeliveryNoteListResponse, summary="BL di un cliente")
async def list_delivery_notes_by_client(
    client_id: uuid.UUID,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    notes, total = await delivery_note_service.get_by_client(db, client_id, skip=skip, limit=limit)
    return _note_list(notes, total)


@router.get("/{note_id}", response_model=DeliveryNoteResponse, summary="Dettaglio BL")
async def get_delivery_note(
    note_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    note = await delivery_note_service.get_by_id(db, note_id)
    return DeliveryNoteResponse(delivery_note=DeliveryNoteRead.model_validate(note))


@router.post(
    "/",
    response_model=DeliveryNoteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crea BL",
)
async def create_delivery_note(
    data: DeliveryNoteCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Crea un BL e scala la giacenza dei prodotti.

    Se un solo prodotto non ha giacenza sufficiente nessuna riga viene
    registrata e la giacenza resta invariata.
    """
    note = await delivery_note_service.create(db, data)
    await db.commit()
    return DeliveryNoteResponse(
        message="Bon de livraison créé avec succès",
        delivery_note=DeliveryNoteRead.model_validate(note),
    )


@router.put("/{note_id}", response_model=DeliveryNoteResponse, summary="Aggiorna BL")
async def update_delivery_note(
    note_id: uuid.UUID,
    data: DeliveryNoteUpdate,
    db: AsyncSession = Depends(get_db),
):
    note = await delivery_note_service.update(db, note_id, data)
    await db.commit()
    return DeliveryNoteResponse(
        message="Bon de livraison mis à jour avec succès",
        delivery_note=DeliveryNoteRead.model_validate(note),
    )


@router.patch("/{note_id}/status", response_model=DeliveryNoteResponse, summary="Cambia stato BL")
async def update_delivery_note_status(
    note_id: uuid.UUID,
    data: DeliveryNoteStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Cambia lo stato del BL secondo la tabella delle transizioni.

    annulée ripristina la giacenza, annulée -> brouillon la riscala.
    """
    note = await delivery_note_service.update_status(db, note_id, data.status)
    await db.commit()
    return DeliveryNoteResponse(
        message="Statut du bon de livraison mis à jour",
        delivery_note=DeliveryNoteRead.model_validate(note),
    )


@router.delete("/{note_id}", response_model=ApiResponse, summary="Elimina BL")
async def delete_delivery_note(
    note_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    await delivery_note_service.delete(db, note_id)
    await db.commit()
    return ApiResponse(message="Bon de livraison supprimé avec succès")

"""
Router per i Bons d'Avoir
Progetto: Gestion Commerciale (Back-office)
"""

import datetime
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.common import ApiResponse
from app.schemas.credit_note import (
    AvailableCreditNotesResponse,
    CreditNoteCreate,
    CreditNoteListResponse,
    CreditNoteRead,
    CreditNoteReason,
    CreditNoteResponse,
    CreditNoteStatsResponse,
    CreditNoteStatus,
    CreditNoteStatusUpdate,
    CreditNoteUpdate,
    CreditNoteUse,
    CreditNoteUseResponse,
)
from app.services.credit_note_service import credit_note_service

router = APIRouter(
    prefix="/bon-avoirs",
    tags=["Bons d'avoir"],
)


def _credit_note_response(credit_note, message: Optional[str] = None) -> CreditNoteResponse:
    return CreditNoteResponse(message=message, credit_note=CreditNoteRead.model_validate(credit_note))


@router.get("/", response_model=CreditNoteListResponse, summary="Lista bons d'avoir")
async def list_credit_notes(
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
    status_filter: Optional[CreditNoteStatus] = Query(None, alias="status"),
    client_id: Optional[uuid.UUID] = Query(None),
    reason: Optional[CreditNoteReason] = Query(None),
    search: Optional[str] = Query(None, description="Ricerca sul numero"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    credit_notes, total = await credit_note_service.get_all(
        db,
        start_date=start_date,
        end_date=end_date,
        status=status_filter.value if status_filter else None,
        client_id=client_id,
        reason=reason.value if reason else None,
        search=search,
        skip=skip,
        limit=limit,
    )
    return CreditNoteListResponse(
        credit_notes=[CreditNoteRead.model_validate(c) for c in credit_notes],
        count=total,
    )


@router.get("/stats", response_model=CreditNoteStatsResponse, summary="Statistiche bons d'avoir")
async def get_credit_note_stats(
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return CreditNoteStatsResponse(
        statistics=await credit_note_service.get_stats(db, start_date=start_date, end_date=end_date),
    )


@router.get(
    "/client/{client_id}/disponibles",
    response_model=AvailableCreditNotesResponse,
    summary="Avoirs disponibili per un cliente",
)
async def list_available_credit_notes(
    client_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Avoirs validi non ancora utilizzati, con il totale disponibile."""
    credit_notes, total_available = await credit_note_service.get_available(db, client_id)
    return AvailableCreditNotesResponse(
        credit_notes=[CreditNoteRead.model_validate(c) for c in credit_notes],
        count=len(credit_notes),
        total_available=total_available,
    )


@router.get("/{credit_note_id}", response_model=CreditNoteResponse, summary="Dettaglio bon d'avoir")
async def get_credit_note(
    credit_note_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    credit_note = await credit_note_service.get_by_id(db, credit_note_id)
    return _credit_note_response(credit_note)


@router.post(
    "/",
    response_model=CreditNoteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crea bon d'avoir",
)
async def create_credit_note(
    data: CreditNoteCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Crea un bon d'avoir in stato brouillon.

    Ogni riga rientra in magazzino, qualunque sia il motivo.
    """
    credit_note = await credit_note_service.create(db, data)
    await db.commit()
    return _credit_note_response(credit_note, "Bon d'avoir créé avec succès")


@router.put("/{credit_note_id}", response_model=CreditNoteResponse, summary="Aggiorna bon d'avoir")
async def update_credit_note(
    credit_note_id: uuid.UUID,
    data: CreditNoteUpdate,
    db: AsyncSession = Depends(get_db),
):
    credit_note = await credit_note_service.update(db, credit_note_id, data)
    await db.commit()
    return _credit_note_response(credit_note, "Bon d'avoir mis à jour avec succès")


@router.put("/{credit_note_id}/valider", response_model=CreditNoteResponse, summary="Valida bon d'avoir")
async def validate_credit_note(
    credit_note_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    credit_note = await credit_note_service.validate(db, credit_note_id)
    await db.commit()
    return _credit_note_response(credit_note, "Bon d'avoir validé")


@router.put("/{credit_note_id}/utiliser", response_model=CreditNoteUseResponse, summary="Utilizza bon d'avoir")
async def use_credit_note(
    credit_note_id: uuid.UUID,
    data: CreditNoteUse,
    db: AsyncSession = Depends(get_db),
):
    """
    Imputa l'avoir su un BL dello stesso cliente.

    Il totale TTC del BL diminuisce dell'importo dell'avoir, senza
    scendere sotto 0.
    """
    credit_note, applied, new_total = await credit_note_service.use(db, credit_note_id, data.delivery_note_id)
    await db.commit()
    return CreditNoteUseResponse(
        message="Bon d'avoir utilisé avec succès",
        credit_note=CreditNoteRead.model_validate(credit_note),
        applied_amount=applied,
        new_delivery_note_total=new_total,
    )


@router.put("/{credit_note_id}/annuler", response_model=CreditNoteResponse, summary="Annulla bon d'avoir")
async def cancel_credit_note(
    credit_note_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    credit_note = await credit_note_service.cancel(db, credit_note_id)
    await db.commit()
    return _credit_note_response(credit_note, "Bon d'avoir annulé")


@router.patch("/{credit_note_id}/status", response_model=CreditNoteResponse, summary="Cambia stato bon d'avoir")
async def update_credit_note_status(
    credit_note_id: uuid.UUID,
    data: CreditNoteStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    credit_note = await credit_note_service.update_status(db, credit_note_id, data.status)
    await db.commit()
    return _credit_note_response(credit_note, "Statut du bon d'avoir mis à jour")


@router.delete("/{credit_note_id}", response_model=ApiResponse, summary="Elimina bon d'avoir")
async def delete_credit_note(
    credit_note_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    await credit_note_service.delete(db, credit_note_id)
    await db.commit()
    return ApiResponse(message="Bon d'avoir supprimé avec succès")

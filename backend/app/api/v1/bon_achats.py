"""
Router per i Bons d'Achat
Progetto: Gestion Commerciale (Back-office)

Ordini ai fornitori: la giacenza aumenta solo alla registrazione
della ricezione.
"""

import datetime
import uuid
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.common import ApiResponse
from app.schemas.purchase_order import (
    PurchaseOrderCreate,
    PurchaseOrderListResponse,
    PurchaseOrderPayment,
    PurchaseOrderRead,
    PurchaseOrderReceipt,
    PurchaseOrderResponse,
    PurchaseOrderStatsResponse,
    PurchaseOrderStatus,
    PurchaseOrderStatusUpdate,
    PurchaseOrderUpdate,
)
from app.services.purchase_order_service import purchase_order_service

router = APIRouter(
    prefix="/bon-achats",
    tags=["Bons d'achat"],
)


def _order_response(order, message: Optional[str] = None) -> PurchaseOrderResponse:
    return PurchaseOrderResponse(message=message, purchase_order=PurchaseOrderRead.model_validate(order))


@router.get("/", response_model=PurchaseOrderListResponse, summary="Lista bons d'achat")
async def list_purchase_orders(
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
    status_filter: Optional[PurchaseOrderStatus] = Query(None, alias="status"),
    supplier_id: Optional[uuid.UUID] = Query(None),
    search: Optional[str] = Query(None, description="Ricerca sul numero"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await purchase_order_service.get_all(
        db,
        start_date=start_date,
        end_date=end_date,
        status=status_filter.value if status_filter else None,
        supplier_id=supplier_id,
        search=search,
        skip=skip,
        limit=limit,
    )
    return PurchaseOrderListResponse(
        purchase_orders=[PurchaseOrderRead.model_validate(o) for o in orders],
        count=total,
    )


@router.get("/stats", response_model=PurchaseOrderStatsResponse, summary="Statistiche bons d'achat")
async def get_purchase_order_stats(
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return PurchaseOrderStatsResponse(
        statistics=await purchase_order_service.get_stats(db, start_date=start_date, end_date=end_date),
    )


@router.get("/en-attente", response_model=PurchaseOrderListResponse, summary="Bons d'achat in attesa")
async def list_pending_purchase_orders(db: AsyncSession = Depends(get_db)):
    """Ordini commandé o partiellement_reçu."""
    orders = await purchase_order_service.get_pending(db)
    return PurchaseOrderListResponse(
        purchase_orders=[PurchaseOrderRead.model_validate(o) for o in orders],
        count=len(orders),
    )


@router.get("/{order_id}", response_model=PurchaseOrderResponse, summary="Dettaglio bon d'achat")
async def get_purchase_order(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    order = await purchase_order_service.get_by_id(db, order_id)
    return _order_response(order)


@router.post(
    "/",
    response_model=PurchaseOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crea bon d'achat",
)
async def create_purchase_order(
    data: PurchaseOrderCreate,
    db: AsyncSession = Depends(get_db),
):
    order = await purchase_order_service.create(db, data)
    await db.commit()
    return _order_response(order, "Bon d'achat créé avec succès")


@router.put("/{order_id}", response_model=PurchaseOrderResponse, summary="Aggiorna bon d'achat")
async def update_purchase_order(
    order_id: uuid.UUID,
    data: PurchaseOrderUpdate,
    db: AsyncSession = Depends(get_db),
):
    order = await purchase_order_service.update(db, order_id, data)
    await db.commit()
    return _order_response(order, "Bon d'achat mis à jour avec succès")


@router.put("/{order_id}/reception", response_model=PurchaseOrderResponse, summary="Registra ricezione")
async def receive_purchase_order(
    order_id: uuid.UUID,
    data: PurchaseOrderReceipt,
    db: AsyncSession = Depends(get_db),
):
    """
    Registra le quantità ricevute per prodotto.

    La giacenza aumenta delle quantità ricevute e il prezzo di acquisto
    dei prodotti viene aggiornato dal prezzo di riga.
    """
    order = await purchase_order_service.receive(db, order_id, data)
    await db.commit()
    return _order_response(order, "Réception enregistrée avec succès")


@router.put("/{order_id}/paye", response_model=PurchaseOrderResponse, summary="Segna come pagato")
async def pay_purchase_order(
    order_id: uuid.UUID,
    data: Optional[PurchaseOrderPayment] = Body(None),
    db: AsyncSession = Depends(get_db),
):
    order = await purchase_order_service.mark_paid(db, order_id, data)
    await db.commit()
    return _order_response(order, "Bon d'achat marqué comme payé")


@router.put("/{order_id}/annuler", response_model=PurchaseOrderResponse, summary="Annulla bon d'achat")
async def cancel_purchase_order(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    order = await purchase_order_service.cancel(db, order_id)
    await db.commit()
    return _order_response(order, "Bon d'achat annulé")


@router.patch("/{order_id}/status", response_model=PurchaseOrderResponse, summary="Cambia stato bon d'achat")
async def update_purchase_order_status(
    order_id: uuid.UUID,
    data: PurchaseOrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    order = await purchase_order_service.update_status(db, order_id, data.status)
    await db.commit()
    return _order_response(order, "Statut du bon d'achat mis à jour")


@router.delete("/{order_id}", response_model=ApiResponse, summary="Elimina bon d'achat")
async def delete_purchase_order(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    await purchase_order_service.delete(db, order_id)
    await db.commit()
    return ApiResponse(message="Bon d'achat supprimé avec succès")

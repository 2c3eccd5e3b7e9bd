"""
Router FastAPI per i Fornitori
Progetto: Gestion Commerciale (Back-office)

Anagrafica fornitori e viste sui loro bons d'achat.
"""

import datetime
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.common import ApiResponse
from app.schemas.purchase_order import PurchaseOrderListResponse, PurchaseOrderRead, PurchaseOrderStatsResponse
from app.schemas.supplier import (
    SupplierCreate,
    SupplierListResponse,
    SupplierProductHistoryResponse,
    SupplierProductsSummaryResponse,
    SupplierRead,
    SupplierResponse,
    SupplierStatsResponse,
    SupplierSummary,
    SupplierUpdate,
)
from app.services.supplier_service import SupplierService

router = APIRouter(
    prefix="/fornisseurs",
    tags=["Fournisseurs"],
)


def get_supplier_service() -> SupplierService:
    """Dependency per ottenere un'istanza del SupplierService."""
    return SupplierService()


@router.get("/", name="fournisseurs_liste", summary="Lista fornitori", response_model=SupplierListResponse)
async def get_suppliers(
    search: Optional[str] = Query(None, description="Ricerca su nome, telefono, riferimento"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    service: SupplierService = Depends(get_supplier_service),
) -> SupplierListResponse:
    suppliers, total = await service.get_all(db=db, skip=skip, limit=limit, search=search)
    return SupplierListResponse(
        suppliers=[SupplierRead.model_validate(s) for s in suppliers],
        count=total,
    )


@router.get("/search", name="fournisseurs_recherche", summary="Ricerca fornitori", response_model=SupplierListResponse)
async def search_suppliers(
    q: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    service: SupplierService = Depends(get_supplier_service),
) -> SupplierListResponse:
    suppliers, _ = await service.get_all(db=db, limit=limit, search=q)
    return SupplierListResponse(
        suppliers=[SupplierRead.model_validate(s) for s in suppliers],
        count=len(suppliers),
    )


@router.get("/stats", name="fournisseurs_stats", summary="Statistiche fornitori", response_model=SupplierStatsResponse)
async def get_supplier_stats(
    db: AsyncSession = Depends(get_db),
    service: SupplierService = Depends(get_supplier_service),
) -> SupplierStatsResponse:
    return SupplierStatsResponse(statistics=await service.get_stats(db=db))


@router.get("/{supplier_id}", name="fournisseur_detail", summary="Dettaglio fornitore", response_model=SupplierResponse)
async def get_supplier(
    supplier_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: SupplierService = Depends(get_supplier_service),
) -> SupplierResponse:
    supplier = await service.get_by_id(db=db, supplier_id=supplier_id)
    return SupplierResponse(supplier=SupplierRead.model_validate(supplier))


@router.get(
    "/{supplier_id}/bon-achats",
    name="fournisseur_bon_achats",
    summary="Bons d'achat del fornitore",
    response_model=PurchaseOrderListResponse,
)
async def get_supplier_purchase_orders(
    supplier_id: uuid.UUID,
    status_filter: Optional[str] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    service: SupplierService = Depends(get_supplier_service),
) -> PurchaseOrderListResponse:
    orders, total = await service.get_purchase_orders(
        db=db,
        supplier_id=supplier_id,
        status=status_filter,
        skip=skip,
        limit=limit,
    )
    return PurchaseOrderListResponse(
        purchase_orders=[PurchaseOrderRead.model_validate(o) for o in orders],
        count=total,
    )


@router.get(
    "/{supplier_id}/bon-achats/stats",
    name="fournisseur_bon_achats_stats",
    summary="Statistiche dei bons d'achat del fornitore",
    response_model=PurchaseOrderStatsResponse,
)
async def get_supplier_purchase_order_stats(
    supplier_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: SupplierService = Depends(get_supplier_service),
) -> PurchaseOrderStatsResponse:
    return PurchaseOrderStatsResponse(
        statistics=await service.get_purchase_order_stats(db=db, supplier_id=supplier_id),
    )


@router.get(
    "/{supplier_id}/bon-achats/recent",
    name="fournisseur_bon_achats_recents",
    summary="Ultimi bons d'achat del fornitore",
    response_model=PurchaseOrderListResponse,
)
async def get_supplier_recent_purchase_orders(
    supplier_id: uuid.UUID,
    limit: int = Query(5, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    service: SupplierService = Depends(get_supplier_service),
) -> PurchaseOrderListResponse:
    orders = await service.get_recent_purchase_orders(db=db, supplier_id=supplier_id, limit=limit)
    return PurchaseOrderListResponse(
        purchase_orders=[PurchaseOrderRead.model_validate(o) for o in orders],
        count=len(orders),
    )


@router.get(
    "/{supplier_id}/products-summary",
    name="fournisseur_resume_produits",
    summary="Riepilogo prodotti acquistati dal fornitore",
    response_model=SupplierProductsSummaryResponse,
)
async def get_supplier_products_summary(
    supplier_id: uuid.UUID,
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
    db: AsyncSession = Depends(get_db),
    service: SupplierService = Depends(get_supplier_service),
) -> SupplierProductsSummaryResponse:
    supplier, summary, products = await service.get_products_summary(
        db=db,
        supplier_id=supplier_id,
        start_date=start_date,
        end_date=end_date,
    )
    return SupplierProductsSummaryResponse(
        supplier=SupplierSummary.model_validate(supplier),
        summary=summary,
        products=products,
        count=len(products),
    )


@router.get(
    "/{supplier_id}/product-history",
    name="fournisseur_historique_produits",
    summary="Storico prodotti acquistati dal fornitore",
    response_model=SupplierProductHistoryResponse,
)
async def get_supplier_product_history(
    supplier_id: uuid.UUID,
    reference: Optional[str] = Query(None, description="Filtra per riferimento prodotto"),
    db: AsyncSession = Depends(get_db),
    service: SupplierService = Depends(get_supplier_service),
) -> SupplierProductHistoryResponse:
    """
    Quantità ordinate e ricevute per prodotto, con l'ultimo prezzo
    d'acquisto, su tutti i bons d'achat non annullati.
    """
    supplier, products = await service.get_product_history(db=db, supplier_id=supplier_id, reference=reference)
    return SupplierProductHistoryResponse(
        supplier=SupplierSummary.model_validate(supplier),
        products=products,
        count=len(products),
    )


@router.post(
    "/",
    name="fournisseur_creation",
    summary="Crea fornitore",
    response_model=SupplierResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_supplier(
    data: SupplierCreate,
    db: AsyncSession = Depends(get_db),
    service: SupplierService = Depends(get_supplier_service),
) -> SupplierResponse:
    """
    Crea un nuovo fornitore.

    Raises:
        DuplicateError: Telefono o riferimento già in uso
    """
    supplier = await service.create(db=db, data=data)
    await db.commit()
    return SupplierResponse(message="Fournisseur créé avec succès", supplier=SupplierRead.model_validate(supplier))


@router.put("/{supplier_id}", name="fournisseur_mise_a_jour", summary="Aggiorna fornitore", response_model=SupplierResponse)
async def update_supplier(
    supplier_id: uuid.UUID,
    data: SupplierUpdate,
    db: AsyncSession = Depends(get_db),
    service: SupplierService = Depends(get_supplier_service),
) -> SupplierResponse:
    supplier = await service.update(db=db, supplier_id=supplier_id, data=data)
    await db.commit()
    return SupplierResponse(
        message="Fournisseur mis à jour avec succès",
        supplier=SupplierRead.model_validate(supplier),
    )


@router.delete("/{supplier_id}", name="fournisseur_suppression", summary="Elimina fornitore", response_model=ApiResponse)
async def delete_supplier(
    supplier_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: SupplierService = Depends(get_supplier_service),
) -> ApiResponse:
    await service.delete(db=db, supplier_id=supplier_id)
    await db.commit()
    return ApiResponse(message="Fournisseur supprimé avec succès")

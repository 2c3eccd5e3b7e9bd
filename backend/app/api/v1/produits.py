"""
Router per il catalogo prodotti
Progetto: Gestion Commerciale (Back-office)

Endpoints per CRUD prodotti, rettifiche di giacenza e storico movimenti.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.common import ApiResponse
from app.schemas.product import (
    ProductCreate,
    ProductListResponse,
    ProductRead,
    ProductResponse,
    ProductStatsResponse,
    ProductUpdate,
    StockDocumentType,
    StockMovementListResponse,
    StockMovementRead,
    StockUpdate,
    StockUpdateResponse,
)
from app.services.product_service import product_service

router = APIRouter(
    prefix="/produits",
    tags=["Produits"],
)


def _product_list(products: list, count: int) -> ProductListResponse:
    return ProductListResponse(
        products=[ProductRead.model_validate(p) for p in products],
        count=count,
    )


@router.get("/", response_model=ProductListResponse, summary="Lista prodotti")
async def list_products(
    search: Optional[str] = Query(None, description="Ricerca su riferimento e designazione"),
    supplier_id: Optional[uuid.UUID] = Query(None),
    in_stock: Optional[bool] = Query(None, description="Solo prodotti disponibili (o esauriti)"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    products, total = await product_service.get_all(
        db,
        search=search,
        supplier_id=supplier_id,
        in_stock=in_stock,
        skip=skip,
        limit=limit,
    )
    return _product_list(products, total)


@router.get("/search", response_model=ProductListResponse, summary="Ricerca prodotti")
async def search_products(
    q: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    products, _ = await product_service.get_all(db, search=q, limit=limit)
    return _product_list(products, len(products))


@router.get("/stats", response_model=ProductStatsResponse, summary="Statistiche di magazzino")
async def get_product_stats(db: AsyncSession = Depends(get_db)):
    return ProductStatsResponse(statistics=await product_service.get_stats(db))


@router.get(
    "/fornisseur/{supplier_id}",
    response_model=ProductListResponse,
    summary="Prodotti di un fornitore",
)
async def list_products_by_supplier(
    supplier_id: uuid.UUID,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    products, total = await product_service.get_by_supplier(db, supplier_id, skip=skip, limit=limit)
    return _product_list(products, total)


@router.get("/{product_id}", response_model=ProductResponse, summary="Dettaglio prodotto")
async def get_product(
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    product = await product_service.get_by_id(db, product_id)
    return ProductResponse(product=ProductRead.model_validate(product))


@router.get(
    "/{product_id}/movements",
    response_model=StockMovementListResponse,
    summary="Storico movimenti di magazzino",
)
async def get_product_movements(
    product_id: uuid.UUID,
    document_type: Optional[StockDocumentType] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Movimenti del ledger per il prodotto, dal più recente."""
    movements, total = await product_service.get_movements(
        db,
        product_id,
        document_type=document_type,
        skip=skip,
        limit=limit,
    )
    return StockMovementListResponse(
        movements=[StockMovementRead.model_validate(m) for m in movements],
        count=total,
    )


@router.post(
    "/",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crea prodotto",
)
async def create_product(
    data: ProductCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Crea un nuovo prodotto.

    La giacenza iniziale, se > 0, viene registrata come movimento manuale.
    """
    product = await product_service.create(db, data)
    await db.commit()
    return ProductResponse(message="Produit créé avec succès", product=ProductRead.model_validate(product))


@router.put("/{product_id}", response_model=ProductResponse, summary="Aggiorna prodotto")
async def update_product(
    product_id: uuid.UUID,
    data: ProductUpdate,
    db: AsyncSession = Depends(get_db),
):
    product = await product_service.update(db, product_id, data)
    await db.commit()
    return ProductResponse(message="Produit mis à jour avec succès", product=ProductRead.model_validate(product))


@router.patch("/{product_id}/stock", response_model=StockUpdateResponse, summary="Rettifica giacenza")
async def update_product_stock(
    product_id: uuid.UUID,
    data: StockUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Rettifica manuale della giacenza (set, add, subtract).

    La giacenza non può scendere sotto 0.
    """
    product, movement = await product_service.update_stock(
        db,
        product_id,
        operation=data.operation,
        quantity=data.quantity,
        notes=data.notes,
    )
    await db.commit()
    return StockUpdateResponse(
        message="Stock mis à jour avec succès",
        product=ProductRead.model_validate(product),
        movement=StockMovementRead.model_validate(movement) if movement else None,
    )


@router.delete("/{product_id}", response_model=ApiResponse, summary="Elimina prodotto")
async def delete_product(
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    await product_service.delete(db, product_id)
    await db.commit()
    return ApiResponse(message="Produit supprimé avec succès")

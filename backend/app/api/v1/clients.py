"""
Router FastAPI per l'entità Client
Progetto: Gestion Commerciale (Back-office)

Definisce gli endpoint API per la gestione dei clienti.
"""

import datetime
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.client import (
    ClientCreate,
    ClientDocumentType,
    ClientHistoryResponse,
    ClientListResponse,
    ClientPaymentStatusResponse,
    ClientProductsByReferenceResponse,
    ClientProductsResponse,
    ClientRead,
    ClientResponse,
    ClientStatsResponse,
    ClientSummary,
    ClientSummaryResponse,
    ClientUpdate,
)
from app.schemas.common import ApiResponse
from app.services.client_service import ClientService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Router con prefix e tag
router = APIRouter(
    prefix="/clients",
    tags=["Clients"],
)


# -------------------------------------------------------------------
# Dependency Injection
# -------------------------------------------------------------------

def get_client_service() -> ClientService:
    """
    Dependency per ottenere un'istanza del ClientService.

    Permette di sostituire il service nei test tramite dependency_overrides.
    """
    return ClientService()


# -------------------------------------------------------------------
# Endpoints
# -------------------------------------------------------------------

@router.get(
    "/",
    name="clients_liste",
    summary="Lista clienti",
    response_model=ClientListResponse,
)
async def get_clients(
    search: Optional[str] = Query(None, description="Ricerca su nome, riferimento, telefono, città"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientListResponse:
    """
    Recupera la lista dei clienti.

    Args:
        search: Termine di ricerca opzionale
        skip: Record da saltare
        limit: Numero massimo di record
    """
    clients, total = await service.get_all(db=db, skip=skip, limit=limit, search=search)
    return ClientListResponse(
        clients=[ClientRead.model_validate(c) for c in clients],
        count=total,
    )


@router.get(
    "/search",
    name="clients_recherche",
    summary="Ricerca clienti",
    response_model=ClientListResponse,
)
async def search_clients(
    q: str = Query(..., min_length=1, description="Termine di ricerca"),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientListResponse:
    clients = await service.search(db=db, query=q, limit=limit)
    return ClientListResponse(
        clients=[ClientRead.model_validate(c) for c in clients],
        count=len(clients),
    )


@router.get(
    "/stats",
    name="clients_stats",
    summary="Statistiche clienti",
    response_model=ClientStatsResponse,
)
async def get_client_stats(
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientStatsResponse:
    return ClientStatsResponse(statistics=await service.get_stats(db=db))


@router.get(
    "/{client_id}",
    name="client_detail",
    summary="Dettaglio cliente",
    response_model=ClientResponse,
)
async def get_client(
    client_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientResponse:
    """
    Recupera i dettagli di un cliente.

    Raises:
        NotFoundError: Se il cliente non esiste
    """
    client = await service.get_by_id(db=db, client_id=client_id)
    return ClientResponse(client=ClientRead.model_validate(client))


@router.get(
    "/{client_id}/history",
    name="client_historique",
    summary="Storico documenti del cliente",
    response_model=ClientHistoryResponse,
)
async def get_client_history(
    client_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientHistoryResponse:
    client, history = await service.get_history(db=db, client_id=client_id)
    return ClientHistoryResponse(client=ClientSummary.model_validate(client), history=history)


@router.get(
    "/{client_id}/summary",
    name="client_resume",
    summary="Riepilogo del cliente",
    response_model=ClientSummaryResponse,
)
async def get_client_summary(
    client_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientSummaryResponse:
    client, summary = await service.get_summary(db=db, client_id=client_id)
    return ClientSummaryResponse(client=ClientSummary.model_validate(client), summary=summary)


@router.get(
    "/{client_id}/products",
    name="client_produits",
    summary="Prodotti acquistati dal cliente",
    response_model=ClientProductsResponse,
)
async def get_client_products(
    client_id: uuid.UUID,
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientProductsResponse:
    """
    Aggrega le righe di BL e fatture non annullati per prodotto.
    """
    client, products = await service.get_products(
        db=db,
        client_id=client_id,
        start_date=start_date,
        end_date=end_date,
    )
    return ClientProductsResponse(
        client=ClientSummary.model_validate(client),
        products=products,
        count=len(products),
    )


@router.get(
    "/{client_id}/products-by-reference",
    name="client_produits_par_reference",
    summary="Storico righe per riferimento prodotto",
    response_model=ClientProductsByReferenceResponse,
)
async def get_client_products_by_reference(
    client_id: uuid.UUID,
    reference: str = Query(..., min_length=1, description="Riferimento prodotto (ricerca parziale)"),
    exact_match: bool = Query(False, alias="exactMatch"),
    document_type: Optional[ClientDocumentType] = Query(None, alias="documentType"),
    start_date: Optional[datetime.date] = Query(None),
    end_date: Optional[datetime.date] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientProductsByReferenceResponse:
    """
    Righe di devis, BL e fatture del cliente per i prodotti che
    corrispondono al riferimento. count è il totale prima della paginazione.
    """
    client, history, products, total = await service.get_products_by_reference(
        db=db,
        client_id=client_id,
        reference=reference,
        exact_match=exact_match,
        document_type=document_type,
        start_date=start_date,
        end_date=end_date,
        skip=skip,
        limit=limit,
    )
    return ClientProductsByReferenceResponse(
        client=ClientSummary.model_validate(client),
        history=history,
        products=products,
        count=total,
    )


@router.get(
    "/{client_id}/payment-status",
    name="client_paiements",
    summary="Situazione pagamenti del cliente",
    response_model=ClientPaymentStatusResponse,
)
async def get_client_payment_status(
    client_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientPaymentStatusResponse:
    client, payment_status = await service.get_payment_status(db=db, client_id=client_id)
    return ClientPaymentStatusResponse(
        client=ClientSummary.model_validate(client),
        payment_status=payment_status,
    )


@router.post(
    "/",
    name="client_creation",
    summary="Crea cliente",
    response_model=ClientResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_client(
    client_data: ClientCreate,
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientResponse:
    """Crea un nuovo cliente."""
    client = await service.create(db=db, client_data=client_data)
    await db.commit()
    return ClientResponse(message="Client créé avec succès", client=ClientRead.model_validate(client))


@router.put(
    "/{client_id}",
    name="client_mise_a_jour",
    summary="Aggiorna cliente",
    response_model=ClientResponse,
)
async def update_client(
    client_id: uuid.UUID,
    client_data: ClientUpdate,
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ClientResponse:
    client = await service.update(db=db, client_id=client_id, client_data=client_data)
    await db.commit()
    return ClientResponse(message="Client mis à jour avec succès", client=ClientRead.model_validate(client))


@router.delete(
    "/{client_id}",
    name="client_suppression",
    summary="Elimina cliente",
    response_model=ApiResponse,
)
async def delete_client(
    client_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: ClientService = Depends(get_client_service),
) -> ApiResponse:
    """
    Elimina un cliente con tutti i suoi documenti.

    Raises:
        NotFoundError: Se il cliente non esiste
    """
    await service.delete(db=db, client_id=client_id)
    await db.commit()
    return ApiResponse(message="Client supprimé avec succès")

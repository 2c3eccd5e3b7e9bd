"""
API v1 Routes
Progetto: Gestion Commerciale (Back-office)

Router versione 1 dell'API.
"""

from fastapi import APIRouter, Depends

from app.api.v1 import (
    auth,
    bon_achats,
    bon_avoirs,
    bon_livraisons,
    clients,
    devis,
    factures,
    fornisseurs,
    produits,
    reports,
)
from app.core.deps import require_auth

# Router aggregato per v1
api_v1_router = APIRouter(prefix="/api/v1")

# Login e refresh restano pubblici
api_v1_router.include_router(auth.router)

# Router delle risorse, protetti quando auth_enabled è attivo
for module in (clients, fornisseurs, produits, devis, bon_livraisons, factures, bon_avoirs, bon_achats, reports):
    api_v1_router.include_router(module.router, dependencies=[Depends(require_auth)])

# Esportazione
__all__ = ["api_v1_router"]

"""
Schemas Pydantic per i Fornitori (fornisseurs)
Progetto: Gestion Commerciale (Back-office)
"""

import datetime
import uuid
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.client import normalize_phone, normalize_text
from app.schemas.common import ApiResponse


class SupplierBase(BaseModel):
    """
    Campi anagrafici del fornitore.

    Il telefono è obbligatorio (cifre con + iniziale opzionale) e univoco.
    """
    full_name: str = Field(..., min_length=1, max_length=200, description="Nome o ragione sociale")
    phone: str = Field(..., min_length=1, max_length=20, description="Telefono (univoco)")
    reference: Optional[str] = Field(None, max_length=50, description="Riferimento (univoco)")
    city: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=500)

    @field_validator("full_name", mode="before")
    @classmethod
    def strip_full_name(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("reference", "city", "address", mode="before")
    @classmethod
    def strip_optional(cls, v: Any) -> Any:
        if isinstance(v, str):
            return normalize_text(v)
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: str) -> str:
        normalized = normalize_phone(v)
        if normalized is None:
            raise ValueError("Le téléphone est requis")
        return normalized


class SupplierCreate(SupplierBase):
    pass


class SupplierUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = Field(None, min_length=1, max_length=20)
    reference: Optional[str] = Field(None, max_length=50)
    city: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=500)

    @field_validator("reference", "city", "address", mode="before")
    @classmethod
    def strip_optional(cls, v: Any) -> Any:
        if isinstance(v, str):
            return normalize_text(v)
        return v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)


class SupplierRead(SupplierBase):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    created_at: datetime.datetime
    updated_at: datetime.datetime


class SupplierSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    full_name: str
    phone: str


class SupplierResponse(ApiResponse):
    supplier: SupplierRead


class SupplierListResponse(ApiResponse):
    suppliers: list[SupplierRead]
    count: int


class SupplierStatsResponse(ApiResponse):
    statistics: dict[str, Any]


class SupplierProductHistoryResponse(ApiResponse):
    """Prodotti acquistati dal fornitore, aggregati per riferimento."""
    supplier: SupplierSummary
    products: list[dict[str, Any]]
    count: int


class SupplierProductsSummaryResponse(ApiResponse):
    """Riepilogo acquisti per prodotto, con totali del fornitore."""
    supplier: SupplierSummary
    summary: dict[str, Any]
    products: list[dict[str, Any]]
    count: int

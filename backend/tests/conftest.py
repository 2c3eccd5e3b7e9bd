"""
Pytest configuration and fixtures per il back-office.

I test girano su SQLite in memoria (aiosqlite): ogni test ha il suo
database, creato da zero con create_all. Il client HTTP passa
dall'app FastAPI reale con la dependency get_db sostituita.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "testing")

from decimal import Decimal
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import get_db
from app.main import app
from app.models import Base, Client, Product, Supplier


# ============================================================
# Database
# ============================================================


@pytest.fixture
async def engine():
    """Engine SQLite in memoria condiviso dalle sessioni del test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Sessione per i test dei service (senza HTTP)."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Client HTTP sull'app reale, con get_db puntato al database di test."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ============================================================
# Dati di base
# ============================================================


@pytest.fixture
async def sample_supplier(db) -> Supplier:
    supplier = Supplier(full_name="Grossiste Atlas", phone="0522000000", reference="ATL")
    db.add(supplier)
    await db.commit()
    return supplier


@pytest.fixture
async def sample_client(db) -> Client:
    client = Client(full_name="Karim Bennani", city="Casablanca", phone="0600000001")
    db.add(client)
    await db.commit()
    return client


@pytest.fixture
async def product_factory(db, sample_supplier):
    """Crea prodotti con giacenza e prezzi indicati."""
    counter = {"n": 0}

    async def _create(quantity: int = 100, sale_price: str = "10", purchase_price: str = "6", **kwargs) -> Product:
        counter["n"] += 1
        product = Product(
            reference=kwargs.pop("reference", f"REF-{counter['n']:03d}"),
            designation=kwargs.pop("designation", f"Produit {counter['n']}"),
            sale_price=Decimal(sale_price),
            purchase_price=Decimal(purchase_price),
            quantity=quantity,
            supplier_id=sample_supplier.id,
            **kwargs,
        )
        db.add(product)
        await db.commit()
        return product

    return _create


# ============================================================
# Helper HTTP
# ============================================================


async def get_stock(client: AsyncClient, product_id) -> int:
    """Giacenza corrente letta dall'API."""
    response = await client.get(f"/api/v1/produits/{product_id}")
    assert response.status_code == 200, response.text
    return response.json()["product"]["quantity"]


def line(product, quantity: int, unit_price: str | None = None) -> dict:
    data = {"product_id": str(product.id), "quantity": quantity}
    if unit_price is not None:
        data["unit_price"] = unit_price
    return data

"""
Accesso al database (SQLAlchemy 2.0 asincrono)
Progetto: Gestion Commerciale (Back-office)

Una sessione per richiesta HTTP. I service fanno solo flush(),
il router chiama commit() quando l'operazione è completa.
"""

import logging
from typing import Any, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> AsyncEngine:
    """Crea l'engine; i parametri del pool valgono solo per i server SQL."""
    options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        options.update(pool_size=settings.db_pool_size, max_overflow=settings.db_max_overflow)
    return create_async_engine(database_url, **options)


engine: AsyncEngine = build_engine(settings.database_url)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency FastAPI: apre la sessione della richiesta.

    Un'eccezione sollevata dal router o dal service annulla
    tutto quanto è stato scritto nella transazione.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Verifica all'avvio che il database risponda."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database non raggiungibile: %s", engine.url.render_as_string(hide_password=True))
        raise
    logger.info("Database raggiungibile")


async def close_db() -> None:
    await engine.dispose()
    logger.info("Pool di connessioni chiuso")

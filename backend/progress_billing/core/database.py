"""
Configurazione Database - SQLAlchemy 2.0 Async
Progetto: SAL Manager (Fatturazione a Stato Avanzamento Lavori)

Engine, factory delle sessioni e dipendenza FastAPI per l'accesso al database.
In produzione PostgreSQL (asyncpg); SQLite (aiosqlite) per sviluppo locale.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from progress_billing.core.config import settings

# Logger per questo modulo
logger = logging.getLogger(__name__)


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _engine_options(database_url: str) -> dict:
    """
    Opzioni dell'engine in base al backend.

    SQLite non accetta i parametri del pool a coda (pool_size, max_overflow).
    """
    options = {
        "echo": settings.debug,
        "pool_pre_ping": True,
    }
    if not _is_sqlite(database_url):
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    return options


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """
    Attiva il controllo delle foreign key su ogni connessione SQLite.

    Senza il PRAGMA, SQLite ignora ON DELETE RESTRICT/CASCADE delle
    righe SAL verso computo e testata.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _set_foreign_keys(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# ------------------------------------------------------------
# Engine Async SQLAlchemy 2.0
# ------------------------------------------------------------
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    **_engine_options(settings.database_url),
)

if _is_sqlite(settings.database_url):
    enable_sqlite_foreign_keys(engine)


# ------------------------------------------------------------
# Session Factory
# ------------------------------------------------------------
# expire_on_commit=False: i service restituiscono oggetti già committati
# che i router serializzano fuori dalla transazione.
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dipendenza FastAPI: una sessione per richiesta.

    Il commit è responsabilità dei service; qui si annulla la
    transazione aperta se la richiesta termina con un'eccezione.

    Yields:
        AsyncSession: Sessione database async
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Verifica all'avvio che il database sia raggiungibile."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Connessione al database stabilita (%s)", engine.dialect.name)
    except Exception as e:
        logger.error("Errore connessione database: %s", e)
        raise


async def close_db() -> None:
    """Rilascia il pool di connessioni allo shutdown."""
    await engine.dispose()
    logger.info("Connessioni database chiuse")

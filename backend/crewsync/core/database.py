import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from crewsync.core.config import settings
from crewsync.core.exceptions import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLite benötigt check_same_thread=False
connect_args = {}
if "sqlite" in settings.DATABASE_URL:
    connect_args = {"check_same_thread": False}

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    connect_args=connect_args,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_tables():
    """Erstellt alle Tabellen (für lokale Entwicklung ohne Alembic)."""
    import crewsync.models  # noqa – alle Models importieren
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# SQLSTATE serialization_failure / deadlock_detected (PostgreSQL)
TRANSIENT_SQLSTATES = {"40001", "40P01"}
TRANSIENT_MESSAGES = ("could not serialize", "deadlock detected", "database is locked")


def is_transient(exc: DBAPIError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True
    message = str(orig).lower()
    return any(m in message for m in TRANSIENT_MESSAGES)


async def run_in_transaction(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int | None = None,
) -> T:
    """
    Führt ``operation`` als eine atomare Einheit aus und committet.

    Jeder Fehler rollt vollständig zurück, bevor er weitergereicht wird – es
    bleiben nie halb geschriebene Änderungen stehen. Transiente Storage-Fehler
    (Serialisierungskonflikt, Deadlock, gesperrte SQLite-DB) werden bis zu
    ``retries`` Mal wiederholt; die Operation läuft dabei komplett neu,
    inklusive aller Lese-Prüfungen.
    """
    if retries is None:
        retries = settings.STORAGE_RETRY_ATTEMPTS
    attempt = 0
    while True:
        try:
            result = await operation()
            await db.commit()
            return result
        except DBAPIError as exc:
            await db.rollback()
            transient = is_transient(exc)
            if transient and attempt < retries:
                attempt += 1
                logger.warning("Transient storage failure, retrying (%d/%d): %s", attempt, retries, exc.orig)
                continue
            logger.error("Transaction failed: %s", exc.orig)
            raise StorageError(f"Storage transaction failed: {exc.orig}", transient=transient) from exc
        except Exception:
            await db.rollback()
            raise

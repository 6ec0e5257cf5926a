"""
Configuración de base de datos con SQLAlchemy 2.0 async.
Los modelos usan tipos portables: PostgreSQL en producción, SQLite en tests
y en el almacén local del dispositivo.
"""

from typing import AsyncGenerator

from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from agrisync.config import get_settings

settings = get_settings()

# JSONB en PostgreSQL, JSON genérico en el resto
JSONType = JSON().with_variant(JSONB(), "postgresql")


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """
    pysqlite/aiosqlite no emiten BEGIN por su cuenta de forma confiable,
    lo que rompe los SAVEPOINT. Se desactiva su manejo de transacciones
    y se emite BEGIN explícitamente.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Crea un engine async; en SQLite habilita savepoints."""
    if url.startswith("sqlite"):
        engine = create_async_engine(url, **kwargs)
        enable_sqlite_savepoints(engine)
        return engine
    return create_async_engine(
        url,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
        **kwargs,
    )


# ── Engine async ─────────────────────────────────────
engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG and settings.LOG_LEVEL == "DEBUG")

# ── Session factory ──────────────────────────────────
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base declarativa ─────────────────────────────────
class Base(DeclarativeBase):
    pass


# ── Dependency: sesión de DB ─────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency de FastAPI que provee una sesión de base de datos.
    Confirma al terminar el request y revierte si hubo una excepción.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

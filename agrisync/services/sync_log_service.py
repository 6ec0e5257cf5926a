"""
Servicio de auditoría de sincronización — una entrada por intento.
INSERT-only, nunca se modifica ni elimina.

Un fallo al escribir la auditoría se reporta en el log operativo y no
hace fallar la sincronización: la entrada se inserta dentro de un
SAVEPOINT para que el error no contamine la transacción del batch.
"""

import logging

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agrisync.models.survey import Survey
from agrisync.models.sync_log import SyncLog
from agrisync.schemas.sync import DeviceSyncStatus

logger = logging.getLogger(__name__)


async def record_sync_event(
    db: AsyncSession,
    *,
    event_type: str = "sync",
    user_id: str | None,
    device_id: str | None,
    survey_count: int,
    success: bool,
    inserted_count: int = 0,
    updated_count: int = 0,
    rejected_count: int = 0,
    failed_count: int = 0,
    error_message: str | None = None,
    ip_address: str | None = None,
) -> SyncLog | None:
    """
    Inserta una entrada inmutable de auditoría.
    Retorna None si el almacén no aceptó la escritura.
    """
    entry = SyncLog(
        event_type=event_type,
        user_id=user_id,
        device_id=device_id,
        survey_count=survey_count,
        inserted_count=inserted_count,
        updated_count=updated_count,
        rejected_count=rejected_count,
        failed_count=failed_count,
        success=success,
        error_message=error_message[:2000] if error_message else None,
        ip_address=ip_address,
    )
    try:
        async with db.begin_nested():
            db.add(entry)
            await db.flush()
    except SQLAlchemyError:
        logger.exception(
            "No se pudo registrar la auditoría de sync (device=%s, user=%s, success=%s)",
            device_id, user_id, success,
        )
        return None
    return entry


async def recent_sync_logs(
    db: AsyncSession,
    *,
    limit: int = 100,
    device_id: str | None = None,
) -> list[SyncLog]:
    """Últimas N entradas, más recientes primero."""
    query = select(SyncLog)
    if device_id:
        query = query.where(SyncLog.device_id == device_id)
    query = query.order_by(SyncLog.created_at.desc(), SyncLog.id.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_device_sync_status(db: AsyncSession, device_id: str) -> DeviceSyncStatus:
    """Último sync exitoso, intentos y encuestas almacenadas de un dispositivo."""
    row = (
        await db.execute(
            select(
                func.max(case((SyncLog.success.is_(True), SyncLog.created_at))).label("last_sync"),
                func.max(SyncLog.created_at).label("last_attempt"),
                func.count(SyncLog.id).label("attempts"),
                func.count(case((SyncLog.success.is_(False), 1))).label("failed_attempts"),
            ).where(SyncLog.device_id == device_id)
        )
    ).one()

    surveys_stored = (
        await db.execute(
            select(func.count(Survey.id)).where(Survey.device_id == device_id)
        )
    ).scalar() or 0

    return DeviceSyncStatus(
        device_id=device_id,
        last_sync=row.last_sync,
        last_attempt=row.last_attempt,
        attempts=row.attempts or 0,
        failed_attempts=row.failed_attempts or 0,
        surveys_stored=surveys_stored,
    )

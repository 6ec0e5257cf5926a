"""
Endpoints de sincronización offline.

POST /sync                  — Procesar un batch de encuestas capturadas offline
POST /sync/async            — Encolar un batch grande para procesamiento (Celery)
GET  /sync/async/{task_id}  — Estado de un batch encolado
GET  /sync/logs             — Actividad reciente de sincronización
GET  /sync/status           — Estado de sincronización de un dispositivo
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from agrisync.auth.dependencies import get_current_user, get_optional_user
from agrisync.config import get_settings
from agrisync.core.exceptions import BadRequestException
from agrisync.database import get_db
from agrisync.models.user import User
from agrisync.schemas.sync import (
    DeviceSyncStatus,
    SyncAsyncAccepted,
    SyncLogListResponse,
    SyncLogResponse,
    SyncResponse,
    SyncTaskStatus,
)
from agrisync.services import sync_log_service
from agrisync.services.sync_service import (
    audit_rejected_batch,
    declared_actor,
    resolve_actor,
    sync_surveys,
    validate_batch,
)

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


def _get_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


@router.post(
    "",
    response_model=SyncResponse,
    summary="Sincronizar encuestas offline",
    description=(
        "Recibe todas las encuestas pendientes de un dispositivo y las aplica "
        "con upsert por (clientId, deviceId). Acepta dispositivos sin sesión. "
        f"Para batches de más de {settings.SYNC_ASYNC_THRESHOLD} encuestas, "
        "considerar usar /sync/async."
    ),
)
async def sync_batch(
    request: Request,
    body: Any = Body(None),
    x_device_id: str | None = Header(None, alias="X-Device-Id"),
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> SyncResponse:
    """Endpoint principal de sincronización; resultados inmediatos."""
    return await sync_surveys(
        db,
        body,
        header_device_id=x_device_id,
        authenticated_actor=current_user.id if current_user else None,
        ip_address=_get_client_ip(request),
    )


@router.post(
    "/async",
    response_model=SyncAsyncAccepted,
    status_code=202,
    summary="Enviar batch para procesamiento asíncrono",
    description=(
        "Para batches grandes. El batch se valida, se encola en Celery y "
        "se consulta con GET /sync/async/{task_id}."
    ),
)
async def sync_batch_async(
    request: Request,
    body: Any = Body(None),
    x_device_id: str | None = Header(None, alias="X-Device-Id"),
    db: AsyncSession = Depends(get_db),
    current_user: User | None = Depends(get_optional_user),
) -> SyncAsyncAccepted:
    """Encola el batch; la transacción se audita cuando el worker la procesa."""
    from agrisync.tasks.sync_tasks import process_sync_batch_task

    ip_address = _get_client_ip(request)
    actor_id = resolve_actor(current_user.id if current_user else None, declared_actor(body))

    try:
        batch = validate_batch(body, header_device_id=x_device_id)
    except BadRequestException as exc:
        await audit_rejected_batch(
            db, body, exc,
            actor_id=actor_id,
            header_device_id=x_device_id,
            ip_address=ip_address,
            event_type="sync_async",
        )
        raise

    task = process_sync_batch_task.delay(
        body,
        header_device_id=x_device_id,
        authenticated_actor=current_user.id if current_user else None,
        ip_address=ip_address,
    )

    logger.info(
        "Batch encolado para procesamiento async: task=%s, device=%s, surveys=%d",
        task.id, batch.device_id, len(batch.surveys),
    )

    return SyncAsyncAccepted(
        task_id=task.id,
        survey_count=len(batch.surveys),
        message="Batch encolado. Consultar estado con GET /sync/async/{task_id}.",
    )


@router.get(
    "/async/{task_id}",
    response_model=SyncTaskStatus,
    summary="Estado de un batch encolado",
)
async def sync_task_status(task_id: str) -> SyncTaskStatus:
    from agrisync.tasks.celery_app import celery_app

    task = celery_app.AsyncResult(task_id)
    status = task.state.lower()

    if task.successful():
        return SyncTaskStatus(
            task_id=task_id,
            status=status,
            result=SyncResponse.model_validate(task.result),
        )
    if task.failed():
        return SyncTaskStatus(task_id=task_id, status=status, error=str(task.result))
    return SyncTaskStatus(task_id=task_id, status=status)


@router.get(
    "/logs",
    response_model=SyncLogListResponse,
    summary="Actividad reciente de sincronización",
    description="Entradas de auditoría más recientes primero.",
)
async def sync_logs(
    limit: int = Query(settings.SYNC_LOG_DEFAULT_LIMIT, ge=1, le=settings.SYNC_LOG_MAX_LIMIT),
    device_id: str | None = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SyncLogListResponse:
    entries = await sync_log_service.recent_sync_logs(db, limit=limit, device_id=device_id)
    return SyncLogListResponse(
        items=[SyncLogResponse.model_validate(entry) for entry in entries],
        limit=limit,
    )


@router.get(
    "/status",
    response_model=DeviceSyncStatus,
    summary="Estado de sincronización de un dispositivo",
    description="Último sync exitoso, intentos y encuestas almacenadas del dispositivo.",
)
async def sync_status(
    device_id: str = Query(..., min_length=1, max_length=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DeviceSyncStatus:
    """Consulta el estado de sincronización de un dispositivo."""
    return await sync_log_service.get_device_sync_status(db, device_id)

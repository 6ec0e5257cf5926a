"""
Servicio de sincronización offline.

Implementa el protocolo:
1. Validación del batch completo (forma, identidades, tamaño): si falla,
   se rechaza todo el batch sin tocar ningún registro.
2. Cada encuesta se aplica en orden de envío dentro de un SAVEPOINT:
   un error de validación o de almacenamiento en un registro se reporta
   como fallo de ese registro y el resto del batch continúa.
3. Cada intento de sincronización deja exactamente una entrada de
   auditoría, exitosa o no.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agrisync.config import get_settings
from agrisync.core.exceptions import BadRequestException
from agrisync.schemas.survey import SurveyPayload
from agrisync.schemas.sync import (
    SyncBatchRequest,
    SyncConflictDetail,
    SyncFailure,
    SyncResponse,
)
from agrisync.services.conflict_service import UpsertOutcome
from agrisync.services.survey_service import upsert_survey
from agrisync.services.sync_log_service import record_sync_event

logger = logging.getLogger(__name__)
settings = get_settings()


def declared_actor(body: Any) -> str | None:
    """user_id declarado en el cuerpo del batch, si es texto."""
    if not isinstance(body, dict):
        return None
    value = body.get("userId", body.get("user_id"))
    return value if isinstance(value, str) else None


def resolve_actor(authenticated_id: str | None, declared_id: str | None) -> str:
    """Usuario autenticado, si no el declarado por el dispositivo, si no anónimo."""
    for candidate in (authenticated_id, declared_id):
        if candidate and candidate.strip():
            return candidate.strip()
    return settings.SYNC_ANONYMOUS_ACTOR


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "__root__")
        parts.append(f"{location}: {error['msg']}" if location else error["msg"])
    return "; ".join(parts) or "Registro inválido"


def _record_client_id(raw: dict[str, Any]) -> str:
    return str(raw.get("clientId", raw.get("client_id", ""))).strip()


# ── Validación del batch ─────────────────────────────

def validate_batch(body: Any, *, header_device_id: str | None = None) -> SyncBatchRequest:
    """
    Valida la forma del batch. Lanza BadRequestException si el batch
    no es procesable como un todo.
    """
    if not isinstance(body, dict):
        raise BadRequestException("El cuerpo debe ser un objeto con la lista 'surveys'")
    if not isinstance(body.get("surveys"), list):
        raise BadRequestException("'surveys' debe ser una lista de encuestas")
    if any(not isinstance(item, dict) for item in body["surveys"]):
        raise BadRequestException("Cada encuesta debe ser un objeto")

    try:
        batch = SyncBatchRequest.model_validate(body)
    except ValidationError as exc:
        raise BadRequestException(f"Batch inválido: {_describe_validation_error(exc)}")

    if len(batch.surveys) > settings.SYNC_MAX_BATCH_SIZE:
        raise BadRequestException(
            f"El batch excede el máximo de {settings.SYNC_MAX_BATCH_SIZE} encuestas"
        )

    batch_device = (batch.device_id or header_device_id or "").strip() or None
    record_devices = set()
    for index, raw in enumerate(batch.surveys):
        record_device = raw.get("deviceId", raw.get("device_id"))
        if isinstance(record_device, str) and record_device.strip():
            record_devices.add(record_device.strip())
        elif not batch_device:
            raise BadRequestException(
                f"La encuesta #{index} no tiene deviceId y el batch no declara dispositivo"
            )

    # Sin dispositivo declarado, el batch se audita con el de sus registros
    if batch_device is None and len(record_devices) == 1:
        batch_device = record_devices.pop()
    batch.device_id = batch_device
    return batch


# ── Procesamiento ────────────────────────────────────

async def process_sync_batch(
    db: AsyncSession,
    batch: SyncBatchRequest,
    *,
    actor_id: str,
    ip_address: str | None = None,
    event_type: str = "sync",
) -> SyncResponse:
    """
    Aplica cada encuesta del batch con resolución de conflictos y
    registra el intento en la auditoría.
    """
    inserted = updated = rejected = 0
    conflicts: list[SyncConflictDetail] = []
    failures: list[SyncFailure] = []

    for raw in batch.surveys:
        client_id = _record_client_id(raw)
        record = dict(raw)
        if not record.get("deviceId") and not record.get("device_id"):
            record["deviceId"] = batch.device_id
        device_id = record.get("deviceId") or record.get("device_id")
        if not isinstance(device_id, str):
            device_id = None

        try:
            payload = SurveyPayload.model_validate(record)
        except ValidationError as exc:
            message = _describe_validation_error(exc)
            logger.error("Encuesta %s@%s inválida: %s", client_id, device_id, message)
            failures.append(SyncFailure(client_id=client_id, device_id=device_id, error=message))
            continue

        try:
            async with db.begin_nested():
                result = await upsert_survey(db, payload, actor_id=actor_id)
        except SQLAlchemyError as exc:
            logger.error(
                "Error almacenando encuesta %s@%s: %s",
                payload.client_id, payload.device_id, exc,
            )
            failures.append(SyncFailure(
                client_id=payload.client_id,
                device_id=payload.device_id,
                error="Error de almacenamiento al guardar la encuesta",
            ))
            continue

        if result.outcome is UpsertOutcome.INSERTED:
            inserted += 1
            continue

        if result.outcome is UpsertOutcome.UPDATED:
            updated += 1
        else:
            rejected += 1
        conflicts.append(SyncConflictDetail(
            client_id=payload.client_id,
            device_id=payload.device_id,
            farmer_name=result.survey.farmer_name,
            server_id=result.survey.id,
            resolution=result.outcome.value,
        ))

    synced = inserted + updated + rejected
    message = f"Sincronizadas {synced} de {len(batch.surveys)} encuestas"
    if conflicts:
        message += f" ({len(conflicts)} conflictos resueltos)"
    if failures:
        message += f", {len(failures)} con error"

    await record_sync_event(
        db,
        event_type=event_type,
        user_id=actor_id,
        device_id=batch.device_id,
        survey_count=len(batch.surveys),
        inserted_count=inserted,
        updated_count=updated,
        rejected_count=rejected,
        failed_count=len(failures),
        success=True,
        error_message="; ".join(f"{f.client_id}: {f.error}" for f in failures) or None,
        ip_address=ip_address,
    )

    return SyncResponse(
        success=True,
        synced_count=synced,
        inserted_count=inserted,
        conflict_count=len(conflicts),
        failed_count=len(failures),
        conflicts=conflicts,
        failures=failures,
        server_time=datetime.now(timezone.utc),
        message=message,
    )


async def audit_rejected_batch(
    db: AsyncSession,
    body: Any,
    exc: BadRequestException,
    *,
    actor_id: str,
    header_device_id: str | None = None,
    ip_address: str | None = None,
    event_type: str = "sync",
) -> None:
    """
    Audita un batch rechazado como un todo y confirma la entrada: el
    rechazo se propaga como error HTTP, pero la auditoría debe persistir.
    """
    surveys = body.get("surveys") if isinstance(body, dict) else None
    device = body.get("deviceId", body.get("device_id")) if isinstance(body, dict) else None
    device_id = (device if isinstance(device, str) else None) or header_device_id
    logger.warning("Batch rechazado (device=%s): %s", device_id, exc.detail)
    await record_sync_event(
        db,
        event_type=event_type,
        user_id=actor_id,
        device_id=device_id,
        survey_count=len(surveys) if isinstance(surveys, list) else 0,
        success=False,
        error_message=str(exc.detail),
        ip_address=ip_address,
    )
    await db.commit()


async def sync_surveys(
    db: AsyncSession,
    body: Any,
    *,
    header_device_id: str | None = None,
    authenticated_actor: str | None = None,
    ip_address: str | None = None,
    event_type: str = "sync",
) -> SyncResponse:
    """
    Punto de entrada de una transacción de sincronización.
    Un batch rechazado como un todo también queda auditado antes de
    propagar el error al llamador.
    """
    actor_id = resolve_actor(authenticated_actor, declared_actor(body))

    try:
        batch = validate_batch(body, header_device_id=header_device_id)
    except BadRequestException as exc:
        await audit_rejected_batch(
            db, body, exc,
            actor_id=actor_id,
            header_device_id=header_device_id,
            ip_address=ip_address,
            event_type=event_type,
        )
        raise

    logger.info(
        "Sync batch recibido: device=%s, surveys=%d, actor=%s",
        batch.device_id, len(batch.surveys), actor_id,
    )
    result = await process_sync_batch(
        db, batch, actor_id=actor_id, ip_address=ip_address, event_type=event_type,
    )
    logger.info(
        "Sync batch procesado: device=%s, inserted=%d, conflicts=%d, failed=%d",
        batch.device_id, result.inserted_count, result.conflict_count, result.failed_count,
    )
    return result

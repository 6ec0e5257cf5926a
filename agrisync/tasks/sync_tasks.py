"""
Tareas Celery para sincronización offline.
Un batch encolado se procesa con la misma orquestación que POST /sync:
upsert idempotente por registro y una entrada de auditoría por intento.
"""

import asyncio
import logging
from typing import Any

from agrisync.core.exceptions import BadRequestException
from agrisync.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


async def run_sync_batch(
    body: Any,
    *,
    header_device_id: str | None = None,
    authenticated_actor: str | None = None,
    ip_address: str | None = None,
) -> dict:
    """Procesa un batch en una sesión propia y retorna la respuesta serializada."""
    from agrisync.database import async_session_factory
    from agrisync.services.sync_service import sync_surveys

    async with async_session_factory() as db:
        try:
            result = await sync_surveys(
                db,
                body,
                header_device_id=header_device_id,
                authenticated_actor=authenticated_actor,
                ip_address=ip_address,
                event_type="sync_async",
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    return result.model_dump(mode="json")


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    name="sync.process_batch",
)
def process_sync_batch_task(
    self,
    body: Any,
    header_device_id: str | None = None,
    authenticated_actor: str | None = None,
    ip_address: str | None = None,
):
    """
    Task para procesar un batch grande en background.
    Reintentar es seguro: la aplicación de cada encuesta es idempotente.
    """
    try:
        return asyncio.run(run_sync_batch(
            body,
            header_device_id=header_device_id,
            authenticated_actor=authenticated_actor,
            ip_address=ip_address,
        ))
    except BadRequestException as exc:
        # Batch inválido: reintentar no cambia el resultado
        logger.warning("Batch async rechazado: %s", exc.detail)
        raise ValueError(str(exc.detail))
    except Exception as exc:
        logger.error("Error procesando batch async: %s", exc)
        raise self.retry(exc=exc)

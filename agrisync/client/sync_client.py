"""
Cliente de sincronización del dispositivo.

Envía TODAS las encuestas pendientes en un solo batch. Con respuesta
exitosa marca como sincronizadas las encuestas enviadas; ante cualquier
fallo (sin red, timeout, estado de error) la cola local queda intacta
para reintentar. Reenviar un batch es seguro porque el servidor aplica
cada encuesta de forma idempotente.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx
from pydantic import ValidationError

from agrisync.client.exceptions import (
    ConnectivityError,
    SyncClientError,
    SyncInProgressError,
    SyncRejectedError,
)
from agrisync.client.store import LAST_SYNC_KEY, LocalRecordStore, build_payload
from agrisync.config import get_settings
from agrisync.schemas.sync import SyncConflictDetail, SyncFailure, SyncLogResponse, SyncResponse

logger = logging.getLogger(__name__)
settings = get_settings()

SYNC_PATH = "/api/v1/sync"
LOGS_PATH = "/api/v1/sync/logs"


@dataclass
class SyncResult:
    """Resumen de un intento de sincronización exitoso."""
    submitted: int = 0
    marked_synced: int = 0
    synced_count: int = 0
    conflict_count: int = 0
    failed_count: int = 0
    conflicts: list[SyncConflictDetail] = field(default_factory=list)
    failures: list[SyncFailure] = field(default_factory=list)
    message: str = ""

    @classmethod
    def from_response(cls, response: SyncResponse, *, submitted: int, marked: int) -> "SyncResult":
        return cls(
            submitted=submitted,
            marked_synced=marked,
            synced_count=response.synced_count,
            conflict_count=response.conflict_count,
            failed_count=response.failed_count,
            conflicts=response.conflicts,
            failures=response.failures,
            message=response.message,
        )


def _error_detail(response: httpx.Response) -> object:
    try:
        return response.json().get("detail")
    except (ValueError, AttributeError):
        return response.text


class SyncClient:
    """Una instancia por dispositivo; nunca dos sincronizaciones a la vez."""

    def __init__(
        self,
        store: LocalRecordStore,
        base_url: str | None = None,
        *,
        actor_id: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.store = store
        self.base_url = (base_url or settings.SYNC_SERVER_URL).rstrip("/")
        self.actor_id = actor_id
        self.access_token = access_token
        self.timeout = timeout if timeout is not None else settings.SYNC_TIMEOUT_SECONDS
        self._transport = transport
        self._lock = asyncio.Lock()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    def _http_client(self) -> httpx.AsyncClient:
        headers = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=self._transport,
        )

    async def sync(self) -> SyncResult:
        """
        Ejecuta una transacción de sincronización.
        Lanza SyncInProgressError si ya hay otra en vuelo.
        """
        if self._lock.locked():
            raise SyncInProgressError()

        async with self._lock:
            pending = await self.store.pending()
            if not pending:
                return SyncResult(message="No hay encuestas pendientes")

            device_id = await self.store.device_id()
            revisions = {survey.client_id: survey.revision for survey in pending}
            body = {
                "surveys": [build_payload(survey, device_id) for survey in pending],
                "deviceId": device_id,
                "userId": self.actor_id or settings.SYNC_ANONYMOUS_ACTOR,
            }

            logger.info("Sincronizando %d encuestas (device=%s)", len(pending), device_id)
            response = await self._post(SYNC_PATH, body, device_id)

            try:
                result = SyncResponse.model_validate(response.json())
            except (ValueError, ValidationError) as exc:
                raise SyncClientError(f"Respuesta de sincronización inválida: {exc}")

            # Los registros con fallo en el servidor siguen pendientes
            for failure in result.failures:
                revisions.pop(failure.client_id, None)

            marked = await self.store.mark_synced(revisions)
            await self.store.set_setting(LAST_SYNC_KEY, datetime.now(timezone.utc).isoformat())
            logger.info(
                "Sync completado: %d enviadas, %d marcadas, %d conflictos, %d con error",
                len(pending), marked, result.conflict_count, result.failed_count,
            )
            return SyncResult.from_response(result, submitted=len(pending), marked=marked)

    async def _post(self, path: str, body: dict, device_id: str) -> httpx.Response:
        try:
            async with self._http_client() as client:
                response = await client.post(path, json=body, headers={"X-Device-Id": device_id})
        except httpx.TimeoutException:
            logger.warning("Timeout al sincronizar con %s", self.base_url)
            raise ConnectivityError("Timeout al contactar el servidor. Intente nuevamente.")
        except httpx.RequestError as exc:
            logger.warning("Sin conexión con %s: %s", self.base_url, exc)
            raise ConnectivityError(f"Error de conexión con el servidor: {exc}")

        if response.is_error:
            detail = _error_detail(response)
            logger.error("Servidor rechazó el batch (%s): %s", response.status_code, detail)
            raise SyncRejectedError(
                f"El servidor rechazó la sincronización ({response.status_code})",
                status_code=response.status_code,
                detail=detail,
            )
        return response

    async def recent_activity(self, limit: int = 20) -> list[SyncLogResponse]:
        """Últimas entradas de auditoría de sincronización del servidor."""
        try:
            async with self._http_client() as client:
                response = await client.get(LOGS_PATH, params={"limit": limit})
        except httpx.TimeoutException:
            raise ConnectivityError("Timeout al contactar el servidor. Intente nuevamente.")
        except httpx.RequestError as exc:
            raise ConnectivityError(f"Error de conexión con el servidor: {exc}")

        if response.is_error:
            raise SyncRejectedError(
                f"No se pudo consultar la actividad ({response.status_code})",
                status_code=response.status_code,
                detail=_error_detail(response),
            )
        return [SyncLogResponse.model_validate(item) for item in response.json()["items"]]

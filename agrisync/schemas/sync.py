"""
Schemas para sincronización offline.

El flujo es:
1. El dispositivo acumula encuestas en su almacén local (pendientes)
2. Al sincronizar, envía un SyncBatchRequest con TODAS las pendientes
3. El servidor aplica cada encuesta con upsert por (client_id, device_id)
   y resuelve conflictos por timestamp del cliente (last-writer-wins)
4. Retorna SyncResponse con conteos, conflictos y fallos por registro
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from agrisync.schemas.survey import CamelModel

ConflictResolution = Literal["updated", "rejected"]


# ── Batch de encuestas ───────────────────────────────

class SyncBatchRequest(CamelModel):
    """
    Batch enviado por un dispositivo. Aquí solo se valida la forma del
    batch y la identidad de cada registro; el contenido de cada encuesta
    se valida por separado para que un registro inválido no tumbe el resto.
    """
    surveys: list[dict[str, Any]] = Field(
        ..., description="Encuestas pendientes del dispositivo"
    )
    device_id: str | None = Field(
        None, max_length=100,
        description="Identificador persistente del dispositivo"
    )
    user_id: str | None = Field(
        None, max_length=50,
        description="Encuestador declarado por el dispositivo (si no hay sesión)"
    )

    @field_validator("surveys")
    @classmethod
    def _check_identities(cls, surveys: list[dict[str, Any]]) -> list[dict[str, Any]]:
        for index, survey in enumerate(surveys):
            client_id = survey.get("clientId", survey.get("client_id"))
            if not isinstance(client_id, str) or not client_id.strip():
                raise ValueError(f"la encuesta #{index} no tiene clientId")
        return surveys


# ── Resultado por registro ───────────────────────────

class SyncConflictDetail(BaseModel):
    """Registro cuya identidad ya existía en el servidor."""
    client_id: str
    device_id: str
    farmer_name: str | None = None
    server_id: int
    resolution: ConflictResolution = Field(
        ..., description="updated: ganó el registro entrante; rejected: se conservó el almacenado"
    )


class SyncFailure(BaseModel):
    """Registro que no pudo aplicarse (validación o almacenamiento)."""
    client_id: str
    device_id: str | None = None
    error: str


# ── Respuesta completa ───────────────────────────────

class SyncResponse(BaseModel):
    """Respuesta del endpoint de sincronización."""
    success: bool = True
    synced_count: int = Field(
        0, description="Registros procesados (insertados + actualizados + rechazados)"
    )
    inserted_count: int = 0
    conflict_count: int = Field(
        0, description="Registros cuya identidad ya existía (actualizados + rechazados)"
    )
    failed_count: int = 0
    conflicts: list[SyncConflictDetail] = []
    failures: list[SyncFailure] = []
    server_time: datetime
    message: str = ""


# ── Procesamiento asíncrono ──────────────────────────

class SyncAsyncAccepted(BaseModel):
    task_id: str
    status: str = "queued"
    survey_count: int
    message: str = ""


class SyncTaskStatus(BaseModel):
    task_id: str
    status: str
    result: SyncResponse | None = None
    error: str | None = None


# ── Auditoría ────────────────────────────────────────

class SyncLogResponse(BaseModel):
    id: int
    event_type: str
    user_id: str | None = None
    device_id: str | None = None
    survey_count: int
    inserted_count: int
    updated_count: int
    rejected_count: int
    failed_count: int
    conflict_count: int
    success: bool
    error_message: str | None = None
    ip_address: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SyncLogListResponse(BaseModel):
    items: list[SyncLogResponse]
    limit: int


class DeviceSyncStatus(BaseModel):
    """Estado de sincronización de un dispositivo."""
    device_id: str
    last_sync: datetime | None = None
    last_attempt: datetime | None = None
    attempts: int = 0
    failed_attempts: int = 0
    surveys_stored: int = 0

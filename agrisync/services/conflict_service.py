"""
Motor de resolución de conflictos: aplica UNA encuesta al repositorio.

Algoritmo (idempotente, sin lectura-luego-escritura):
1. INSERT ... ON CONFLICT (client_id, device_id) DO NOTHING RETURNING id
   → si devuelve fila, la encuesta es nueva: `inserted`.
2. UPDATE ... WHERE identidad AND client_timestamp < entrante RETURNING id
   → si devuelve fila, el entrante era estrictamente más nuevo: `updated`
     (se conserva el id del servidor y created_at).
3. Si ninguna sentencia tocó filas, el almacenado es igual o más nuevo:
   `rejected`, no se modifica ningún campo.

Cada paso es una sola sentencia atómica, así que dos sincronizaciones
concurrentes de la misma identidad nunca insertan dos filas: la restricción
única decide y la comparación de timestamps se evalúa dentro del UPDATE.

Las fotos se agregan en cualquier resultado (no participan del conflicto)
y se deduplican por hash de contenido dentro de la encuesta.
"""

import enum
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agrisync.models.photo import Photo
from agrisync.models.survey import Survey
from agrisync.schemas.survey import PhotoPayload, SurveyPayload

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class UpsertOutcome(str, enum.Enum):
    """Resultado de aplicar una encuesta."""
    INSERTED = "inserted"
    UPDATED = "updated"
    REJECTED = "rejected"


@dataclass
class UpsertResult:
    outcome: UpsertOutcome
    survey: Survey
    photos_added: int = 0

    @property
    def is_conflict(self) -> bool:
        return self.outcome is not UpsertOutcome.INSERTED


def _dialect_insert(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    try:
        return _INSERT_BY_DIALECT[dialect]
    except KeyError:
        raise RuntimeError(f"Upsert atómico no soportado para el dialecto {dialect!r}")


def photo_hash(data: str) -> str:
    return hashlib.sha256(data.encode()).hexdigest()


async def apply_survey(
    db: AsyncSession,
    payload: SurveyPayload,
    *,
    actor_id: str,
    now: datetime | None = None,
) -> UpsertResult:
    """
    Aplica una encuesta con semántica insert / newer-wins / reject.
    `actor_id` se usa como user_id cuando el registro no trae uno.
    """
    now = now or datetime.now(timezone.utc)
    insert = _dialect_insert(db)
    user_id = payload.user_id or actor_id
    content = payload.content_values()

    # 1. Insertar si la identidad no existe
    insert_stmt = (
        insert(Survey)
        .values(
            client_id=payload.client_id,
            device_id=payload.device_id,
            user_id=user_id,
            client_timestamp=payload.client_timestamp,
            server_timestamp=now,
            created_at=now,
            synced_at=now,
            synced_by=actor_id,
            **content,
        )
        .on_conflict_do_nothing(index_elements=["client_id", "device_id"])
        .returning(Survey.id)
    )
    survey_id = (await db.execute(insert_stmt)).scalar_one_or_none()
    outcome = UpsertOutcome.INSERTED

    if survey_id is None:
        # 2. Compare-and-swap: solo si el entrante es estrictamente más nuevo
        update_stmt = (
            update(Survey)
            .where(
                Survey.client_id == payload.client_id,
                Survey.device_id == payload.device_id,
                Survey.client_timestamp < payload.client_timestamp,
            )
            .values(
                user_id=user_id,
                client_timestamp=payload.client_timestamp,
                server_timestamp=now,
                synced_at=now,
                synced_by=actor_id,
                **content,
            )
            .returning(Survey.id)
            .execution_options(synchronize_session=False)
        )
        survey_id = (await db.execute(update_stmt)).scalar_one_or_none()
        outcome = UpsertOutcome.UPDATED

    if survey_id is None:
        # 3. El almacenado es igual o más nuevo
        outcome = UpsertOutcome.REJECTED
        survey_id = (
            await db.execute(
                select(Survey.id).where(
                    Survey.client_id == payload.client_id,
                    Survey.device_id == payload.device_id,
                )
            )
        ).scalar_one()

    photos_added = await _append_photos(db, survey_id, payload.photos)

    survey = await _load_survey(db, survey_id)
    logger.debug(
        "Encuesta %s@%s → %s (id=%s)",
        payload.client_id, payload.device_id, outcome.value, survey_id,
    )
    return UpsertResult(outcome=outcome, survey=survey, photos_added=photos_added)


async def _append_photos(
    db: AsyncSession,
    survey_id: int,
    photos: list[PhotoPayload],
) -> int:
    """Agrega fotos nuevas; las ya guardadas (mismo hash) se ignoran."""
    if not photos:
        return 0

    insert = _dialect_insert(db)
    rows = {}
    for photo in photos:
        digest = photo_hash(photo.data)
        rows.setdefault(digest, {
            "survey_id": survey_id,
            "photo_data": photo.data,
            "photo_type": photo.photo_type,
            "caption": photo.caption,
            "content_hash": digest,
        })

    stmt = (
        insert(Photo)
        .values(list(rows.values()))
        .on_conflict_do_nothing(index_elements=["survey_id", "content_hash"])
        .returning(Photo.id)
    )
    return len((await db.execute(stmt)).scalars().all())


async def _load_survey(db: AsyncSession, survey_id: int) -> Survey:
    result = await db.execute(
        select(Survey)
        .where(Survey.id == survey_id)
        .options(selectinload(Survey.photos))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()

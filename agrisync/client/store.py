"""
Almacén local del dispositivo: cola durable de encuestas pendientes.

Una encuesta se crea en estado pendiente y solo pasa a sincronizada
cuando el servidor confirmó el batch que la incluía. Cualquier cambio
local (edición o foto nueva) la devuelve a pendiente.
"""

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agrisync.client.exceptions import LocalRecordNotFound
from agrisync.client.models import DeviceSetting, LocalBase, LocalPhoto, LocalSurvey
from agrisync.config import get_settings
from agrisync.core.timestamps import now_ms, to_epoch_ms
from agrisync.database import build_engine

logger = logging.getLogger(__name__)
settings = get_settings()

DEVICE_ID_KEY = "device_id"
LAST_SYNC_KEY = "last_sync"

# Claves de identidad que el almacén administra; no forman parte de `data`
_IDENTITY_KEYS = (
    "id", "clientId", "client_id", "deviceId", "device_id",
    "clientTimestamp", "client_timestamp", "timestamp", "synced", "photos",
)


def _split_record(record: Mapping[str, Any]) -> tuple[dict[str, Any], Any, Any, list]:
    data = {k: v for k, v in record.items() if k not in _IDENTITY_KEYS}
    client_id = record.get("clientId", record.get("client_id"))
    timestamp = record.get(
        "clientTimestamp", record.get("client_timestamp", record.get("timestamp"))
    )
    photos = list(record.get("photos") or [])
    return data, client_id, timestamp, photos


def _photo_fields(photo: Any) -> dict[str, Any]:
    if isinstance(photo, str):
        return {"photo_data": photo}
    return {
        "photo_data": photo.get("data", photo.get("photoData")),
        "photo_type": photo.get("photoType", photo.get("type", "field")),
        "caption": photo.get("caption"),
    }


def build_payload(survey: LocalSurvey, device_id: str) -> dict[str, Any]:
    """Registro tal como viaja en el batch de sincronización."""
    return {
        **survey.data,
        "clientId": survey.client_id,
        "deviceId": device_id,
        "clientTimestamp": survey.client_timestamp,
        "photos": [
            {"data": p.photo_data, "photoType": p.photo_type, "caption": p.caption}
            for p in survey.photos
        ],
    }


class LocalRecordStore:
    """Cola durable de encuestas del dispositivo sobre SQLite."""

    def __init__(self, url: str | None = None):
        self.engine = build_engine(url or settings.LOCAL_DATABASE_URL)
        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def init(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(LocalBase.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    # ── Encuestas ────────────────────────────────────

    async def save(self, record: Mapping[str, Any]) -> LocalSurvey:
        """
        Guarda una encuesta nueva como pendiente. Asigna clientId y
        clientTimestamp si no vienen; un clientId existente se trata
        como edición.
        """
        data, client_id, timestamp, photos = _split_record(record)
        if client_id and await self.get(client_id) is not None:
            return await self.update(client_id, record)

        async with self._session_factory() as session, session.begin():
            survey = LocalSurvey(
                client_id=client_id or str(uuid.uuid4()),
                client_timestamp=to_epoch_ms(timestamp) if timestamp is not None else now_ms(),
                revision=1,
                synced=False,
                data=data,
                photos=[LocalPhoto(**_photo_fields(p)) for p in photos],
            )
            session.add(survey)

        logger.debug("Encuesta local %s guardada como pendiente", survey.client_id)
        return survey

    async def update(self, client_id: str, changes: Mapping[str, Any]) -> LocalSurvey:
        """
        Aplica cambios de contenido. El clientTimestamp avanza siempre,
        así la edición gana frente a lo ya sincronizado.
        """
        data, _, _, photos = _split_record(changes)
        async with self._session_factory() as session, session.begin():
            survey = await self._get_for_update(session, client_id)
            survey.data = {**survey.data, **data}
            survey.client_timestamp = max(now_ms(), survey.client_timestamp + 1)
            survey.revision += 1
            survey.synced = False
            for photo in photos:
                survey.photos.append(LocalPhoto(**_photo_fields(photo)))
        return survey

    async def get(self, client_id: str) -> LocalSurvey | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(LocalSurvey).where(LocalSurvey.client_id == client_id)
            )
            return result.scalar_one_or_none()

    async def all(self) -> list[LocalSurvey]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(LocalSurvey).order_by(LocalSurvey.created_at.desc(), LocalSurvey.id.desc())
            )
            return list(result.scalars().all())

    async def pending(self) -> list[LocalSurvey]:
        """Encuestas no sincronizadas, en orden de captura."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(LocalSurvey)
                .where(LocalSurvey.synced.is_(False))
                .order_by(LocalSurvey.created_at, LocalSurvey.id)
            )
            return list(result.scalars().all())

    async def mark_synced(self, revisions: Mapping[str, int]) -> int:
        """
        Marca como sincronizadas las encuestas enviadas, en una sola
        transacción. Solo se marca la revisión que se envió: una edición
        posterior queda pendiente.
        """
        marked = 0
        async with self._session_factory() as session, session.begin():
            for client_id, revision in revisions.items():
                result = await session.execute(
                    update(LocalSurvey)
                    .where(
                        LocalSurvey.client_id == client_id,
                        LocalSurvey.revision == revision,
                    )
                    .values(synced=True)
                )
                marked += result.rowcount
        return marked

    async def delete(self, client_id: str) -> None:
        """Elimina la encuesta local y sus fotos."""
        async with self._session_factory() as session, session.begin():
            survey = await self._get_for_update(session, client_id)
            await session.delete(survey)

    async def add_photo(
        self,
        client_id: str,
        data: str,
        *,
        photo_type: str = "field",
        caption: str | None = None,
    ) -> LocalPhoto:
        """
        Adjunta una foto y devuelve la encuesta a pendiente. El
        clientTimestamp no cambia: las fotos se agregan en el servidor
        sin pasar por la resolución de conflictos.
        """
        async with self._session_factory() as session, session.begin():
            survey = await self._get_for_update(session, client_id)
            photo = LocalPhoto(photo_data=data, photo_type=photo_type, caption=caption)
            survey.photos.append(photo)
            survey.revision += 1
            survey.synced = False
        return photo

    async def _get_for_update(self, session: AsyncSession, client_id: str) -> LocalSurvey:
        result = await session.execute(
            select(LocalSurvey).where(LocalSurvey.client_id == client_id)
        )
        survey = result.scalar_one_or_none()
        if survey is None:
            raise LocalRecordNotFound(client_id)
        return survey

    # ── Configuración del dispositivo ────────────────

    async def get_setting(self, key: str) -> str | None:
        async with self._session_factory() as session:
            setting = await session.get(DeviceSetting, key)
            return setting.value if setting else None

    async def set_setting(self, key: str, value: str) -> None:
        async with self._session_factory() as session, session.begin():
            await session.merge(DeviceSetting(key=key, value=value))

    async def device_id(self) -> str:
        """Identificador del dispositivo: se genera una vez y se persiste."""
        existing = await self.get_setting(DEVICE_ID_KEY)
        if existing:
            return existing
        device_id = f"device-{uuid.uuid4()}"
        await self.set_setting(DEVICE_ID_KEY, device_id)
        logger.info("Identificador de dispositivo generado: %s", device_id)
        return device_id

    async def statistics(self) -> dict[str, Any]:
        """Totales locales para la pantalla de estado del dispositivo."""
        async with self._session_factory() as session:
            total = (await session.execute(select(func.count(LocalSurvey.id)))).scalar() or 0
            pending = (
                await session.execute(
                    select(func.count(LocalSurvey.id)).where(LocalSurvey.synced.is_(False))
                )
            ).scalar() or 0
            data_rows = (await session.execute(select(LocalSurvey.data))).scalars().all()

        total_area = 0.0
        for data in data_rows:
            size = data.get("farmSize", data.get("farm_size"))
            if isinstance(size, (int, float)):
                total_area += size

        return {
            "total": total,
            "pending": pending,
            "synced": total - pending,
            "total_area": round(total_area, 2),
            "last_sync": await self.get_setting(LAST_SYNC_KEY),
        }

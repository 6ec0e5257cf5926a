"""
Modelos del almacén local del dispositivo (SQLite).
Base declarativa propia: estas tablas nunca existen en el servidor.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocalBase(DeclarativeBase):
    pass


class LocalSurvey(LocalBase):
    """
    Encuesta capturada en el dispositivo.
    `data` guarda los campos de contenido tal como se envían (camelCase);
    `revision` aumenta con cada cambio local para no marcar como
    sincronizada una edición hecha mientras el batch estaba en vuelo.
    """
    __tablename__ = "local_surveys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    client_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    revision: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    synced: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    data: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    photos: Mapped[list["LocalPhoto"]] = relationship(
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="LocalPhoto.id",
        lazy="selectin",
    )


class LocalPhoto(LocalBase):
    __tablename__ = "local_photos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    survey_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("local_surveys.id", ondelete="CASCADE"), nullable=False, index=True
    )
    photo_data: Mapped[str] = mapped_column(Text, nullable=False)
    photo_type: Mapped[str] = mapped_column(String(50), default="field", nullable=False)
    caption: Mapped[str | None] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    survey: Mapped[LocalSurvey] = relationship(back_populates="photos")


class DeviceSetting(LocalBase):
    """Pares clave/valor persistentes del dispositivo (device_id, último sync)."""
    __tablename__ = "device_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

"""
Modelo Survey — Entrevista a un agricultor capturada en campo.

Identidad natural: (client_id, device_id), única en la tabla. El `id`
secuencial lo asigna el servidor en el primer INSERT y no cambia nunca.

Timestamps:
- client_timestamp: epoch en milisegundos fijado por el dispositivo al
  capturar o editar. Es el único valor que decide los conflictos.
- server_timestamp: momento en que el servidor aceptó la última escritura.
- synced_at: momento en que se confirmó la transacción de sincronización.
"""

from datetime import date, datetime

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agrisync.database import Base, JSONType


class Survey(Base):
    __tablename__ = "surveys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # ── Identidad del cliente ────────────────────────
    client_id: Mapped[str] = mapped_column(
        String(100), nullable=False,
        comment="ID generado en el dispositivo, estable entre reintentos"
    )
    device_id: Mapped[str] = mapped_column(
        String(100), nullable=False,
        comment="Dispositivo que originó el registro"
    )
    user_id: Mapped[str | None] = mapped_column(
        String(50), index=True,
        comment="Encuestador o 'anonymous'; sin FK"
    )

    # ── Agricultor ───────────────────────────────────
    farmer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    household_size: Mapped[int | None] = mapped_column(Integer)
    phone: Mapped[str | None] = mapped_column(String(50))
    village: Mapped[str | None] = mapped_column(String(100), index=True)
    island: Mapped[str | None] = mapped_column(String(100), index=True)

    # ── Ubicación ────────────────────────────────────
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    gps_accuracy: Mapped[float | None] = mapped_column(Float, comment="Metros")

    # ── Finca ────────────────────────────────────────
    farm_size: Mapped[float | None] = mapped_column(Float, comment="Hectáreas")
    crops: Mapped[list | None] = mapped_column(
        JSONType, comment='Lista de cultivos: ["kava", "taro", ...]'
    )
    livestock: Mapped[dict | None] = mapped_column(
        JSONType, comment='Conteos: {"cattle": 0, "pigs": 0, "chickens": 0, "goats": 0}'
    )

    # ── Plagas y enfermedades ────────────────────────
    pest_issues: Mapped[str | None] = mapped_column(
        String(50), comment="none, pests, disease, both"
    )
    pest_severity: Mapped[str | None] = mapped_column(
        String(20), comment="low, medium, high, critical"
    )
    pest_description: Mapped[str | None] = mapped_column(Text)
    treatment_used: Mapped[str | None] = mapped_column(Text)
    harvest_date: Mapped[date | None] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(Text)

    # ── Timestamps ───────────────────────────────────
    client_timestamp: Mapped[int] = mapped_column(
        BigInteger, nullable=False,
        comment="Epoch en ms del dispositivo; decide conflictos"
    )
    server_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
        comment="Última escritura aceptada por el servidor"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    synced_by: Mapped[str | None] = mapped_column(String(50))

    # ── Relaciones ───────────────────────────────────
    photos: Mapped[list["Photo"]] = relationship(  # noqa: F821
        "Photo",
        back_populates="survey",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Photo.id",
    )

    # ── Índices ──────────────────────────────────────
    __table_args__ = (
        UniqueConstraint("client_id", "device_id", name="uq_surveys_client_device"),
        Index("idx_surveys_created_at", "created_at"),
        Index("idx_surveys_farmer_name", "farmer_name"),
        Index("idx_surveys_lat_lng", "latitude", "longitude"),
    )

    def __repr__(self) -> str:
        return f"<Survey {self.id} {self.client_id}@{self.device_id}>"

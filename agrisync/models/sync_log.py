"""
Modelo SyncLog — Registro de auditoría de cada intento de sincronización.
Una fila por transacción (no por encuesta). INSERT-only: nunca se
actualiza ni se elimina en operación normal.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from agrisync.database import Base


class SyncLog(Base):
    __tablename__ = "sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # ── Datos del evento ─────────────────────────────
    event_type: Mapped[str] = mapped_column(
        String(50), nullable=False, comment="sync, sync_async"
    )
    user_id: Mapped[str | None] = mapped_column(String(50))
    device_id: Mapped[str | None] = mapped_column(String(100))

    # ── Conteos ──────────────────────────────────────
    survey_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
        comment="Encuestas recibidas en el batch"
    )
    inserted_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rejected_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # ── Resultado ────────────────────────────────────
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    error_message: Mapped[str | None] = mapped_column(Text)
    ip_address: Mapped[str | None] = mapped_column(String(45))

    # ── Timestamp inmutable ──────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_sync_logs_created_at", "created_at"),
        Index("idx_sync_logs_device", "device_id", "created_at"),
    )

    @property
    def conflict_count(self) -> int:
        return self.updated_count + self.rejected_count

    def __repr__(self) -> str:
        status = "ok" if self.success else "error"
        return f"<SyncLog {self.id} [{status}] surveys={self.survey_count}>"

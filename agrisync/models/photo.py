"""
Modelo Photo — Fotos de campo adjuntas a una encuesta.
Pertenece a una sola encuesta y se elimina en cascada con ella.
Inmutable una vez guardada.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agrisync.database import Base


class Photo(Base):
    __tablename__ = "photos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    survey_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False, index=True
    )

    photo_data: Mapped[str] = mapped_column(
        Text, nullable=False, comment="Imagen en base64 (data URL o crudo)"
    )
    photo_type: Mapped[str] = mapped_column(String(50), default="field")
    caption: Mapped[str | None] = mapped_column(Text)
    content_hash: Mapped[str] = mapped_column(
        String(64), nullable=False,
        comment="SHA-256 de photo_data, único por encuesta"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    survey: Mapped["Survey"] = relationship("Survey", back_populates="photos")  # noqa: F821

    __table_args__ = (
        UniqueConstraint("survey_id", "content_hash", name="uq_photos_survey_hash"),
    )

    def __repr__(self) -> str:
        return f"<Photo {self.id} survey={self.survey_id}>"

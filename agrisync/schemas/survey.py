"""
Schemas para encuestas de fincas.

SurveyPayload es el contrato de frontera de un registro capturado offline:
todos los campos opcionales tienen su default declarado aquí y el
timestamp del cliente se normaliza a epoch en milisegundos antes de
llegar a la lógica de conflictos.
"""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from agrisync.core.timestamps import to_epoch_ms

PestIssue = Literal["none", "pests", "disease", "both"]
PestSeverity = Literal["low", "medium", "high", "critical"]

LIVESTOCK_KINDS = ("cattle", "pigs", "chickens", "goats")

# Claves usadas por versiones anteriores del formulario offline
_LEGACY_KEYS = {
    "phoneNumber": ("phone", "phone"),
    "pestDetails": ("pestDescription", "pest_description"),
    "lastHarvest": ("harvestDate", "harvest_date"),
    "timestamp": ("clientTimestamp", "client_timestamp"),
}
_LEGACY_LIVESTOCK = {
    "cattle": "cattle",
    "pigs": "pigs",
    "poultry": "chickens",
    "chickens": "chickens",
    "goats": "goats",
}


class CamelModel(BaseModel):
    """Acepta snake_case y camelCase en la entrada."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ── Payloads de entrada ──────────────────────────────

class PhotoPayload(CamelModel):
    """Foto adjunta a un registro enviado por el dispositivo."""
    data: str = Field(..., min_length=1, description="Imagen en base64 o data URL")
    photo_type: str = Field("field", max_length=50)
    caption: str | None = Field(None, max_length=500)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, values):
        if isinstance(values, str):
            return {"data": values}
        if isinstance(values, dict):
            values = dict(values)
            if "data" not in values and "photoData" in values:
                values["data"] = values.pop("photoData")
            if "photoType" not in values and "photo_type" not in values and "type" in values:
                values["photoType"] = values.pop("type")
        return values


class SurveyPayload(CamelModel):
    """Un registro de encuesta tal como llega en un batch de sincronización."""

    # ── Identidad ────────────────────────────────────
    client_id: str = Field(..., min_length=1, max_length=100)
    device_id: str = Field(..., min_length=1, max_length=100)
    user_id: str | None = Field(None, max_length=50)
    client_timestamp: int = Field(
        ..., description="Momento de captura/edición en el dispositivo (epoch ms)"
    )

    # ── Agricultor ───────────────────────────────────
    farmer_name: str = Field(..., min_length=1, max_length=200)
    household_size: int | None = Field(None, ge=0, le=1000)
    phone: str | None = Field(None, max_length=50)
    village: str | None = Field(None, max_length=100)
    island: str | None = Field(None, max_length=100)

    # ── Ubicación ────────────────────────────────────
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)
    gps_accuracy: float | None = Field(None, ge=0)

    # ── Finca ────────────────────────────────────────
    farm_size: float | None = Field(None, ge=0, le=100000, description="Hectáreas")
    crops: list[str] = Field(default_factory=list)
    livestock: dict[str, int] | None = None

    # ── Plagas ───────────────────────────────────────
    pest_issues: PestIssue | None = None
    pest_severity: PestSeverity | None = None
    pest_description: str | None = Field(None, max_length=2000)
    treatment_used: str | None = Field(None, max_length=2000)
    harvest_date: date | None = None
    notes: str | None = Field(None, max_length=5000)

    photos: list[PhotoPayload] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy_shape(cls, values):
        """Mapea claves del formulario antiguo y el ganado en campos sueltos."""
        if not isinstance(values, dict):
            return values
        values = dict(values)
        for old, (camel, snake) in _LEGACY_KEYS.items():
            if old in values and camel not in values and snake not in values:
                values[camel] = values.pop(old)

        if values.get("livestock") is None:
            counts = {}
            for key, kind in _LEGACY_LIVESTOCK.items():
                raw = values.get(key, values.get(f"{key}Count"))
                if raw in (None, ""):
                    continue
                try:
                    counts[kind] = counts.get(kind, 0) + int(raw)
                except (TypeError, ValueError):
                    raise ValueError(f"conteo inválido para {key}")
            if counts:
                values["livestock"] = counts
        return values

    @field_validator("client_timestamp", mode="before")
    @classmethod
    def _normalize_timestamp(cls, v):
        return to_epoch_ms(v)

    @field_validator(
        "phone", "village", "island", "pest_description", "treatment_used",
        "notes", "pest_issues", "pest_severity", "harvest_date",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("farmer_name", "client_id", "device_id")
    @classmethod
    def _strip_required(cls, v: str) -> str:
        cleaned = v.strip()
        if not cleaned:
            raise ValueError("no puede estar vacío")
        return cleaned

    @field_validator("crops")
    @classmethod
    def _clean_crops(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for crop in v:
            name = crop.strip().lower()
            if name and name not in seen:
                seen.append(name)
        return seen

    @field_validator("livestock")
    @classmethod
    def _validate_livestock(cls, v: dict[str, int] | None) -> dict[str, int] | None:
        if v is None:
            return None
        for kind, count in v.items():
            if count < 0:
                raise ValueError(f"conteo negativo para {kind}")
        return v

    @model_validator(mode="after")
    def _check_coordinates_pair(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude y longitude deben enviarse juntas")
        return self

    def content_values(self) -> dict:
        """Columnas de contenido que se copian a la tabla surveys."""
        return {
            "farmer_name": self.farmer_name,
            "household_size": self.household_size,
            "phone": self.phone,
            "village": self.village,
            "island": self.island,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "gps_accuracy": self.gps_accuracy,
            "farm_size": self.farm_size,
            "crops": self.crops,
            "livestock": self.livestock,
            "pest_issues": self.pest_issues,
            "pest_severity": self.pest_severity,
            "pest_description": self.pest_description,
            "treatment_used": self.treatment_used,
            "harvest_date": self.harvest_date,
            "notes": self.notes,
        }


# ── Respuestas ───────────────────────────────────────

class PhotoResponse(BaseModel):
    id: int
    photo_type: str
    caption: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class SurveyResponse(BaseModel):
    id: int
    client_id: str
    device_id: str
    user_id: str | None = None
    enumerator_name: str | None = None
    farmer_name: str
    household_size: int | None = None
    phone: str | None = None
    village: str | None = None
    island: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    gps_accuracy: float | None = None
    farm_size: float | None = None
    crops: list[str] | None = None
    livestock: dict[str, int] | None = None
    pest_issues: str | None = None
    pest_severity: str | None = None
    pest_description: str | None = None
    treatment_used: str | None = None
    harvest_date: date | None = None
    notes: str | None = None
    client_timestamp: int
    server_timestamp: datetime
    created_at: datetime | None = None
    synced_at: datetime | None = None
    synced_by: str | None = None

    model_config = {"from_attributes": True}


class SurveyDetailResponse(SurveyResponse):
    photos: list[PhotoResponse] = []


class SurveyListResponse(BaseModel):
    """Respuesta paginada de listado de encuestas."""
    items: list[SurveyResponse]
    total: int
    page: int
    size: int
    pages: int


class NearbySurvey(BaseModel):
    id: int
    farmer_name: str
    village: str | None = None
    island: str | None = None
    latitude: float
    longitude: float
    farm_size: float | None = None
    distance_km: float


class NearbyResponse(BaseModel):
    farms: list[NearbySurvey]
    radius_km: float
    total: int


# ── Estadísticas ─────────────────────────────────────

class StatisticsSummary(BaseModel):
    total_surveys: int = 0
    total_farm_area: float = 0.0
    avg_farm_size: float | None = None
    active_enumerators: int = 0
    islands_covered: int = 0
    villages_covered: int = 0
    surveys_with_pests: int = 0


class CountItem(BaseModel):
    name: str
    count: int


class PestBreakdownItem(BaseModel):
    pest_issues: str
    pest_severity: str | None = None
    count: int


class GpsPoint(BaseModel):
    id: int
    farmer_name: str
    village: str | None = None
    island: str | None = None
    latitude: float
    longitude: float


class RecentSurvey(BaseModel):
    id: int
    farmer_name: str
    village: str | None = None
    island: str | None = None
    farm_size: float | None = None
    created_at: datetime | None = None
    enumerator: str | None = None


class SurveyStatistics(BaseModel):
    """Agregados sobre todo el repositorio de encuestas."""
    summary: StatisticsSummary
    crop_distribution: list[CountItem] = []
    island_distribution: list[CountItem] = []
    village_distribution: list[CountItem] = []
    livestock: dict[str, int] = Field(
        default_factory=lambda: {kind: 0 for kind in LIVESTOCK_KINDS}
    )
    pest_issues: list[PestBreakdownItem] = []
    gps_points: list[GpsPoint] = []
    recent_surveys: list[RecentSurvey] = []

"""
Exportación del repositorio de encuestas: CSV, JSON y GeoJSON.
"""

import csv
import io
from datetime import date, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agrisync.models.survey import Survey
from agrisync.models.user import User
from agrisync.schemas.survey import LIVESTOCK_KINDS

CSV_HEADERS = [
    "ID", "Farmer Name", "Household Size", "Phone", "Village", "Island",
    "Latitude", "Longitude", "GPS Accuracy", "Farm Size (ha)",
    "Crops", "Cattle", "Pigs", "Chickens", "Goats",
    "Pest Issues", "Pest Severity", "Pest Description", "Treatment Used",
    "Harvest Date", "Notes", "Created At", "Synced At", "Enumerator", "Device ID",
]


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


async def _export_rows(db: AsyncSession) -> list[tuple[Survey, str | None]]:
    result = await db.execute(
        select(Survey, User.full_name)
        .outerjoin(User, User.id == Survey.user_id)
        .order_by(Survey.created_at.desc(), Survey.id.desc())
    )
    return [(survey, enumerator) for survey, enumerator in result.all()]


def _survey_dict(survey: Survey, enumerator: str | None) -> dict[str, Any]:
    return {
        "id": survey.id,
        "client_id": survey.client_id,
        "device_id": survey.device_id,
        "farmer_name": survey.farmer_name,
        "household_size": survey.household_size,
        "phone": survey.phone,
        "village": survey.village,
        "island": survey.island,
        "latitude": survey.latitude,
        "longitude": survey.longitude,
        "gps_accuracy": survey.gps_accuracy,
        "farm_size": survey.farm_size,
        "crops": survey.crops or [],
        "livestock": survey.livestock or {},
        "pest_issues": survey.pest_issues,
        "pest_severity": survey.pest_severity,
        "pest_description": survey.pest_description,
        "treatment_used": survey.treatment_used,
        "harvest_date": _iso(survey.harvest_date),
        "notes": survey.notes,
        "client_timestamp": survey.client_timestamp,
        "created_at": _iso(survey.created_at),
        "synced_at": _iso(survey.synced_at),
        "enumerator": enumerator,
    }


async def export_csv(db: AsyncSession) -> str:
    """CSV con todas las encuestas, una fila por encuesta, celdas entre comillas."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)

    for survey, enumerator in await _export_rows(db):
        livestock = survey.livestock or {}
        writer.writerow([
            survey.id,
            survey.farmer_name,
            survey.household_size,
            survey.phone,
            survey.village,
            survey.island,
            survey.latitude,
            survey.longitude,
            survey.gps_accuracy,
            survey.farm_size,
            "; ".join(survey.crops or []),
            *(livestock.get(kind, 0) for kind in LIVESTOCK_KINDS),
            survey.pest_issues,
            survey.pest_severity,
            survey.pest_description,
            survey.treatment_used,
            _iso(survey.harvest_date),
            survey.notes,
            _iso(survey.created_at),
            _iso(survey.synced_at),
            enumerator,
            survey.device_id,
        ])

    return output.getvalue()


async def export_json(db: AsyncSession) -> list[dict[str, Any]]:
    return [_survey_dict(survey, enumerator) for survey, enumerator in await _export_rows(db)]


async def export_geojson(db: AsyncSession) -> dict[str, Any]:
    """FeatureCollection con un Point por encuesta georreferenciada."""
    result = await db.execute(
        select(
            Survey.id, Survey.farmer_name, Survey.village, Survey.island,
            Survey.latitude, Survey.longitude, Survey.farm_size, Survey.crops,
            Survey.created_at,
        )
        .where(Survey.latitude.is_not(None), Survey.longitude.is_not(None))
        .order_by(Survey.id)
    )

    features = [
        {
            "type": "Feature",
            "geometry": {
                "type": "Point",
                # GeoJSON usa orden [longitud, latitud]
                "coordinates": [row.longitude, row.latitude],
            },
            "properties": {
                "id": row.id,
                "farmer_name": row.farmer_name,
                "village": row.village,
                "island": row.island,
                "farm_size": row.farm_size,
                "crops": row.crops or [],
                "created_at": _iso(row.created_at),
            },
        }
        for row in result.all()
    ]
    return {"type": "FeatureCollection", "features": features}

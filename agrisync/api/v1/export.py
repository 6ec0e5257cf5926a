"""
Exportación de encuestas: CSV, JSON y GeoJSON como descarga.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from agrisync.auth.dependencies import get_current_user
from agrisync.database import get_db
from agrisync.models.user import User
from agrisync.services import export_service

router = APIRouter()


def _stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")


@router.get("/csv")
async def export_csv(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    content = await export_service.export_csv(db)
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="surveys_{_stamp()}.csv"'},
    )


@router.get("/json")
async def export_json(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return JSONResponse(
        content=await export_service.export_json(db),
        headers={"Content-Disposition": f'attachment; filename="surveys_{_stamp()}.json"'},
    )


@router.get("/geojson")
async def export_geojson(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return JSONResponse(
        content=await export_service.export_geojson(db),
        media_type="application/geo+json",
        headers={
            "Content-Disposition": f'attachment; filename="surveys_locations_{_stamp()}.geojson"'
        },
    )

"""
Endpoints de consulta del repositorio de encuestas.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from agrisync.auth.dependencies import get_current_user
from agrisync.config import get_settings
from agrisync.database import get_db
from agrisync.models.user import User
from agrisync.schemas.survey import (
    NearbyResponse,
    SurveyDetailResponse,
    SurveyListResponse,
    SurveyStatistics,
)
from agrisync.services import survey_service

settings = get_settings()

router = APIRouter()


@router.get("", response_model=SurveyListResponse)
async def list_surveys(
    page: int = Query(1, ge=1, description="Número de página"),
    size: int = Query(
        settings.SURVEY_PAGE_SIZE, ge=1, le=settings.SURVEY_MAX_PAGE_SIZE,
        description="Tamaño de página",
    ),
    search: str | None = Query(None, description="Buscar por agricultor, aldea o isla"),
    island: str | None = Query(None),
    village: str | None = Query(None),
    user_id: str | None = Query(None, description="Encuestador"),
    start_date: date | None = Query(None, description="Creadas desde (inclusive)"),
    end_date: date | None = Query(None, description="Creadas hasta (inclusive)"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await survey_service.list_surveys(
        db,
        page=page,
        size=size,
        search=search,
        island=island,
        village=village,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/nearby", response_model=NearbyResponse)
async def nearby_surveys(
    latitude: float = Query(..., description="Latitud del centro"),
    longitude: float = Query(..., description="Longitud del centro"),
    radius: float = Query(settings.NEARBY_DEFAULT_RADIUS_KM, description="Radio en km"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Fincas dentro del radio, de la más cercana a la más lejana."""
    return await survey_service.find_nearby(db, latitude, longitude, radius)


@router.get("/statistics", response_model=SurveyStatistics)
async def survey_statistics(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await survey_service.aggregate_statistics(db)


@router.get("/{survey_id}", response_model=SurveyDetailResponse)
async def get_survey(
    survey_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await survey_service.get_survey(db, survey_id)


@router.delete("/{survey_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_survey(
    survey_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Elimina la encuesta y sus fotos."""
    await survey_service.delete_survey(db, survey_id)

"""
Repositorio de encuestas: upsert (vía motor de conflictos), listados con
filtros, búsqueda por proximidad, detalle, eliminación y estadísticas.
"""

import logging
import math
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import and_, case, delete, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agrisync.core.exceptions import NotFoundException, ValidationException
from agrisync.core.geo import bounding_box, haversine_km, is_valid_coordinate
from agrisync.models.photo import Photo
from agrisync.models.survey import Survey
from agrisync.models.user import User
from agrisync.schemas.survey import (
    LIVESTOCK_KINDS,
    CountItem,
    GpsPoint,
    NearbyResponse,
    NearbySurvey,
    PestBreakdownItem,
    RecentSurvey,
    StatisticsSummary,
    SurveyDetailResponse,
    SurveyListResponse,
    SurveyPayload,
    SurveyResponse,
    SurveyStatistics,
)
from agrisync.services.conflict_service import UpsertResult, apply_survey

logger = logging.getLogger(__name__)


def _survey_to_response(survey: Survey, enumerator_name: str | None = None) -> SurveyResponse:
    response = SurveyResponse.model_validate(survey)
    response.enumerator_name = enumerator_name
    return response


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


# ── Upsert ───────────────────────────────────────────

async def upsert_survey(
    db: AsyncSession,
    payload: SurveyPayload,
    *,
    actor_id: str,
) -> UpsertResult:
    """Aplica una encuesta con resolución de conflictos por timestamp."""
    return await apply_survey(db, payload, actor_id=actor_id)


# ── Listado ──────────────────────────────────────────

async def list_surveys(
    db: AsyncSession,
    *,
    page: int = 1,
    size: int = 50,
    search: str | None = None,
    island: str | None = None,
    village: str | None = None,
    user_id: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> SurveyListResponse:
    """
    Lista encuestas con filtros opcionales, más recientes primero.
    `end_date` es inclusivo (se compara contra el inicio del día siguiente).
    """
    filters = []
    if search:
        escaped = search.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        filters.append(
            or_(
                Survey.farmer_name.ilike(pattern, escape="\\"),
                Survey.village.ilike(pattern, escape="\\"),
                Survey.island.ilike(pattern, escape="\\"),
            )
        )
    if island:
        filters.append(Survey.island == island)
    if village:
        filters.append(Survey.village == village)
    if user_id:
        filters.append(Survey.user_id == user_id)
    if start_date:
        filters.append(Survey.created_at >= _day_start(start_date))
    if end_date:
        filters.append(Survey.created_at < _day_start(end_date + timedelta(days=1)))

    count_query = select(func.count(Survey.id)).where(*filters)
    total = (await db.execute(count_query)).scalar() or 0

    offset = (page - 1) * size
    query = (
        select(Survey, User.full_name)
        .outerjoin(User, User.id == Survey.user_id)
        .where(*filters)
        .order_by(Survey.created_at.desc(), Survey.id.desc())
        .offset(offset)
        .limit(size)
    )
    rows = (await db.execute(query)).all()

    return SurveyListResponse(
        items=[_survey_to_response(survey, name) for survey, name in rows],
        total=total,
        page=page,
        size=size,
        pages=math.ceil(total / size) if size > 0 else 1,
    )


# ── Detalle / eliminación ────────────────────────────

async def get_survey(db: AsyncSession, survey_id: int) -> SurveyDetailResponse:
    result = await db.execute(
        select(Survey, User.full_name)
        .outerjoin(User, User.id == Survey.user_id)
        .where(Survey.id == survey_id)
        .options(selectinload(Survey.photos))
    )
    row = result.first()
    if row is None:
        raise NotFoundException("Encuesta")

    survey, enumerator_name = row
    detail = SurveyDetailResponse.model_validate(survey)
    detail.enumerator_name = enumerator_name
    return detail


async def delete_survey(db: AsyncSession, survey_id: int) -> None:
    """
    Elimina una encuesta y sus fotos. Operación explícita: la
    sincronización nunca borra registros.
    """
    exists = (
        await db.execute(select(Survey.id).where(Survey.id == survey_id))
    ).scalar_one_or_none()
    if exists is None:
        raise NotFoundException("Encuesta")

    # Borrado explícito de fotos: SQLite no aplica ON DELETE CASCADE
    # salvo que la conexión active foreign_keys.
    await db.execute(delete(Photo).where(Photo.survey_id == survey_id))
    await db.execute(delete(Survey).where(Survey.id == survey_id))
    await db.flush()
    logger.info("Encuesta %s eliminada junto con sus fotos", survey_id)


# ── Proximidad ───────────────────────────────────────

async def find_nearby(
    db: AsyncSession,
    latitude: float,
    longitude: float,
    radius_km: float,
) -> NearbyResponse:
    """Encuestas dentro de un radio geodésico, ordenadas por distancia."""
    if not is_valid_coordinate(latitude, longitude):
        raise ValidationException("Coordenadas inválidas")
    if not math.isfinite(radius_km) or radius_km <= 0:
        raise ValidationException("El radio debe ser mayor que 0")

    min_lat, max_lat, min_lon, max_lon = bounding_box(latitude, longitude, radius_km)
    query = select(
        Survey.id,
        Survey.farmer_name,
        Survey.village,
        Survey.island,
        Survey.latitude,
        Survey.longitude,
        Survey.farm_size,
    ).where(
        Survey.latitude.is_not(None),
        Survey.longitude.is_not(None),
        Survey.latitude.between(min_lat, max_lat),
    )
    if min_lon is not None:
        query = query.where(Survey.longitude.between(min_lon, max_lon))

    farms: list[NearbySurvey] = []
    for row in (await db.execute(query)).all():
        distance = haversine_km(latitude, longitude, row.latitude, row.longitude)
        if distance <= radius_km:
            farms.append(NearbySurvey(
                id=row.id,
                farmer_name=row.farmer_name,
                village=row.village,
                island=row.island,
                latitude=row.latitude,
                longitude=row.longitude,
                farm_size=row.farm_size,
                distance_km=round(distance, 4),
            ))

    farms.sort(key=lambda f: (f.distance_km, f.id))
    return NearbyResponse(farms=farms, radius_km=radius_km, total=len(farms))


# ── Estadísticas ─────────────────────────────────────

async def aggregate_statistics(db: AsyncSession) -> SurveyStatistics:
    """Conteos y sumas sobre todo el repositorio."""
    has_pests = and_(Survey.pest_issues.is_not(None), Survey.pest_issues != "none")

    summary_row = (
        await db.execute(
            select(
                func.count(Survey.id).label("total_surveys"),
                func.coalesce(func.sum(Survey.farm_size), 0).label("total_farm_area"),
                func.avg(Survey.farm_size).label("avg_farm_size"),
                func.count(distinct(Survey.user_id)).label("active_enumerators"),
                func.count(distinct(Survey.island)).label("islands_covered"),
                func.count(distinct(Survey.village)).label("villages_covered"),
                func.count(case((has_pests, 1))).label("surveys_with_pests"),
            )
        )
    ).one()

    summary = StatisticsSummary(
        total_surveys=summary_row.total_surveys or 0,
        total_farm_area=round(float(summary_row.total_farm_area or 0), 2),
        avg_farm_size=(
            round(float(summary_row.avg_farm_size), 2)
            if summary_row.avg_farm_size is not None else None
        ),
        active_enumerators=summary_row.active_enumerators or 0,
        islands_covered=summary_row.islands_covered or 0,
        villages_covered=summary_row.villages_covered or 0,
        surveys_with_pests=summary_row.surveys_with_pests or 0,
    )

    # Distribución por isla
    island_rows = (
        await db.execute(
            select(Survey.island, func.count(Survey.id).label("count"))
            .where(Survey.island.is_not(None))
            .group_by(Survey.island)
            .order_by(func.count(Survey.id).desc(), Survey.island)
        )
    ).all()

    # Top 10 aldeas
    village_rows = (
        await db.execute(
            select(Survey.village, func.count(Survey.id).label("count"))
            .where(Survey.village.is_not(None))
            .group_by(Survey.village)
            .order_by(func.count(Survey.id).desc(), Survey.village)
            .limit(10)
        )
    ).all()

    # Plagas por tipo y severidad
    pest_rows = (
        await db.execute(
            select(Survey.pest_issues, Survey.pest_severity, func.count(Survey.id).label("count"))
            .where(has_pests)
            .group_by(Survey.pest_issues, Survey.pest_severity)
            .order_by(func.count(Survey.id).desc())
        )
    ).all()

    # Cultivos y ganado: columnas JSON, se agregan en Python para ser
    # portables entre PostgreSQL y SQLite.
    crop_counter: Counter[str] = Counter()
    livestock_totals = {kind: 0 for kind in LIVESTOCK_KINDS}
    json_rows = await db.execute(select(Survey.crops, Survey.livestock))
    for crops, livestock in json_rows.all():
        for crop in crops or []:
            crop_counter[crop] += 1
        for kind, count in (livestock or {}).items():
            if kind in livestock_totals and isinstance(count, (int, float)):
                livestock_totals[kind] += int(count)

    gps_rows = (
        await db.execute(
            select(
                Survey.id, Survey.farmer_name, Survey.village, Survey.island,
                Survey.latitude, Survey.longitude,
            )
            .where(Survey.latitude.is_not(None), Survey.longitude.is_not(None))
            .order_by(Survey.created_at.desc(), Survey.id.desc())
            .limit(1000)
        )
    ).all()

    recent_rows = (
        await db.execute(
            select(
                Survey.id, Survey.farmer_name, Survey.village, Survey.island,
                Survey.farm_size, Survey.created_at, User.full_name.label("enumerator"),
            )
            .outerjoin(User, User.id == Survey.user_id)
            .order_by(Survey.created_at.desc(), Survey.id.desc())
            .limit(10)
        )
    ).all()

    return SurveyStatistics(
        summary=summary,
        crop_distribution=[
            CountItem(name=name, count=count)
            for name, count in sorted(crop_counter.items(), key=lambda item: (-item[1], item[0]))
        ],
        island_distribution=[CountItem(name=r.island, count=r.count) for r in island_rows],
        village_distribution=[CountItem(name=r.village, count=r.count) for r in village_rows],
        livestock=livestock_totals,
        pest_issues=[
            PestBreakdownItem(pest_issues=r.pest_issues, pest_severity=r.pest_severity, count=r.count)
            for r in pest_rows
        ],
        gps_points=[GpsPoint.model_validate(r, from_attributes=True) for r in gps_rows],
        recent_surveys=[RecentSurvey.model_validate(r, from_attributes=True) for r in recent_rows],
    )

"""
Router principal de la API v1.
Agrupa todos los sub-routers de la versión 1.
"""

from fastapi import APIRouter

from agrisync.api.v1.export import router as export_router
from agrisync.api.v1.surveys import router as surveys_router
from agrisync.api.v1.sync import router as sync_router

api_v1_router = APIRouter()

api_v1_router.include_router(
    sync_router,
    prefix="/sync",
    tags=["Sincronización Offline"],
)

api_v1_router.include_router(
    surveys_router,
    prefix="/surveys",
    tags=["Encuestas"],
)

api_v1_router.include_router(
    export_router,
    prefix="/export",
    tags=["Exportación"],
)

"""
Configuración de Celery para el procesamiento asíncrono de batches.
"""

from celery import Celery

from agrisync.config import get_settings

settings = get_settings()

celery_app = Celery(
    "agrisync",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

# Auto-descubrir tareas en agrisync/tasks/
celery_app.autodiscover_tasks(["agrisync.tasks"], related_name="sync_tasks")

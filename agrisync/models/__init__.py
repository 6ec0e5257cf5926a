"""
Modelos SQLAlchemy — exportar todos para que Alembic los detecte.
"""

from agrisync.models.user import User, UserRole
from agrisync.models.survey import Survey
from agrisync.models.photo import Photo
from agrisync.models.sync_log import SyncLog

__all__ = [
    "User",
    "UserRole",
    "Survey",
    "Photo",
    "SyncLog",
]

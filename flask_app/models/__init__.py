# flask_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .importer import ImportAttachment, ImportEntity, ImportRun, ImportRunStatus
from .record import Record
from .role import AccessLevel, ScopePermission
from .user import User

__all__ = [
    "db",
    "BaseModel",
    "User",
    "AccessLevel",
    "ScopePermission",
    "Record",
    # Importer models
    "ImportAttachment",
    "ImportEntity",
    "ImportRun",
    "ImportRunStatus",
]

"""
Importer-specific SQLAlchemy models: runs, row outcomes and attachments.
"""

from .schema import RESUMABLE_STATUSES, ImportAttachment, ImportEntity, ImportRun, ImportRunStatus

__all__ = [
    "ImportAttachment",
    "ImportEntity",
    "ImportRun",
    "ImportRunStatus",
    "RESUMABLE_STATUSES",
]

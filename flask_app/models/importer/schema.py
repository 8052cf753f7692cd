"""
SQLAlchemy models for the CSV import engine.

An ``ImportRun`` records one execution of the importer together with its
column mapping, parameters and checkpoint. ``ImportEntity`` rows form the
append-only outcome log consumed by count aggregation, revert and duplicate
removal. ``ImportAttachment`` stores uploaded CSV payloads.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..base import BaseModel, db


class ImportRunStatus(str, enum.Enum):
    """Lifecycle states for an import run."""

    STANDBY = "standby"
    PENDING = "pending"
    IN_PROCESS = "in_process"
    FAILED = "failed"
    COMPLETE = "complete"


RESUMABLE_STATUSES = frozenset({ImportRunStatus.IN_PROCESS, ImportRunStatus.FAILED})


class ImportAttachment(BaseModel):
    """Uploaded file contents referenced by import runs."""

    __tablename__ = "import_attachments"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False, default="import-file.csv")
    mime_type: Mapped[str] = mapped_column(db.String(100), nullable=False, default="text/csv")
    role: Mapped[str] = mapped_column(db.String(50), nullable=False, default="Import File")
    size: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    contents: Mapped[bytes | None] = mapped_column(db.LargeBinary, nullable=True)


class ImportRun(BaseModel):
    """Metadata, mapping and checkpoint of a single import execution."""

    __tablename__ = "import_runs"

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_type: Mapped[str] = mapped_column(db.String(100), nullable=False, index=True)
    status: Mapped[ImportRunStatus] = mapped_column(
        Enum(ImportRunStatus, name="import_run_status_enum"),
        nullable=False,
        default=ImportRunStatus.IN_PROCESS,
        index=True,
    )
    attribute_list: Mapped[list | None] = mapped_column(
        db.JSON,
        nullable=True,
        comment="Column index -> attribute name; null entries skip the column.",
    )
    params_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    last_index: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    attachment_id: Mapped[int | None] = mapped_column(
        ForeignKey("import_attachments.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    finished_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True))
    error_summary: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    attachment = relationship("ImportAttachment")
    created_by_user = relationship("User", foreign_keys=[created_by_user_id])
    entities = relationship(
        "ImportEntity",
        back_populates="import_run",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_import_runs_type_status", "entity_type", "status"),)

    # permission checks address runs under their own scope, owned by the creator
    acl_scope = "Import"

    @property
    def assigned_user_id(self) -> int | None:
        return self.created_by_user_id

    def __repr__(self) -> str:
        return f"<ImportRun {self.id} {self.entity_type} {self.status.value if self.status else None}>"


class ImportEntity(BaseModel):
    """Outcome of one processed row: the record it created or updated."""

    __tablename__ = "import_entities"

    id: Mapped[int] = mapped_column(primary_key=True)
    import_id: Mapped[int] = mapped_column(
        ForeignKey("import_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    entity_type: Mapped[str] = mapped_column(db.String(100), nullable=False)
    entity_id: Mapped[str] = mapped_column(db.String(24), nullable=False)
    is_imported: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    is_updated: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    is_duplicate: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)

    import_run = relationship("ImportRun", back_populates="entities")

    __table_args__ = (
        Index("idx_import_entities_lookup", "import_id", "entity_type", "entity_id"),
    )

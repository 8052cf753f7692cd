# flask_app/models/record.py

"""
Generic record storage.

Every importable entity type shares this table; attribute values live in the
``data`` JSON column and are interpreted through the entity registry.
"""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, db


def generate_record_id() -> str:
    return uuid4().hex[:17]


class Record(BaseModel):
    """One stored record of any entity type."""

    __tablename__ = "records"

    pk: Mapped[int] = mapped_column(db.Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(db.String(24), nullable=False, default=generate_record_id)
    entity_type: Mapped[str] = mapped_column(db.String(100), nullable=False)
    data: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    deleted: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    assigned_user_id: Mapped[int | None] = mapped_column(db.ForeignKey("users.id"), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("entity_type", "id", name="uq_records_type_id"),
        Index("idx_records_type_deleted", "entity_type", "deleted"),
    )

    def __repr__(self) -> str:
        return f"<Record {self.entity_type}:{self.id}>"

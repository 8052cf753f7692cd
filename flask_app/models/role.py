# flask_app/models/role.py

import enum

from .base import BaseModel, db


class AccessLevel(str, enum.Enum):
    """How much of an entity type a scope permission grants."""

    ALL = "all"
    OWN = "own"
    NO = "no"


class ScopePermission(BaseModel):
    """Per-user access levels for one entity type"""

    __tablename__ = "scope_permissions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    entity_type = db.Column(db.String(100), nullable=False, index=True)
    read_level = db.Column(db.String(10), default=AccessLevel.ALL.value, nullable=False)
    edit_level = db.Column(db.String(10), default=AccessLevel.OWN.value, nullable=False)
    create_level = db.Column(db.String(10), default=AccessLevel.ALL.value, nullable=False)
    delete_level = db.Column(db.String(10), default=AccessLevel.NO.value, nullable=False)
    # attributes the user may read but never write, e.g. ["assignedUserId"]
    forbidden_edit_attributes = db.Column(db.JSON, nullable=True)

    user = db.relationship("User", back_populates="scope_permissions")

    __table_args__ = (db.UniqueConstraint("user_id", "entity_type", name="_user_scope_uc"),)

    def __repr__(self):
        return f"<ScopePermission user={self.user_id} scope={self.entity_type}>"

    def level_for(self, action):
        """Return the AccessLevel configured for read/edit/create/delete"""
        raw = getattr(self, f"{action}_level", None) or AccessLevel.NO.value
        try:
            return AccessLevel(raw)
        except ValueError:
            return AccessLevel.NO

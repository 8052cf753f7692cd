# flask_app/models/user.py

from flask import current_app
from flask_login import UserMixin
from sqlalchemy.exc import SQLAlchemyError

from .base import BaseModel, db


class User(UserMixin, BaseModel):
    """Principal performing imports; super admins bypass scope permissions"""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(120), unique=True, nullable=True)
    first_name = db.Column(db.String(50), nullable=True)
    last_name = db.Column(db.String(50), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_super_admin = db.Column(db.Boolean, default=False, nullable=False)

    scope_permissions = db.relationship(
        "ScopePermission", back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<User {self.username}>"

    @property
    def is_admin(self):
        return bool(self.is_super_admin)

    @staticmethod
    def find_by_username(username):
        """Find user by username with error handling"""
        try:
            return User.query.filter_by(username=username).first()
        except SQLAlchemyError as e:
            current_app.logger.error(f"Database error finding user by username {username}: {str(e)}")
            return None

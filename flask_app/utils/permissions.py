# flask_app/utils/permissions.py

from functools import wraps

from flask import current_app, jsonify
from flask_login import current_user

from flask_app.models import AccessLevel, ScopePermission

# Actions a principal may hold without an explicit ScopePermission row
DEFAULT_LEVELS = {
    "read": AccessLevel.ALL,
    "edit": AccessLevel.OWN,
    "create": AccessLevel.ALL,
    "delete": AccessLevel.NO,
}

# Users read and unwind their own import runs unless a ScopePermission row says otherwise
SCOPE_DEFAULT_LEVELS = {
    "Import": {
        "read": AccessLevel.OWN,
        "edit": AccessLevel.OWN,
        "create": AccessLevel.ALL,
        "delete": AccessLevel.OWN,
    },
}


class SystemPrincipal:
    """Implicit administrator used by CLI runs when no user is configured"""

    id = None
    username = "system"
    is_authenticated = True
    is_active = True
    is_super_admin = True

    @property
    def is_admin(self):
        return True

    def __repr__(self):
        return "<SystemPrincipal>"


def _is_authenticated(user):
    return bool(user) and getattr(user, "is_authenticated", False) and getattr(user, "is_active", False)


def get_scope_permission(user, entity_type):
    """Return the ScopePermission row for a user and entity type, if any"""
    if not _is_authenticated(user):
        return None
    return ScopePermission.query.filter_by(user_id=user.id, entity_type=entity_type).first()


def get_access_level(user, entity_type, action):
    """Resolve the access level a user holds for an action on an entity type"""
    if not _is_authenticated(user):
        return AccessLevel.NO

    if user.is_super_admin:
        return AccessLevel.ALL

    scope = get_scope_permission(user, entity_type)
    if scope is None:
        defaults = SCOPE_DEFAULT_LEVELS.get(entity_type, DEFAULT_LEVELS)
        return defaults.get(action, AccessLevel.NO)
    return scope.level_for(action)


def has_permission(user, action, target):
    """
    Check whether a user may perform an action on a target.

    ``target`` is either an entity type name (scope check) or a record with
    ``entity_type`` and ``assigned_user_id`` (record check, where "own" means
    the record is assigned to the user).
    """
    if isinstance(target, str):
        entity_type = target
    else:
        entity_type = getattr(target, "acl_scope", None) or getattr(target, "entity_type", None)
    if not entity_type:
        return False

    level = get_access_level(user, entity_type, action)
    if level is AccessLevel.ALL:
        return True
    if level is AccessLevel.NO:
        return False

    if isinstance(target, str):
        # "own" grants the scope; ownership is checked per record
        return True
    return getattr(target, "assigned_user_id", None) == user.id


class AclPermissionChecker:
    """Permission checker backed by per-user ScopePermission rows"""

    def can_read(self, principal, target):
        return has_permission(principal, "read", target)

    def can_edit(self, principal, target):
        return has_permission(principal, "edit", target)

    def can_create(self, principal, target):
        return has_permission(principal, "create", target)

    def can_delete(self, principal, target):
        return has_permission(principal, "delete", target)

    def forbidden_edit_attributes(self, principal, entity_type):
        if not _is_authenticated(principal) or principal.is_super_admin:
            return []
        scope = get_scope_permission(principal, entity_type)
        if scope is None:
            return []
        return list(scope.forbidden_edit_attributes or [])


def login_required_json(f):
    """Decorator returning a JSON 401 instead of redirecting to a login page"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            current_app.logger.warning("Unauthenticated importer request rejected")
            return jsonify({"error": "Authentication required."}), 401
        return f(*args, **kwargs)
    return decorated_function

# config/base.py
import os
import warnings
from datetime import timedelta

_CONFIG_DIR = os.path.dirname(os.path.abspath(__file__))
INSTANCE_DIR = os.path.join(os.path.dirname(_CONFIG_DIR), "instance")

DEV_SECRET_KEY = "dev-secret-key-change-in-production"
TEST_SECRET_KEY = "test-secret-key-for-testing-only"


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_number(value, default, *, cast=int, minimum=None):
    """Parse a numeric environment value, falling back to ``default`` when malformed."""
    if value is None or str(value).strip() == "":
        return default
    try:
        number = cast(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None and number < minimum:
        return default
    return number


def _resolve_secret_key(flask_env):
    """
    SECRET_KEY from the environment; production refuses to start without one,
    development falls back to a fixed key with a warning.
    """
    secret_key = os.environ.get("SECRET_KEY")
    if secret_key:
        return secret_key
    if flask_env == "production":
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )
    if flask_env == "testing":
        return TEST_SECRET_KEY
    warnings.warn(
        "SECRET_KEY not set; using an insecure development key. Set SECRET_KEY before deploying.",
        UserWarning,
    )
    return DEV_SECRET_KEY


def _sqlite_uri(filename):
    # SQLite URIs need forward slashes, also on Windows
    os.makedirs(INSTANCE_DIR, exist_ok=True)
    return "sqlite:///" + os.path.join(INSTANCE_DIR, filename).replace("\\", "/")


_SQLITE_CONNECT_ARGS = {"connect_args": {"check_same_thread": False, "timeout": 5}}


class Config:
    SECRET_KEY = _resolve_secret_key(os.environ.get("FLASK_ENV", "development"))

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Importer: feature flags
    IMPORTER_ENABLED = _coerce_bool(os.environ.get("IMPORTER_ENABLED"), default=False)
    IMPORTER_WORKER_ENABLED = _coerce_bool(os.environ.get("IMPORTER_WORKER_ENABLED"), default=False)

    # Importer: run defaults
    IMPORTER_DEFAULT_CURRENCY = (os.environ.get("IMPORTER_DEFAULT_CURRENCY") or "USD").upper()
    IMPORTER_REVERT_HARD_DELETE_DAYS = _coerce_number(
        os.environ.get("IMPORTER_REVERT_HARD_DELETE_DAYS"), 2, cast=float, minimum=0
    )
    IMPORTER_MAX_UPLOAD_MB = _coerce_number(os.environ.get("IMPORTER_MAX_UPLOAD_MB"), 25, minimum=1)
    # Acting user for CLI runs; empty means the implicit system principal
    IMPORTER_CLI_USERNAME = os.environ.get("IMPORTER_CLI_USERNAME") or None
    IMPORTER_TASK_TIME_LIMIT = _coerce_number(os.environ.get("IMPORTER_TASK_TIME_LIMIT"), 60 * 60, minimum=60)

    # Importer: Celery transport (SQLite under instance/ when unset)
    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND")
    CELERY_SQLITE_PATH = os.environ.get("CELERY_SQLITE_PATH")
    CELERY_CONFIG = os.environ.get("CELERY_CONFIG")
    CELERY_TASK_ALWAYS_EAGER = _coerce_bool(os.environ.get("CELERY_TASK_ALWAYS_EAGER"), default=False)

    MAX_CONTENT_LENGTH = IMPORTER_MAX_UPLOAD_MB * 1024 * 1024

    PERMANENT_SESSION_LIFETIME = timedelta(days=7)
    SESSION_COOKIE_SECURE = False
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or _sqlite_uri("importer_dev.db")
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    SQLALCHEMY_ENGINE_OPTIONS = _SQLITE_CONNECT_ARGS if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {}


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", TEST_SECRET_KEY)
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = _SQLITE_CONNECT_ARGS


class ProductionConfig(Config):
    DEBUG = False
    # Heroku-style URLs still use the deprecated postgres:// scheme
    _uri = os.environ.get("DATABASE_URL")
    if _uri and _uri.startswith("postgres://"):
        _uri = _uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _uri
    SQLALCHEMY_ECHO = False
    SESSION_COOKIE_SECURE = True

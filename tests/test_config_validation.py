import pytest

from config.base import _coerce_bool, _coerce_number
from config.validation import validate_and_exit, validate_environment

PRODUCTION_ENV = {
    "SECRET_KEY": "a-real-secret",
    "DATABASE_URL": "postgresql://importer@db/importer",
}


@pytest.fixture
def production_env(monkeypatch):
    for name in (
        "IMPORTER_ENABLED",
        "IMPORTER_WORKER_ENABLED",
        "CELERY_BROKER_URL",
        "CELERY_RESULT_BACKEND",
        "IMPORTER_REVERT_HARD_DELETE_DAYS",
        "IMPORTER_DEFAULT_CURRENCY",
    ):
        monkeypatch.delenv(name, raising=False)
    for name, value in PRODUCTION_ENV.items():
        monkeypatch.setenv(name, value)
    return monkeypatch


def test_non_production_environments_skip_validation(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    assert validate_environment("development") == (True, [])
    assert validate_environment("testing") == (True, [])


def test_production_requires_secret_and_database(production_env):
    production_env.setenv("SECRET_KEY", "your-secret-key")
    production_env.delenv("DATABASE_URL")

    is_valid, errors = validate_environment("production")

    assert is_valid is False
    assert len(errors) == 2
    assert errors[0].startswith("SECRET_KEY")
    assert errors[1].startswith("DATABASE_URL")


def test_worker_requires_shared_broker(production_env):
    production_env.setenv("IMPORTER_ENABLED", "true")
    production_env.setenv("IMPORTER_WORKER_ENABLED", "1")

    _, errors = validate_environment("production")
    assert errors == [
        "CELERY_BROKER_URL is required when IMPORTER_WORKER_ENABLED=true",
        "CELERY_RESULT_BACKEND is required when IMPORTER_WORKER_ENABLED=true",
    ]

    production_env.setenv("CELERY_BROKER_URL", "redis://broker:6379/0")
    production_env.setenv("CELERY_RESULT_BACKEND", "redis://broker:6379/1")
    assert validate_environment("production") == (True, [])


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("IMPORTER_REVERT_HARD_DELETE_DAYS", "-1"),
        ("IMPORTER_REVERT_HARD_DELETE_DAYS", "soon"),
        ("IMPORTER_DEFAULT_CURRENCY", "EURO"),
        ("IMPORTER_DEFAULT_CURRENCY", "U$D"),
    ],
)
def test_importer_settings_are_checked(production_env, name, value):
    production_env.setenv(name, value)
    is_valid, errors = validate_environment("production")
    assert is_valid is False
    assert errors[0].startswith(name)


def test_validate_and_exit_stops_startup(production_env, capsys):
    production_env.delenv("DATABASE_URL")
    with pytest.raises(SystemExit) as excinfo:
        validate_and_exit("production")
    assert excinfo.value.code == 1
    assert "DATABASE_URL is required" in capsys.readouterr().err


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("yes", True), ("OFF", False), (None, False), ("maybe", False), (True, True)],
)
def test_coerce_bool(raw, expected):
    assert _coerce_bool(raw) is expected


def test_coerce_number():
    assert _coerce_number("3.5", 2, cast=float) == 3.5
    assert _coerce_number("", 2) == 2
    assert _coerce_number("x", 25) == 25
    assert _coerce_number("0", 25, minimum=1) == 25

# config/validation.py

"""
Environment variable validation for the importer service.
Validates required environment variables at startup.
"""

import os
import sys
from typing import List, Tuple


def _is_true(name: str) -> bool:
    return os.environ.get(name, "false").strip().lower() in {"1", "true", "yes", "on"}


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    errors = []

    # Only validate in production
    if flask_env != "production":
        return True, []

    secret_key = os.environ.get("SECRET_KEY", "")
    if not secret_key or secret_key in ("your-secret-key", "your_secret_key"):
        errors.append(
            "SECRET_KEY is required in production and must not be the default value. "
            'Generate a secure key: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not os.environ.get("DATABASE_URL"):
        errors.append("DATABASE_URL is required in production. Set it to your PostgreSQL connection string.")

    # Idle imports need a broker every worker can reach; the SQLite default is per host
    if _is_true("IMPORTER_ENABLED") and _is_true("IMPORTER_WORKER_ENABLED"):
        if not os.environ.get("CELERY_BROKER_URL"):
            errors.append("CELERY_BROKER_URL is required when IMPORTER_WORKER_ENABLED=true")
        if not os.environ.get("CELERY_RESULT_BACKEND"):
            errors.append("CELERY_RESULT_BACKEND is required when IMPORTER_WORKER_ENABLED=true")

    hard_delete_days = os.environ.get("IMPORTER_REVERT_HARD_DELETE_DAYS")
    if hard_delete_days:
        try:
            if float(hard_delete_days) < 0:
                raise ValueError
        except ValueError:
            errors.append("IMPORTER_REVERT_HARD_DELETE_DAYS must be a non-negative number")

    currency = os.environ.get("IMPORTER_DEFAULT_CURRENCY")
    if currency and (len(currency) != 3 or not currency.isalpha()):
        errors.append("IMPORTER_DEFAULT_CURRENCY must be a three-letter ISO 4217 code")

    is_valid = len(errors) == 0
    return is_valid, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit with error if validation fails.
    Intended to be called at application startup.

    Args:
        flask_env: Flask environment (development, production, testing)
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print("\nThe following environment variables are missing or invalid:\n", file=sys.stderr)

        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)

        print("\n" + "=" * 80, file=sys.stderr)
        print("Please check your .env file or environment variables.", file=sys.stderr)
        print("See .env.example for required configuration.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)

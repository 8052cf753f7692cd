# conftest.py

import os

import pytest

# Set testing environment BEFORE importing app so app.py picks TestingConfig
# and mounts the importer while loading
os.environ["FLASK_ENV"] = "testing"
os.environ.setdefault("IMPORTER_ENABLED", "true")

# Now import app and other modules after environment is set
from app import app as flask_app  # noqa: E402
from flask_app.models import User, db  # noqa: E402


@pytest.fixture(scope="function")
def app():
    """Provide the application with a freshly created schema for each test"""
    flask_app.config.update(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret-key-for-testing-only",
            "SQLALCHEMY_ECHO": False,
            "IMPORTER_ENABLED": True,
            "IMPORTER_WORKER_ENABLED": False,
            "IMPORTER_CLI_USERNAME": None,
            "IMPORTER_DEFAULT_CURRENCY": "USD",
            "IMPORTER_REVERT_HARD_DELETE_DAYS": 2,
        }
    )

    with flask_app.app_context():
        # Drop any existing tables to ensure clean state
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def test_user(app):
    """Create a regular (non-admin) user"""
    user = User(
        username="testuser",
        email="test@example.com",
        first_name="Test",
        last_name="User",
        is_active=True,
        is_super_admin=False,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def admin_user(app):
    """Create a super admin user"""
    user = User(
        username="admin",
        email="admin@example.com",
        first_name="Admin",
        last_name="User",
        is_active=True,
        is_super_admin=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def login(client):
    """Log a user into the test client session"""

    def _login(user):
        with client.session_transaction() as sess:
            sess["_user_id"] = str(user.id)
            sess["_fresh"] = True
        return user

    return _login

import json

from flask import Flask

from flask_app.importer import IMPORTER_EXTENSION_KEY, init_importer


def build_app(enabled=False):
    app = Flask(__name__)
    app.config.update(
        SECRET_KEY="test-secret",
        TESTING=True,
        IMPORTER_ENABLED=enabled,
        CELERY_BROKER_URL="memory://",
        CELERY_RESULT_BACKEND="cache+memory://",
    )

    init_importer(app)
    return app


def test_importer_disabled_registers_stub_cli():
    app = build_app(enabled=False)

    assert "importer" not in app.blueprints
    assert app.extensions[IMPORTER_EXTENSION_KEY]["celery_app"] is None

    runner = app.test_cli_runner()
    result = runner.invoke(args=["importer"])
    assert result.exit_code != 0
    assert "Importer commands are unavailable" in result.output


def test_importer_enabled_registers_blueprint_and_cli():
    app = build_app(enabled=True)

    assert "importer" in app.blueprints
    assert "importer.importer_healthcheck" in app.view_functions

    client = app.test_client()
    response = client.get("/importer/health")
    assert response.status_code == 200
    payload = json.loads(response.data)
    assert payload["enabled"] is True
    assert payload["entity_types"] == ["Account", "Contact", "Lead", "Opportunity"]

    runner = app.test_cli_runner()
    result = runner.invoke(args=["importer"])
    assert result.exit_code == 0
    assert "- Opportunity" in result.output

    importer_state = app.extensions[IMPORTER_EXTENSION_KEY]
    assert importer_state["enabled"] is True
    assert importer_state["celery_app"].conf.broker_url == "memory://"


def test_init_importer_is_idempotent():
    app = build_app(enabled=True)
    celery_app = app.extensions[IMPORTER_EXTENSION_KEY]["celery_app"]

    init_importer(app)

    assert app.extensions[IMPORTER_EXTENSION_KEY]["celery_app"] is celery_app
    assert list(app.cli.commands) == ["importer"]

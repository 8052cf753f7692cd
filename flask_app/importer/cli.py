"""
Importer CLI commands.

``flask importer run`` imports a CSV file for an entity type; ``resume``,
``revert`` and ``remove-duplicates`` operate on an existing run. Commands act
as ``IMPORTER_CLI_USERNAME`` when configured, otherwise as the system principal.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import click
from celery.exceptions import TimeoutError as CeleryTimeoutError
from flask import current_app
from flask.cli import AppGroup, ScriptInfo

from flask_app.importer.celery_app import DEFAULT_QUEUE_NAME, get_celery_app
from flask_app.importer.exceptions import ImporterError
from flask_app.importer.pipeline import ImportAction, ImportService
from flask_app.importer.registry import get_entity_registry, resolve_entity, validate_attribute_list
from flask_app.models import User
from flask_app.utils.importer import is_importer_enabled
from flask_app.utils.permissions import SystemPrincipal


@click.group(name="importer", cls=AppGroup, invoke_without_command=True)
@click.pass_context
def importer_cli(ctx):
    """
    Importer management commands.

    Lists the importable entity types when invoked without a subcommand.
    """
    info = ctx.ensure_object(ScriptInfo)
    app = info.load_app()
    if not is_importer_enabled(app):
        raise click.ClickException(
            "Importer is disabled via IMPORTER_ENABLED=false. Enable it to run importer CLI commands."
        )
    if ctx.invoked_subcommand is None:
        click.echo("Importable entity types:")
        for name in get_entity_registry().names():
            click.echo(f"  - {name}")


def get_disabled_importer_group() -> click.Group:
    """
    Return a minimal command group that informs the operator the importer is disabled.
    """

    @click.group(name="importer", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Importer commands are unavailable because IMPORTER_ENABLED=false.")

    return disabled_group


def _resolve_principal():
    username = current_app.config.get("IMPORTER_CLI_USERNAME")
    if not username:
        return SystemPrincipal()
    user = User.find_by_username(username)
    if user is None:
        raise click.ClickException(f"IMPORTER_CLI_USERNAME '{username}' does not match any user.")
    if not user.is_active:
        raise click.ClickException(f"User '{username}' is inactive and cannot run imports.")
    return user


def _service() -> ImportService:
    return ImportService(principal=_resolve_principal())


def _echo_json(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True))


def _parse_mapping(values: tuple[str, ...]) -> list[Optional[str]]:
    # "-" or an empty value leaves the column unmapped
    return [None if value in ("", "-") else value for value in values]


@importer_cli.command("run")
@click.argument("entity_type")
@click.option(
    "--file",
    "file_path",
    required=True,
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    help="CSV file to import.",
)
@click.option(
    "--map",
    "mapping",
    multiple=True,
    required=True,
    help="Attribute for each column, in column order. Use '-' to skip a column.",
)
@click.option("--header/--no-header", default=False, help="Treat the first row as a header.")
@click.option(
    "--action",
    type=click.Choice([action.value for action in ImportAction]),
    default=ImportAction.CREATE.value,
    show_default=True,
)
@click.option("--update-by", "update_by", multiple=True, type=int, help="Column index used to match existing records.")
@click.option("--delimiter", default=",", show_default=True)
@click.option("--currency", default=None, help="Currency applied to money columns without one.")
@click.option("--skip-duplicate-checking", is_flag=True)
@click.option("--silent", is_flag=True, help="Do not touch modification timestamps of updated records.")
@click.option("--idle", is_flag=True, help="Persist the run and execute it on the importer worker.")
@click.option("--manual", is_flag=True, help="Persist the run without executing it (run later with 'resume').")
def importer_run(
    entity_type: str,
    file_path: Path,
    mapping: tuple[str, ...],
    header: bool,
    action: str,
    update_by: tuple[int, ...],
    delimiter: str,
    currency: Optional[str],
    skip_duplicate_checking: bool,
    silent: bool,
    idle: bool,
    manual: bool,
):
    """Import FILE as ENTITY_TYPE records."""
    if idle and manual:
        raise click.ClickException("--idle and --manual are mutually exclusive.")
    if idle and not current_app.config.get("IMPORTER_CLI_USERNAME"):
        raise click.ClickException("--idle requires IMPORTER_CLI_USERNAME so the worker can act as a real user.")

    params: dict[str, Any] = {
        "delimiter": delimiter,
        "headerRow": header,
        "action": action,
        "updateBy": list(update_by),
        "skipDuplicateChecking": skip_duplicate_checking,
        "silentMode": silent,
        "idleMode": idle,
        "manualMode": manual,
    }
    try:
        descriptor = resolve_entity(entity_type)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    attribute_list = _parse_mapping(mapping)
    unknown = validate_attribute_list(descriptor, attribute_list)
    if unknown:
        raise click.ClickException(f"{entity_type} has no attribute(s): " + ", ".join(unknown))

    if currency:
        params["currency"] = currency

    service = _service()
    try:
        attachment_id = service.upload_file(file_path.read_bytes())
        result = service.run(entity_type, attribute_list, attachment_id, params)
    except ImporterError as exc:
        raise click.ClickException(str(exc)) from exc

    current_app.logger.info(
        "Importer run started via CLI",
        extra={"importer_run_id": result.id, "importer_entity_type": entity_type, "importer_file": str(file_path)},
    )
    _echo_json(result.as_dict())


@importer_cli.command("resume")
@click.argument("run_id", type=int)
@click.option("--from-last/--from-start", "from_last", default=True, help="Continue after the last checkpoint.")
@click.option("--force", is_flag=True, help="Resume a run left InProcess or Failed.")
def importer_resume(run_id: int, from_last: bool, force: bool):
    """Run a parked run, or resume an interrupted one."""
    try:
        result = _service().import_by_id(run_id, start_from_last_index=from_last, force=force)
    except ImporterError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(result.as_dict())


@importer_cli.command("revert")
@click.argument("run_id", type=int)
@click.confirmation_option(prompt="Delete every record this run created?")
def importer_revert(run_id: int):
    """Delete the records a run created, then the run."""
    try:
        summary = _service().revert(run_id)
    except ImporterError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(summary.as_dict())


@importer_cli.command("remove-duplicates")
@click.argument("run_id", type=int)
def importer_remove_duplicates(run_id: int):
    """Hard-delete the records a run flagged as duplicates."""
    try:
        summary = _service().remove_duplicates(run_id)
    except ImporterError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(summary.as_dict())


@importer_cli.command("unmark-duplicate")
@click.argument("run_id", type=int)
@click.argument("entity_type")
@click.argument("entity_id")
def importer_unmark_duplicate(run_id: int, entity_type: str, entity_id: str):
    """Clear the duplicate flag of one record imported by a run."""
    try:
        _service().unmark_as_duplicate(run_id, entity_type, entity_id)
    except ImporterError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Cleared duplicate flag on {entity_type} {entity_id} for run {run_id}.")


@importer_cli.group(name="worker")
def worker_group():
    """Manage the importer background worker."""


@worker_group.command("run")
@click.option("--loglevel", default="info", show_default=True)
@click.option("--concurrency", type=int, help="Number of worker processes/threads.")
@click.option("--pool", type=str, help="Celery pool implementation (e.g., 'prefork', 'solo', 'threads').")
def worker_run(loglevel: str, concurrency: Optional[int], pool: Optional[str]):
    """Start the Celery worker consuming the imports queue."""
    celery_app = get_celery_app(current_app)
    if celery_app is None:
        raise click.ClickException("Importer Celery app is unavailable. Ensure IMPORTER_ENABLED=true.")

    state = current_app.extensions.get("importer", {})
    state["worker_enabled"] = True

    argv = ["worker", "--loglevel", loglevel, "-Q", DEFAULT_QUEUE_NAME]
    if concurrency:
        argv.extend(["--concurrency", str(concurrency)])
    if pool:
        argv.extend(["--pool", pool])

    click.echo(f"Starting importer worker (queue: {DEFAULT_QUEUE_NAME}, loglevel: {loglevel})")
    try:
        celery_app.worker_main(argv=argv)
    except KeyboardInterrupt:
        click.echo("Worker shutdown requested. Exiting...")


@worker_group.command("ping")
@click.option("--timeout", default=10.0, show_default=True, help="Seconds to wait for a response.")
def worker_ping(timeout: float):
    """Validate worker connectivity by executing the heartbeat task."""
    celery_app = get_celery_app(current_app)
    if celery_app is None:
        raise click.ClickException("Importer Celery app is unavailable. Ensure IMPORTER_ENABLED=true.")
    task = celery_app.tasks.get("importer.healthcheck")
    if task is None:
        raise click.ClickException("Heartbeat task 'importer.healthcheck' is not registered.")

    try:
        payload = task.apply_async().get(timeout=timeout)
    except CeleryTimeoutError as exc:
        raise click.ClickException(f"Worker did not respond within {timeout}s") from exc
    _echo_json(payload)

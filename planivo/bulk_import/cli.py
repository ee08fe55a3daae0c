"""
CLI commands for bulk user provisioning.

``flask bulk-users import`` runs the same importer the API uses against a
local CSV/XLSX file; ``flask bulk-users template`` writes the upload template.
"""

from __future__ import annotations

import json
from pathlib import Path

import click
from flask import current_app
from flask.cli import with_appcontext

from planivo.models import User

from .adapters import SpreadsheetAdapterError, read_users_from_upload
from .errors import ValidationError
from .service import import_rows, organization_scope
from .store import SQLAlchemyDirectoryStore
from .template import TemplateData, build_template_workbook, collect_template_data
from .validation import validate_bulk_payload


@click.group(name="bulk-users")
def bulk_users_cli():
    """Bulk user provisioning commands."""


def get_disabled_bulk_users_group() -> click.Group:
    """Return a stub group that explains why bulk user commands are unavailable."""

    @click.group(name="bulk-users", invoke_without_command=True)
    def disabled_group():
        raise click.ClickException("Bulk user commands are unavailable because BULK_IMPORT_ENABLED=false.")

    return disabled_group


def _resolve_admin(admin_email: str | None):
    if not admin_email:
        return None
    admin = User.find_by_email(admin_email)
    if admin is None:
        raise click.ClickException(f"No user found with email {admin_email}.")
    if not admin.is_admin:
        raise click.ClickException(f"User {admin_email} does not hold an administrative role.")
    return admin


def _resolve_organization(organization_name: str | None) -> int | None:
    if not organization_name:
        return None
    organization_id = SQLAlchemyDirectoryStore().find_organization_id(organization_name)
    if organization_id is None:
        raise click.ClickException(f'Organization "{organization_name}" not found.')
    return organization_id


@bulk_users_cli.command("import")
@click.argument("file_path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--organization", "organization_name", help="Default organization for rows without one.")
@click.option("--as-admin", "admin_email", help="Administrator recorded as creator; rows are limited to their organizations.")
@click.option("--no-email", is_flag=True, help="Do not send welcome mails.")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON.")
@with_appcontext
def import_command(file_path: Path, organization_name: str | None, admin_email: str | None, no_email: bool, as_json: bool):
    """Provision users listed in FILE_PATH (.csv or .xlsx)."""

    admin = _resolve_admin(admin_email)
    organization_id = _resolve_organization(organization_name)

    try:
        users = read_users_from_upload(file_path.name, file_path.read_bytes())
    except SpreadsheetAdapterError as exc:
        raise click.ClickException(str(exc)) from exc

    try:
        rows, _ = validate_bulk_payload(
            {"users": users}, max_rows=current_app.config.get("BULK_IMPORT_MAX_ROWS", 100)
        )
    except ValidationError as exc:
        raise click.ClickException("Validation failed:\n  " + "\n  ".join(exc.details)) from exc

    report = import_rows(
        rows,
        organization_id,
        caller_id=admin.id if admin else None,
        allowed_organization_ids=organization_scope(admin) if admin else None,
        send_welcome_email=False if no_email else None,
        source=f"cli:{file_path.name}",
    )

    if as_json:
        click.echo(json.dumps(report.as_dict(), indent=2))
        return

    click.echo(f"Bulk import complete: {report.success} succeeded, {report.failed} failed.")
    if report.timed_out:
        click.echo(f"Deadline reached; {report.unprocessed} rows were not processed.")
    for failure in report.errors:
        click.echo(f"  row {failure.row} ({failure.email}): {failure.reason}")


@bulk_users_cli.command("template")
@click.argument("output", type=click.Path(path_type=Path, dir_okay=False, writable=True))
@click.option("--organization", "organization_name", help="Limit dropdown values to one organization.")
@click.option("--empty", is_flag=True, help="Only include role dropdowns.")
@with_appcontext
def template_command(output: Path, organization_name: str | None, empty: bool):
    """Write the bulk user upload template to OUTPUT."""

    if empty:
        data = TemplateData()
    else:
        organization_id = _resolve_organization(organization_name)
        data = collect_template_data([organization_id] if organization_id is not None else None)

    build_template_workbook(data).save(output)
    click.echo(f"Template written to {output}")

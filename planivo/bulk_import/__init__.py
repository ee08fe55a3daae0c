"""
Bulk user provisioning.

Resolves human-entered organization, workspace, facility, department and
specialty names to identifiers and provisions accounts, role assignments and
leave balances row by row.
"""

from __future__ import annotations

from flask import Flask

from .cli import bulk_users_cli, get_disabled_bulk_users_group
from .contracts import ImportRow
from .errors import (
    AuthenticationError,
    AuthorizationError,
    BulkImportError,
    NotificationError,
    ProvisioningError,
    RateLimitError,
    ResolutionError,
    ValidationError,
)
from .importer import BatchImporter
from .provisioner import RowProvisioner, generate_password
from .resolver import NameResolver, ResolutionCache
from .results import BatchReport, ProvisionFailure, ProvisionSuccess, ScopeContext
from .service import import_rows, run_bulk_import
from .store import DirectoryStore, SQLAlchemyDirectoryStore
from .views import bulk_users_blueprint

BULK_IMPORT_EXTENSION_KEY = "bulk_import"

__all__ = [
    "init_bulk_import",
    "AuthenticationError",
    "AuthorizationError",
    "BatchImporter",
    "BatchReport",
    "BulkImportError",
    "DirectoryStore",
    "ImportRow",
    "NameResolver",
    "NotificationError",
    "ProvisionFailure",
    "ProvisionSuccess",
    "ProvisioningError",
    "RateLimitError",
    "ResolutionCache",
    "ResolutionError",
    "RowProvisioner",
    "SQLAlchemyDirectoryStore",
    "ScopeContext",
    "ValidationError",
    "generate_password",
    "import_rows",
    "run_bulk_import",
]


def _set_cli(app: Flask, enabled: bool) -> None:
    """Register the appropriate CLI group based on flag state."""
    # Avoid duplicate registrations when running tests
    if bulk_users_cli.name in app.cli.commands:
        app.cli.commands.pop(bulk_users_cli.name)

    if enabled:
        app.cli.add_command(bulk_users_cli)
    else:
        app.cli.add_command(get_disabled_bulk_users_group())


def init_bulk_import(app: Flask) -> None:
    """Mount the bulk user blueprint and CLI when ``BULK_IMPORT_ENABLED`` is set."""

    enabled = bool(app.config.get("BULK_IMPORT_ENABLED", True))
    app.extensions[BULK_IMPORT_EXTENSION_KEY] = {"enabled": enabled}
    _set_cli(app, enabled)

    if not enabled:
        app.logger.info("Bulk import disabled via BULK_IMPORT_ENABLED flag; skipping registration.")
        return

    if bulk_users_blueprint.name not in app.blueprints:
        app.register_blueprint(bulk_users_blueprint)
    app.logger.info(
        "Bulk import enabled (max rows %s, rate limit %s per %ss)",
        app.config.get("BULK_IMPORT_MAX_ROWS"),
        app.config.get("BULK_IMPORT_RATE_LIMIT_MAX"),
        app.config.get("BULK_IMPORT_RATE_LIMIT_WINDOW_SECONDS"),
    )

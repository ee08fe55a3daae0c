"""HTTP endpoints for bulk user provisioning."""

from __future__ import annotations

import io
from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_login import current_user

from planivo.utils.permissions import admin_api_required, get_current_organization, get_user_organizations

from . import service
from .adapters import SpreadsheetAdapterError, read_users_from_upload
from .template import build_template_workbook, collect_template_data, workbook_bytes

bulk_users_blueprint = Blueprint("bulk_users", __name__, url_prefix="/api/bulk-users")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
TEMPLATE_FILENAME = "bulk-users-template.xlsx"


def _caller():
    return current_user._get_current_object() if current_user.is_authenticated else None


def _context_organization_id():
    organization = get_current_organization()
    return organization.id if organization else None


def _request_metadata():
    return {
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }


@bulk_users_blueprint.post("")
def bulk_users_import():
    """Provision users from a JSON ``{"users": [...], "organizationId": n}`` body."""

    caller = _caller()
    service.admit_caller(caller)

    payload = request.get_json(silent=True)
    if payload is None:
        raise service.reject_invalid(["body: Expected JSON object"])

    report = service.process_payload(
        caller,
        payload,
        organization_context_id=_context_organization_id(),
        source="api",
        **_request_metadata(),
    )
    return jsonify(report.as_dict()), HTTPStatus.OK


@bulk_users_blueprint.post("/upload")
def bulk_users_upload():
    """Provision users from an uploaded ``.csv`` or ``.xlsx`` file."""

    caller = _caller()
    service.admit_caller(caller)

    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise service.reject_invalid(["file: File is required"])

    try:
        users = read_users_from_upload(upload.filename, upload.read())
    except SpreadsheetAdapterError as exc:
        current_app.logger.info(f"Rejected bulk upload {upload.filename}: {exc}")
        raise service.reject_invalid([f"file: {exc}"]) from exc

    payload = {"users": users, "organizationId": request.form.get("organization_id") or None}
    report = service.process_payload(
        caller,
        payload,
        organization_context_id=_context_organization_id(),
        source=f"upload:{upload.filename}",
        **_request_metadata(),
    )
    return jsonify(report.as_dict()), HTTPStatus.OK


@bulk_users_blueprint.get("/template")
@admin_api_required
def bulk_users_template():
    """Download the spreadsheet template with dropdowns for the caller's organization."""

    organization_id = _context_organization_id()
    if organization_id is not None:
        organization_ids = [organization_id]
    elif current_user.is_super_admin:
        organization_ids = None
    else:
        organization_ids = [org.id for org in get_user_organizations(current_user)]

    workbook = build_template_workbook(collect_template_data(organization_ids))
    return send_file(
        io.BytesIO(workbook_bytes(workbook)),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=TEMPLATE_FILENAME,
    )

"""
Request payload validation for bulk user imports.

Every violated constraint is collected (``users.3.email: Invalid email
format``) so callers can fix the whole file in one pass.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Sequence, Tuple

from email_validator import EmailNotValidError, validate_email

from planivo.models.role import AppRole
from planivo.models.user import normalize_email

from .contracts import IMPORTABLE_ROLE_VALUES, OPTIONAL_NAME_FIELDS, ImportRow, get_field_specs
from .errors import ValidationError

_FIELD_SPECS = {spec.name: spec for spec in get_field_specs()}


def _clean_optional(value: Any, path: str, errors: List[str]) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        errors.append(f"{path}: Expected string")
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    max_length = _FIELD_SPECS[path.rsplit(".", 1)[-1]].max_length
    if len(cleaned) > max_length:
        errors.append(f"{path}: Must be at most {max_length} characters")
    return cleaned


def _validate_email(value: Any, path: str, errors: List[str]) -> str:
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{path}: Email is required")
        return ""
    email = normalize_email(value)
    if len(email) > _FIELD_SPECS["email"].max_length:
        errors.append(f"{path}: Email must be less than 255 characters")
        return email
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        errors.append(f"{path}: Invalid email format")
    return email


def _validate_full_name(value: Any, path: str, errors: List[str]) -> str:
    if not isinstance(value, str) or not value.strip():
        errors.append(f"{path}: Full name is required")
        return ""
    name = value.strip()
    if len(name) > _FIELD_SPECS["full_name"].max_length:
        errors.append(f"{path}: Name must be less than 100 characters")
    return name


def _validate_role(value: Any, path: str, errors: List[str]) -> AppRole | None:
    role = AppRole.from_value(value)
    if role is None or role.value not in IMPORTABLE_ROLE_VALUES:
        errors.append(f"{path}: Role must be one of {', '.join(IMPORTABLE_ROLE_VALUES)}")
        return None
    return role


def validate_user_row(raw: Any, index: int, errors: List[str]) -> ImportRow | None:
    """Validate one raw row; appends violations to ``errors``."""

    prefix = f"users.{index}"
    if not isinstance(raw, Mapping):
        errors.append(f"{prefix}: Expected object")
        return None

    before = len(errors)
    email = _validate_email(raw.get("email"), f"{prefix}.email", errors)
    full_name = _validate_full_name(raw.get("full_name"), f"{prefix}.full_name", errors)
    role = _validate_role(raw.get("role"), f"{prefix}.role", errors)
    optional = {name: _clean_optional(raw.get(name), f"{prefix}.{name}", errors) for name in OPTIONAL_NAME_FIELDS}

    if len(errors) > before or role is None:
        return None
    return ImportRow(email=email, full_name=full_name, role=role, **optional)


def _parse_organization_id(value: Any, errors: List[str]) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        errors.append("organizationId: Expected integer")
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    errors.append("organizationId: Expected integer")
    return None


def validate_rows(raw_rows: Any, *, max_rows: int, errors: List[str]) -> List[ImportRow]:
    """Validate the ``users`` array; size violations skip per-row checks."""

    if not isinstance(raw_rows, Sequence) or isinstance(raw_rows, (str, bytes)):
        errors.append("users: Expected array")
        return []
    if len(raw_rows) == 0:
        errors.append("users: At least one user required")
        return []
    if len(raw_rows) > max_rows:
        errors.append(f"users: Maximum {max_rows} users per upload")
        return []

    rows: List[ImportRow] = []
    for index, raw in enumerate(raw_rows):
        row = validate_user_row(raw, index, errors)
        if row is not None:
            rows.append(row)
    return rows


def validate_bulk_payload(payload: Any, *, max_rows: int) -> Tuple[List[ImportRow], int | None]:
    """
    Validate a bulk upload request body.

    Returns:
        tuple: (rows, organization_id)

    Raises:
        ValidationError: listing every violated field constraint.
    """

    errors: List[str] = []
    if not isinstance(payload, Mapping):
        raise ValidationError(["body: Expected JSON object"])

    rows = validate_rows(payload.get("users"), max_rows=max_rows, errors=errors)
    organization_id = _parse_organization_id(payload.get("organizationId"), errors)

    if errors:
        raise ValidationError(errors)
    return rows, organization_id

"""Canonical bulk user import contract.

Single source of truth for the template columns, accepted header aliases, and
the organizational scope each role requires. Spreadsheet adapters, payload
validation and the row provisioner all read from here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Tuple

from planivo.models.role import AppRole

Normalizer = Callable[[object | None], object | None]


def _strip_string(value: object | None) -> object | None:
    if isinstance(value, str):
        return value.strip()
    return value


@dataclass(frozen=True)
class FieldSpec:
    """Metadata describing an import column."""

    name: str
    header: str
    description: str
    required: bool = False
    max_length: int = 200
    aliases: Tuple[str, ...] = ()
    normalizer: Normalizer | None = _strip_string

    def headers(self) -> Tuple[str, ...]:
        """Return the canonical name, template header and aliases."""

        return (self.name, self.header, *self.aliases)


BULK_USER_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(
        name="email",
        header="Email",
        description="Login email; normalized to lower case.",
        required=True,
        max_length=255,
        aliases=("email_address", "e-mail"),
    ),
    FieldSpec(
        name="full_name",
        header="Full Name",
        description="Display name of the user.",
        required=True,
        max_length=100,
        aliases=("name", "fullname"),
    ),
    FieldSpec(
        name="organization_name",
        header="Organization Name",
        description="Organization; defaults to the batch organization.",
        aliases=("organization", "org", "org_name"),
    ),
    FieldSpec(
        name="workspace_name",
        header="Workspace Name",
        description="Workspace inside the organization.",
        aliases=("workspace",),
    ),
    FieldSpec(
        name="facility_name",
        header="Facility Name",
        description="Facility inside the workspace.",
        aliases=("facility",),
    ),
    FieldSpec(
        name="department_name",
        header="Department Name",
        description="Department inside the facility.",
        aliases=("department",),
    ),
    FieldSpec(
        name="specialty_name",
        header="Specialty Name",
        description="Specialty (sub-department) of the department.",
        aliases=("specialty", "speciality"),
    ),
    FieldSpec(
        name="role",
        header="Role",
        description="One of the importable application roles.",
        required=True,
        max_length=50,
    ),
)

OPTIONAL_NAME_FIELDS: Tuple[str, ...] = (
    "organization_name",
    "workspace_name",
    "facility_name",
    "department_name",
    "specialty_name",
)

# Roles scoped to the organization as a whole rather than to a workspace
ORGANIZATION_SCOPED_ROLES = frozenset({AppRole.ORGANIZATION_ADMIN, AppRole.GENERAL_ADMIN})
FACILITY_SCOPED_ROLES = frozenset(
    {AppRole.FACILITY_SUPERVISOR, AppRole.DEPARTMENT_HEAD, AppRole.STAFF, AppRole.INTERN}
)
DEPARTMENT_SCOPED_ROLES = frozenset({AppRole.DEPARTMENT_HEAD, AppRole.STAFF, AppRole.INTERN})

IMPORTABLE_ROLE_VALUES: Tuple[str, ...] = (
    AppRole.STAFF.value,
    AppRole.DEPARTMENT_HEAD.value,
    AppRole.FACILITY_SUPERVISOR.value,
    AppRole.WORKPLACE_SUPERVISOR.value,
    AppRole.GENERAL_ADMIN.value,
    AppRole.ORGANIZATION_ADMIN.value,
    AppRole.WORKSPACE_SUPERVISOR.value,
    AppRole.INTERN.value,
)


def requires_workspace(role: AppRole) -> bool:
    return role not in ORGANIZATION_SCOPED_ROLES


def requires_facility(role: AppRole) -> bool:
    return role in FACILITY_SCOPED_ROLES


def requires_department(role: AppRole) -> bool:
    return role in DEPARTMENT_SCOPED_ROLES


@dataclass(frozen=True)
class ImportRow:
    """One validated row of a bulk user import."""

    email: str
    full_name: str
    role: AppRole
    organization_name: str | None = None
    workspace_name: str | None = None
    facility_name: str | None = None
    department_name: str | None = None
    specialty_name: str | None = None


_HEADER_TOKEN_RE = re.compile(r"[^a-z0-9]+")


def normalize_header(header: str | None) -> str:
    """Collapse a header to a comparison token ('Full Name' -> 'full_name')."""

    token = (header or "").strip().lstrip("\ufeff").lower()
    return _HEADER_TOKEN_RE.sub("_", token).strip("_")


def get_field_specs() -> Tuple[FieldSpec, ...]:
    return BULK_USER_FIELDS


def get_required_headers() -> Tuple[str, ...]:
    return tuple(spec.name for spec in BULK_USER_FIELDS if spec.required)


def get_template_headers() -> Tuple[str, ...]:
    return tuple(spec.header for spec in BULK_USER_FIELDS)


def get_alias_map() -> Mapping[str, str]:
    """Map every normalized header/alias to its canonical field name."""

    alias_map: Dict[str, str] = {}
    for spec in BULK_USER_FIELDS:
        for header in spec.headers():
            alias_map[normalize_header(header)] = spec.name
    return alias_map

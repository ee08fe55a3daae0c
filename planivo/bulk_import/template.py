"""Downloadable ``.xlsx`` template for bulk user uploads."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import Sequence

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.datavalidation import DataValidation

from planivo.models import Department, Facility, Organization, Workspace

from .contracts import IMPORTABLE_ROLE_VALUES, get_field_specs

SHEET_TITLE = "Bulk Users Template"
DROPDOWN_ROWS = range(2, 102)
# Excel rejects inline list formulas longer than 255 characters
MAX_LIST_FORMULA_LENGTH = 255

COLUMN_WIDTHS = {
    "email": 30,
    "full_name": 25,
    "department_name": 30,
    "specialty_name": 30,
    "role": 20,
}

HEADER_FONT = Font(bold=True, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")


@dataclass
class TemplateData:
    organizations: list[str] = field(default_factory=list)
    workspaces: list[str] = field(default_factory=list)
    facilities: list[str] = field(default_factory=list)
    departments: list[str] = field(default_factory=list)
    roles: list[str] = field(default_factory=lambda: list(IMPORTABLE_ROLE_VALUES))


def _list_formula(values: Sequence[str]) -> str | None:
    usable = [value for value in dict.fromkeys(values) if value and "," not in value and '"' not in value]
    if not usable:
        return None
    formula = '"' + ",".join(usable) + '"'
    if len(formula) > MAX_LIST_FORMULA_LENGTH:
        return None
    return formula


def build_template_workbook(data: TemplateData) -> Workbook:
    """Workbook with the template columns, one example row and list dropdowns for rows 2-101."""

    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = SHEET_TITLE

    specs = get_field_specs()
    worksheet.append([spec.header for spec in specs])
    for index, spec in enumerate(specs, start=1):
        cell = worksheet.cell(row=1, column=index)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        worksheet.column_dimensions[get_column_letter(index)].width = COLUMN_WIDTHS.get(spec.name, 25)
    worksheet.freeze_panes = "A2"

    example = {
        "email": "staff@example.com",
        "full_name": "John Staff",
        "organization_name": data.organizations[0] if data.organizations else "My Hospital Group",
        "workspace_name": data.workspaces[0] if data.workspaces else "Main Workspace",
        "facility_name": data.facilities[0] if data.facilities else "Main Hospital",
        "department_name": data.departments[0] if data.departments else "Emergency",
        "specialty_name": "Nurse",
        "role": "staff",
    }
    worksheet.append([example[spec.name] for spec in specs])

    dropdown_sources = {
        "role": data.roles,
        "organization_name": data.organizations,
        "workspace_name": data.workspaces,
        "facility_name": data.facilities,
        "department_name": data.departments,
    }
    for index, spec in enumerate(specs, start=1):
        values = dropdown_sources.get(spec.name)
        if values is None:
            continue
        formula = _list_formula(values)
        if formula is None:
            continue
        validation = DataValidation(type="list", formula1=formula, allow_blank=True)
        letter = get_column_letter(index)
        validation.add(f"{letter}{DROPDOWN_ROWS.start}:{letter}{DROPDOWN_ROWS.stop - 1}")
        worksheet.add_data_validation(validation)

    return workbook


def workbook_bytes(workbook: Workbook) -> bytes:
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def collect_template_data(organization_ids: Sequence[int] | None) -> TemplateData:
    """Names visible within ``organization_ids``; all active organizations when None."""

    org_query = Organization.query.filter_by(is_active=True)
    if organization_ids is not None:
        if not organization_ids:
            return TemplateData()
        org_query = org_query.filter(Organization.id.in_(list(organization_ids)))
    organizations = org_query.order_by(Organization.name).all()
    org_ids = [org.id for org in organizations]
    if not org_ids:
        return TemplateData()

    workspaces = Workspace.query.filter(Workspace.organization_id.in_(org_ids)).order_by(Workspace.name).all()
    workspace_ids = [workspace.id for workspace in workspaces]
    facilities = (
        Facility.query.filter(Facility.workspace_id.in_(workspace_ids)).order_by(Facility.name).all()
        if workspace_ids
        else []
    )
    facility_ids = [facility.id for facility in facilities]
    departments = (
        Department.query.filter(
            Department.facility_id.in_(facility_ids), Department.parent_department_id.is_(None)
        )
        .order_by(Department.name)
        .all()
        if facility_ids
        else []
    )

    return TemplateData(
        organizations=[org.name for org in organizations],
        workspaces=[workspace.name for workspace in workspaces],
        facilities=[facility.name for facility in facilities],
        departments=[department.name for department in departments],
    )

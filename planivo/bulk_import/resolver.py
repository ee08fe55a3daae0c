"""
Name-to-identifier resolution for bulk import rows.

A ``ResolutionCache`` lives for exactly one batch call; the resolver memoizes
every successful lookup in it so rows sharing an organization, workspace or
facility only hit the store once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Tuple

from .errors import ResolutionError
from .store import DirectoryStore, FacilityRef

logger = logging.getLogger(__name__)

ANY_WORKSPACE = "any"


def _key(name: str) -> str:
    return name.strip().lower()


@dataclass
class ResolutionCache:
    """Per-batch memo of resolved names. Never shared between batches."""

    organizations: Dict[str, int] = field(default_factory=dict)
    workspaces: Dict[Tuple[int, str], int] = field(default_factory=dict)
    # (workspace_id, name) or (organization_id, ANY_WORKSPACE, name)
    facilities: Dict[tuple, FacilityRef] = field(default_factory=dict)
    departments: Dict[Tuple[int, str], int] = field(default_factory=dict)
    specialties: Dict[Tuple[int, str], int] = field(default_factory=dict)
    lookups: int = 0
    hits: int = 0

    def stats(self) -> dict:
        return {
            "lookups": self.lookups,
            "hits": self.hits,
            "organizations": len(self.organizations),
            "workspaces": len(self.workspaces),
            "facilities": len(self.facilities),
            "departments": len(self.departments),
            "specialties": len(self.specialties),
        }


class NameResolver:
    """Resolve human-entered names against ``store`` using ``cache``."""

    def __init__(self, store: DirectoryStore, cache: ResolutionCache | None = None) -> None:
        self.store = store
        self.cache = cache if cache is not None else ResolutionCache()

    def _cached(self, mapping: dict, key):
        self.cache.lookups += 1
        if key in mapping:
            self.cache.hits += 1
            return mapping[key]
        return None

    def resolve_organization(self, name: str) -> int:
        key = _key(name)
        cached = self._cached(self.cache.organizations, key)
        if cached is not None:
            return cached

        organization_id = self.store.find_organization_id(name)
        if organization_id is None:
            raise ResolutionError(f'Organization "{name}" not found')
        self.cache.organizations[key] = organization_id
        return organization_id

    def resolve_workspace(self, name: str, organization_id: int) -> int:
        key = (organization_id, _key(name))
        cached = self._cached(self.cache.workspaces, key)
        if cached is not None:
            return cached

        workspace_id = self.store.find_workspace_id(name, organization_id)
        if workspace_id is None:
            raise ResolutionError(f'Workspace "{name}" not found in organization {organization_id}')
        self.cache.workspaces[key] = workspace_id
        return workspace_id

    def resolve_facility(self, name: str, workspace_id: int | None, organization_id: int) -> FacilityRef:
        """
        Resolve a facility, narrowing by workspace when it is known.

        The returned ``FacilityRef.workspace_id`` is the effective workspace
        for the rest of the row when the caller did not know it.
        """

        if workspace_id is not None:
            key = (workspace_id, _key(name))
        else:
            key = (organization_id, ANY_WORKSPACE, _key(name))
        cached = self._cached(self.cache.facilities, key)
        if cached is not None:
            return cached

        matches = list(self.store.find_facilities(name, organization_id, workspace_id))
        if not matches:
            if workspace_id is not None:
                raise ResolutionError(f'Facility "{name}" not found in workspace {workspace_id}')
            raise ResolutionError(f'Facility "{name}" not found in organization {organization_id}')
        if len(matches) > 1:
            # Same facility name in several workspaces; the row must name the workspace
            raise ResolutionError(
                f'Facility "{name}" exists in {len(matches)} workspaces; specify the workspace name'
            )

        facility = matches[0]
        self.cache.facilities[key] = facility
        self.cache.facilities.setdefault((facility.workspace_id, _key(name)), facility)
        return facility

    def resolve_department(self, name: str, facility_id: int, facility_name: str | None = None) -> int:
        key = (facility_id, _key(name))
        cached = self._cached(self.cache.departments, key)
        if cached is not None:
            return cached

        department_id = self.store.find_department_id(name, facility_id)
        if department_id is None:
            raise ResolutionError(
                f'Department "{name}" not found in facility "{facility_name or facility_id}"'
            )
        self.cache.departments[key] = department_id
        return department_id

    def resolve_specialty(self, name: str, department_id: int) -> int | None:
        """Return the specialty id or None; a missing specialty is not an error."""

        key = (department_id, _key(name))
        cached = self._cached(self.cache.specialties, key)
        if cached is not None:
            return cached

        specialty_id = self.store.find_specialty_id(name, department_id)
        if specialty_id is None:
            logger.warning('Specialty "%s" not found under department %s, proceeding without it', name, department_id)
            return None
        self.cache.specialties[key] = specialty_id
        return specialty_id

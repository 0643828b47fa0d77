"""Role/permission catalog and YAML loader.

The catalog is an immutable snapshot answering three questions:

    permissions_for(roles)      -> frozenset[Permission]
    allowed_statuses_for(roles) -> Mapping[EntityType, frozenset[str]]
    roles_for_workspace(ws)     -> frozenset[Role]

The default snapshot is built from the static tables in ``roles.py``. A
YAML file may replace it; the file is validated strictly and any unknown
role, permission, entity type or status is a ``CatalogConfigError``.

Expected YAML shape:

    roles:
      sponsor:
        permissions: [sponsor.workspace.access, sponsor.modifications.authorise]
        statuses:
          modification: [With sponsor, Approved]
    workspaces:
      sponsor: [sponsor, system_administrator]

``workspaces`` is optional; when absent the default workspace matrix is used.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from threading import Lock
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

import yaml

from portal.core.rbac.permissions import EntityType, Permission, Workspace, parse_permission
from portal.core.rbac.roles import (
    ROLE_PERMISSIONS,
    ROLE_STATUS_PERMISSIONS,
    WORKSPACE_ROLES,
    Role,
)
from portal.core.statuses import (
    DisplayStatus,
    DocumentStatus,
    ModificationStatus,
    ProjectRecordStatus,
)

logger = logging.getLogger(__name__)


class CatalogConfigError(ValueError):
    """Raised when a catalog file is invalid."""


# Status labels accepted per entity type in a catalog file
_KNOWN_STATUSES: Mapping[EntityType, frozenset[str]] = MappingProxyType({
    EntityType.PROJECT_RECORD: frozenset(s.value.casefold() for s in ProjectRecordStatus),
    EntityType.MODIFICATION: frozenset(
        [s.value.casefold() for s in ModificationStatus]
        + [s.value.casefold() for s in DisplayStatus]
    ),
    EntityType.DOCUMENT: frozenset(s.value.casefold() for s in DocumentStatus),
})

_EMPTY: frozenset = frozenset()


def _freeze_statuses(by_entity: Mapping[EntityType, Iterable[str]]) -> Mapping[EntityType, frozenset[str]]:
    # Every entity type is present so lookups never miss
    return MappingProxyType({
        entity: frozenset(by_entity.get(entity, ()))
        for entity in EntityType
    })


@dataclass(frozen=True)
class RoleCatalog:
    """Immutable role → permission / status / workspace tables."""

    role_permissions: Mapping[Role, frozenset[Permission]]
    role_statuses: Mapping[Role, Mapping[EntityType, frozenset[str]]]
    workspace_roles: Mapping[Workspace, frozenset[Role]]

    @classmethod
    def build(
        cls,
        role_permissions: Mapping[Role, Iterable[Permission]],
        role_statuses: Mapping[Role, Mapping[EntityType, Iterable[str]]],
        workspace_roles: Mapping[Workspace, Iterable[Role]],
    ) -> "RoleCatalog":
        """Freeze plain tables into a catalog snapshot."""
        return cls(
            role_permissions=MappingProxyType({
                role: frozenset(perms) for role, perms in role_permissions.items()
            }),
            role_statuses=MappingProxyType({
                role: _freeze_statuses(statuses) for role, statuses in role_statuses.items()
            }),
            workspace_roles=MappingProxyType({
                workspace: frozenset(roles) for workspace, roles in workspace_roles.items()
            }),
        )

    def permissions_for(self, roles: Iterable[Role]) -> frozenset[Permission]:
        """Union of the permissions granted to each role. Unknown roles add nothing."""
        granted: set[Permission] = set()
        for role in roles:
            granted.update(self.role_permissions.get(role, _EMPTY))
        return frozenset(granted)

    def allowed_statuses_for(self, roles: Iterable[Role]) -> Mapping[EntityType, frozenset[str]]:
        """Union of allowed statuses per entity type; every entity type is present."""
        merged: dict[EntityType, set[str]] = {entity: set() for entity in EntityType}
        for role in roles:
            for entity, statuses in self.role_statuses.get(role, {}).items():
                merged[entity].update(statuses)
        return _freeze_statuses(merged)

    def roles_for_workspace(self, workspace: Workspace) -> frozenset[Role]:
        """Roles allowed into a workspace (empty for unmapped workspaces)."""
        return self.workspace_roles.get(workspace, _EMPTY)


def default_catalog() -> RoleCatalog:
    """Build the catalog from the static role tables."""
    return RoleCatalog.build(ROLE_PERMISSIONS, ROLE_STATUS_PERMISSIONS, WORKSPACE_ROLES)


# ---- YAML loader ---------------------------------------------------------------------


def _parse_role(name: object, where: str) -> Role:
    role = Role.try_parse(str(name))
    if role is None:
        raise CatalogConfigError(f"{where}: unknown role {name!r}")
    return role


def _parse_statuses(role: Role, raw: object) -> dict[EntityType, list[str]]:
    if not isinstance(raw, dict):
        raise CatalogConfigError(f"role {role.value!r}.statuses must be a mapping")

    statuses: dict[EntityType, list[str]] = {}
    for entity_name, values in raw.items():
        try:
            entity = EntityType.parse(entity_name)
        except ValueError:
            raise CatalogConfigError(
                f"role {role.value!r}.statuses: unknown entity type {entity_name!r}"
            ) from None
        if not isinstance(values, list):
            raise CatalogConfigError(
                f"role {role.value!r}.statuses.{entity.value} must be a list"
            )
        for value in values:
            if str(value).strip().casefold() not in _KNOWN_STATUSES[entity]:
                raise CatalogConfigError(
                    f"role {role.value!r}.statuses.{entity.value}: unknown status {value!r}"
                )
        statuses[entity] = [str(v).strip() for v in values]
    return statuses


def load_catalog(path: Path) -> RoleCatalog:
    """Load and validate a catalog YAML file.

    Raises:
        CatalogConfigError: If the file is malformed or references unknown names.
    """
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise CatalogConfigError("catalog root must be a mapping")

    roles_raw = raw.get("roles") or {}
    workspaces_raw = raw.get("workspaces")

    if not isinstance(roles_raw, dict):
        raise CatalogConfigError("roles must be a mapping")
    if workspaces_raw is not None and not isinstance(workspaces_raw, dict):
        raise CatalogConfigError("workspaces must be a mapping when present")

    role_permissions: dict[Role, list[Permission]] = {}
    role_statuses: dict[Role, dict[EntityType, list[str]]] = {}

    for role_name, role_val in roles_raw.items():
        role = _parse_role(role_name, "roles")
        role_val = role_val or {}
        if not isinstance(role_val, dict):
            raise CatalogConfigError(f"role {role_name!r} must be a mapping")

        perms_raw = role_val.get("permissions") or []
        if not isinstance(perms_raw, list):
            raise CatalogConfigError(f"role {role_name!r}.permissions must be a list")
        perms = []
        for token in perms_raw:
            try:
                perms.append(parse_permission(str(token)))
            except ValueError:
                raise CatalogConfigError(
                    f"role {role_name!r}: unknown permission {token!r}"
                ) from None
        role_permissions[role] = perms
        role_statuses[role] = _parse_statuses(role, role_val.get("statuses") or {})

    if workspaces_raw is None:
        workspace_roles: Mapping[Workspace, Iterable[Role]] = WORKSPACE_ROLES
    else:
        workspace_roles = {}
        for ws_name, members in workspaces_raw.items():
            try:
                workspace = Workspace(str(ws_name).strip().lower())
            except ValueError:
                raise CatalogConfigError(f"workspaces: unknown workspace {ws_name!r}") from None
            if not isinstance(members, list):
                raise CatalogConfigError(f"workspaces.{workspace.value} must be a list")
            workspace_roles[workspace] = [
                _parse_role(m, f"workspaces.{workspace.value}") for m in members
            ]

    catalog = RoleCatalog.build(role_permissions, role_statuses, workspace_roles)
    logger.info(
        "Loaded role catalog from %s (%d roles, %d workspaces)",
        path,
        len(catalog.role_permissions),
        len(catalog.workspace_roles),
    )
    return catalog


class CatalogHolder:
    """Holds the current catalog snapshot.

    Readers take ``holder.current`` once and use that snapshot for the whole
    evaluation. Replacing the catalog swaps the reference; snapshots already
    handed out are never modified.
    """

    def __init__(self, catalog: Optional[RoleCatalog] = None, path: Optional[Path] = None):
        self._path = Path(path) if path else None
        self._lock = Lock()
        if catalog is None:
            catalog = load_catalog(self._path) if self._path else default_catalog()
        self._catalog = catalog

    @property
    def current(self) -> RoleCatalog:
        return self._catalog

    def swap(self, catalog: RoleCatalog) -> RoleCatalog:
        """Replace the snapshot, returning the previous one."""
        with self._lock:
            previous, self._catalog = self._catalog, catalog
        logger.info("Role catalog replaced")
        return previous

    def reload(self) -> RoleCatalog:
        """Re-read the configured YAML file and swap it in.

        A file that fails validation leaves the current snapshot in place.
        """
        if self._path is None:
            raise CatalogConfigError("no catalog file configured")
        catalog = load_catalog(self._path)
        self.swap(catalog)
        return catalog

"""RBAC (Role-Based Access Control) module for the submission portal.

This module defines the permission model, role definitions, the role catalog
and claims expansion.
"""

from .permissions import Permission, Permissions, Workspace, EntityType, PERMISSION_DEFINITIONS
from .roles import Role
from .catalog import RoleCatalog, CatalogHolder, CatalogConfigError, default_catalog, load_catalog
from .claims import IdentityClaims, Principal, ClaimsExpander, ANONYMOUS

__all__ = [
    "Permission",
    "Permissions",
    "Workspace",
    "EntityType",
    "PERMISSION_DEFINITIONS",
    "Role",
    "RoleCatalog",
    "CatalogHolder",
    "CatalogConfigError",
    "default_catalog",
    "load_catalog",
    "IdentityClaims",
    "Principal",
    "ClaimsExpander",
    "ANONYMOUS",
]

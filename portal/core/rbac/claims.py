"""Claims expansion.

Turns the role claims issued by the identity provider into a ``Principal``:
roles parsed into ``Role`` values, plus the permissions and allowed record
statuses those roles grant in the current catalog snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from portal.core.rbac.catalog import RoleCatalog
from portal.core.rbac.permissions import EntityType, Permission
from portal.core.rbac.roles import Role

logger = logging.getLogger(__name__)

DISABLED_USER_STATUS = "disabled"


@dataclass(frozen=True)
class IdentityClaims:
    """Claims as received from the identity provider."""

    authenticated: bool
    user_id: Optional[str] = None
    roles: Sequence[str] = ()
    user_status: Optional[str] = None
    # Set for users who authorise on behalf of their sponsor organisation
    is_authoriser: bool = False


def _no_statuses() -> Mapping[EntityType, frozenset[str]]:
    return MappingProxyType({entity: frozenset() for entity in EntityType})


@dataclass(frozen=True)
class Principal:
    """Immutable snapshot of an actor for one request or session."""

    user_id: Optional[str] = None
    roles: frozenset[Role] = frozenset()
    permissions: frozenset[Permission] = frozenset()
    allowed_statuses: Mapping[EntityType, frozenset[str]] = field(default_factory=_no_statuses)
    is_authenticated: bool = False
    is_disabled: bool = False
    is_authoriser: bool = False

    @property
    def is_admin(self) -> bool:
        return Role.SYSTEM_ADMINISTRATOR in self.roles

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    def has_permission(self, permission: Permission) -> bool:
        return permission in self.permissions


ANONYMOUS = Principal()


class ClaimsExpander:
    """Expands identity claims against a catalog snapshot."""

    def __init__(self, catalog: RoleCatalog):
        self.catalog = catalog

    def parse_roles(self, raw_roles: Sequence[str]) -> frozenset[Role]:
        """Parse role claim values. Unknown values are dropped."""
        roles = set()
        for raw in raw_roles:
            role = Role.try_parse(raw)
            if role is None:
                logger.debug("Ignoring unknown role claim %r", raw)
                continue
            roles.add(role)
        return frozenset(roles)

    def expand(self, claims: IdentityClaims) -> Principal:
        """Build the principal for a set of claims."""
        if not claims.authenticated:
            return ANONYMOUS

        roles = self.parse_roles(claims.roles) | {Role.PORTAL_USER}
        is_disabled = (claims.user_status or "").strip().lower() == DISABLED_USER_STATUS

        principal = Principal(
            user_id=claims.user_id,
            roles=roles,
            permissions=self.catalog.permissions_for(roles),
            allowed_statuses=self.catalog.allowed_statuses_for(roles),
            is_authenticated=True,
            is_disabled=is_disabled,
            is_authoriser=claims.is_authoriser,
        )
        logger.debug(
            "Expanded claims for user %s: roles=%s permissions=%d",
            claims.user_id,
            sorted(r.value for r in roles),
            len(principal.permissions),
        )
        return principal

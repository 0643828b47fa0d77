"""Authorization request value types.

An ``AuthorizationRequest`` describes what a call site requires before it
shows something or lets a request through. Requests are only built through
``AuthorizationRequest.build`` (or the shorthands below it), which rejects
malformed combinations with ``ConfigurationError``. A request that exists is
therefore always well-formed and the evaluator never has to second-guess it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

from portal.core.rbac.permissions import EntityType, Permission, Workspace, parse_permission
from portal.core.rbac.roles import Role


class ConfigurationError(Exception):
    """Raised when an authorization request is malformed.

    This is an integration bug at the call site, never a runtime decision.
    """


class AuthorizationMode(str, Enum):
    """What the tokens of a request are checked against."""

    PERMISSION = "permission"
    ROLE = "role"
    WORKSPACE = "workspace"
    NONE = "none"


class Combine(str, Enum):
    """How multiple tokens are combined."""

    ANY = "any"   # at least one token held (OR)
    ALL = "all"   # every token held (AND)


@dataclass(frozen=True)
class StatusGate:
    """Requires the target record's status to be visible to the principal."""

    entity_type: EntityType
    status_value: str

    @classmethod
    def of(
        cls,
        entity_type: Union[str, EntityType, None],
        status_value: Optional[str],
    ) -> Optional["StatusGate"]:
        """Build a gate, or None when either part is blank.

        Raises:
            ConfigurationError: If the entity type is not a known one.
        """
        if entity_type is None or status_value is None:
            return None
        if isinstance(entity_type, str) and not entity_type.strip():
            return None
        if not str(status_value).strip():
            return None
        try:
            entity = EntityType.parse(entity_type)
        except ValueError:
            raise ConfigurationError(f"Unknown status entity: {entity_type!r}") from None
        return cls(entity, str(status_value).strip())


Token = Union[Permission, Role, Workspace]


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, (Permission, Role, Workspace)):
        return [value]
    if isinstance(value, str):
        # Comma separated multi-token attribute
        return [part.strip() for part in value.split(",") if part.strip()]
    return list(value)


def _parse_permission_token(token) -> Permission:
    try:
        return parse_permission(token)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from None


def _parse_role_token(token) -> Role:
    if isinstance(token, Role):
        return token
    role = Role.try_parse(str(token))
    if role is None:
        raise ConfigurationError(f"Unknown role: {token}")
    return role


def _parse_workspace_token(token) -> Workspace:
    if isinstance(token, Workspace):
        return token
    try:
        return Workspace(str(token).strip().lower())
    except ValueError:
        raise ConfigurationError(f"Unknown workspace: {token}") from None


@dataclass(frozen=True)
class AuthorizationRequest:
    """A validated authorization requirement."""

    mode: AuthorizationMode
    tokens: frozenset
    combine: Combine = Combine.ANY
    status_gate: Optional[StatusGate] = None
    anonymous_visible: bool = False

    @classmethod
    def build(
        cls,
        *,
        permission: Union[str, Permission, None] = None,
        permissions: Union[str, Permission, Iterable[Union[str, Permission]], None] = None,
        role: Union[str, Role, None] = None,
        roles: Union[str, Role, Iterable[Union[str, Role]], None] = None,
        workspace: Union[str, Workspace, None] = None,
        combine: Union[str, Combine] = Combine.ANY,
        status_entity: Union[str, EntityType, None] = None,
        status_value: Optional[str] = None,
        anonymous_visible: bool = False,
    ) -> "AuthorizationRequest":
        """Validate call-site arguments and build a request.

        Exactly one of the single-token (``permission``/``role``) and the
        multi-token (``permissions``/``roles``) forms may be given per mode,
        and tokens for only one mode may be given.

        Raises:
            ConfigurationError: For any malformed combination or unknown token.
        """
        if permission is not None and permissions is not None:
            raise ConfigurationError(
                "Specify either 'permission' or 'permissions', not both"
            )
        if role is not None and roles is not None:
            raise ConfigurationError("Specify either 'role' or 'roles', not both")

        given = [
            mode for mode, present in (
                (AuthorizationMode.PERMISSION, permission is not None or permissions is not None),
                (AuthorizationMode.ROLE, role is not None or roles is not None),
                (AuthorizationMode.WORKSPACE, workspace is not None),
            )
            if present
        ]
        if len(given) > 1:
            raise ConfigurationError(
                "Authorization can be based on only one of permissions, roles or workspace; "
                f"got {', '.join(m.value for m in given)}"
            )

        try:
            combine = Combine(combine.lower() if isinstance(combine, str) else combine)
        except ValueError:
            raise ConfigurationError(f"Unknown combine mode: {combine!r}") from None

        mode = given[0] if given else AuthorizationMode.NONE
        if mode is AuthorizationMode.PERMISSION:
            raw = [permission] if permission is not None else _as_list(permissions)
            tokens = frozenset(_parse_permission_token(t) for t in raw)
        elif mode is AuthorizationMode.ROLE:
            raw = [role] if role is not None else _as_list(roles)
            tokens = frozenset(_parse_role_token(t) for t in raw)
        elif mode is AuthorizationMode.WORKSPACE:
            if not isinstance(workspace, Workspace) and "," in str(workspace):
                raise ConfigurationError("A workspace requirement takes a single workspace")
            tokens = frozenset([_parse_workspace_token(workspace)])
        else:
            tokens = frozenset()

        if mode in (AuthorizationMode.PERMISSION, AuthorizationMode.ROLE) and not tokens:
            raise ConfigurationError(f"No {mode.value} tokens given")

        return cls(
            mode=mode,
            tokens=tokens,
            combine=combine,
            status_gate=StatusGate.of(status_entity, status_value),
            anonymous_visible=anonymous_visible,
        )

    @classmethod
    def for_permission(
        cls,
        permission: Union[str, Permission],
        *,
        status_entity: Union[str, EntityType, None] = None,
        status_value: Optional[str] = None,
    ) -> "AuthorizationRequest":
        """Shorthand for a single-permission request."""
        return cls.build(
            permission=permission,
            status_entity=status_entity,
            status_value=status_value,
        )

    @classmethod
    def for_workspace(cls, workspace: Union[str, Workspace]) -> "AuthorizationRequest":
        """Shorthand for a workspace access request."""
        return cls.build(workspace=workspace)

    @classmethod
    def from_policy_name(cls, name: str) -> "AuthorizationRequest":
        """Resolve a named policy.

        A single segment (``sponsor``) is a workspace policy; three segments
        (``myresearch.projectrecord.read``) are a permission policy.

        Raises:
            ConfigurationError: For any other shape or an unknown name.
        """
        segments = name.split(".")
        if len(segments) == 1:
            return cls.for_workspace(name)
        if len(segments) == 3:
            return cls.for_permission(name)
        raise ConfigurationError(f"Unrecognised policy name: {name!r}")

"""Permission model for the submission portal.

Defines all workspaces, the entity types whose record status can gate
access, and the permission tokens granted to roles.

Permission string format: "workspace.area.action"
Examples:
  - myresearch.projectrecord.read
  - sponsor.modifications.authorise
  - approvals.modifications.approve
"""

from enum import Enum
from typing import NamedTuple, FrozenSet


class Workspace(str, Enum):
    """Dashboard workspaces a user may be allowed into."""

    PROFILE = "profile"
    MY_RESEARCH = "myresearch"
    SPONSOR = "sponsor"
    SYSTEM_ADMINISTRATION = "systemadmin"
    APPROVALS = "approvals"
    CAG_MEMBERS = "cagmembers"
    MEMBER_MANAGEMENT = "membermanagement"
    CAT = "cat"
    REC_MEMBERS = "recmembers"
    TECHNICAL_ASSURANCE = "technicalassurance"


class EntityType(str, Enum):
    """Record types whose current status can restrict access."""

    PROJECT_RECORD = "projectrecord"
    MODIFICATION = "modification"
    DOCUMENT = "document"

    @classmethod
    def parse(cls, value: "str | EntityType") -> "EntityType":
        """Parse an entity type case-insensitively."""
        if isinstance(value, EntityType):
            return value
        return cls(str(value).strip().lower())


class Permission(NamedTuple):
    """A permission is an action on an area inside a workspace."""
    workspace: Workspace
    area: str
    action: str

    def __str__(self) -> str:
        return f"{self.workspace.value}.{self.area}.{self.action}"

    @classmethod
    def from_string(cls, perm_str: str) -> "Permission":
        """Parse a permission string like 'sponsor.modifications.authorise'."""
        parts = perm_str.strip().lower().split(".")
        if len(parts) != 3 or not all(parts):
            raise ValueError(f"Invalid permission format: {perm_str}")
        return cls(Workspace(parts[0]), parts[1], parts[2])


# Permission definitions matrix
# Maps each workspace area to its valid actions
PERMISSION_MATRIX: dict[tuple[Workspace, str], FrozenSet[str]] = {
    (Workspace.MY_RESEARCH, "workspace"): frozenset(["access"]),
    (Workspace.MY_RESEARCH, "projectrecord"): frozenset([
        "create", "read", "update", "delete", "search",
    ]),
    (Workspace.MY_RESEARCH, "projectrecordhistory"): frozenset(["read"]),
    (Workspace.MY_RESEARCH, "projectdocuments"): frozenset([
        "read", "update", "upload", "download", "delete",
    ]),
    (Workspace.MY_RESEARCH, "modifications"): frozenset([
        "create", "read", "update", "delete", "search",
        "review", "submit", "withdraw",
    ]),
    (Workspace.MY_RESEARCH, "modificationshistory"): frozenset(["read"]),

    (Workspace.SPONSOR, "workspace"): frozenset(["access"]),
    (Workspace.SPONSOR, "modifications"): frozenset([
        "search", "review", "authorise",
    ]),

    (Workspace.SYSTEM_ADMINISTRATION, "workspace"): frozenset(["access"]),

    (Workspace.APPROVALS, "workspace"): frozenset(["access"]),
    (Workspace.APPROVALS, "projectrecords"): frozenset(["search"]),
    (Workspace.APPROVALS, "modificationrecords"): frozenset(["search"]),
    (Workspace.APPROVALS, "modifications"): frozenset([
        "assign", "reassign", "read", "review", "approve", "update",
    ]),

    (Workspace.CAG_MEMBERS, "workspace"): frozenset(["access"]),
    (Workspace.MEMBER_MANAGEMENT, "workspace"): frozenset(["access"]),
    (Workspace.CAT, "workspace"): frozenset(["access"]),
    (Workspace.REC_MEMBERS, "workspace"): frozenset(["access"]),
    (Workspace.TECHNICAL_ASSURANCE, "workspace"): frozenset(["access"]),
}


def _generate_permission_definitions() -> dict[str, Permission]:
    """Generate all valid permission combinations from the matrix."""
    permissions = {}
    for (workspace, area), actions in PERMISSION_MATRIX.items():
        for action in actions:
            perm = Permission(workspace, area, action)
            permissions[str(perm)] = perm
    return permissions


# All valid permissions as a dictionary: "workspace.area.action" -> Permission
PERMISSION_DEFINITIONS = _generate_permission_definitions()


def _perm(token: str) -> Permission:
    return PERMISSION_DEFINITIONS[token]


class Permissions:
    """Named handles for the permissions referenced from code."""

    class MyResearch:
        WORKSPACE_ACCESS = _perm("myresearch.workspace.access")
        PROJECT_RECORD_CREATE = _perm("myresearch.projectrecord.create")
        PROJECT_RECORD_READ = _perm("myresearch.projectrecord.read")
        PROJECT_RECORD_UPDATE = _perm("myresearch.projectrecord.update")
        PROJECT_RECORD_DELETE = _perm("myresearch.projectrecord.delete")
        PROJECT_RECORD_SEARCH = _perm("myresearch.projectrecord.search")
        PROJECT_RECORD_HISTORY_READ = _perm("myresearch.projectrecordhistory.read")
        PROJECT_DOCUMENTS_READ = _perm("myresearch.projectdocuments.read")
        PROJECT_DOCUMENTS_UPDATE = _perm("myresearch.projectdocuments.update")
        PROJECT_DOCUMENTS_UPLOAD = _perm("myresearch.projectdocuments.upload")
        PROJECT_DOCUMENTS_DOWNLOAD = _perm("myresearch.projectdocuments.download")
        PROJECT_DOCUMENTS_DELETE = _perm("myresearch.projectdocuments.delete")
        MODIFICATIONS_CREATE = _perm("myresearch.modifications.create")
        MODIFICATIONS_READ = _perm("myresearch.modifications.read")
        MODIFICATIONS_UPDATE = _perm("myresearch.modifications.update")
        MODIFICATIONS_DELETE = _perm("myresearch.modifications.delete")
        MODIFICATIONS_SEARCH = _perm("myresearch.modifications.search")
        MODIFICATIONS_REVIEW = _perm("myresearch.modifications.review")
        MODIFICATIONS_SUBMIT = _perm("myresearch.modifications.submit")
        MODIFICATIONS_WITHDRAW = _perm("myresearch.modifications.withdraw")
        MODIFICATIONS_HISTORY_READ = _perm("myresearch.modificationshistory.read")

    class Sponsor:
        WORKSPACE_ACCESS = _perm("sponsor.workspace.access")
        MODIFICATIONS_SEARCH = _perm("sponsor.modifications.search")
        MODIFICATIONS_REVIEW = _perm("sponsor.modifications.review")
        MODIFICATIONS_AUTHORISE = _perm("sponsor.modifications.authorise")

    class SystemAdministration:
        WORKSPACE_ACCESS = _perm("systemadmin.workspace.access")

    class Approvals:
        WORKSPACE_ACCESS = _perm("approvals.workspace.access")
        PROJECT_RECORDS_SEARCH = _perm("approvals.projectrecords.search")
        MODIFICATION_RECORDS_SEARCH = _perm("approvals.modificationrecords.search")
        MODIFICATIONS_ASSIGN = _perm("approvals.modifications.assign")
        MODIFICATIONS_REASSIGN = _perm("approvals.modifications.reassign")
        MODIFICATIONS_READ = _perm("approvals.modifications.read")
        MODIFICATIONS_REVIEW = _perm("approvals.modifications.review")
        MODIFICATIONS_APPROVE = _perm("approvals.modifications.approve")
        MODIFICATIONS_UPDATE = _perm("approvals.modifications.update")


def is_valid_permission(perm_str: str) -> bool:
    """Check if a permission string is valid."""
    return perm_str.strip().lower() in PERMISSION_DEFINITIONS


def parse_permission(perm_str: "str | Permission") -> Permission:
    """Resolve a permission token to its definition.

    Raises:
        ValueError: If the token is malformed or not a defined permission.
    """
    if isinstance(perm_str, Permission):
        perm_str = str(perm_str)
    perm = PERMISSION_DEFINITIONS.get(perm_str.strip().lower())
    if perm is None:
        raise ValueError(f"Unknown permission: {perm_str}")
    return perm


def get_permissions_for_workspace(workspace: Workspace) -> list[str]:
    """Get all valid permission strings for a workspace."""
    return [
        token for token, perm in PERMISSION_DEFINITIONS.items()
        if perm.workspace == workspace
    ]


def get_all_permissions() -> list[str]:
    """Get all valid permission strings."""
    return list(PERMISSION_DEFINITIONS.keys())

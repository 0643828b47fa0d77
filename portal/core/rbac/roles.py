"""Default role definitions for the submission portal.

Defines the standard roles with:
1. The permission tokens each role is granted
2. The record statuses each role may see, per entity type
3. The workspaces each role may enter

System Administrator carries no entries here: it bypasses every check
in the policy evaluator instead.
"""

from enum import Enum
from typing import Dict, List, Optional

from portal.core.rbac.permissions import EntityType, Permission, Permissions, Workspace
from portal.core.statuses import (
    DisplayStatus,
    DocumentStatus,
    ModificationStatus,
    ProjectRecordStatus,
)


class Role(str, Enum):
    """Roles issued by the user management service."""

    APPLICANT = "applicant"
    SPONSOR = "sponsor"
    ORGANISATION_ADMINISTRATOR = "organisation_administrator"
    WORKFLOW_COORDINATOR = "workflow_coordinator"
    TEAM_MANAGER = "team_manager"
    STUDYWIDE_REVIEWER = "studywide_reviewer"
    SYSTEM_ADMINISTRATOR = "system_administrator"

    # Granted to every authenticated user
    PORTAL_USER = "portal_user"

    @classmethod
    def try_parse(cls, value: "str | Role") -> Optional["Role"]:
        """Parse a role claim value, returning None for unknown roles."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


MyResearch = Permissions.MyResearch
Sponsor = Permissions.Sponsor
Approvals = Permissions.Approvals


# Applicant: owns project records and raises modifications
APPLICANT_PERMISSIONS: List[Permission] = [
    MyResearch.WORKSPACE_ACCESS,

    MyResearch.PROJECT_RECORD_READ,
    MyResearch.PROJECT_RECORD_CREATE,
    MyResearch.PROJECT_RECORD_UPDATE,
    MyResearch.PROJECT_RECORD_DELETE,
    MyResearch.PROJECT_RECORD_SEARCH,
    MyResearch.PROJECT_RECORD_HISTORY_READ,

    MyResearch.PROJECT_DOCUMENTS_READ,
    MyResearch.PROJECT_DOCUMENTS_UPLOAD,
    MyResearch.PROJECT_DOCUMENTS_UPDATE,
    MyResearch.PROJECT_DOCUMENTS_DOWNLOAD,
    MyResearch.PROJECT_DOCUMENTS_DELETE,

    MyResearch.MODIFICATIONS_CREATE,
    MyResearch.MODIFICATIONS_READ,
    MyResearch.MODIFICATIONS_UPDATE,
    MyResearch.MODIFICATIONS_DELETE,
    MyResearch.MODIFICATIONS_REVIEW,
    MyResearch.MODIFICATIONS_SEARCH,
    MyResearch.MODIFICATIONS_SUBMIT,
    MyResearch.MODIFICATIONS_WITHDRAW,

    MyResearch.MODIFICATIONS_HISTORY_READ,
]

# Sponsor: Sponsor workspace plus read-only My Research
SPONSOR_PERMISSIONS: List[Permission] = [
    Sponsor.WORKSPACE_ACCESS,

    MyResearch.PROJECT_RECORD_READ,
    MyResearch.PROJECT_RECORD_HISTORY_READ,
    MyResearch.PROJECT_DOCUMENTS_READ,
    MyResearch.PROJECT_DOCUMENTS_DOWNLOAD,
    MyResearch.MODIFICATIONS_READ,
    MyResearch.MODIFICATIONS_HISTORY_READ,

    Sponsor.MODIFICATIONS_REVIEW,
    Sponsor.MODIFICATIONS_AUTHORISE,
    Sponsor.MODIFICATIONS_SEARCH,
]

# Workflow Coordinator: assigns modifications to reviewers
WORKFLOW_COORDINATOR_PERMISSIONS: List[Permission] = [
    Approvals.WORKSPACE_ACCESS,

    MyResearch.PROJECT_RECORD_READ,
    MyResearch.PROJECT_RECORD_HISTORY_READ,

    Approvals.PROJECT_RECORDS_SEARCH,
    Approvals.MODIFICATION_RECORDS_SEARCH,
    Approvals.MODIFICATIONS_ASSIGN,
    Approvals.MODIFICATIONS_APPROVE,
    Approvals.MODIFICATIONS_REVIEW,
]

# Team Manager: re-assigns modifications between reviewers
TEAM_MANAGER_PERMISSIONS: List[Permission] = [
    Approvals.WORKSPACE_ACCESS,

    MyResearch.PROJECT_RECORD_READ,
    MyResearch.PROJECT_RECORD_HISTORY_READ,

    Approvals.PROJECT_RECORDS_SEARCH,
    Approvals.MODIFICATION_RECORDS_SEARCH,
    Approvals.MODIFICATIONS_REASSIGN,
    Approvals.MODIFICATIONS_APPROVE,
    Approvals.MODIFICATIONS_REVIEW,
]

# Study-wide Reviewer: reviews and records outcomes
STUDYWIDE_REVIEWER_PERMISSIONS: List[Permission] = [
    Approvals.WORKSPACE_ACCESS,

    MyResearch.PROJECT_RECORD_READ,
    MyResearch.PROJECT_RECORD_HISTORY_READ,

    Approvals.PROJECT_RECORDS_SEARCH,
    Approvals.MODIFICATION_RECORDS_SEARCH,
    Approvals.MODIFICATIONS_APPROVE,
    Approvals.MODIFICATIONS_REVIEW,
    Approvals.MODIFICATIONS_UPDATE,
]


ROLE_PERMISSIONS: Dict[Role, List[Permission]] = {
    Role.APPLICANT: APPLICANT_PERMISSIONS,
    Role.SPONSOR: SPONSOR_PERMISSIONS,
    Role.WORKFLOW_COORDINATOR: WORKFLOW_COORDINATOR_PERMISSIONS,
    Role.TEAM_MANAGER: TEAM_MANAGER_PERMISSIONS,
    Role.STUDYWIDE_REVIEWER: STUDYWIDE_REVIEWER_PERMISSIONS,
}


_REVIEW_BODY_MODIFICATION_STATUSES = [
    ModificationStatus.WITH_REVIEW_BODY.value,
    ModificationStatus.APPROVED.value,
    ModificationStatus.NOT_APPROVED.value,
    DisplayStatus.RECEIVED.value,
    DisplayStatus.REVIEW_IN_PROGRESS.value,
]

_REVIEW_BODY_DOCUMENT_STATUSES = [
    DocumentStatus.WITH_REVIEW_BODY.value,
    DocumentStatus.APPROVED.value,
    DocumentStatus.NOT_APPROVED.value,
    DocumentStatus.REVIEW_IN_PROGRESS.value,
    DocumentStatus.RECEIVED.value,
]

# Record statuses a role may see, per entity type
ROLE_STATUS_PERMISSIONS: Dict[Role, Dict[EntityType, List[str]]] = {
    Role.APPLICANT: {
        EntityType.PROJECT_RECORD: [
            ProjectRecordStatus.IN_DRAFT.value,
            ProjectRecordStatus.ACTIVE.value,
        ],
        EntityType.MODIFICATION: [
            ModificationStatus.IN_DRAFT.value,
            ModificationStatus.WITH_SPONSOR.value,
            ModificationStatus.WITH_REVIEW_BODY.value,
            ModificationStatus.APPROVED.value,
            ModificationStatus.NOT_AUTHORISED.value,
            ModificationStatus.NOT_APPROVED.value,
            ModificationStatus.REQUEST_REVISIONS.value,
            ModificationStatus.WITHDRAWN.value,
        ],
        EntityType.DOCUMENT: [
            DocumentStatus.UPLOADED.value,
            DocumentStatus.FAILED.value,
            DocumentStatus.INCOMPLETE.value,
            DocumentStatus.COMPLETE.value,
            DocumentStatus.WITH_SPONSOR.value,
            DocumentStatus.WITH_REVIEW_BODY.value,
            DocumentStatus.APPROVED.value,
            DocumentStatus.NOT_AUTHORISED.value,
            DocumentStatus.NOT_APPROVED.value,
        ],
    },
    Role.SPONSOR: {
        EntityType.PROJECT_RECORD: [ProjectRecordStatus.ACTIVE.value],
        EntityType.MODIFICATION: [
            ModificationStatus.WITH_SPONSOR.value,
            ModificationStatus.WITH_REVIEW_BODY.value,
            ModificationStatus.APPROVED.value,
            ModificationStatus.NOT_AUTHORISED.value,
            ModificationStatus.NOT_APPROVED.value,
        ],
        EntityType.DOCUMENT: [
            DocumentStatus.WITH_SPONSOR.value,
            DocumentStatus.WITH_REVIEW_BODY.value,
            DocumentStatus.APPROVED.value,
            DocumentStatus.NOT_AUTHORISED.value,
            DocumentStatus.NOT_APPROVED.value,
        ],
    },
    Role.WORKFLOW_COORDINATOR: {
        EntityType.PROJECT_RECORD: [ProjectRecordStatus.ACTIVE.value],
        EntityType.MODIFICATION: _REVIEW_BODY_MODIFICATION_STATUSES,
        EntityType.DOCUMENT: _REVIEW_BODY_DOCUMENT_STATUSES,
    },
    Role.TEAM_MANAGER: {
        EntityType.PROJECT_RECORD: [ProjectRecordStatus.ACTIVE.value],
        EntityType.MODIFICATION: _REVIEW_BODY_MODIFICATION_STATUSES,
        EntityType.DOCUMENT: _REVIEW_BODY_DOCUMENT_STATUSES,
    },
    Role.STUDYWIDE_REVIEWER: {
        EntityType.PROJECT_RECORD: [ProjectRecordStatus.ACTIVE.value],
        EntityType.MODIFICATION: _REVIEW_BODY_MODIFICATION_STATUSES,
        EntityType.DOCUMENT: _REVIEW_BODY_DOCUMENT_STATUSES,
    },
}


_ALL_PORTAL_ROLES = [
    Role.APPLICANT,
    Role.SPONSOR,
    Role.WORKFLOW_COORDINATOR,
    Role.TEAM_MANAGER,
    Role.SYSTEM_ADMINISTRATOR,
    Role.STUDYWIDE_REVIEWER,
    Role.ORGANISATION_ADMINISTRATOR,
]

# Roles allowed into each workspace
WORKSPACE_ROLES: Dict[Workspace, List[Role]] = {
    Workspace.PROFILE: _ALL_PORTAL_ROLES,
    Workspace.MY_RESEARCH: _ALL_PORTAL_ROLES,
    Workspace.SPONSOR: [
        Role.SPONSOR,
        Role.SYSTEM_ADMINISTRATOR,
        Role.ORGANISATION_ADMINISTRATOR,
    ],
    Workspace.SYSTEM_ADMINISTRATION: [Role.SYSTEM_ADMINISTRATOR],
    Workspace.APPROVALS: [
        Role.TEAM_MANAGER,
        Role.STUDYWIDE_REVIEWER,
        Role.WORKFLOW_COORDINATOR,
        Role.SYSTEM_ADMINISTRATOR,
    ],
}


def get_default_role_permissions(role: Role) -> List[Permission]:
    """Get the default permission list for a role (empty for unmapped roles)."""
    return list(ROLE_PERMISSIONS.get(role, []))

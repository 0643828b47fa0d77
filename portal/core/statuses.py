"""Record status vocabularies.

Status values are the labels the record-storage services persist, so they
are compared case-insensitively wherever they come from outside the core.
"""

from enum import Enum


class _LabelEnum(str, Enum):
    """String enum whose members parse from their label, ignoring case."""

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        wanted = str(value).strip().casefold()
        for member in cls:
            if member.value.casefold() == wanted:
                return member
        raise ValueError(f"{value!r} is not a valid {cls.__name__}")


class ModificationStatus(_LabelEnum):
    """Persisted states of a project modification."""

    IN_DRAFT = "In draft"
    WITH_SPONSOR = "With sponsor"
    WITH_REVIEW_BODY = "With review body"
    APPROVED = "Approved"
    NOT_APPROVED = "Not approved"
    NOT_AUTHORISED = "Not authorised"
    REQUEST_REVISIONS = "Request revisions"
    WITHDRAWN = "Withdrawn"


class DisplayStatus(_LabelEnum):
    """Labels shown instead of "With review body". Never persisted."""

    RECEIVED = "Received"
    REVIEW_IN_PROGRESS = "Review in progress"


class ProjectRecordStatus(_LabelEnum):
    IN_DRAFT = "In draft"
    ACTIVE = "Active"


class DocumentStatus(_LabelEnum):
    UPLOADED = "Uploaded"
    FAILED = "Failed"
    INCOMPLETE = "Incomplete"
    COMPLETE = "Complete"
    WITH_SPONSOR = "With sponsor"
    WITH_REVIEW_BODY = "With review body"
    APPROVED = "Approved"
    NOT_AUTHORISED = "Not authorised"
    NOT_APPROVED = "Not approved"
    REVIEW_IN_PROGRESS = "Review in progress"
    RECEIVED = "Received"

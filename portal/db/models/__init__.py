"""Database models for the submission portal."""

from portal.db.models.modification import ProjectModification, ModificationAuditEntry

__all__ = [
    "ProjectModification",
    "ModificationAuditEntry",
]

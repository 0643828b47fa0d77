"""Project modification database models.

Stores modifications and the audit trail of their status transitions.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from portal.core.modification.machine import AuditEntry, ModificationRecord
from portal.core.statuses import ModificationStatus
from portal.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectModification(Base):
    """
    A change request raised against a project record.

    ``status`` only changes through a conditional update that also bumps
    ``version``.
    """
    __tablename__ = "project_modifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_record_id = Column(String(64), nullable=False, index=True)

    # Workflow state
    status = Column(String(50), nullable=False, default=ModificationStatus.IN_DRAFT.value, index=True)
    version = Column(Integer, nullable=False, default=0)

    # Decision details
    review_type = Column(String(50), nullable=True)
    revision_description = Column(Text, nullable=True)
    reason_not_approved = Column(Text, nullable=True)
    reviewer_name = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    audit_entries = relationship(
        "ModificationAuditEntry",
        back_populates="modification",
        order_by="ModificationAuditEntry.created_at",
    )

    def __repr__(self) -> str:
        return f"<ProjectModification {self.id} [{self.status}]>"

    def to_record(self) -> ModificationRecord:
        return ModificationRecord(
            id=self.id,
            project_record_id=self.project_record_id,
            status=ModificationStatus.parse(self.status),
            review_type=self.review_type,
            revision_description=self.revision_description,
            reason_not_approved=self.reason_not_approved,
            reviewer_name=self.reviewer_name,
            version=self.version or 0,
        )


class ModificationAuditEntry(Base):
    """
    Records all status transitions of modifications.

    Rows are only ever inserted.
    """
    __tablename__ = "modification_audit"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    modification_id = Column(
        String(36),
        ForeignKey("project_modifications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Transition details
    outcome = Column(String(50), nullable=False)
    from_status = Column(String(50), nullable=False)
    to_status = Column(String(50), nullable=False)

    # Actor
    actor_id = Column(String(64), nullable=True)

    # Persisted free-text fields
    payload = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    modification = relationship("ProjectModification", back_populates="audit_entries")

    def __repr__(self) -> str:
        return f"<ModificationAuditEntry {self.from_status} -> {self.to_status}>"

    @classmethod
    def create_entry(cls, entry: AuditEntry) -> "ModificationAuditEntry":
        """Build a row from a computed audit entry."""
        return cls(
            modification_id=entry.record_id,
            outcome=entry.outcome.value,
            from_status=entry.old_status.value,
            to_status=entry.new_status.value,
            actor_id=entry.actor_id,
            payload=dict(entry.payload),
            created_at=entry.timestamp,
        )

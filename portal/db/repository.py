"""SQLAlchemy-backed record store.

The status update and its audit row are flushed in the session transaction
and made durable together by ``commit``.
"""

import logging
from typing import Any, List, Mapping, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session, aliased

from portal.core.modification.machine import AuditEntry, ModificationRecord
from portal.core.modification.store import (
    RecordNotFoundError,
    ReviewBodyOccupiedError,
    check_payload,
)
from portal.core.statuses import ModificationStatus
from portal.db.models.modification import ModificationAuditEntry, ProjectModification, utcnow

logger = logging.getLogger(__name__)


class SqlRecordStore:
    """Record store over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, record_id: str) -> ProjectModification:
        row = self.db.get(ProjectModification, record_id)
        if row is None:
            raise RecordNotFoundError(record_id)
        return row

    def add(self, record: ModificationRecord) -> ModificationRecord:
        """Insert a modification (used by seeding and tests)."""
        row = ProjectModification(
            id=record.id,
            project_record_id=record.project_record_id,
            status=record.status.value,
            version=record.version,
            review_type=record.review_type,
            revision_description=record.revision_description,
            reason_not_approved=record.reason_not_approved,
            reviewer_name=record.reviewer_name,
        )
        self.db.add(row)
        self.db.flush()
        return row.to_record()

    def get_record(self, record_id: str) -> ModificationRecord:
        return self._get(record_id).to_record()

    def get_status(self, record_id: str) -> Tuple[ModificationStatus, int]:
        row = self._get(record_id)
        return ModificationStatus.parse(row.status), row.version

    def list_for_project(self, project_record_id: str) -> List[ModificationRecord]:
        rows = self.db.execute(
            select(ProjectModification).where(
                ProjectModification.project_record_id == project_record_id
            )
        ).scalars()
        return [row.to_record() for row in rows]

    def update_status(
        self,
        record_id: str,
        expected: ModificationStatus,
        new: ModificationStatus,
        payload: Mapping[str, Any],
    ) -> bool:
        """Single conditional UPDATE; returns False when the stored status moved on.

        Moving into the review body locks the project's rows first and adds a
        NOT EXISTS predicate on siblings already there.
        """
        check_payload(payload)
        stmt = update(ProjectModification).where(
            ProjectModification.id == record_id,
            ProjectModification.status == expected.value,
        )

        entering_review_body = new is ModificationStatus.WITH_REVIEW_BODY
        if entering_review_body:
            project_record_id = self._get(record_id).project_record_id
            self._lock_project(project_record_id)
            stmt = stmt.where(~self._review_body_sibling(record_id, project_record_id))

        stmt = stmt.values(
            status=new.value,
            version=ProjectModification.version + 1,
            updated_at=utcnow(),
            **dict(payload),
        ).execution_options(synchronize_session=False)

        result = self.db.execute(stmt)
        if result.rowcount == 1:
            # Rows already loaded in this session hold the old status
            self.db.expire_all()
            return True

        # Distinguish an unknown id, an occupied review body and a lost race
        stored = self._stored_status(record_id)
        if entering_review_body and stored == expected.value:
            raise ReviewBodyOccupiedError(record_id, project_record_id)
        logger.debug("Conditional update lost for %s (expected %s)", record_id, expected.value)
        return False

    def _stored_status(self, record_id: str) -> str:
        stored = self.db.execute(
            select(ProjectModification.status).where(ProjectModification.id == record_id)
        ).scalar_one_or_none()
        if stored is None:
            raise RecordNotFoundError(record_id)
        return stored

    def _lock_project(self, project_record_id: str) -> None:
        # Serialises review body entries per project where the backend supports row locks
        self.db.execute(
            select(ProjectModification.id)
            .where(ProjectModification.project_record_id == project_record_id)
            .with_for_update()
        ).all()

    @staticmethod
    def _review_body_sibling(record_id: str, project_record_id: str):
        sibling = aliased(ProjectModification)
        return (
            select(sibling.id)
            .where(
                sibling.project_record_id == project_record_id,
                sibling.status == ModificationStatus.WITH_REVIEW_BODY.value,
                sibling.id != record_id,
            )
            .exists()
        )

    def append_audit(self, entry: AuditEntry) -> None:
        self.db.add(ModificationAuditEntry.create_entry(entry))
        self.db.flush()

    def commit(self) -> None:
        self.db.commit()

    def audit_trail(self, record_id: str) -> List[ModificationAuditEntry]:
        return list(
            self.db.execute(
                select(ModificationAuditEntry)
                .where(ModificationAuditEntry.modification_id == record_id)
                .order_by(ModificationAuditEntry.created_at)
            ).scalars()
        )

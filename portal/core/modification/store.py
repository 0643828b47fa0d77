"""Record storage collaborator.

The review service talks to record storage only through ``RecordStore``.
``update_status`` is a compare-and-swap: it succeeds only when the stored
status still equals ``expected`` and otherwise changes nothing. Moving a
record into the review body additionally requires that no other
modification of the same project is there; the check and the write happen
together, and a clash raises ``ReviewBodyOccupiedError``.
"""

from __future__ import annotations

from dataclasses import replace
import logging
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from portal.core.modification.machine import AuditEntry, ModificationRecord
from portal.core.statuses import ModificationStatus

logger = logging.getLogger(__name__)

# Record fields a transition payload may write
PAYLOAD_FIELDS = frozenset({"review_type", "revision_description", "reason_not_approved"})


class RecordNotFoundError(LookupError):
    """Raised when a modification id is unknown to the store."""

    def __init__(self, record_id: str):
        super().__init__(f"Modification {record_id} not found")
        self.record_id = record_id


class ReviewBodyOccupiedError(Exception):
    """Raised when another modification of the project is already with the review body."""

    def __init__(self, record_id: str, project_record_id: str):
        super().__init__(
            f"Project {project_record_id} already has a modification with the review body"
        )
        self.record_id = record_id
        self.project_record_id = project_record_id


def check_payload(payload: Mapping[str, Any]) -> None:
    unknown = set(payload) - PAYLOAD_FIELDS
    if unknown:
        raise ValueError(f"Unsupported payload fields: {', '.join(sorted(unknown))}")


class RecordStore(Protocol):
    def get_record(self, record_id: str) -> ModificationRecord:
        ...

    def get_status(self, record_id: str) -> Tuple[ModificationStatus, int]:
        ...

    def list_for_project(self, project_record_id: str) -> List[ModificationRecord]:
        ...

    def update_status(
        self,
        record_id: str,
        expected: ModificationStatus,
        new: ModificationStatus,
        payload: Mapping[str, Any],
    ) -> bool:
        """Compare-and-swap the status; False when the stored status moved on.

        Raises:
            RecordNotFoundError: If the id is unknown
            ReviewBodyOccupiedError: If ``new`` is the review body and a sibling is there
        """
        ...

    def append_audit(self, entry: AuditEntry) -> None:
        ...

    def commit(self) -> None:
        ...


class InMemoryRecordStore:
    """Thread-safe in-process store with one lock per record.

    Transitions into the review body also hold a per-project lock, taken
    before the record lock.
    """

    def __init__(self, records: Optional[List[ModificationRecord]] = None):
        self._records: Dict[str, ModificationRecord] = {}
        self._locks: Dict[str, Lock] = {}
        self._project_locks: Dict[str, Lock] = {}
        self._registry_lock = Lock()
        self._audit: List[AuditEntry] = []
        for record in records or []:
            self.add(record)

    def add(self, record: ModificationRecord) -> ModificationRecord:
        with self._registry_lock:
            self._records[record.id] = record
            self._locks.setdefault(record.id, Lock())
        return record

    def _lock_for(self, record_id: str) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(record_id)
        if lock is None:
            raise RecordNotFoundError(record_id)
        return lock

    def _project_lock(self, project_record_id: str) -> Lock:
        with self._registry_lock:
            return self._project_locks.setdefault(project_record_id, Lock())

    def get_record(self, record_id: str) -> ModificationRecord:
        record = self._records.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def get_status(self, record_id: str) -> Tuple[ModificationStatus, int]:
        record = self.get_record(record_id)
        return record.status, record.version

    def list_for_project(self, project_record_id: str) -> List[ModificationRecord]:
        return [
            record for record in list(self._records.values())
            if record.project_record_id == project_record_id
        ]

    def update_status(
        self,
        record_id: str,
        expected: ModificationStatus,
        new: ModificationStatus,
        payload: Mapping[str, Any],
    ) -> bool:
        check_payload(payload)
        record_lock = self._lock_for(record_id)
        if new is not ModificationStatus.WITH_REVIEW_BODY:
            with record_lock:
                return self._swap(record_id, expected, new, payload)

        project_record_id = self._records[record_id].project_record_id
        with self._project_lock(project_record_id), record_lock:
            if self._records[record_id].status is expected and any(
                other.id != record_id and other.status is ModificationStatus.WITH_REVIEW_BODY
                for other in self.list_for_project(project_record_id)
            ):
                raise ReviewBodyOccupiedError(record_id, project_record_id)
            return self._swap(record_id, expected, new, payload)

    def _swap(
        self,
        record_id: str,
        expected: ModificationStatus,
        new: ModificationStatus,
        payload: Mapping[str, Any],
    ) -> bool:
        # Caller holds the record lock
        current = self._records[record_id]
        if current.status is not expected:
            logger.debug(
                "Conditional update lost for %s: expected %s, stored %s",
                record_id, expected.value, current.status.value,
            )
            return False
        self._records[record_id] = replace(
            current,
            status=new,
            version=current.version + 1,
            **dict(payload),
        )
        return True

    def append_audit(self, entry: AuditEntry) -> None:
        with self._registry_lock:
            self._audit.append(entry)

    def commit(self) -> None:
        """Writes are visible immediately; nothing to do."""

    def audit_trail(self, record_id: str) -> List[AuditEntry]:
        return [entry for entry in self._audit if entry.record_id == record_id]

"""Tests for the modification review service."""

import logging
from threading import Barrier, Thread

import pytest

from portal.core.config import FeatureFlags
from portal.core.modification.machine import ErrorCode, FollowUp
from portal.core.modification.service import ModificationReviewService
from portal.core.modification.states import REVIEW_REQUIRED, ReviewOutcome
from portal.core.modification.store import (
    InMemoryRecordStore,
    RecordNotFoundError,
    ReviewBodyOccupiedError,
)
from portal.core.statuses import ModificationStatus
from tests.factories import build_record, build_request


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def service(store, evaluator, features, machine):
    return ModificationReviewService(store, evaluator, features, machine=machine)


class SiblingRaceStore(InMemoryRecordStore):
    """Holds each reader after it lists the siblings until all readers have."""

    def __init__(self, barrier):
        super().__init__()
        self.barrier = barrier

    def list_for_project(self, project_record_id):
        siblings = super().list_for_project(project_record_id)
        self.barrier.wait()
        return siblings


class TestDecide:
    """Test applying decisions end to end."""

    def test_authorise_commits(self, service, store, sponsor):
        """Test an authorisation updates the record and writes an audit entry."""
        record = store.add(build_record())

        result = service.decide(sponsor, build_request(record, ReviewOutcome.AUTHORISED, actor_id="sponsor-1"))

        assert result.applied
        stored = store.get_record(record.id)
        assert stored.status is ModificationStatus.APPROVED
        assert stored.review_type == "No review required"
        assert stored.version == 1

        trail = store.audit_trail(record.id)
        assert len(trail) == 1
        assert trail[0].actor_id == "sponsor-1"
        assert trail[0].new_status is ModificationStatus.APPROVED

    def test_denied_changes_nothing(self, service, store, applicant):
        """Test a denied decision leaves the record and audit untouched."""
        record = store.add(build_record())

        result = service.decide(applicant, build_request(record, ReviewOutcome.AUTHORISED))

        assert result.error is ErrorCode.PERMISSION_DENIED
        assert store.get_record(record.id) == record
        assert store.audit_trail(record.id) == []

    def test_unknown_record(self, service, sponsor):
        """Test an unknown id raises RecordNotFoundError."""
        record = build_record()
        with pytest.raises(RecordNotFoundError) as exc_info:
            service.decide(sponsor, build_request(record, ReviewOutcome.AUTHORISED))
        assert exc_info.value.record_id == record.id

    def test_revision_round_trip(self, service, store, sponsor, applicant):
        """Test a revision request, resubmission and second revision request."""
        record = store.add(build_record())

        first = service.decide(sponsor, build_request(
            record, ReviewOutcome.REQUEST_REVISIONS, revision_description="Add the protocol",
        ))
        assert first.new_status is ModificationStatus.REQUEST_REVISIONS
        assert store.get_record(record.id).revision_description == "Add the protocol"

        resubmitted = service.decide(applicant, build_request(
            store.get_record(record.id), ReviewOutcome.SUBMIT_TO_SPONSOR, is_authoriser=False,
        ))
        assert resubmitted.new_status is ModificationStatus.WITH_SPONSOR
        assert store.get_record(record.id).revision_description is None

        second = service.decide(sponsor, build_request(
            store.get_record(record.id), ReviewOutcome.REQUEST_REVISIONS, revision_description="And the costings",
        ))
        assert second.applied
        assert len(store.audit_trail(record.id)) == 3

    def test_sibling_with_review_body_routes(self, service, store, sponsor):
        """Test authorising while a sibling is with the review body."""
        store.add(build_record(project_record_id="p1", status=ModificationStatus.WITH_REVIEW_BODY))
        record = store.add(build_record(project_record_id="p1"))

        result = service.decide(sponsor, build_request(record, ReviewOutcome.AUTHORISED, review_type=REVIEW_REQUIRED))

        assert result.follow_up is FollowUp.ROUTE_TO_REVIEW_BODY
        assert store.get_record(record.id).status is ModificationStatus.WITH_SPONSOR

    def test_feature_disabled(self, store, evaluator, sponsor):
        """Test a disabled outcome is rejected."""
        service = ModificationReviewService(store, evaluator, FeatureFlags(revision_and_authorisation=False))
        record = store.add(build_record())

        result = service.decide(sponsor, build_request(
            record, ReviewOutcome.REQUEST_REVISIONS, revision_description="x",
        ))

        assert result.error is ErrorCode.FEATURE_DISABLED


class TestConcurrency:
    """Test conditional updates between competing decisions."""

    def test_stale_observed_status(self, service, store, sponsor):
        """Test a decision on an outdated page loses to the committed one."""
        record = store.add(build_record())
        request = build_request(record, ReviewOutcome.AUTHORISED)

        first = service.decide(sponsor, request)
        second = service.decide(sponsor, request)

        assert first.applied
        assert not second.applied
        assert second.error is ErrorCode.STALE_STATE_CONFLICT
        assert len(store.audit_trail(record.id)) == 1

    def test_conflicting_outcomes(self, service, store, sponsor):
        """Test authorise and not-authorise on the same page: only one commits."""
        record = store.add(build_record())

        authorised = service.decide(sponsor, build_request(record, ReviewOutcome.AUTHORISED))
        declined = service.decide(sponsor, build_request(
            record, ReviewOutcome.NOT_AUTHORISED, reason_not_approved="No",
        ))

        assert authorised.applied
        assert declined.error is ErrorCode.STALE_STATE_CONFLICT
        assert store.get_record(record.id).status is ModificationStatus.APPROVED

    def test_parallel_decisions(self, service, store, sponsor):
        """Test exactly one of many simultaneous decisions commits."""
        record = store.add(build_record())
        request = build_request(record, ReviewOutcome.AUTHORISED)
        workers = 8
        barrier = Barrier(workers)
        results = []

        def decide():
            barrier.wait()
            results.append(service.decide(sponsor, request))

        threads = [Thread(target=decide) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sum(1 for r in results if r.applied) == 1
        assert sum(1 for r in results if r.error is ErrorCode.STALE_STATE_CONFLICT) == workers - 1
        assert store.get_record(record.id).version == 1
        assert len(store.audit_trail(record.id)) == 1

    def test_parallel_review_body_submissions(self, evaluator, features, machine, sponsor):
        """Test two siblings sent to the review body at once: only one gets there."""
        store = SiblingRaceStore(Barrier(2, timeout=5))
        service = ModificationReviewService(store, evaluator, features, machine=machine)
        records = [store.add(build_record(project_record_id="p-race")) for _ in range(2)]
        results = []

        def decide(record):
            results.append(service.decide(sponsor, build_request(
                record, ReviewOutcome.AUTHORISED, review_type=REVIEW_REQUIRED,
            )))

        threads = [Thread(target=decide, args=(record,)) for record in records]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 2
        assert sum(1 for r in results if r.applied) == 1
        routed = [r for r in results if not r.applied]
        assert routed[0].follow_up is FollowUp.ROUTE_TO_REVIEW_BODY
        assert routed[0].error is None
        statuses = [store.get_record(record.id).status for record in records]
        assert statuses.count(ModificationStatus.WITH_REVIEW_BODY) == 1
        assert statuses.count(ModificationStatus.WITH_SPONSOR) == 1
        assert sum(len(store.audit_trail(record.id)) for record in records) == 1


class TestReviewBodyExclusion:
    """Test the in-memory store keeps one modification per project with the review body."""

    def test_sibling_with_review_body_blocks_entry(self, store):
        """Test entering the review body raises while a sibling is there."""
        store.add(build_record(project_record_id="p1", status=ModificationStatus.WITH_REVIEW_BODY))
        record = store.add(build_record(project_record_id="p1"))

        with pytest.raises(ReviewBodyOccupiedError) as exc_info:
            store.update_status(
                record.id, ModificationStatus.WITH_SPONSOR, ModificationStatus.WITH_REVIEW_BODY, {},
            )

        assert exc_info.value.project_record_id == "p1"
        assert store.get_record(record.id) == record

    def test_other_targets_unaffected(self, store):
        """Test a sibling with the review body does not block other transitions."""
        store.add(build_record(project_record_id="p1", status=ModificationStatus.WITH_REVIEW_BODY))
        record = store.add(build_record(project_record_id="p1"))

        assert store.update_status(
            record.id, ModificationStatus.WITH_SPONSOR, ModificationStatus.APPROVED, {},
        )

    def test_other_project_unaffected(self, store):
        """Test review body entries of other projects are ignored."""
        store.add(build_record(project_record_id="p1", status=ModificationStatus.WITH_REVIEW_BODY))
        record = store.add(build_record(project_record_id="p2"))

        assert store.update_status(
            record.id, ModificationStatus.WITH_SPONSOR, ModificationStatus.WITH_REVIEW_BODY, {},
        )

    def test_stale_status_reported_first(self, store):
        """Test a moved record is a lost update even when a sibling is with the review body."""
        store.add(build_record(project_record_id="p1", status=ModificationStatus.WITH_REVIEW_BODY))
        record = store.add(build_record(project_record_id="p1", status=ModificationStatus.APPROVED))

        assert not store.update_status(
            record.id, ModificationStatus.WITH_SPONSOR, ModificationStatus.WITH_REVIEW_BODY, {},
        )


class TestCallbacks:
    """Test post-commit callbacks."""

    def test_review_body_callback(self, service, store, sponsor):
        """Test reviewer assignment runs after reaching the review body."""
        seen = []
        service.on_review_body_submission(seen.append)
        record = store.add(build_record())

        result = service.decide(sponsor, build_request(record, ReviewOutcome.AUTHORISED, review_type=REVIEW_REQUIRED))

        assert seen == [result]

    def test_callback_not_run_for_other_status(self, service, store, sponsor):
        """Test callbacks only run for their target status."""
        seen = []
        service.on_review_body_submission(seen.append)
        record = store.add(build_record())

        service.decide(sponsor, build_request(record, ReviewOutcome.AUTHORISED))

        assert seen == []

    def test_callback_not_run_on_conflict(self, service, store, sponsor):
        """Test a lost conditional update runs no callbacks."""
        seen = []
        service.register_callback(ModificationStatus.APPROVED, seen.append)
        record = store.add(build_record())
        request = build_request(record, ReviewOutcome.AUTHORISED)

        service.decide(sponsor, request)
        service.decide(sponsor, request)

        assert len(seen) == 1

    def test_failing_callback_keeps_commit(self, service, store, sponsor, caplog):
        """Test a failing callback is logged and the transition stands."""
        def explode(result):
            raise RuntimeError("assignment service down")

        seen = []
        service.register_callback(ModificationStatus.APPROVED, explode)
        service.register_callback(ModificationStatus.APPROVED, seen.append)
        record = store.add(build_record())

        with caplog.at_level(logging.ERROR, logger="portal.core.modification.service"):
            result = service.decide(sponsor, build_request(record, ReviewOutcome.AUTHORISED))

        assert result.applied
        assert len(seen) == 1
        assert store.get_record(record.id).status is ModificationStatus.APPROVED
        assert "Callback" in caplog.text

"""Tests for the transition guard."""

import pytest

from portal.core.config import FeatureFlags
from portal.core.modification.guard import GuardReason, TransitionGuard
from portal.core.modification.states import ReviewOutcome
from portal.core.policy.engine import DecisionReason
from portal.core.rbac.roles import Role
from portal.core.statuses import ModificationStatus
from tests.factories import build_record, build_request


@pytest.fixture
def guard(evaluator, features):
    return TransitionGuard(evaluator, features)


class TestGuardAllows:
    """Test requests that pass every check."""

    def test_sponsor_authorises(self, guard, sponsor):
        """Test an authorising sponsor on a record with the sponsor."""
        record = build_record(status=ModificationStatus.WITH_SPONSOR)
        result = guard.check(sponsor, record, build_request(record, ReviewOutcome.AUTHORISED))
        assert result.allowed
        assert result.reason is GuardReason.ALLOWED
        assert result.decision.allow

    def test_applicant_submits(self, guard, applicant):
        """Test an applicant submitting a draft."""
        record = build_record(status=ModificationStatus.IN_DRAFT)
        result = guard.check(
            applicant, record, build_request(record, ReviewOutcome.SUBMIT_TO_SPONSOR, is_authoriser=False)
        )
        assert result

    def test_reviewer_records_outcome(self, guard, reviewer):
        """Test a reviewer approving a record with the review body."""
        record = build_record(status=ModificationStatus.WITH_REVIEW_BODY)
        result = guard.check(reviewer, record, build_request(record, ReviewOutcome.REVIEW_APPROVED))
        assert result


class TestGuardDenies:
    """Test each failing check."""

    def test_missing_permission(self, guard, applicant):
        """Test an applicant cannot authorise."""
        record = build_record(status=ModificationStatus.WITH_SPONSOR)
        result = guard.check(applicant, record, build_request(record, ReviewOutcome.AUTHORISED))
        assert not result
        assert result.reason is GuardReason.PERMISSION_DENIED
        assert result.decision.reason is DecisionReason.MISSING_TOKENS

    def test_status_gate_uses_observed_status(self, guard, sponsor):
        """Test the status gate is evaluated on the observed status."""
        record = build_record(status=ModificationStatus.IN_DRAFT)
        result = guard.check(sponsor, record, build_request(record, ReviewOutcome.AUTHORISED))
        assert result.reason is GuardReason.PERMISSION_DENIED
        assert result.decision.reason is DecisionReason.STATUS_NOT_ALLOWED

    def test_not_an_authoriser(self, guard, sponsor):
        """Test a sponsor without the authoriser flag cannot decide."""
        record = build_record(status=ModificationStatus.WITH_SPONSOR)
        result = guard.check(
            sponsor, record, build_request(record, ReviewOutcome.AUTHORISED, is_authoriser=False)
        )
        assert result.reason is GuardReason.PERMISSION_DENIED

    def test_invalid_source_state(self, guard, applicant):
        """Test withdrawing a record the applicant can see but not withdraw."""
        record = build_record(status=ModificationStatus.APPROVED)
        result = guard.check(applicant, record, build_request(record, ReviewOutcome.WITHDRAW))
        assert result.reason is GuardReason.INVALID_SOURCE_STATE

    def test_feature_disabled(self, evaluator, sponsor):
        """Test a disabled outcome is rejected."""
        guard = TransitionGuard(evaluator, FeatureFlags(revision_and_authorisation=False))
        record = build_record(status=ModificationStatus.WITH_SPONSOR)
        result = guard.check(
            sponsor, record, build_request(record, ReviewOutcome.REQUEST_REVISIONS)
        )
        assert result.reason is GuardReason.FEATURE_DISABLED
        assert result.decision is None


class TestGuardOrdering:
    """Test the order checks run in."""

    def test_feature_before_permission(self, evaluator, applicant):
        """Test a disabled feature is reported before a missing permission."""
        guard = TransitionGuard(evaluator, FeatureFlags(revision_and_authorisation=False))
        record = build_record(status=ModificationStatus.WITH_SPONSOR)
        result = guard.check(applicant, record, build_request(record, ReviewOutcome.REQUEST_REVISIONS))
        assert result.reason is GuardReason.FEATURE_DISABLED

    def test_permission_before_source_state(self, guard, reviewer):
        """Test a security failure is never reported as a stale page."""
        record = build_record(status=ModificationStatus.APPROVED)
        result = guard.check(reviewer, record, build_request(record, ReviewOutcome.WITHDRAW))
        assert result.reason is GuardReason.PERMISSION_DENIED


class TestGuardAdmin:
    """Test the system administrator path."""

    def test_admin_needs_no_authoriser_flag(self, guard, admin):
        """Test admin bypasses the authoriser requirement."""
        record = build_record(status=ModificationStatus.WITH_SPONSOR)
        result = guard.check(admin, record, build_request(record, ReviewOutcome.AUTHORISED, is_authoriser=False))
        assert result.allowed

    def test_admin_still_needs_valid_source_state(self, guard, admin):
        """Test admin cannot apply an outcome from the wrong state."""
        record = build_record(status=ModificationStatus.APPROVED)
        result = guard.check(admin, record, build_request(record, ReviewOutcome.AUTHORISED))
        assert result.reason is GuardReason.INVALID_SOURCE_STATE

    def test_admin_still_subject_to_feature_flags(self, evaluator, make_principal):
        """Test admin cannot use a disabled outcome."""
        guard = TransitionGuard(evaluator, FeatureFlags(withdraw_modification=False))
        admin = make_principal(Role.SYSTEM_ADMINISTRATOR)
        record = build_record(status=ModificationStatus.IN_DRAFT)
        result = guard.check(admin, record, build_request(record, ReviewOutcome.WITHDRAW))
        assert result.reason is GuardReason.FEATURE_DISABLED

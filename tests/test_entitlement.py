"""Tests for entitlement.py — payment review state machine and premium grant."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from entitlement import (
    APPROVED,
    APPROVED_PENDING_GRANT,
    PENDING,
    REJECTED,
    check_transition,
    retry_grant,
    review_payment,
)
from errors import ConnectivityError, GrantPendingError, StateError, ValidationError
from models import User


@pytest.fixture
def buyer(store):
    return store.users.save(User(email="buyer@example.com", name="Buyer"))


def _seed_payment(parse, status=PENDING, email="buyer@example.com"):
    return parse.seed("Payments", {
        "userEmail": email, "userName": "Buyer", "amount": 1500,
        "type": "PREMIUM", "status": status, "timestamp": "2026-01-01T08:00:00", "planId": "monthly",
    })


def _status(parse, payment_id):
    return parse.classes["Payments"][payment_id]["status"]


def _premium(store, email="buyer@example.com"):
    return store.users.get_by_key(email).is_premium


class TestCheckTransition:
    def test_pending_moves(self):
        assert check_transition(PENDING, APPROVED) is True
        assert check_transition(PENDING, REJECTED) is True

    def test_reapprove_is_noop(self):
        assert check_transition(APPROVED, APPROVED) is False

    @pytest.mark.parametrize("current,target", [
        (APPROVED, REJECTED),
        (REJECTED, APPROVED),
        (REJECTED, REJECTED),
        (APPROVED_PENDING_GRANT, REJECTED),
    ])
    def test_illegal_moves(self, current, target):
        with pytest.raises(StateError):
            check_transition(current, target)

    def test_unknown_decision(self):
        with pytest.raises(ValidationError):
            check_transition(PENDING, PENDING)


class TestReviewPayment:
    def test_approve_grants_premium(self, store, parse, buyer):
        pid = _seed_payment(parse)
        outcome = review_payment(store, pid, APPROVED)
        assert outcome.changed and outcome.premium_granted
        assert outcome.previous_status == PENDING
        assert _status(parse, pid) == APPROVED
        assert _premium(store)

    def test_reject_leaves_user_free(self, store, parse, buyer):
        pid = _seed_payment(parse)
        outcome = review_payment(store, pid, REJECTED)
        assert outcome.status == REJECTED
        assert _status(parse, pid) == REJECTED
        assert not _premium(store)

    def test_reapprove_does_not_write(self, store, parse, buyer):
        pid = _seed_payment(parse)
        review_payment(store, pid, APPROVED)
        writes_before = sum(1 for method, _ in parse.calls if method == "update")

        outcome = review_payment(store, pid, APPROVED)

        writes_after = sum(1 for method, _ in parse.calls if method == "update")
        assert writes_after == writes_before
        assert outcome.changed is False
        assert outcome.premium_granted is True

    def test_reject_after_approve_is_state_error(self, store, parse, buyer):
        pid = _seed_payment(parse)
        review_payment(store, pid, APPROVED)
        with pytest.raises(StateError):
            review_payment(store, pid, REJECTED)
        assert _status(parse, pid) == APPROVED

    def test_approve_after_reject_is_state_error(self, store, parse, buyer):
        pid = _seed_payment(parse)
        review_payment(store, pid, REJECTED)
        with pytest.raises(StateError):
            review_payment(store, pid, APPROVED)
        assert not _premium(store)

    def test_missing_payment(self, store):
        with pytest.raises(StateError):
            review_payment(store, "nope", APPROVED)

    def test_grant_failure_leaves_pending_grant(self, store, parse, buyer):
        pid = _seed_payment(parse)
        parse.fail_on.add(("update", "Users"))
        with pytest.raises(GrantPendingError) as exc:
            review_payment(store, pid, APPROVED)
        assert exc.value.retryable is True
        assert exc.value.payment_id == pid
        assert _status(parse, pid) == APPROVED_PENDING_GRANT
        assert not _premium(store)

    def test_missing_user_leaves_pending_grant(self, store, parse):
        pid = _seed_payment(parse, email="nobody@example.com")
        with pytest.raises(GrantPendingError):
            review_payment(store, pid, APPROVED)
        assert _status(parse, pid) == APPROVED_PENDING_GRANT

    def test_final_status_write_failure(self, store, parse, buyer):
        pid = _seed_payment(parse)
        real = store.payments.set_status

        def flaky(payment_id, status):
            if status == APPROVED:
                raise ConnectivityError("timeout")
            real(payment_id, status)

        with patch.object(store.payments, "set_status", side_effect=flaky):
            with pytest.raises(GrantPendingError):
                review_payment(store, pid, APPROVED)
        assert _premium(store)
        assert _status(parse, pid) == APPROVED_PENDING_GRANT


class TestRetryGrant:
    def test_retry_completes_approval(self, store, parse, buyer):
        pid = _seed_payment(parse)
        parse.fail_on.add(("update", "Users"))
        with pytest.raises(GrantPendingError):
            review_payment(store, pid, APPROVED)

        parse.fail_on.clear()
        outcome = retry_grant(store, pid)
        assert outcome.status == APPROVED
        assert outcome.previous_status == APPROVED_PENDING_GRANT
        assert _status(parse, pid) == APPROVED
        assert _premium(store)

    def test_retry_requires_pending_grant(self, store, parse, buyer):
        pid = _seed_payment(parse)
        with pytest.raises(StateError):
            retry_grant(store, pid)

    def test_store_facade_delegates(self, store, parse, buyer):
        pid = _seed_payment(parse)
        outcome = store.update_payment_status(pid, APPROVED)
        assert outcome.status == APPROVED

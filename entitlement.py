"""
Payment proof lifecycle and the premium grant it drives.

    PENDING ──approve──> APPROVED_PENDING_GRANT ──grant ok──> APPROVED
       │                          │
       └──reject──> REJECTED      └──(grant failed: stays, admin retries)

APPROVED and REJECTED are terminal. APPROVED_PENDING_GRANT is what an
approval looks like while the user's premium flag has not been written yet;
if that write fails the proof stays there, distinguishable from a completed
approval, and approving it again retries the grant.

Re-approving an APPROVED proof is a no-op that re-reads (never re-writes)
the linked user to report whether the grant still holds. Every other move
out of a terminal state is a StateError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from errors import ConnectivityError, GrantPendingError, StateError, ValidationError

if TYPE_CHECKING:
    from cloud_store import CloudStore

logger = logging.getLogger(__name__)

PENDING = "PENDING"
APPROVED = "APPROVED"
REJECTED = "REJECTED"
APPROVED_PENDING_GRANT = "APPROVED_PENDING_GRANT"

ALL_STATUSES = (PENDING, APPROVED, REJECTED, APPROVED_PENDING_GRANT)
DECISIONS = (APPROVED, REJECTED)

TRANSITIONS: dict[str, tuple[str, ...]] = {
    PENDING: (APPROVED, REJECTED),
    APPROVED_PENDING_GRANT: (APPROVED,),
    APPROVED: (),
    REJECTED: (),
}


@dataclass
class ReviewOutcome:
    payment_id: str
    previous_status: str
    status: str
    changed: bool
    premium_granted: bool = False

    def to_dict(self) -> dict:
        return {
            "payment_id": self.payment_id,
            "previous_status": self.previous_status,
            "status": self.status,
            "changed": self.changed,
            "premium_granted": self.premium_granted,
        }


def check_transition(current: str, target: str) -> bool:
    """Validate a status move.

    Returns True when the move changes state, False for the re-approval
    no-op. Raises StateError for anything else.
    """
    if target not in DECISIONS:
        raise ValidationError(f"Unsupported payment decision: {target}")
    if current == APPROVED and target == APPROVED:
        return False
    if target not in TRANSITIONS.get(current, ()):
        raise StateError(f"Cannot move a {current} payment to {target}")
    return True


def review_payment(store: CloudStore, payment_id: str, decision: str) -> ReviewOutcome:
    """Apply an admin decision to a payment proof."""
    proof = store.payments.get_by_key(payment_id)
    if proof is None:
        raise StateError(f"Payment {payment_id} not found")

    previous = proof.status
    if not check_transition(previous, decision):
        holds = _premium_holds(store, proof.user_email)
        logger.info("Payment %s already approved; premium grant holds=%s", payment_id, holds)
        return ReviewOutcome(payment_id, previous, APPROVED, changed=False, premium_granted=holds)

    if decision == REJECTED:
        store.payments.set_status(payment_id, REJECTED)
        logger.info("Payment %s rejected (user %s)", payment_id, proof.user_email)
        return ReviewOutcome(payment_id, previous, REJECTED, changed=True)

    if previous == PENDING:
        store.payments.set_status(payment_id, APPROVED_PENDING_GRANT)

    _grant_premium(store, payment_id, proof.user_email)

    try:
        store.payments.set_status(payment_id, APPROVED)
    except ConnectivityError as e:
        raise GrantPendingError(
            f"Premium granted to {proof.user_email} but payment status was not finalised; retry the approval.",
            payment_id=payment_id,
        ) from e

    logger.info("Payment %s approved; %s upgraded to premium", payment_id, proof.user_email)
    return ReviewOutcome(payment_id, previous, APPROVED, changed=True, premium_granted=True)


def retry_grant(store: CloudStore, payment_id: str) -> ReviewOutcome:
    """Re-run the premium grant for a proof stuck in APPROVED_PENDING_GRANT."""
    proof = store.payments.get_by_key(payment_id)
    if proof is None:
        raise StateError(f"Payment {payment_id} not found")
    if proof.status != APPROVED_PENDING_GRANT:
        raise StateError(f"Payment {payment_id} is {proof.status}, nothing to retry")
    return review_payment(store, payment_id, APPROVED)


def _grant_premium(store: CloudStore, payment_id: str, email: str) -> None:
    try:
        found = store.users.set_premium(email, True)
    except ConnectivityError as e:
        logger.error("Premium grant for payment %s failed: %s", payment_id, e)
        raise GrantPendingError(
            f"Payment approved but upgrading {email} failed; retry the grant.",
            payment_id=payment_id,
        ) from e
    if not found:
        logger.error("Payment %s approved but no user has email %s", payment_id, email)
        raise GrantPendingError(
            f"Payment approved but no account exists for {email}.",
            payment_id=payment_id,
        )


def _premium_holds(store: CloudStore, email: str) -> bool:
    user = store.users.get_by_key(email)
    return bool(user and user.is_premium)

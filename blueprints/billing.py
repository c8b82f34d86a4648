"""Premium plans, bank-transfer details and payment proof submission."""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify
from flask_login import login_required

from audit import log_event
from catalog import PREMIUM_PLANS, get_plan
from entitlement import PENDING
from errors import ValidationError
from helpers import current_session, get_store, request_data
from models import PAYMENT_MOCK_EXAM, PAYMENT_PREMIUM, PaymentProof

logger = logging.getLogger(__name__)

bp = Blueprint("billing", __name__)

PROOF_SUBMITTED_NOTICE = "Payment proof submitted! Verification usually takes 1-2 hours."


@bp.route("/api/billing/plans")
@login_required
def plans():
    return jsonify({
        "plans": [p.to_dict() for p in PREMIUM_PLANS],
        "bank": get_store().settings.get().to_dict(),
    })


@bp.route("/api/billing/settings")
@login_required
def bank_details():
    return jsonify(get_store().settings.get().to_dict())


@bp.route("/api/billing/proof", methods=["POST"])
@login_required
def submit_proof():
    """Record a bank-transfer proof for admin review.

    The amount always comes from the chosen plan or exam, never from the
    request body.
    """
    session = current_session()
    user = session.user
    if user.is_admin:
        raise ValidationError("Admin accounts cannot submit payments.")

    data = request_data()
    payment_type = data.get("type") or PAYMENT_PREMIUM
    store = get_store()
    plan_id = exam_id = None

    if payment_type == PAYMENT_PREMIUM:
        plan = get_plan(data.get("planId") or "")
        if plan is None:
            raise ValidationError("Please choose a valid premium plan.")
        plan_id, amount = plan.id, plan.price
    elif payment_type == PAYMENT_MOCK_EXAM:
        exam = store.exams.get_by_key(data.get("examId") or "") if data.get("examId") else None
        if exam is None:
            raise ValidationError("Please choose a valid mock exam.")
        exam_id, amount = exam.id, exam.fee
    else:
        raise ValidationError(f"Unknown payment type: {payment_type}")

    proof = PaymentProof(
        user_id=user.id,
        user_name=user.name,
        user_email=user.email,
        amount=amount,
        type=payment_type,
        status=PENDING,
        timestamp="",
        plan_id=plan_id,
        exam_id=exam_id,
        proof_url=data.get("proofUrl") or None,
    )
    store.payments.submit(proof)
    session.notify(PROOF_SUBMITTED_NOTICE)
    log_event("payment_submitted", user.email, f"payment={proof.id} type={payment_type} amount={amount}")
    return jsonify({"success": True, "payment": proof.to_dict(), "message": PROOF_SUBMITTED_NOTICE}), 201


@bp.route("/api/billing/payments")
@login_required
def my_payments():
    user = current_session().user
    return jsonify({"payments": [p.to_dict() for p in get_store().payments.list_for(user.email)]})

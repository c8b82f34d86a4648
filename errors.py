"""
Error taxonomy shared by the gateway, the entitlement workflow and the routes.

Routes translate these into JSON error responses; the background sync loop
only logs them.
"""

from __future__ import annotations


class ExamProError(Exception):
    """Base class for application errors."""

    status_code = 500

    def to_dict(self) -> dict:
        return {"error": str(self)}


class ConnectivityError(ExamProError):
    """Network or transport failure talking to the document store or the AI service."""

    status_code = 503


class DecodeError(ExamProError):
    """A store record or model response did not match the expected shape."""

    status_code = 502


class ValidationError(ExamProError):
    """Bad user input: missing fields, duplicate email, wrong credentials."""

    status_code = 400


class AuthenticationError(ValidationError):
    """Wrong email or password."""

    status_code = 401


class StateError(ExamProError):
    """An action that is illegal in the record's current state."""

    status_code = 409
    retryable = False

    def to_dict(self) -> dict:
        return {"error": str(self), "retryable": self.retryable}


class GrantPendingError(StateError):
    """Payment was approved but the premium grant did not land.

    The payment is left in APPROVED_PENDING_GRANT so the admin console can
    offer a retry.
    """

    retryable = True

    def __init__(self, message: str, payment_id: str = ""):
        super().__init__(message)
        self.payment_id = payment_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["payment_id"] = self.payment_id
        return data

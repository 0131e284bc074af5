"""Error taxonomy for the redemption and settlement pipeline.

Every error carries a stable ``kind`` string; the HTTP layer maps it to a
status code and puts the kind in the response body so clients never have to
parse messages.
"""
from typing import Any, Dict, Optional

from fastapi import status


class PaylinkError(Exception):
    kind = "paylink_error"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Request could not be completed"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        data = {"error": self.kind}
        data.update(self.context)
        return data


# Link errors: user-facing, not retryable without a new link

class LinkError(PaylinkError):
    kind = "link_error"


class LinkNotFound(LinkError):
    kind = "link_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Payment link not found or inactive"


class LinkExpired(LinkError):
    kind = "link_expired"
    status_code = status.HTTP_410_GONE
    message = "This payment link has expired"


class LinkExhausted(LinkError):
    kind = "link_exhausted"
    status_code = status.HTTP_410_GONE
    message = "This payment link has reached its download limit"


class UnsupportedCurrency(PaylinkError):
    kind = "unsupported_currency"
    status_code = 422
    message = "Currency is not supported"


# Ledger errors

class DuplicateTransaction(PaylinkError):
    kind = "duplicate_transaction"
    status_code = status.HTTP_409_CONFLICT
    message = "A transaction with this reference already exists"

    def __init__(self, existing, message: Optional[str] = None):
        self.existing = existing
        super().__init__(message, transaction_id=existing.id)


class TransactionNotFound(PaylinkError):
    kind = "transaction_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Transaction not found"


class InvalidTransition(PaylinkError):
    kind = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT
    message = "Transaction is already settled"


# Gateway / verification

class GatewayError(PaylinkError):
    kind = "gateway_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Unable to initialize payment. Please try again."


class VerificationTimeout(PaylinkError):
    kind = "verification_timeout"
    status_code = status.HTTP_202_ACCEPTED
    message = "Payment is still being confirmed. Please retry shortly or contact support."


# Grant errors

class GrantError(PaylinkError):
    kind = "grant_error"
    status_code = status.HTTP_403_FORBIDDEN


class GrantUnauthorized(GrantError):
    kind = "grant_unauthorized"
    status_code = status.HTTP_403_FORBIDDEN
    message = "Email does not match this purchase"


class GrantNotCompleted(GrantError):
    kind = "grant_not_completed"
    status_code = status.HTTP_409_CONFLICT
    message = "Payment has not been completed"


class QuotaExceeded(GrantError):
    kind = "quota_exceeded"
    status_code = status.HTTP_409_CONFLICT
    message = "Download limit reached for this link. Please contact support."

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["needs_support"] = True
        return data


class GrantInvalid(GrantError):
    kind = "grant_invalid"
    status_code = status.HTTP_410_GONE
    message = "Download link is invalid or has expired"


class GrantConsumed(GrantError):
    kind = "grant_consumed"
    status_code = status.HTTP_410_GONE
    message = "Download link has already been used"

"""Fulfillment exceptions."""

from typing import Any, Dict, Optional

from fulfillment.domain.states import ErrorType, Severity


class FulfillmentError(Exception):
    """
    Fatal pipeline error.
    Raising it out of the webhook handler makes the route answer 500 so
    Stripe redelivers the event.
    """

    error_type = ErrorType.SYSTEM
    severity = Severity.HIGH
    code = "FULFILLMENT_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if severity:
            self.severity = severity
        self.context = context or {}

    def as_fields(self) -> Dict[str, Any]:
        """Fields for structured logs and analytics error events."""
        return {
            "type": self.error_type.value,
            "severity": self.severity.value,
            "code": self.code,
            **self.context,
        }


class ValidationError(FulfillmentError):
    error_type = ErrorType.VALIDATION
    code = "VALIDATION_ERROR"


class PaymentError(FulfillmentError):
    error_type = ErrorType.PAYMENT
    code = "PAYMENT_ERROR"


class TicketCreationError(FulfillmentError):
    severity = Severity.CRITICAL
    code = "TICKET_CREATION_FAILED"


class UpgradeError(FulfillmentError):
    error_type = ErrorType.PAYMENT
    severity = Severity.CRITICAL
    code = "UPGRADE_COMPLETION_ERROR"


class VoucherAlreadyRedeemedError(ValidationError):
    """A partnership voucher code was already used by another checkout."""

    code = "VOUCHER_ALREADY_REDEEMED"

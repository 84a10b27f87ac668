"""
Error taxonomy for the access layer.

Every error carries a stable ``code``, a user-safe ``message`` and the HTTP
status it renders as at the API boundary. Messages never contain provider or
internal details; those go to the logs (see ``tierguard.core.error_logger``).
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response body."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class TierguardError(Exception):
    """Base exception for the access layer."""

    status_code: int = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class AuthResolutionError(TierguardError):
    """The identity provider could not be reached."""

    status_code = 401

    def __init__(self, message: str = "Authentication required", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTH_RESOLUTION_ERROR", message, details)


class SubscriptionFetchError(TierguardError):
    """The subscription record could not be fetched."""

    status_code = 503

    def __init__(self, message: str = "Unable to verify subscription status. Please try again.",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("SUBSCRIPTION_FETCH_ERROR", message, details)


class InvalidPriceIdentifier(TierguardError):
    """Checkout was requested for a price outside the allowlist."""

    status_code = 400

    def __init__(self, message: str = "Invalid request", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_PRICE", message, details)


class MissingBillingConfiguration(TierguardError):
    """Billing provider keys or prices are not configured."""

    status_code = 400

    def __init__(self, message: str = "Billing is not available", details: Optional[Dict[str, Any]] = None):
        super().__init__("BILLING_NOT_CONFIGURED", message, details)


class PortalCustomerNotFound(TierguardError):
    """The account never subscribed, so there is no billing customer."""

    status_code = 404

    def __init__(self, message: str = "No subscription found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NO_SUBSCRIPTION_FOUND", message, details)


class BillingProviderError(TierguardError):
    """The billing provider rejected or failed a session request."""

    status_code = 502

    def __init__(self, message: str = "An error occurred processing your request",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__("BILLING_PROVIDER_ERROR", message, details)

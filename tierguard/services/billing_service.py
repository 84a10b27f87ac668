import logging
from typing import Optional

import stripe

from tierguard.core.config import Settings, settings as default_settings
from tierguard.core.error_logger import log_failure
from tierguard.core.exceptions import (BillingProviderError, InvalidPriceIdentifier,
                                       MissingBillingConfiguration, PortalCustomerNotFound)

logger = logging.getLogger(__name__)


class BillingService:
    """Checkout and customer portal sessions with the billing provider (Stripe)."""

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.logger = logging.getLogger(__name__)

    def resolve_return_origin(self, origin: Optional[str]) -> str:
        """Origin for post-billing redirects; exact allowlist match or the default origin."""
        candidate = (origin or "").rstrip("/")
        if candidate and candidate in self.config.allowed_origins:
            return candidate
        if origin:
            self.logger.warning(f"resolve_return_origin: Unrecognized origin '{origin}', using default")
        return self.config.default_app_origin.rstrip("/")

    def _require_secret_key(self) -> str:
        if not self.config.stripe_secret_key:
            self.logger.error("billing: STRIPE_SECRET_KEY is not set")
            raise MissingBillingConfiguration()
        return self.config.stripe_secret_key

    def _find_customer_id(self, email: Optional[str]) -> Optional[str]:
        if not email:
            return None
        customers = stripe.Customer.list(email=email, limit=1)
        if not customers.data:
            return None
        return customers.data[0].id

    def create_checkout_session(
        self,
        user_id: str,
        email: Optional[str],
        price_id: Optional[str],
        origin: Optional[str] = None,
    ) -> dict:
        """Create a subscription checkout session for an allowlisted price."""
        self.logger.info(f"create_checkout_session: Entry - user: {user_id}, price: {price_id}")

        allowed = self.config.allowed_price_ids
        if not allowed:
            self.logger.error("create_checkout_session: No checkout prices configured")
            raise MissingBillingConfiguration()
        if not price_id or price_id not in allowed:
            self.logger.warning(f"create_checkout_session: Rejected price - user: {user_id}, price: {price_id}")
            raise InvalidPriceIdentifier()

        stripe.api_key = self._require_secret_key()
        base_url = self.resolve_return_origin(origin)

        try:
            customer_id = self._find_customer_id(email)
            params = {
                'mode': "subscription",
                'line_items': [{'price': price_id, 'quantity': 1}],
                'client_reference_id': user_id,
                'metadata': {'user_id': user_id},
                'success_url': f"{base_url}{self.config.checkout_success_path}",
                'cancel_url': f"{base_url}{self.config.checkout_cancel_path}",
                'allow_promotion_codes': True,
            }
            if customer_id:
                params['customer'] = customer_id
            elif email:
                params['customer_email'] = email

            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            log_failure(self.logger, "create_checkout_session", e, user=user_id)
            raise BillingProviderError() from e

        self.logger.info(f"create_checkout_session: Success - user: {user_id}, session: {session.id}")
        return {'url': session.url, 'session_id': session.id}

    def create_portal_session(self, user_id: str, email: Optional[str], origin: Optional[str] = None) -> dict:
        """Create a billing portal session for an existing customer."""
        self.logger.info(f"create_portal_session: Entry - user: {user_id}")

        stripe.api_key = self._require_secret_key()
        base_url = self.resolve_return_origin(origin)

        try:
            customer_id = self._find_customer_id(email)
            if not customer_id:
                self.logger.info(f"create_portal_session: No customer - user: {user_id}")
                raise PortalCustomerNotFound()

            portal_session = stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=f"{base_url}{self.config.portal_return_path}",
            )
        except stripe.StripeError as e:
            log_failure(self.logger, "create_portal_session", e, user=user_id)
            raise BillingProviderError() from e

        self.logger.info(f"create_portal_session: Success - user: {user_id}")
        return {'url': portal_session.url}

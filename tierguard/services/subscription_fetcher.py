import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

import stripe
from sqlalchemy.orm import Session

from tierguard.core.config import Settings, settings as default_settings
from tierguard.core.database import SessionLocal
from tierguard.core.exceptions import SubscriptionFetchError
from tierguard.models.entitlement import SubscriptionRecord
from tierguard.models.user import User

logger = logging.getLogger(__name__)


class SubscriptionFetcher(Protocol):
    async def fetch(self, user_id: str) -> SubscriptionRecord:
        ...


def _field(obj, name: str):
    """Read a field from a Stripe object or a plain dict, None when absent."""
    try:
        return obj[name]
    except (KeyError, TypeError):
        return None


class StripeSubscriptionFetcher:
    """
    Builds a SubscriptionRecord from the account row and Stripe.

    The trial window starts at account creation. Subscription state comes from
    the first active Stripe subscription of the customer matched by email.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        config: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.config = config or default_settings
        self.logger = logging.getLogger(__name__)

    async def fetch(self, user_id: str) -> SubscriptionRecord:
        return await asyncio.to_thread(self._fetch_sync, user_id)

    def plan_name_for_price(self, price_id: Optional[str]) -> Optional[str]:
        if price_id and price_id == self.config.stripe_price_start:
            return "Start"
        if price_id and price_id == self.config.stripe_price_pro:
            return "Pro"
        return None

    def _load_account(self, user_id: str) -> tuple:
        db = self.session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if not user or not user.is_active:
                raise SubscriptionFetchError(details={'reason': 'user_not_found'})
            return user.email, user.created_at
        finally:
            db.close()

    def _fetch_sync(self, user_id: str) -> SubscriptionRecord:
        self.logger.info(f"fetch_subscription_record: Entry - user: {user_id}")

        if not self.config.stripe_secret_key:
            raise SubscriptionFetchError(details={'reason': 'stripe_not_configured'})

        email, created_at = self._load_account(user_id)
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        trial_end = created_at + timedelta(days=self.config.trial_days)

        stripe.api_key = self.config.stripe_secret_key
        customers = stripe.Customer.list(email=email, limit=1)
        if not customers.data:
            self.logger.info(f"fetch_subscription_record: Success - user: {user_id}, no customer")
            return SubscriptionRecord(subscribed=False, trial_end=trial_end)

        customer_id = customers.data[0].id
        subscriptions = stripe.Subscription.list(customer=customer_id, status="active", limit=1)
        if not subscriptions.data:
            self.logger.info(f"fetch_subscription_record: Success - user: {user_id}, no active subscription")
            return SubscriptionRecord(subscribed=False, trial_end=trial_end)

        subscription = subscriptions.data[0]
        item = _field(subscription, "items")["data"][0]
        price_id = _field(_field(item, "price"), "id")

        # Newer API versions moved the billing period onto the subscription item
        period_end = _field(subscription, "current_period_end") or _field(item, "current_period_end")
        subscription_end = (
            datetime.fromtimestamp(period_end, tz=timezone.utc) if isinstance(period_end, int) else None
        )

        record = SubscriptionRecord(
            subscribed=True,
            plan_name=self.plan_name_for_price(price_id),
            subscription_end=subscription_end,
            trial_end=trial_end,
        )
        self.logger.info(
            f"fetch_subscription_record: Success - user: {user_id}, plan: {record.plan_name}")
        return record

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends

from tierguard.core.middleware import get_current_identity, get_resolver
from tierguard.models.entitlement import Identity, SubscriptionState
from tierguard.services.entitlement_policy import is_in_trial, plan_tier, trial_days_remaining
from tierguard.services.subscription_resolver import SubscriptionResolver

router = APIRouter()
logger = logging.getLogger(__name__)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def serialize_state(state: SubscriptionState, now: Optional[datetime] = None) -> dict:
    """Subscription snapshot as returned to the client."""
    now = now or datetime.now(timezone.utc)
    record = state.record
    if record is None:
        return {
            'subscribed': False,
            'plan_name': None,
            'plan_tier': None,
            'subscription_end': None,
            'is_in_trial': False,
            'trial_days_remaining': 0,
            'trial_end': None,
            'is_loading': True,
            'error': state.error,
        }
    return {
        'subscribed': record.subscribed,
        'plan_name': record.plan_name,
        'plan_tier': plan_tier(record).label,
        'subscription_end': _isoformat(record.subscription_end),
        'is_in_trial': is_in_trial(record, now),
        'trial_days_remaining': trial_days_remaining(record, now),
        'trial_end': _isoformat(record.trial_end),
        'is_loading': state.is_loading,
        'error': state.error,
    }


@router.get("/current")
async def get_current_subscription(
    identity: Identity = Depends(get_current_identity),
    resolver: SubscriptionResolver = Depends(get_resolver),
):
    """
    Get the caller's resolved subscription state.
    Fetch errors are reported in ``error`` with a fail-closed record, never as a 5xx.
    """
    logger.info(f"get_current_subscription: Entry - user: {identity.user_id}")
    state = await resolver.resolve(identity.user_id)
    logger.info(f"get_current_subscription: Success - user: {identity.user_id}")
    return serialize_state(state)


@router.post("/refresh")
async def refresh_subscription(
    identity: Identity = Depends(get_current_identity),
    resolver: SubscriptionResolver = Depends(get_resolver),
):
    """Force a re-fetch of the caller's subscription state."""
    logger.info(f"refresh_subscription: Entry - user: {identity.user_id}")
    await resolver.refresh(identity.user_id)
    state = resolver.peek(identity.user_id)
    logger.info(f"refresh_subscription: Success - user: {identity.user_id}")
    return serialize_state(state)


@router.post("/checkout-return")
async def checkout_return(
    identity: Identity = Depends(get_current_identity),
    resolver: SubscriptionResolver = Depends(get_resolver),
):
    """
    Called when the client lands back from checkout.

    Forces a refresh and reports "activating" until the billing provider's
    event is visible; the client keeps calling until it reports "active".
    """
    logger.info(f"checkout_return: Entry - user: {identity.user_id}")
    await resolver.refresh(identity.user_id)
    state = resolver.peek(identity.user_id)

    active = state.record is not None and state.record.subscribed
    body = serialize_state(state)
    body['status'] = "active" if active else "activating"
    logger.info(f"checkout_return: Success - user: {identity.user_id}, status: {body['status']}")
    return body

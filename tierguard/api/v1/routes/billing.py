import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from tierguard.core.middleware import get_billing_service, get_current_identity
from tierguard.models.entitlement import Identity
from tierguard.services.billing_service import BillingService

router = APIRouter()
logger = logging.getLogger(__name__)


class CheckoutRequest(BaseModel):
    price_id: Optional[str] = None


@router.post("/checkout")
async def create_checkout(
    request: CheckoutRequest,
    origin: Optional[str] = Header(default=None),
    identity: Identity = Depends(get_current_identity),
    billing_service: BillingService = Depends(get_billing_service),
):
    """
    Create a checkout session for an allowlisted price.
    Requires authentication. Redirect URLs are derived from the validated Origin.
    """
    logger.info(f"create_checkout: Entry - user: {identity.user_id}")
    session = await run_in_threadpool(
        billing_service.create_checkout_session,
        identity.user_id,
        identity.email,
        request.price_id,
        origin,
    )
    logger.info(f"create_checkout: Success - user: {identity.user_id}")
    return session


@router.post("/portal")
async def create_portal(
    origin: Optional[str] = Header(default=None),
    identity: Identity = Depends(get_current_identity),
    billing_service: BillingService = Depends(get_billing_service),
):
    """Create a customer portal session. 404 when the account never subscribed."""
    logger.info(f"create_portal: Entry - user: {identity.user_id}")
    session = await run_in_threadpool(
        billing_service.create_portal_session,
        identity.user_id,
        identity.email,
        origin,
    )
    logger.info(f"create_portal: Success - user: {identity.user_id}")
    return session

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from tierguard.core.middleware import get_current_identity, get_resolver
from tierguard.models.entitlement import Identity
from tierguard.services.subscription_resolver import SubscriptionResolver

router = APIRouter()
logger = logging.getLogger(__name__)


class SwitchRequest(BaseModel):
    user_id: str


@router.post("/logout")
async def logout(
    identity: Identity = Depends(get_current_identity),
    resolver: SubscriptionResolver = Depends(get_resolver),
):
    """Drop the caller's cached subscription state; in-flight fetches are discarded."""
    logger.info(f"logout: Entry - user: {identity.user_id}")
    resolver.switch_identity(identity.user_id, None)
    logger.info(f"logout: Success - user: {identity.user_id}")
    return {"status": "signed_out"}


@router.post("/switch")
async def switch_account(
    request: SwitchRequest,
    identity: Identity = Depends(get_current_identity),
    resolver: SubscriptionResolver = Depends(get_resolver),
):
    """
    Account switch hook. Called with the token of the account being left;
    the previous identity is invalidated before the new one is resolved.
    """
    logger.info(f"switch_account: Entry - from: {identity.user_id}, to: {request.user_id}")
    resolver.switch_identity(identity.user_id, request.user_id)
    logger.info(f"switch_account: Success - from: {identity.user_id}, to: {request.user_id}")
    return {"status": "switched", "user_id": request.user_id}

from typing import Optional
from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from tierguard.core.exceptions import AuthResolutionError
from tierguard.models.entitlement import Identity
from tierguard.services.identity_service import IdentityService
from tierguard.services.subscription_resolver import SubscriptionResolver
from tierguard.services.billing_service import BillingService
import logging

logger = logging.getLogger(__name__)

# Missing credentials are not rejected here; guards decide what an anonymous caller gets
security = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[str]:
    return credentials.credentials if credentials else None


def get_resolver(request: Request) -> SubscriptionResolver:
    """Dependency returning the application's subscription resolver"""
    return request.app.state.subscription_resolver


def get_identity_service(request: Request) -> IdentityService:
    return request.app.state.identity_service


def get_billing_service() -> BillingService:
    return BillingService()


async def get_current_identity(
    token: Optional[str] = Depends(get_bearer_token),
    identity_service: IdentityService = Depends(get_identity_service),
) -> Identity:
    """
    Dependency for endpoints that require a signed-in caller but no
    entitlement check (billing boundary, session endpoints).
    Unauthenticated calls get an explicit 401, never a redirect.
    """
    logger.info("get_current_identity: Entry")

    try:
        claims = await identity_service.authenticate(token)
        if claims is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required",
                headers={"WWW-Authenticate": "Bearer"},
            )
        identity = await identity_service.load_identity(claims)
    except AuthResolutionError as e:
        logger.error(f"get_current_identity: Failure - {e.code}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not identity.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info(f"get_current_identity: Success - {identity.user_id}")
    return identity

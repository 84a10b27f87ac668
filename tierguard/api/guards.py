"""
FastAPI dependencies that gate endpoints on access decisions.

``RouteGuard`` resolves identity and subscription concurrently, runs
``resolve_route_access`` once on the complete pair and renders anything other
than GRANTED as an HTTP error. ``feature_guard`` builds a dependency that
narrows an already granted route context to a plan tier.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import Depends, Header, HTTPException, status

from tierguard.core.config import settings
from tierguard.core.exceptions import AuthResolutionError
from tierguard.core.middleware import get_bearer_token, get_identity_service, get_resolver
from tierguard.models.entitlement import AccessState, Identity, PlanTier, SubscriptionState
from tierguard.services.access_guard import RouteRequirement, resolve_feature_access, resolve_route_access
from tierguard.services.identity_service import IdentityService
from tierguard.services.subscription_resolver import SubscriptionResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessContext:
    """What a granted handler receives."""
    identity: Identity
    subscription: Optional[SubscriptionState] = None


def render_denial(state: AccessState, required_tier: Optional[PlanTier] = None):
    """Raise the HTTP outcome for a non-granted state."""
    if state == AccessState.LOADING:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={'state': state.value},
            headers={'Retry-After': "1"},
        )
    if state == AccessState.DENIED_UNAUTHENTICATED:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={'state': state.value, 'redirect_to': settings.sign_in_path},
            headers={'WWW-Authenticate': "Bearer"},
        )
    if state == AccessState.DENIED_SUBSCRIPTION:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={'state': state.value, 'upgrade_url': settings.upgrade_path},
        )
    if state == AccessState.DENIED_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={'state': state.value},
        )
    if state == AccessState.DENIED_TIER:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                'state': state.value,
                'required_tier': required_tier.label if required_tier is not None else None,
                'upgrade_url': settings.upgrade_path,
            },
        )


async def resolve_snapshot(
    token: Optional[str],
    identity_service: IdentityService,
    resolver: SubscriptionResolver,
    organization_id: Optional[str] = None,
    with_subscription: bool = True,
) -> Tuple[Identity, Optional[SubscriptionState]]:
    """
    Authenticate once and load the identity, together with the subscription
    snapshot when ``with_subscription`` is set. Identity failures are treated
    as unauthenticated; the resolver never raises for fetch errors.
    """
    try:
        claims = await identity_service.authenticate(token)
    except AuthResolutionError as e:
        logger.warning(f"resolve_snapshot: Identity unavailable - {e.code}")
        claims = None

    if claims is None:
        return Identity.anonymous(), None

    user_id = claims.get('uid')
    subscription = None
    if with_subscription and user_id:
        identity_result, subscription = await asyncio.gather(
            identity_service.load_identity(claims, organization_id),
            resolver.resolve(user_id),
            return_exceptions=True,
        )
        if isinstance(subscription, BaseException):
            raise subscription
    else:
        try:
            identity_result = await identity_service.load_identity(claims, organization_id)
        except AuthResolutionError as e:
            identity_result = e

    if isinstance(identity_result, AuthResolutionError):
        logger.warning(f"resolve_snapshot: Identity unavailable - {identity_result.code}")
        return Identity.anonymous(), None
    if isinstance(identity_result, BaseException):
        raise identity_result
    return identity_result, subscription


async def evaluate_route(
    token: Optional[str],
    requirement: RouteRequirement,
    identity_service: IdentityService,
    resolver: SubscriptionResolver,
    organization_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[AccessState, Identity, Optional[SubscriptionState]]:
    """Resolve both inputs and decide."""
    identity, subscription = await resolve_snapshot(
        token, identity_service, resolver, organization_id,
        with_subscription=requirement.gates_subscription,
    )
    # Single evaluation against the complete snapshot pair
    state = resolve_route_access(identity, subscription, requirement, now or datetime.now(timezone.utc))
    return state, identity, subscription


class RouteGuard:
    """
    Dependency gating an endpoint on a ``RouteRequirement``.

        @router.get("/reports", dependencies=[Depends(RouteGuard(ROUTES["reports"]))])
    """

    def __init__(self, requirement: RouteRequirement, name: Optional[str] = None):
        self.requirement = requirement
        self.name = name or "route"

    async def __call__(
        self,
        token: Optional[str] = Depends(get_bearer_token),
        x_organization_id: Optional[str] = Header(default=None),
        identity_service: IdentityService = Depends(get_identity_service),
        resolver: SubscriptionResolver = Depends(get_resolver),
    ) -> AccessContext:
        state, identity, subscription = await evaluate_route(
            token, self.requirement, identity_service, resolver, organization_id=x_organization_id)

        logger.info(f"RouteGuard[{self.name}]: {state.value} - user: {identity.user_id}")
        if state != AccessState.GRANTED:
            render_denial(state)
        return AccessContext(identity=identity, subscription=subscription)


def feature_guard(required_tier: PlanTier, within: RouteGuard, name: Optional[str] = None):
    """
    Build a dependency granting a feature only when the plan reaches
    ``required_tier``. Runs inside ``within`` (FastAPI resolves it once per
    request) and never applies the route-level role bypass.
    """
    label = name or required_tier.label

    async def dependency(
        context: AccessContext = Depends(within),
        resolver: SubscriptionResolver = Depends(get_resolver),
    ) -> AccessContext:
        subscription = context.subscription
        if subscription is None or subscription.record is None:
            subscription = await resolver.resolve(context.identity.user_id)

        state = resolve_feature_access(subscription, required_tier)
        logger.info(f"FeatureGuard[{label}]: {state.value} - user: {context.identity.user_id}")
        if state != AccessState.GRANTED:
            render_denial(state, required_tier)
        return AccessContext(identity=context.identity, subscription=subscription)

    return dependency

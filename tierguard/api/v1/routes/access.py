import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from tierguard.api.guards import resolve_snapshot
from tierguard.api.route_catalog import FEATURES, ROUTES
from tierguard.core.middleware import get_bearer_token, get_identity_service, get_resolver
from tierguard.models.entitlement import AccessState
from tierguard.services.access_guard import resolve_feature_access, resolve_route_access
from tierguard.services.identity_service import IdentityService
from tierguard.services.subscription_resolver import SubscriptionResolver

router = APIRouter()
logger = logging.getLogger(__name__)


def _split(values: List[str]) -> List[str]:
    names = []
    for value in values:
        names.extend(v.strip() for v in value.split(",") if v.strip())
    return names


@router.get("/evaluate")
async def evaluate_access(
    routes: List[str] = Query(default=[]),
    features: List[str] = Query(default=[]),
    token: Optional[str] = Depends(get_bearer_token),
    x_organization_id: Optional[str] = Header(default=None),
    identity_service: IdentityService = Depends(get_identity_service),
    resolver: SubscriptionResolver = Depends(get_resolver),
):
    """
    Decision state for named pages and features, so the client can render
    navigation without probing each endpoint. Never fails on a denial.
    """
    route_names = _split(routes)
    feature_names = _split(features)
    logger.info(f"evaluate_access: Entry - routes: {route_names}, features: {feature_names}")

    unknown = [n for n in route_names if n not in ROUTES] + [n for n in feature_names if n not in FEATURES]
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown route or feature: {', '.join(unknown)}"
        )

    identity, subscription = await resolve_snapshot(
        token, identity_service, resolver, organization_id=x_organization_id,
        with_subscription=bool(feature_names) or any(ROUTES[n].gates_subscription for n in route_names),
    )
    now = datetime.now(timezone.utc)

    route_states = {}
    for name in route_names:
        requirement = ROUTES[name]
        route_subscription = subscription if requirement.gates_subscription else None
        route_states[name] = resolve_route_access(identity, route_subscription, requirement, now).value

    feature_states = {}
    for name in feature_names:
        # Features need a signed-in caller to know whose plan to read
        if not identity.is_authenticated:
            feature_states[name] = AccessState.DENIED_UNAUTHENTICATED.value
        else:
            feature_states[name] = resolve_feature_access(subscription, FEATURES[name]).value

    logger.info(f"evaluate_access: Success - routes: {route_states}, features: {feature_states}")
    return {'routes': route_states, 'features': feature_states}

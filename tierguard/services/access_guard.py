"""
Access decisions for routes and features.

These functions only decide; rendering a decision (HTTP status, redirect,
upgrade prompt) lives in ``tierguard.api.guards``. Both take a complete
snapshot of their inputs and run to completion, so a decision is never made
against a half-updated identity/subscription pair.

Route checks run in a fixed order and the first match wins:

1. LOADING: identity pending, or the route needs a subscription and no
   record has been fetched yet. A denial is never produced while loading.
2. DENIED_UNAUTHENTICATED: no role or status bypasses this.
3. DENIED_SUBSCRIPTION: no paid plan and no trial (or the plan is below the
   route's tier). The admin role and super-admins skip this step.
4. DENIED_ROLE: the caller's role is not one the route accepts. The admin
   role and super-admins skip this step, except on super-admin-only routes.
5. GRANTED.

Feature checks are narrower: LOADING, then DENIED_TIER, then GRANTED. They
consider the plan tier only. A route-level admin bypass does not unlock a
feature above the account's plan.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, Optional

from tierguard.models.entitlement import AccessState, Identity, OrgRole, PlanTier, SubscriptionState
from tierguard.services.entitlement_policy import has_access, has_active_period_access


@dataclass(frozen=True)
class RouteRequirement:
    requires_subscription: bool = True
    required_tier: Optional[PlanTier] = None
    required_roles: FrozenSet[OrgRole] = frozenset()
    super_admin_only: bool = False

    @property
    def gates_subscription(self) -> bool:
        return self.requires_subscription or self.required_tier is not None


def bypasses_route_gates(identity: Identity) -> bool:
    return identity.org_role == OrgRole.ADMIN or identity.is_super_admin


def resolve_route_access(
    identity: Identity,
    subscription: Optional[SubscriptionState],
    requirement: RouteRequirement,
    now: datetime,
) -> AccessState:
    if identity.is_loading:
        return AccessState.LOADING
    record = subscription.record if subscription is not None else None
    if identity.is_authenticated and requirement.gates_subscription and record is None:
        return AccessState.LOADING

    if not identity.is_authenticated:
        return AccessState.DENIED_UNAUTHENTICATED

    bypass = bypasses_route_gates(identity)

    if requirement.gates_subscription and not bypass:
        if not has_active_period_access(record, now):
            return AccessState.DENIED_SUBSCRIPTION
        if requirement.required_tier is not None and not has_access(record, requirement.required_tier):
            return AccessState.DENIED_SUBSCRIPTION

    if requirement.super_admin_only and not identity.is_super_admin:
        return AccessState.DENIED_ROLE
    if requirement.required_roles and identity.org_role not in requirement.required_roles and not bypass:
        return AccessState.DENIED_ROLE

    return AccessState.GRANTED


def resolve_feature_access(subscription: Optional[SubscriptionState], required_tier: PlanTier) -> AccessState:
    record = subscription.record if subscription is not None else None
    if record is None:
        return AccessState.LOADING
    if has_access(record, required_tier):
        return AccessState.GRANTED
    return AccessState.DENIED_TIER

from typing import Dict

from tierguard.models.entitlement import OrgRole, PlanTier
from tierguard.services.access_guard import RouteRequirement

_MANAGERS = frozenset({OrgRole.OWNER, OrgRole.ADMIN})

# Application pages and their access requirements
ROUTES: Dict[str, RouteRequirement] = {
    # Reachable without a subscription so users can pick an org, onboard and pay
    "select-organization": RouteRequirement(requires_subscription=False),
    "onboarding": RouteRequirement(requires_subscription=False),
    "subscription": RouteRequirement(requires_subscription=False),

    "dashboard": RouteRequirement(),
    "orders": RouteRequirement(),
    "organizations": RouteRequirement(),
    "cashier": RouteRequirement(required_roles=_MANAGERS | {OrgRole.CASHIER}),
    "kitchen": RouteRequirement(required_roles=_MANAGERS | {OrgRole.KITCHEN}),
    "settings": RouteRequirement(required_roles=_MANAGERS),
    "members": RouteRequirement(required_roles=_MANAGERS),

    "reports": RouteRequirement(required_tier=PlanTier.PRO),
    "audit": RouteRequirement(required_tier=PlanTier.PRO, required_roles=_MANAGERS),

    "super-dashboard": RouteRequirement(requires_subscription=False, super_admin_only=True),
}

# Features embedded in pages, gated by plan tier only
FEATURES: Dict[str, PlanTier] = {
    "basic-reports": PlanTier.START,
    "fiscal-report": PlanTier.PRO,
    "vip-support": PlanTier.PRO,
    "advanced-reports": PlanTier.PRO,
}

# Page each feature is embedded in
FEATURE_PAGES: Dict[str, str] = {
    "basic-reports": "dashboard",
    "vip-support": "dashboard",
    "fiscal-report": "reports",
    "advanced-reports": "reports",
}

from tierguard.models.user import User
from tierguard.models.organization import Organization, Membership
from tierguard.models.entitlement import (AccessState, Identity, OrgRole, PlanTier,
                                          SubscriptionRecord, SubscriptionState)

__all__ = ["User", "Organization", "Membership", "AccessState", "Identity", "OrgRole", "PlanTier",
           "SubscriptionRecord", "SubscriptionState"]

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import enum


class PlanTier(enum.IntEnum):
    """Ordered plan classification; comparisons follow the hierarchy."""
    TRIAL = 0
    START = 1
    PRO = 2

    @property
    def label(self) -> str:
        return self.name.lower()


class OrgRole(str, enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    CASHIER = "cashier"
    KITCHEN = "kitchen"
    WAITER = "waiter"


class AccessState(str, enum.Enum):
    LOADING = "loading"
    DENIED_UNAUTHENTICATED = "denied_unauthenticated"
    DENIED_SUBSCRIPTION = "denied_subscription"
    DENIED_ROLE = "denied_role"
    DENIED_TIER = "denied_tier"
    GRANTED = "granted"


@dataclass(frozen=True)
class Identity:
    """Caller identity as reported by the identity provider. Read-only to the core."""
    is_authenticated: bool
    user_id: Optional[str] = None
    org_role: Optional[OrgRole] = None
    is_super_admin: bool = False
    is_loading: bool = False
    email: Optional[str] = None
    organization_id: Optional[str] = None

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls(is_authenticated=False)

    @classmethod
    def loading(cls) -> "Identity":
        return cls(is_authenticated=False, is_loading=True)


@dataclass(frozen=True)
class SubscriptionRecord:
    """
    Subscription state of one account. Written only by the billing provider;
    the core reads and caches it. Datetimes are timezone-aware UTC.
    """
    subscribed: bool
    plan_name: Optional[str] = None
    subscription_end: Optional[datetime] = None
    trial_end: Optional[datetime] = None

    @classmethod
    def fail_closed(cls) -> "SubscriptionRecord":
        # trial_end unknown is read as an expired trial
        return cls(subscribed=False, plan_name=None, subscription_end=None, trial_end=None)


@dataclass(frozen=True)
class SubscriptionState:
    """Snapshot handed out by the resolver."""
    record: Optional[SubscriptionRecord]
    is_loading: bool
    error: Optional[str] = None

    @classmethod
    def pending(cls) -> "SubscriptionState":
        return cls(record=None, is_loading=True)

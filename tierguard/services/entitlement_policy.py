"""
Entitlement policy: pure functions over a SubscriptionRecord.

No I/O and no clock reads; callers pass ``now`` explicitly. The rules:

* an unsubscribed account is on the trial tier whatever its plan name says;
* a subscribed plan name is classified case-insensitively, "pro"/"premium"
  before "start"/"basic";
* a subscribed plan that matches neither is START. A paying account is never
  downgraded to trial semantics because its plan was renamed;
* for hierarchy checks the trial tier counts as START.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from tierguard.models.entitlement import PlanTier, SubscriptionRecord

_PRO_MARKERS = ("pro", "premium")
_START_MARKERS = ("start", "basic")
_ONE_DAY = timedelta(days=1)


def _as_utc(value: datetime) -> datetime:
    # naive datetimes from the database are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def classify_plan(plan_name: Optional[str]) -> PlanTier:
    """Classify the plan name of a subscribed account."""
    name = (plan_name or "").lower()
    if any(marker in name for marker in _PRO_MARKERS):
        return PlanTier.PRO
    if any(marker in name for marker in _START_MARKERS):
        return PlanTier.START
    return unrecognized_paid_plan_tier()


def unrecognized_paid_plan_tier() -> PlanTier:
    """Tier granted to a subscribed account whose plan name is not recognized."""
    return PlanTier.START


def plan_tier(record: SubscriptionRecord) -> PlanTier:
    if not record.subscribed:
        return PlanTier.TRIAL
    return classify_plan(record.plan_name)


def is_in_trial(record: SubscriptionRecord, now: datetime) -> bool:
    """Trial window check, independent of the subscribed flag."""
    if record.trial_end is None:
        return False
    return _as_utc(now) < _as_utc(record.trial_end)


def trial_days_remaining(record: SubscriptionRecord, now: datetime) -> int:
    if not is_in_trial(record, now):
        return 0
    remaining = _as_utc(record.trial_end) - _as_utc(now)
    return max(0, math.ceil(remaining / _ONE_DAY))


def effective_tier(record: SubscriptionRecord) -> PlanTier:
    tier = plan_tier(record)
    return PlanTier.START if tier == PlanTier.TRIAL else tier


def has_access(record: SubscriptionRecord, required_tier: PlanTier) -> bool:
    return effective_tier(record) >= required_tier


def has_active_period_access(record: SubscriptionRecord, now: datetime) -> bool:
    """Whether the account may use the product at all (paid or inside its trial)."""
    return record.subscribed or is_in_trial(record, now)

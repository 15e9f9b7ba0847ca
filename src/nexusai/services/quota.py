"""Usage/quota facade: feature access and remaining quota for a subscription.

All functions are pure. Every answer fails closed: missing or malformed
upstream data (no limits, no usage, a limit that is not a non-negative number
or "unlimited") reads as "limit reached / access denied", never as a crash
and never as unlimited access.
"""

import math
from collections.abc import Mapping
from datetime import UTC, datetime
from numbers import Real
from typing import Any, Optional, Union

from nexusai.models.subscription import UNLIMITED, Plan, Subscription, SubscriptionSnapshot

APPROACHING_LIMIT_PERCENT = 80.0
EXPIRING_SOON_DAYS = 7
SECONDS_PER_DAY = 86_400

FREE_FEATURES = frozenset({"imageGeneration", "codeGeneration"})
BASIC_FEATURES = FREE_FEATURES | {
    "videoGeneration",
    "audioGeneration",
    "highResolution",
    "batchProcessing",
}

# Plans not listed here (including "pro") are handled in has_feature_access()
PLAN_FEATURES: dict[str, frozenset[str]] = {
    "free": FREE_FEATURES,
    "basic": BASIC_FEATURES,
}

Quota = Union[float, int, str]


def has_feature_access(plan: Optional[str], feature: str) -> bool:
    """Check a feature against the plan's fixed allow-list.

    Example:
        >>> has_feature_access("free", "videoGeneration")
        False
        >>> has_feature_access("pro", "videoGeneration")
        True
    """
    if plan == "pro":
        return True
    allowed = PLAN_FEATURES.get(plan or "")
    return allowed is not None and feature in allowed


def _is_amount(value: Any) -> bool:
    return (
        isinstance(value, Real)
        and not isinstance(value, bool)
        and not math.isnan(value)
        and value >= 0
    )


def _resolve(
    limits: Optional[Mapping[str, Any]], usage: Optional[Mapping[str, Any]], feature: str
) -> tuple[Optional[Any], Optional[float]]:
    """Return (limit, used) for a feature, or (None, None) if the data cannot be trusted.

    An "unlimited" limit is returned with used=None; usage is irrelevant then.
    """
    if not isinstance(limits, Mapping):
        return None, None

    limit = limits.get(feature)
    if limit == UNLIMITED:
        return UNLIMITED, None
    if not _is_amount(limit):
        return None, None

    if not isinstance(usage, Mapping):
        return None, None

    used = usage.get(feature, 0)
    if not _is_amount(used):
        return None, None

    return limit, used


def has_reached_limit(
    limits: Optional[Mapping[str, Any]], usage: Optional[Mapping[str, Any]], feature: str
) -> bool:
    """True iff usage >= limit. An unlimited limit is never reached."""
    limit, used = _resolve(limits, usage, feature)
    if limit is None:
        return True
    if limit == UNLIMITED:
        return False
    return used >= limit


def get_remaining_quota(
    limits: Optional[Mapping[str, Any]], usage: Optional[Mapping[str, Any]], feature: str
) -> Quota:
    """Remaining uses, or the UNLIMITED sentinel."""
    limit, used = _resolve(limits, usage, feature)
    if limit is None:
        return 0
    if limit == UNLIMITED:
        return UNLIMITED
    return max(0, limit - used)


def get_usage_percentage(
    limits: Optional[Mapping[str, Any]], usage: Optional[Mapping[str, Any]], feature: str
) -> float:
    """Usage as a percentage of the limit, clamped to [0, 100].

    Unlimited features report 0; a zero limit reports 100.
    """
    limit, used = _resolve(limits, usage, feature)
    if limit is None:
        return 100.0
    if limit == UNLIMITED:
        return 0.0
    if limit == 0:
        return 100.0
    return min(100.0, used / limit * 100)


def is_approaching_limit(
    limits: Optional[Mapping[str, Any]], usage: Optional[Mapping[str, Any]], feature: str
) -> bool:
    return get_usage_percentage(limits, usage, feature) >= APPROACHING_LIMIT_PERCENT


def is_subscription_active(subscription: Optional[Subscription]) -> bool:
    return subscription is not None and subscription.status == "active"


def is_subscription_expired(subscription: Optional[Subscription]) -> bool:
    return subscription is not None and subscription.status == "expired"


def is_subscription_past_due(subscription: Optional[Subscription]) -> bool:
    return subscription is not None and subscription.status == "past_due"


def days_remaining(
    subscription: Optional[Subscription], now: Optional[datetime] = None
) -> Optional[int]:
    """Whole days until end_date, rounded up. None if there is no end date.

    Naive datetimes are taken as UTC.
    """
    if subscription is None or subscription.end_date is None:
        return None

    end = subscription.end_date
    if end.tzinfo is None:
        end = end.replace(tzinfo=UTC)

    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    return math.ceil((end - now).total_seconds() / SECONDS_PER_DAY)


def is_expiring_soon(days: Optional[int]) -> bool:
    """True iff 0 < days <= 7."""
    return days is not None and 0 < days <= EXPIRING_SOON_DAYS


class QuotaFacade:
    """Quota questions for the current user, bound to one SubscriptionSnapshot.

    A snapshot without a subscription (e.g. the remote read failed) denies
    every feature.
    """

    def __init__(self, snapshot: SubscriptionSnapshot):
        self.snapshot = snapshot

    @property
    def subscription(self) -> Optional[Subscription]:
        return self.snapshot.subscription

    @property
    def plan(self) -> Optional[str]:
        return self.subscription.plan if self.subscription else None

    @property
    def current_plan(self) -> Optional[Plan]:
        return self.snapshot.current_plan

    @property
    def limits(self) -> Optional[dict[str, Any]]:
        plan = self.current_plan
        return plan.limits if plan else None

    def has_feature_access(self, feature: str) -> bool:
        return has_feature_access(self.plan, feature)

    def has_reached_limit(self, feature: str) -> bool:
        return has_reached_limit(self.limits, self.snapshot.usage, feature)

    def remaining_quota(self, feature: str) -> Quota:
        return get_remaining_quota(self.limits, self.snapshot.usage, feature)

    def usage_percentage(self, feature: str) -> float:
        return get_usage_percentage(self.limits, self.snapshot.usage, feature)

    def is_approaching_limit(self, feature: str) -> bool:
        return is_approaching_limit(self.limits, self.snapshot.usage, feature)

    def can_use(self, feature: str) -> bool:
        """Allowed by the plan and with quota left."""
        return self.has_feature_access(feature) and not self.has_reached_limit(feature)

    @property
    def is_active(self) -> bool:
        return is_subscription_active(self.subscription)

    @property
    def is_expired(self) -> bool:
        return is_subscription_expired(self.subscription)

    @property
    def is_past_due(self) -> bool:
        return is_subscription_past_due(self.subscription)

    def days_remaining(self, now: Optional[datetime] = None) -> Optional[int]:
        return days_remaining(self.subscription, now)

    def is_expiring_soon(self, now: Optional[datetime] = None) -> bool:
        return is_expiring_soon(self.days_remaining(now))

"""Usage/quota endpoints.

- GET /api/quota - Subscription state and quota for every known feature
- GET /api/quota/{feature} - Quota for a single feature

Every request reads a fresh snapshot from the remote subscription API. A
failed read yields an empty snapshot, so answers fail closed rather than 5xx.
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from nexusai.api.dependencies import get_current_user, get_subscription_client
from nexusai.services.quota import BASIC_FEATURES, QuotaFacade, is_expiring_soon
from nexusai.services.subscription_client import SubscriptionClient

router = APIRouter(prefix="/api/quota", tags=["quota"])


class FeatureQuotaResponse(BaseModel):
    """Quota answers for one feature."""

    feature: str
    has_access: bool
    can_use: bool
    limit_reached: bool
    remaining: float | int | str
    usage_percentage: float
    approaching_limit: bool


class QuotaSummaryResponse(BaseModel):
    """Subscription state plus per-feature quota."""

    plan: str | None
    status: str | None
    is_active: bool
    is_expired: bool
    is_past_due: bool
    days_remaining: int | None
    expiring_soon: bool
    features: list[FeatureQuotaResponse]


def _feature(facade: QuotaFacade, feature: str) -> FeatureQuotaResponse:
    return FeatureQuotaResponse(
        feature=feature,
        has_access=facade.has_feature_access(feature),
        can_use=facade.can_use(feature),
        limit_reached=facade.has_reached_limit(feature),
        remaining=facade.remaining_quota(feature),
        usage_percentage=facade.usage_percentage(feature),
        approaching_limit=facade.is_approaching_limit(feature),
    )


async def _load_facade(client: SubscriptionClient) -> QuotaFacade:
    return QuotaFacade(await client.load_snapshot())


@router.get("", response_model=QuotaSummaryResponse)
async def get_quota_summary(
    _user_id: str = Depends(get_current_user),
    client: SubscriptionClient = Depends(get_subscription_client),
) -> QuotaSummaryResponse:
    facade = await _load_facade(client)
    limits: dict[str, Any] = facade.limits or {}
    features = sorted(BASIC_FEATURES | set(limits))
    days = facade.days_remaining()

    return QuotaSummaryResponse(
        plan=facade.plan,
        status=facade.subscription.status if facade.subscription else None,
        is_active=facade.is_active,
        is_expired=facade.is_expired,
        is_past_due=facade.is_past_due,
        days_remaining=days,
        expiring_soon=is_expiring_soon(days),
        features=[_feature(facade, feature) for feature in features],
    )


@router.get("/{feature}", response_model=FeatureQuotaResponse)
async def get_feature_quota(
    feature: str,
    _user_id: str = Depends(get_current_user),
    client: SubscriptionClient = Depends(get_subscription_client),
) -> FeatureQuotaResponse:
    return _feature(await _load_facade(client), feature)

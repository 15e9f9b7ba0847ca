"""Subscription, plan and usage shapes returned by the remote subscription API.

These are plain Pydantic models (not tables): subscription state is owned by
the remote service and only read here.
"""

from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

UNLIMITED = "unlimited"

LimitValue = Union[int, Literal["unlimited"]]


class Subscription(BaseModel):
    """Current user's subscription."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    plan: str
    status: str
    amount: Optional[float] = None
    currency: Optional[str] = None
    start_date: Optional[datetime] = Field(default=None, alias="startDate")
    end_date: Optional[datetime] = Field(default=None, alias="endDate")


class Plan(BaseModel):
    """Plan catalog entry with per-feature limits."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str = ""
    price: Optional[float] = None
    limits: dict[str, LimitValue] = Field(default_factory=dict)


class SubscriptionSnapshot(BaseModel):
    """Everything the quota facade needs, fetched together.

    Any field left as None means the upstream data was missing; quota checks
    treat that as access denied.
    """

    subscription: Optional[Subscription] = None
    plans: list[Plan] = Field(default_factory=list)
    usage: Optional[dict[str, float]] = None

    @property
    def current_plan(self) -> Optional[Plan]:
        if self.subscription is None:
            return None
        for plan in self.plans:
            if plan.id == self.subscription.plan:
                return plan
        return None

"""Read-only client for the remote subscription, plans and usage endpoints."""

import asyncio
from typing import Any, Optional

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from nexusai.models.subscription import Plan, Subscription, SubscriptionSnapshot
from nexusai.services.exceptions import ServiceError, TransientError
from nexusai.services.remote_http import (
    auth_headers,
    classify_transport_error,
    raise_for_remote_status,
)

logger = structlog.get_logger(__name__)

SUBSCRIPTION_PATH = "/api/subscription"
PLANS_PATH = "/api/subscription/plans"
USAGE_PATH = "/api/subscription/usage"

_plans_adapter = TypeAdapter(list[Plan])
_usage_adapter = TypeAdapter(dict[str, float])


class SubscriptionClient:
    """Fetches subscription state for the current user.

    Transient failures are retried up to max_attempts; authentication and
    other 4xx failures are never retried.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        max_attempts: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize subscription client.

        Args:
            base_url: Web API base URL (from API_BASE_URL env var)
            token: Bearer token identifying the current user
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per read for transient failures
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.headers = auth_headers(token)
        self._transport = transport

    async def _get_json(self, path: str) -> Any:
        """GET a JSON document, retrying transient failures.

        Returns:
            Decoded body, or None for an empty body

        Raises:
            TransientError: Still failing after max_attempts
            PermanentError: 401/403 or another 4xx (not retried)
        """
        last_error: TransientError | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                async with httpx.AsyncClient(
                    base_url=self.base_url, timeout=self.timeout, transport=self._transport
                ) as client:
                    response = await client.get(path, headers=self.headers)
                raise_for_remote_status(response)
                # An empty 200 body means the resource does not exist for this user
                return response.json() if response.content else None

            except httpx.HTTPError as e:
                last_error = classify_transport_error(e, self.timeout)  # type: ignore[assignment]
            except TransientError as e:
                last_error = e

            logger.warning(
                "subscription.read_retry",
                path=path,
                attempt=attempt,
                max_attempts=self.max_attempts,
                error=str(last_error),
            )

        assert last_error is not None
        raise last_error

    async def get_subscription(self) -> Optional[Subscription]:
        """Current subscription, or None if the user has none."""
        data = await self._get_json(SUBSCRIPTION_PATH)
        if data is None:
            return None
        return Subscription.model_validate(data)

    async def get_plans(self) -> list[Plan]:
        return _plans_adapter.validate_python(await self._get_json(PLANS_PATH))

    async def get_usage(self) -> dict[str, float]:
        """Usage counters keyed by feature name."""
        return _usage_adapter.validate_python(await self._get_json(USAGE_PATH))

    async def load_snapshot(self) -> SubscriptionSnapshot:
        """Fetch subscription, plans and usage concurrently.

        Never raises: a read that fails or returns unparsable data is logged
        and left empty in the snapshot, which the quota facade treats as
        access denied.
        """
        subscription, plans, usage = await asyncio.gather(
            self._read("subscription", self.get_subscription),
            self._read("plans", self.get_plans),
            self._read("usage", self.get_usage),
        )
        return SubscriptionSnapshot(subscription=subscription, plans=plans or [], usage=usage)

    async def _read(self, name: str, fetch) -> Any:
        try:
            return await fetch()
        except (ServiceError, ValidationError, ValueError) as e:
            logger.warning(
                "subscription.read_failed",
                resource=name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None

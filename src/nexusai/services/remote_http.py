"""Shared error classification for calls to the NexusAI web API."""

import httpx

from nexusai.services.exceptions import (
    NetworkFailure,
    RateLimitError,
    RemoteAuthError,
    RemoteRejectedError,
    RemoteTimeout,
    ServiceError,
    TransientError,
)


def auth_headers(token: str) -> dict[str, str]:
    """Request headers for the web API (bearer token only when configured)."""
    headers = {"Accept": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def raise_for_remote_status(response: httpx.Response) -> None:
    """Classify a non-success response into the remote error hierarchy.

    Raises:
        RateLimitError: 429
        TransientError: 5xx
        RemoteAuthError: 401, 403
        RemoteRejectedError: Any other 4xx
    """
    status = response.status_code
    if status < 400:
        return

    if status == 429:
        raise RateLimitError(f"Rate limit exceeded: {response.text}")
    elif status >= 500:
        raise TransientError(f"Service unavailable ({status}): {response.text}")
    elif status in (401, 403):
        raise RemoteAuthError(
            f"Unauthorized ({status}). Check API_TOKEN configuration in .env file."
        )
    raise RemoteRejectedError(f"Request rejected ({status}): {response.text}")


def classify_transport_error(error: httpx.HTTPError, timeout: float) -> ServiceError:
    """Map an httpx transport failure onto RemoteTimeout / NetworkFailure."""
    if isinstance(error, httpx.TimeoutException):
        return RemoteTimeout(f"Request timeout after {timeout:g}s: {error}")
    return NetworkFailure(f"Network error: {error}")

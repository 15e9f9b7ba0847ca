"""Error hierarchy for the local record store and remote services.

This module defines the exception hierarchy used across the application:
- NexusError: Base for everything raised deliberately by nexusai
- Local storage errors: StorageUnavailable, NotAuthenticated, NotFound, ValidationFailure
- ServiceError: Base for remote endpoint errors
- TransientError: Retryable errors (network, rate limits, timeouts)
- PermanentError: Non-retryable errors (authentication, rejected payloads)
"""


class NexusError(Exception):
    """Base exception for all nexusai errors."""

    pass


# Local storage errors
class StorageUnavailable(NexusError):
    """The local storage engine could not be opened or upgraded.

    Non-fatal for the application: callers degrade to a non-persistent mode.
    """

    pass


class NotAuthenticated(NexusError):
    """An operation that needs a user context was called without one."""

    pass


class NotFound(NexusError):
    """A referenced record id does not exist."""

    def __init__(self, record_id: str):
        super().__init__(f"Generation {record_id} not found")
        self.record_id = record_id


class ValidationFailure(NexusError, ValueError):
    """Malformed input to a write operation. Never retried automatically."""

    pass


# Remote service errors
class ServiceError(NexusError):
    """Base exception for all remote service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (5xx)
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Rejected payloads (400, 404, 413, 422)
    """

    pass


class NetworkFailure(TransientError):
    """Connection could not be established or was dropped."""

    pass


class RemoteTimeout(TransientError):
    """Request did not complete within its timeout bound."""

    pass


class RateLimitError(TransientError):
    """Rate limit exceeded (429)."""

    pass


class RemoteAuthError(PermanentError):
    """Authentication failure (401, 403)."""

    pass


class RemoteRejectedError(PermanentError):
    """Remote endpoint rejected the request (other 4xx)."""

    pass

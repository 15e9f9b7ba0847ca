"""Remote generation-sync endpoint client."""

from typing import Any, Optional

import httpx
import structlog

from nexusai.models.generation import GenerationRecord
from nexusai.services.remote_http import (
    auth_headers,
    classify_transport_error,
    raise_for_remote_status,
)
from nexusai.services.sync.encoding import guess_mime_type, to_data_url
from nexusai.storage.serialization import record_to_dict

logger = structlog.get_logger(__name__)

SYNC_PATH = "/api/database/sync"


def build_sync_payload(record: GenerationRecord) -> dict[str, Any]:
    """Build the JSON body for one record.

    Binary results are sent as a base64 ``data:`` URL; the remote endpoint
    only accepts text results.
    """
    payload = record_to_dict(record)
    payload.pop("resultEncoding", None)

    if record.result_blob is not None:
        payload["result"] = to_data_url(
            record.result_blob, guess_mime_type(record.generation_metadata)
        )

    return payload


class GenerationSyncClient:
    """Pushes generation records to the web API, one record per request.

    The endpoint is expected to be idempotent by record id, so re-pushing a
    record after a lost response does not create a duplicate.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize sync client.

        Args:
            base_url: Web API base URL (from API_BASE_URL env var)
            token: Bearer token for the web API (optional)
            timeout: Per-request timeout in seconds (payloads may be large)
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = auth_headers(token)
        self._transport = transport

    async def push(self, record: GenerationRecord) -> None:
        """Push one record to the remote store.

        Args:
            record: Generation to deliver

        Raises:
            TransientError: Network failure, timeout, rate limit (429), 5xx
            PermanentError: Invalid credentials (401/403), rejected payload (other 4xx)
        """
        payload = build_sync_payload(record)

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(SYNC_PATH, json=payload, headers=self.headers)
        except httpx.HTTPError as e:
            raise classify_transport_error(e, self.timeout) from e

        raise_for_remote_status(response)

        logger.debug(
            "sync.record.pushed",
            record_id=record.id,
            status_code=response.status_code,
            binary=record.is_binary,
        )

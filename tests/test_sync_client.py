"""GenerationSyncClient tests.

Tests use httpx.MockTransport in place of the web API:
- Payload shape (camelCase, data URL for binary results)
- Error classification into transient and permanent errors
"""

import base64
import json
from datetime import datetime

import httpx
import pytest

from nexusai.models.generation import GenerationRecord, GenerationType
from nexusai.services.exceptions import (
    NetworkFailure,
    PermanentError,
    RateLimitError,
    RemoteAuthError,
    RemoteRejectedError,
    RemoteTimeout,
    TransientError,
)
from nexusai.services.sync.encoding import guess_mime_type, to_data_url
from nexusai.services.sync.remote_client import GenerationSyncClient, build_sync_payload

BASE_URL = "https://app.example.com"


def make_record(**overrides) -> GenerationRecord:
    values = {
        "id": "gen_0001",
        "user_id": "user_alice",
        "type": GenerationType.CODE,
        "prompt": "fizzbuzz in rust",
        "result_text": "fn main() {}",
        "model": "gpt-4o",
        "generation_metadata": {"language": "rust"},
        "tags": ["rust"],
        "created_at": datetime(2025, 1, 15, 12, 0, 0),
        "updated_at": datetime(2025, 1, 15, 12, 0, 0),
    }
    values.update(overrides)
    return GenerationRecord(**values)


def client_with(handler) -> GenerationSyncClient:
    return GenerationSyncClient(
        BASE_URL, token="secret-token", timeout=30.0, transport=httpx.MockTransport(handler)
    )


class TestEncoding:
    """Test binary result encoding helpers."""

    def test_to_data_url(self):
        assert to_data_url(b"hi", "text/plain") == "data:text/plain;base64,aGk="

    def test_guess_mime_type_uses_metadata_file_type(self):
        assert guess_mime_type({"fileType": "audio/mpeg"}) == "audio/mpeg"
        assert guess_mime_type({"fileType": "mp3"}) == "application/octet-stream"
        assert guess_mime_type(None) == "application/octet-stream"


class TestPayload:
    """Test build_sync_payload()."""

    def test_text_record_payload_is_camel_case(self):
        payload = build_sync_payload(make_record())

        assert payload["id"] == "gen_0001"
        assert payload["userId"] == "user_alice"
        assert payload["type"] == "code"
        assert payload["prompt"] == "fizzbuzz in rust"
        assert payload["result"] == "fn main() {}"
        assert payload["metadata"] == {"language": "rust"}
        assert payload["createdAt"] == "2025-01-15T12:00:00"
        assert "resultEncoding" not in payload

    def test_binary_result_becomes_data_url(self):
        record = make_record(
            type=GenerationType.AUDIO,
            result_text=None,
            result_blob=b"ID3\x00\x01",
            generation_metadata={"fileType": "audio/mpeg"},
        )

        payload = build_sync_payload(record)

        expected = base64.b64encode(b"ID3\x00\x01").decode("ascii")
        assert payload["result"] == f"data:audio/mpeg;base64,{expected}"


@pytest.mark.asyncio
class TestPush:
    """Test push() against a mocked web API."""

    async def test_push_posts_record_to_sync_endpoint(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"success": True})

        await client_with(handler).push(make_record())

        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE_URL}/api/database/sync"
        assert request.headers["Authorization"] == "Bearer secret-token"
        assert json.loads(request.content)["id"] == "gen_0001"

    @pytest.mark.parametrize(
        "status_code, expected",
        [
            (429, RateLimitError),
            (500, TransientError),
            (503, TransientError),
            (401, RemoteAuthError),
            (403, RemoteAuthError),
            (400, RemoteRejectedError),
            (413, RemoteRejectedError),
        ],
    )
    async def test_error_status_classification(self, status_code, expected):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code, text="nope")

        with pytest.raises(expected):
            await client_with(handler).push(make_record())

    async def test_auth_and_rejection_are_permanent(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401)

        with pytest.raises(PermanentError):
            await client_with(handler).push(make_record())

    async def test_timeout_maps_to_remote_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(RemoteTimeout):
            await client_with(handler).push(make_record())

    async def test_connection_error_maps_to_network_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkFailure):
            await client_with(handler).push(make_record())

# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the FCM client."""

import asyncio
import json
from unittest.mock import MagicMock

import httpx
import pytest

from pushdispatch.core.config.settings import FCMSettings
from pushdispatch.infrastructure.notifications.providers.fcm import (
    FCM_LEGACY_URL,
    FCMClient,
    format_data,
    map_http_error,
    map_legacy_error,
)
from pushdispatch.infrastructure.notifications.types import PushNotificationPayload


@pytest.fixture
def v1_settings() -> FCMSettings:
    """Create FCM v1 settings."""
    return FCMSettings(project_id="demo-project", credentials_path="/secrets/sa.json")


@pytest.fixture
def legacy_settings() -> FCMSettings:
    """Create legacy FCM settings."""
    return FCMSettings(use_v1_api=False, server_key="legacy-key")  # type: ignore[arg-type]


@pytest.fixture
def credentials() -> MagicMock:
    """Create valid mock service account credentials."""
    creds = MagicMock()
    creds.valid = True
    creds.token = "ya29.test-token"
    return creds


class RecordingHandler:
    """httpx mock handler answering per token."""

    def __init__(self, responses: dict[str, httpx.Response] | None = None) -> None:
        self.responses = responses or {}
        self.requests: list[httpx.Request] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            body = json.loads(request.content)
            token = body["message"]["token"] if "message" in body else body["to"]
            if token in self.responses:
                return self.responses[token]
            if "message" in body:
                return httpx.Response(200, json={"name": f"projects/demo-project/messages/{token}"})
            return httpx.Response(200, json={"success": 1, "failure": 0, "results": [{"message_id": "1"}]})
        finally:
            self.in_flight -= 1


def make_client(settings, handler, credentials=None) -> FCMClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FCMClient(settings, http_client=http_client, credentials=credentials)


class TestFCMErrorMapping:
    """Tests for FCM error mapping."""

    @pytest.mark.parametrize(
        "status,rpc_status,code",
        [
            (400, None, "bad_request"),
            (401, None, "unauthorized"),
            (403, None, "forbidden"),
            (404, None, "invalid_token"),
            (429, None, "too_many_requests"),
            (500, None, "server_error"),
            (503, None, "server_error"),
            (409, "UNREGISTERED", "unregistered_token"),
            (409, None, "unknown_error"),
        ],
    )
    def test_map_http_error(self, status: int, rpc_status: str | None, code: str) -> None:
        """Test HTTP status and RPC status mapping."""
        assert map_http_error(status, rpc_status).value == code

    @pytest.mark.parametrize(
        "error,code",
        [
            ("InvalidRegistration", "invalid_token"),
            ("NotRegistered", "unregistered_token"),
            ("MismatchSenderId", "forbidden"),
            ("Unavailable", "unknown_error"),
        ],
    )
    def test_map_legacy_error(self, error: str, code: str) -> None:
        """Test legacy result error strings."""
        assert map_legacy_error(error).value == code

    def test_format_data_stringifies_values(self) -> None:
        """Test data values become strings."""
        assert format_data({"a": 1, "b": True, "c": False, "d": 1.5, "e": "x"}) == {
            "a": "1",
            "b": "true",
            "c": "false",
            "d": "1.5",
            "e": "x",
        }
        assert format_data(None) is None
        assert format_data({}) is None


class TestFCMClientV1:
    """Tests for the FCM HTTP v1 mode."""

    @pytest.mark.asyncio
    async def test_600_tokens_two_chunks(self, v1_settings, credentials, sample_payload) -> None:
        """Test 600 tokens are all sent, in chunks of 500 and 100."""
        handler = RecordingHandler()
        client = make_client(v1_settings, handler, credentials)
        tokens = [f"token-{i}" for i in range(600)]

        result = await client.send_to_tokens(tokens, sample_payload)

        assert len(handler.requests) == 600
        assert result.total_devices == 600
        assert result.delivered_to + result.failed_count == 600
        assert result.delivered_to == 600

    @pytest.mark.asyncio
    async def test_request_format(self, v1_settings, credentials, sample_payload) -> None:
        """Test the v1 URL, bearer token and message body."""
        handler = RecordingHandler()
        client = make_client(v1_settings, handler, credentials)

        await client.send_to_tokens(["token-1"], sample_payload)

        request = handler.requests[0]
        assert str(request.url) == "https://fcm.googleapis.com/v1/projects/demo-project/messages:send"
        assert request.headers["Authorization"] == "Bearer ya29.test-token"
        message = json.loads(request.content)["message"]
        assert message["token"] == "token-1"
        assert message["notification"] == {
            "title": "Timetable updated",
            "body": "Room 204 has moved to Room 310",
        }
        assert message["data"] == {"lesson_id": "L-42", "week": "7", "urgent": "true"}
        assert message["android"] == {"priority": "high", "collapse_key": "timetable-dept-a"}
        assert message["apns"]["headers"] == {"apns-priority": "10"}
        assert message["apns"]["payload"]["aps"]["badge"] == 3

    @pytest.mark.asyncio
    async def test_error_responses(self, v1_settings, credentials, sample_payload) -> None:
        """Test per-token failures are mapped and dead tokens collected."""
        handler = RecordingHandler(
            {
                "gone": httpx.Response(
                    404, json={"error": {"status": "NOT_FOUND", "message": "Requested entity was not found."}}
                ),
                "unreg": httpx.Response(
                    409, json={"error": {"status": "UNREGISTERED", "message": "Unregistered"}}
                ),
                "busy": httpx.Response(503, text="Service Unavailable"),
                "odd": httpx.Response(200, json={}),
            }
        )
        client = make_client(v1_settings, handler, credentials)

        result = await client.send_to_tokens(["ok", "gone", "unreg", "busy", "odd"], sample_payload)

        codes = {r.token: r.error_code for r in result.results}
        assert codes == {
            "ok": None,
            "gone": "invalid_token",
            "unreg": "unregistered_token",
            "busy": "server_error",
            "odd": "unknown_error",
        }
        assert result.delivered_to == 1
        assert result.failed_count == 4
        assert sorted(result.invalid_tokens) == ["gone", "unreg"]

    @pytest.mark.asyncio
    async def test_network_error_is_send_error(self, v1_settings, credentials, sample_payload) -> None:
        """Test a transport failure for one token does not affect others."""

        async def handler(request: httpx.Request) -> httpx.Response:
            if json.loads(request.content)["message"]["token"] == "broken":
                raise httpx.ConnectError("connection reset")
            return httpx.Response(200, json={"name": "projects/demo-project/messages/1"})

        client = make_client(v1_settings, handler, credentials)

        result = await client.send_to_tokens(["fine", "broken"], sample_payload)

        codes = {r.token: r.error_code for r in result.results}
        assert codes == {"fine": None, "broken": "send_error"}
        assert result.invalid_tokens == []

    @pytest.mark.asyncio
    async def test_auth_failure(self, v1_settings, sample_payload) -> None:
        """Test a failed token refresh fails the chunk with auth_error."""
        creds = MagicMock()
        creds.valid = False
        creds.refresh.side_effect = RuntimeError("invalid_grant")
        handler = RecordingHandler()
        client = make_client(v1_settings, handler, creds)

        result = await client.send_to_tokens(["a", "b"], sample_payload)

        assert handler.requests == []
        assert result.failed_count == 2
        assert {r.error_code for r in result.results} == {"auth_error"}

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, credentials, sample_payload) -> None:
        """Test in-flight requests never exceed max_concurrency."""
        settings = FCMSettings(
            project_id="demo-project",
            credentials_path="/secrets/sa.json",
            max_concurrency=4,
        )
        handler = RecordingHandler()
        client = make_client(settings, handler, credentials)

        result = await client.send_to_tokens([f"t{i}" for i in range(40)], sample_payload)

        assert result.delivered_to == 40
        assert handler.max_in_flight <= 4


class TestFCMClientLegacy:
    """Tests for the legacy FCM HTTP mode."""

    @pytest.mark.asyncio
    async def test_request_format(self, legacy_settings, sample_payload) -> None:
        """Test the legacy URL, server key and body."""
        handler = RecordingHandler()
        client = make_client(legacy_settings, handler)

        result = await client.send_to_tokens(["token-1"], sample_payload)

        request = handler.requests[0]
        assert str(request.url) == FCM_LEGACY_URL
        assert request.headers["Authorization"] == "key=legacy-key"
        body = json.loads(request.content)
        assert body["to"] == "token-1"
        assert body["priority"] == "high"
        assert body["collapse_key"] == "timetable-dept-a"
        assert result.delivered_to == 1

    @pytest.mark.asyncio
    async def test_not_registered(self, legacy_settings, sample_payload) -> None:
        """Test a NotRegistered result marks the token invalid."""
        handler = RecordingHandler(
            {
                "stale": httpx.Response(
                    200, json={"success": 0, "failure": 1, "results": [{"error": "NotRegistered"}]}
                ),
                "denied": httpx.Response(401, text="Unauthorized"),
            }
        )
        client = make_client(legacy_settings, handler)

        result = await client.send_to_tokens(["stale", "denied"], sample_payload)

        codes = {r.token: r.error_code for r in result.results}
        assert codes == {"stale": "unregistered_token", "denied": "unauthorized"}
        assert result.invalid_tokens == ["stale"]


class TestFCMClientUnconfigured:
    """Tests for an unconfigured FCM client."""

    @pytest.mark.asyncio
    async def test_no_outbound_calls(self, sample_payload) -> None:
        """Test 5 tokens fail with fcm_not_configured and no HTTP calls."""
        handler = RecordingHandler()
        client = make_client(FCMSettings(), handler)

        result = await client.send_to_tokens([f"t{i}" for i in range(5)], sample_payload)

        assert client.is_configured() is False
        assert handler.requests == []
        assert result.delivered_to == 0
        assert result.failed_count == 5
        assert {r.error_code for r in result.results} == {"fcm_not_configured"}

    @pytest.mark.asyncio
    async def test_close_keeps_injected_client(self, v1_settings) -> None:
        """Test close does not close an HTTP client it did not create."""
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(RecordingHandler()))
        client = FCMClient(v1_settings, http_client=http_client)

        await client.close()

        assert http_client.is_closed is False
        await http_client.aclose()

    def test_normal_priority_message(self, v1_settings) -> None:
        """Test normal priority maps to normal / apns-priority 5."""
        client = FCMClient(v1_settings)
        payload = PushNotificationPayload(title="t", body="b")

        message = client.build_v1_message("tok", payload)["message"]

        assert message["android"] == {"priority": "normal"}
        assert message["apns"]["headers"] == {"apns-priority": "5"}
        assert "data" not in message

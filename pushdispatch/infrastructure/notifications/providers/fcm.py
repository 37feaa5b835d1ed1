# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Firebase Cloud Messaging client.

Sends push notifications to Android devices using either the FCM HTTP
v1 API (OAuth2 service account) or the legacy HTTP API (server key).
The mode is resolved once from FCMSettings and never mixed.

Neither API offers a true multicast endpoint, so each token is one HTTP
call. Tokens are processed in chunks of 500; within a chunk the calls
run concurrently, bounded by a semaphore, and one token's exception
never aborts its siblings.

Configuration (via environment variables):
- FCM_USE_V1_API: v1 (default) or legacy mode
- FCM_PROJECT_ID, FCM_CLIENT_EMAIL, FCM_PRIVATE_KEY: v1 inline credentials
- FCM_CREDENTIALS_PATH: v1 service account JSON file
- FCM_SERVER_KEY: legacy server key
"""

import asyncio
import logging
from typing import Any

import httpx
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from pushdispatch.core.config.settings import (
    FCMSettings,
    FcmLegacyMode,
    FcmMode,
    FcmV1Mode,
)
from pushdispatch.infrastructure.notifications.errors import PushErrorCode
from pushdispatch.infrastructure.notifications.providers.base import (
    BaseProviderClient,
    chunked,
)
from pushdispatch.infrastructure.notifications.types import (
    BatchPushNotificationResult,
    DataValue,
    NotificationPlatform,
    PushNotificationPayload,
    PushNotificationResult,
    PushPriority,
)
from pushdispatch.utils.logging import mask_token

logger = logging.getLogger(__name__)

FCM_V1_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"
FCM_LEGACY_URL = "https://fcm.googleapis.com/fcm/send"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# HTTP status -> error code (v1 and legacy)
STATUS_CODE_MAP: dict[int, PushErrorCode] = {
    400: PushErrorCode.BAD_REQUEST,
    401: PushErrorCode.UNAUTHORIZED,
    403: PushErrorCode.FORBIDDEN,
    404: PushErrorCode.INVALID_TOKEN,
    429: PushErrorCode.TOO_MANY_REQUESTS,
}

# google.rpc.Code names, consulted when the HTTP status is not mapped
RPC_STATUS_MAP: dict[str, PushErrorCode] = {
    "INVALID_ARGUMENT": PushErrorCode.INVALID_TOKEN,
    "NOT_FOUND": PushErrorCode.UNREGISTERED_TOKEN,
    "UNREGISTERED": PushErrorCode.UNREGISTERED_TOKEN,
    "PERMISSION_DENIED": PushErrorCode.FORBIDDEN,
    "UNAUTHENTICATED": PushErrorCode.UNAUTHORIZED,
    "RESOURCE_EXHAUSTED": PushErrorCode.TOO_MANY_REQUESTS,
}

# Legacy API per-result error strings
LEGACY_ERROR_MAP: dict[str, PushErrorCode] = {
    "InvalidRegistration": PushErrorCode.INVALID_TOKEN,
    "NotRegistered": PushErrorCode.UNREGISTERED_TOKEN,
    "MismatchSenderId": PushErrorCode.FORBIDDEN,
    "InvalidPackageName": PushErrorCode.BAD_REQUEST,
}


def map_http_error(status_code: int, rpc_status: str | None = None) -> PushErrorCode:
    """Map an FCM error response to an error code.

    Args:
        status_code: HTTP status of the response.
        rpc_status: error.status from the v1 error body, if any.

    Returns:
        Mapped error code, unknown_error when nothing matches.
    """
    if status_code in STATUS_CODE_MAP:
        return STATUS_CODE_MAP[status_code]
    if status_code >= 500:
        return PushErrorCode.SERVER_ERROR
    if rpc_status and rpc_status in RPC_STATUS_MAP:
        return RPC_STATUS_MAP[rpc_status]
    return PushErrorCode.UNKNOWN_ERROR


def map_legacy_error(error: str) -> PushErrorCode:
    """Map a legacy API result error string to an error code."""
    for marker, code in LEGACY_ERROR_MAP.items():
        if marker in error:
            return code
    return PushErrorCode.UNKNOWN_ERROR


def format_data(data: dict[str, DataValue] | None) -> dict[str, str] | None:
    """FCM data values must be strings."""
    if not data:
        return None
    formatted: dict[str, str] = {}
    for key, value in data.items():
        # Lowercase, as JSON renders booleans
        if isinstance(value, bool):
            formatted[key] = "true" if value else "false"
        else:
            formatted[key] = str(value)
    return formatted


class AuthError(Exception):
    """An OAuth2 access token could not be obtained."""


class FCMClient(BaseProviderClient):
    """Push provider client for Android devices.

    Attributes:
        settings: FCM settings.
        mode: Resolved operating mode, None when unconfigured.
    """

    platform = NotificationPlatform.ANDROID
    not_configured_code = PushErrorCode.FCM_NOT_CONFIGURED

    def __init__(
        self,
        settings: FCMSettings,
        http_client: httpx.AsyncClient | None = None,
        credentials: Any = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: FCM settings.
            http_client: HTTP client; one with the configured timeout is
                created on first use when omitted.
            credentials: google-auth credentials for v1 mode; loaded from
                settings on first use when omitted.
        """
        super().__init__()
        self.settings = settings
        self.mode: FcmMode | None = settings.resolve_mode()
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._credentials = credentials

    def is_configured(self) -> bool:
        return self.mode is not None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.settings.timeout)
        return self._http_client

    def _load_credentials(self, mode: FcmV1Mode) -> Any:
        if mode.credentials_path:
            return service_account.Credentials.from_service_account_file(
                mode.credentials_path,
                scopes=[FCM_SCOPE],
            )
        return service_account.Credentials.from_service_account_info(
            {
                "type": "service_account",
                "project_id": mode.project_id,
                "client_email": mode.client_email,
                "private_key": mode.private_key,
                "token_uri": GOOGLE_TOKEN_URI,
            },
            scopes=[FCM_SCOPE],
        )

    async def _get_access_token(self, mode: FcmV1Mode) -> str:
        """Get an OAuth2 access token, refreshing when expired.

        Raises:
            AuthError: If credentials cannot be loaded or refreshed.
        """
        try:
            if self._credentials is None:
                self._credentials = self._load_credentials(mode)

            if not self._credentials.valid:
                # google-auth refresh is blocking
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, self._credentials.refresh, Request())
        except Exception as e:
            raise AuthError(f"Failed to get access token: {e}") from e

        token = self._credentials.token
        if not token:
            raise AuthError("Failed to get access token")
        return token

    def build_v1_message(self, token: str, payload: PushNotificationPayload) -> dict[str, Any]:
        """Build an FCM HTTP v1 request body.

        Args:
            token: Registration token.
            payload: Notification content.

        Returns:
            Request body dictionary.
        """
        high = payload.priority == PushPriority.HIGH

        android: dict[str, Any] = {"priority": "high" if high else "normal"}
        if payload.collapse_key:
            android["collapse_key"] = payload.collapse_key

        aps: dict[str, Any] = {
            "alert": {"title": payload.title, "body": payload.body},
            "sound": payload.sound or "default",
        }
        if payload.badge is not None:
            aps["badge"] = payload.badge

        message: dict[str, Any] = {
            "token": token,
            "notification": {"title": payload.title, "body": payload.body},
            "android": android,
            "apns": {
                "headers": {"apns-priority": "10" if high else "5"},
                "payload": {"aps": aps},
            },
        }
        data = format_data(payload.data)
        if data:
            message["data"] = data
        return {"message": message}

    def build_legacy_message(self, token: str, payload: PushNotificationPayload) -> dict[str, Any]:
        """Build a legacy FCM HTTP request body.

        Args:
            token: Registration token.
            payload: Notification content.

        Returns:
            Request body dictionary.
        """
        message: dict[str, Any] = {
            "to": token,
            "notification": {"title": payload.title, "body": payload.body},
            "priority": "high" if payload.priority == PushPriority.HIGH else "normal",
        }
        data = format_data(payload.data)
        if data:
            message["data"] = data
        if payload.collapse_key:
            message["collapse_key"] = payload.collapse_key
        return message

    async def _send_v1(
        self,
        token: str,
        payload: PushNotificationPayload,
        mode: FcmV1Mode,
        access_token: str,
    ) -> PushNotificationResult:
        client = self._get_http_client()
        try:
            response = await client.post(
                FCM_V1_URL.format(project_id=mode.project_id),
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json",
                },
                json=self.build_v1_message(token, payload),
            )
        except httpx.HTTPError as e:
            return PushNotificationResult.failed(
                token, PushErrorCode.SEND_ERROR, str(e) or type(e).__name__
            )

        body = _json_or_empty(response)
        if response.status_code == 200:
            if body.get("name"):
                return PushNotificationResult.ok(token)
            return PushNotificationResult.failed(
                token, PushErrorCode.UNKNOWN_ERROR, "Unexpected response from FCM"
            )

        error = body.get("error") if isinstance(body.get("error"), dict) else {}
        code = map_http_error(response.status_code, error.get("status"))
        message = error.get("message") or response.text or "Unknown FCM error"
        return PushNotificationResult.failed(token, code, message)

    async def _send_legacy(
        self,
        token: str,
        payload: PushNotificationPayload,
        mode: FcmLegacyMode,
    ) -> PushNotificationResult:
        client = self._get_http_client()
        try:
            response = await client.post(
                FCM_LEGACY_URL,
                headers={
                    "Authorization": f"key={mode.server_key}",
                    "Content-Type": "application/json",
                },
                json=self.build_legacy_message(token, payload),
            )
        except httpx.HTTPError as e:
            return PushNotificationResult.failed(
                token, PushErrorCode.SEND_ERROR, str(e) or type(e).__name__
            )

        body = _json_or_empty(response)
        if response.status_code != 200:
            error = body.get("error")
            message = error if isinstance(error, str) else response.text or "Unknown error"
            return PushNotificationResult.failed(
                token, map_http_error(response.status_code), message
            )

        if body.get("success") == 1:
            return PushNotificationResult.ok(token)

        results = body.get("results") or [{}]
        error_message = results[0].get("error") or "Unknown error"
        return PushNotificationResult.failed(token, map_legacy_error(error_message), error_message)

    async def _send_chunk(
        self,
        chunk: list[str],
        payload: PushNotificationPayload,
        mode: FcmMode,
        semaphore: asyncio.Semaphore,
    ) -> BatchPushNotificationResult:
        access_token = ""
        if isinstance(mode, FcmV1Mode):
            try:
                access_token = await self._get_access_token(mode)
            except AuthError as e:
                self.logger.error("FCM authentication failed: %s", str(e))
                return BatchPushNotificationResult.all_failed(
                    chunk, PushErrorCode.AUTH_ERROR, str(e)
                )

        async def send_one(token: str) -> PushNotificationResult:
            async with semaphore:
                if isinstance(mode, FcmV1Mode):
                    return await self._send_v1(token, payload, mode, access_token)
                return await self._send_legacy(token, payload, mode)

        outcomes = await asyncio.gather(
            *(send_one(token) for token in chunk),
            return_exceptions=True,
        )

        batch = BatchPushNotificationResult.empty()
        for token, outcome in zip(chunk, outcomes):
            if isinstance(outcome, BaseException):
                self.logger.error(
                    "FCM send to %s raised: %s", mask_token(token), str(outcome)
                )
                result = PushNotificationResult.failed(
                    token,
                    PushErrorCode.BATCH_ERROR,
                    str(outcome) or type(outcome).__name__,
                )
            else:
                result = outcome
            self.record(batch, result)
        return batch

    async def send_to_tokens(
        self,
        tokens: list[str],
        payload: PushNotificationPayload,
    ) -> BatchPushNotificationResult:
        """Send one notification to many Android registration tokens.

        Args:
            tokens: FCM registration tokens.
            payload: Notification content.

        Returns:
            Aggregate result covering every input token.
        """
        if not tokens:
            return BatchPushNotificationResult.empty()

        mode = self.mode
        if mode is None:
            return self.create_not_configured_result(tokens)

        semaphore = asyncio.Semaphore(max(1, self.settings.max_concurrency))
        batch = BatchPushNotificationResult.empty()
        for chunk in chunked(tokens, self.batch_size):
            batch.merge(await self._send_chunk(chunk, payload, mode, semaphore))

        self.logger.info(
            "FCM send complete: %d delivered, %d failed, %d invalid",
            batch.delivered_to,
            batch.failed_count,
            len(batch.invalid_tokens),
        )
        return batch

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}

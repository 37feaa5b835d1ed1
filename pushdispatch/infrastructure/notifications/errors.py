# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Error taxonomy for push delivery.

Provider responses are mapped onto a closed set of PushErrorCode values.
Each code belongs to one ErrorCategory, which decides what happens next:

- CONFIGURATION: provider never contacted; fixing config is the only cure
- TRANSIENT: eligible for job-level retry
- INVALID_TOKEN: token is dead; removed from the device registry
- REQUEST: payload or credential problem; logged for operator attention
- TRANSPORT: network or chunk failure; treated as transient
- UNKNOWN: unmapped provider response
"""

from enum import Enum


class PushErrorCode(str, Enum):
    """Per-token failure codes."""

    # Configuration
    NOT_CONFIGURED = "not_configured"
    APNS_NOT_CONFIGURED = "apns_not_configured"
    FCM_NOT_CONFIGURED = "fcm_not_configured"

    # Transient provider errors
    SERVER_ERROR = "server_error"
    TOO_MANY_REQUESTS = "too_many_requests"

    # Permanent token errors
    INVALID_TOKEN = "invalid_token"
    UNREGISTERED_TOKEN = "unregistered_token"

    # Payload / request errors
    BAD_REQUEST = "bad_request"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    FORBIDDEN = "forbidden"
    UNAUTHORIZED = "unauthorized"
    METHOD_NOT_ALLOWED = "method_not_allowed"
    AUTH_ERROR = "auth_error"

    # Transport errors
    BATCH_ERROR = "batch_error"
    SEND_ERROR = "send_error"

    UNKNOWN_ERROR = "unknown_error"


class ErrorCategory(str, Enum):
    """How a failure code is handled."""

    CONFIGURATION = "configuration"
    TRANSIENT = "transient"
    INVALID_TOKEN = "invalid_token"
    REQUEST = "request"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"


_CATEGORIES: dict[PushErrorCode, ErrorCategory] = {
    PushErrorCode.NOT_CONFIGURED: ErrorCategory.CONFIGURATION,
    PushErrorCode.APNS_NOT_CONFIGURED: ErrorCategory.CONFIGURATION,
    PushErrorCode.FCM_NOT_CONFIGURED: ErrorCategory.CONFIGURATION,
    PushErrorCode.SERVER_ERROR: ErrorCategory.TRANSIENT,
    PushErrorCode.TOO_MANY_REQUESTS: ErrorCategory.TRANSIENT,
    PushErrorCode.INVALID_TOKEN: ErrorCategory.INVALID_TOKEN,
    PushErrorCode.UNREGISTERED_TOKEN: ErrorCategory.INVALID_TOKEN,
    PushErrorCode.BAD_REQUEST: ErrorCategory.REQUEST,
    PushErrorCode.PAYLOAD_TOO_LARGE: ErrorCategory.REQUEST,
    PushErrorCode.FORBIDDEN: ErrorCategory.REQUEST,
    PushErrorCode.UNAUTHORIZED: ErrorCategory.REQUEST,
    PushErrorCode.METHOD_NOT_ALLOWED: ErrorCategory.REQUEST,
    PushErrorCode.AUTH_ERROR: ErrorCategory.REQUEST,
    PushErrorCode.BATCH_ERROR: ErrorCategory.TRANSPORT,
    PushErrorCode.SEND_ERROR: ErrorCategory.TRANSPORT,
    PushErrorCode.UNKNOWN_ERROR: ErrorCategory.UNKNOWN,
}


def category_of(code: str) -> ErrorCategory:
    """Get the handling category for an error code.

    Args:
        code: PushErrorCode value or raw string.

    Returns:
        ErrorCategory; UNKNOWN for codes outside the taxonomy.
    """
    try:
        return _CATEGORIES[PushErrorCode(code)]
    except ValueError:
        return ErrorCategory.UNKNOWN


def is_invalid_token_code(code: str | None) -> bool:
    """True when the code means the token must be purged from the registry."""
    return code is not None and category_of(code) is ErrorCategory.INVALID_TOKEN


def is_transient_code(code: str | None) -> bool:
    """True for provider or transport errors that a later attempt may clear."""
    return code is not None and category_of(code) in (
        ErrorCategory.TRANSIENT,
        ErrorCategory.TRANSPORT,
    )


class PushDispatchError(Exception):
    """Base exception for the dispatch pipeline.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(self, message: str, original_error: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class EnqueueError(PushDispatchError):
    """The job could not be handed to the broker."""


class JobPayloadError(PushDispatchError):
    """A queued message does not describe a valid notification job."""


class TransientDeliveryError(PushDispatchError):
    """Every token of a job failed with a transient error; the job is retried.

    Attributes:
        codes: Distinct error codes reported for the job's tokens.
    """

    def __init__(self, message: str, codes: list[str]) -> None:
        super().__init__(message)
        self.codes = codes

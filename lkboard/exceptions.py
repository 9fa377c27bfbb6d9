"""
Exception hierarchy for the LeanKit board client.

Every failure the client can surface is a distinct variant with its own
required context, so callers branch on the exception type rather than on
optional attributes.

Exception Hierarchy:
    LeanKitError (base)
    ├── ValidationError
    │   ├── InvalidSettingsError
    │   └── DryRunError
    ├── EncodingError
    ├── TransportError
    │   ├── ConnectionError
    │   ├── TimeoutError
    │   └── DNSResolutionError
    ├── HTTPError
    ├── DecodeError
    ├── RemoteError
    └── WriteError

Ordering of detection (earliest first): EncodingError before anything is
sent, TransportError before any HTTP status exists, HTTPError for status
>= 400, DecodeError for a JSON body that fails to parse, RemoteError for a
well-formed envelope whose ReplyCode is >= 500.

Usage:
    from lkboard.exceptions import HTTPError, RemoteError

    try:
        card = await board.get_card(card_id)
    except HTTPError as e:
        if e.status_code == 401:
            ...  # bad credentials
    except RemoteError as e:
        logger.warning(f"LeanKit refused: {e.description}")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Dict, Any

__all__ = [
    "LeanKitError",
    "ValidationError",
    "InvalidSettingsError",
    "DryRunError",
    "EncodingError",
    "TransportError",
    "ConnectionError",
    "TimeoutError",
    "DNSResolutionError",
    "HTTPError",
    "DecodeError",
    "RemoteError",
    "WriteError",
    "HTTP_ERROR_MESSAGES",
    "DEFAULT_HTTP_ERROR_MESSAGE",
]

HTTP_ERROR_MESSAGES: Dict[int, str] = {
    401: "401 Authorization required - bad user or pass",
}

DEFAULT_HTTP_ERROR_MESSAGE = "Err message tbd"


# ============================================================================
# Base Exception
# ============================================================================


@dataclass(slots=True)
class LeanKitError(Exception):
    """
    Base exception for all client failures.

    Carries the request path (relative to the configured host) and the
    causal exception, when there is one.
    """

    message: str
    path: Optional[str] = None
    cause: Optional[BaseException] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)
        if self.cause is not None:
            self.__cause__ = self.cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.path:
            parts.append(f"path={self.path}")
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"context=({ctx_str})")
        return " | ".join(parts)


# ============================================================================
# Validation Errors
# ============================================================================


@dataclass(slots=True)
class ValidationError(LeanKitError):
    """Base class for precondition failures detected before any request."""
    pass


@dataclass(slots=True)
class InvalidSettingsError(ValidationError):
    """Raised when BoardSettings is missing a required value."""

    setting_name: Optional[str] = None
    setting_value: Optional[Any] = None

    def __post_init__(self) -> None:
        if not self.message and self.setting_name:
            self.message = f"Invalid setting {self.setting_name}={self.setting_value!r}"
        LeanKitError.__post_init__(self)


@dataclass(slots=True)
class DryRunError(ValidationError):
    """Raised when a batch download is started while dry run is enabled."""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = "Batch downloads cannot run in dry-run mode"
        LeanKitError.__post_init__(self)


# ============================================================================
# Request Encoding
# ============================================================================


@dataclass(slots=True)
class EncodingError(LeanKitError):
    """
    Raised when a request body cannot be produced.

    Either the JSON payload is not serializable (cycles, unsupported types)
    or a file payload was given something other than raw bytes.
    """

    encoding: Optional[str] = None  # "json" | "multipart"

    def __post_init__(self) -> None:
        if not self.message:
            enc = f" ({self.encoding})" if self.encoding else ""
            self.message = f"Request encoding failed{enc}"
        LeanKitError.__post_init__(self)


# ============================================================================
# Transport Errors
# ============================================================================


@dataclass(slots=True)
class TransportError(LeanKitError):
    """Base class for network and protocol failures before any HTTP status."""
    pass


@dataclass(slots=True)
class ConnectionError(TransportError):
    """
    Raised when the TCP/TLS connection cannot be established.

    Common causes: host unreachable, connection refused, TLS handshake failure.
    """

    host: Optional[str] = None
    port: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Failed to connect to {self.host}:{self.port}"
        LeanKitError.__post_init__(self)


@dataclass(slots=True)
class TimeoutError(TransportError):
    """Raised when the underlying network stack gives up waiting."""

    timeout_type: Optional[str] = None  # "connect", "read", "write", "pool"

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Request timed out ({self.timeout_type})"
        LeanKitError.__post_init__(self)


@dataclass(slots=True)
class DNSResolutionError(TransportError):
    """Raised when hostname cannot be resolved to IP address."""

    hostname: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"DNS resolution failed for {self.hostname}"
        LeanKitError.__post_init__(self)


# ============================================================================
# HTTP Errors
# ============================================================================


@dataclass(slots=True)
class HTTPError(LeanKitError):
    """
    Raised for HTTP status >= 400 and for redirects that were not followed.

    This is an HTTP-level failure, not a LeanKit one: the body is never
    decoded. The message comes from HTTP_ERROR_MESSAGES.
    """

    status_code: int = 0
    status_text: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.message:
            self.message = HTTP_ERROR_MESSAGES.get(
                self.status_code, DEFAULT_HTTP_ERROR_MESSAGE
            )
        LeanKitError.__post_init__(self)


# ============================================================================
# Response Errors
# ============================================================================


@dataclass(slots=True)
class DecodeError(LeanKitError):
    """Raised when a body labelled as JSON cannot be parsed into an envelope."""

    content_type: Optional[str] = None
    body: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Malformed JSON body (content-type={self.content_type})"
        LeanKitError.__post_init__(self)


@dataclass(slots=True)
class RemoteError(LeanKitError):
    """
    Raised when LeanKit answers with a well-formed envelope whose
    ReplyCode is >= 500.

    Keeps the HTTP status alongside the LeanKit reply code, reply text,
    the looked-up code description and the raw body for diagnostics.
    """

    status_code: int = 0
    status_text: Optional[str] = None
    reply_code: Optional[int] = None
    reply_text: Optional[str] = None
    description: Optional[str] = None
    body: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.message:
            self.message = (
                f"LeanKit API Error {self.reply_code} ({self.description}): "
                f"{self.reply_text}"
            )
        LeanKitError.__post_init__(self)


# ============================================================================
# Local Sink Errors
# ============================================================================


@dataclass(slots=True)
class WriteError(LeanKitError):
    """Raised when a downloaded attachment cannot be written to disk."""

    file_path: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Failed to write {self.file_path}"
        LeanKitError.__post_init__(self)

from .clients import (
    BatchDownloader,
    LeanKitBoard,
)
from .models import (
    AttachmentDownloadResult,
    BatchItem,
    BoardSettings,
    Envelope,
    FilePayload,
    ProxySettings,
    RequestDescriptor,
    Timeouts,
)
from .session import (
    CookieStore,
    SessionCookie,
    SessionManager,
)
from .transport import (
    RequestEncoder,
    ResponseDecoder,
    TransportEngine,
    REPLY_CODE_DESCRIPTIONS,
    describe_reply_code,
)
from .exceptions import (
    # Base exception
    LeanKitError,
    # Validation errors
    ValidationError,
    InvalidSettingsError,
    DryRunError,
    # Request encoding
    EncodingError,
    # Transport errors
    TransportError,
    ConnectionError,
    TimeoutError,
    DNSResolutionError,
    # HTTP / response errors
    HTTPError,
    DecodeError,
    RemoteError,
    # Local sink
    WriteError,
)
from .observability.logging import (
    BoardLoggerAdapter,
    configure_logging,
    get_board_logger,
)


__all__ = [
    # Primary client
    "LeanKitBoard",
    "BatchDownloader",

    # Configuration
    "BoardSettings",
    "ProxySettings",
    "Timeouts",

    # Request / result models
    "RequestDescriptor",
    "FilePayload",
    "Envelope",
    "BatchItem",
    "AttachmentDownloadResult",

    # Transport internals (for extending)
    "TransportEngine",
    "RequestEncoder",
    "ResponseDecoder",
    "REPLY_CODE_DESCRIPTIONS",
    "describe_reply_code",

    # Session
    "CookieStore",
    "SessionCookie",
    "SessionManager",

    # Logging
    "BoardLoggerAdapter",
    "configure_logging",
    "get_board_logger",

    # Exceptions
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
]

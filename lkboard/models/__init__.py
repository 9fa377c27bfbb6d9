from .results import (
    AttachmentDownloadResult,
    BatchItem,
)

from .requests import (
    DEFAULT_ATTACHMENT_DESCRIPTION,
    EncodedRequest,
    Envelope,
    FilePayload,
    RequestDescriptor,
)

from .config import (
    BoardSettings,
    ProxySettings,
    Timeouts,
)

__all__ = [
    # Result Models
    "AttachmentDownloadResult",
    "BatchItem",

    # Request Models
    "DEFAULT_ATTACHMENT_DESCRIPTION",
    "EncodedRequest",
    "Envelope",
    "FilePayload",
    "RequestDescriptor",

    # Config Models
    "BoardSettings",
    "ProxySettings",
    "Timeouts",
]

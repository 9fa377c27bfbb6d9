from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

import httpx

DEFAULT_ATTACHMENT_DESCRIPTION = "Uploaded by LeanKitBoard client"


@dataclass
class FilePayload:
    """A file to upload as multipart/form-data."""

    data: bytes
    filename: str
    description: Optional[str] = None


@dataclass
class RequestDescriptor:
    """
    Logical description of one call to the LeanKit API.

    The verb is inferred: POST whenever a JSON payload or a file is present,
    otherwise ``method`` (default GET).
    """

    path: str
    method: Optional[str] = None
    json: Any = None
    file: Optional[FilePayload] = None
    streamed: bool = False
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def has_json(self) -> bool:
        return self.json is not None

    @property
    def effective_method(self) -> str:
        if self.file is not None or self.has_json:
            return "POST"
        return (self.method or "GET").upper()


@dataclass
class EncodedRequest:
    """Output of the request encoder: what goes on the wire."""

    method: str
    headers: httpx.Headers
    content: Optional[bytes] = None
    encoding: str = "none"  # "none" | "json" | "multipart"


@dataclass
class Envelope:
    """LeanKit's uniform JSON wrapper: {ReplyCode, ReplyText, ReplyData}."""

    reply_code: Optional[Union[int, float]]   # float only for non-finite codes
    reply_text: Optional[str]
    reply_data: Any

    @property
    def is_failure(self) -> bool:
        return self.reply_code is not None and self.reply_code >= 500

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "Envelope":
        code = payload.get("ReplyCode")
        try:
            reply_code = int(code) if code is not None else None
        except OverflowError:
            reply_code = float(code)
        except (TypeError, ValueError):
            reply_code = None
        return cls(
            reply_code=reply_code,
            reply_text=payload.get("ReplyText"),
            reply_data=payload.get("ReplyData"),
        )

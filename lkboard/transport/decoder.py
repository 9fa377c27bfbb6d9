"""
Response decoding and LeanKit envelope classification.

A buffered body whose content-type mentions JSON is parsed and must be a
LeanKit envelope; every other body is handed back as text. Envelopes with
a ReplyCode of 500 or more are application-level failures even though the
HTTP exchange itself succeeded.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..exceptions import DecodeError, RemoteError
from ..models.requests import Envelope
from ..observability.logging import (
    get_board_logger,
    log_content_processing,
    BoardLoggerAdapter,
)
from ..utils import (
    decode_text,
    extract_charset,
    is_json_content_type,
    normalize_content_type,
)

__all__ = [
    "REPLY_CODE_DESCRIPTIONS",
    "UNKNOWN_REPLY_CODE_DESCRIPTION",
    "DecodedBody",
    "ResponseDecoder",
    "describe_reply_code",
    "classify_envelope",
]

REPLY_CODE_DESCRIPTIONS: Dict[int, str] = {
    100: "NoData",
    200: "DataRetrievalSuccess",
    201: "DataInsertSuccess",
    202: "DataUpdateSuccess",
    203: "DataDeleteSuccess",
    500: "SystemException",
    501: "MinorException",
    502: "UserException",
    503: "FatalException",
    800: "ThrottleWaitResponse",
    900: "WipOverrideCommentRequired",
    902: "ResendingEmailRequired",
    1000: "UnauthorizedAccess",
}

UNKNOWN_REPLY_CODE_DESCRIPTION = "No description found"


def describe_reply_code(code: Optional[int]) -> str:
    """Look up the documented name of a LeanKit reply code."""
    if code is None:
        return UNKNOWN_REPLY_CODE_DESCRIPTION
    return REPLY_CODE_DESCRIPTIONS.get(code, UNKNOWN_REPLY_CODE_DESCRIPTION)


@dataclass
class DecodedBody:
    """A buffered body after decoding: either an envelope or raw text."""

    text: str
    content_type: Optional[str]
    envelope: Optional[Envelope] = None

    @property
    def is_envelope(self) -> bool:
        return self.envelope is not None


class ResponseDecoder:
    """Decode buffered response bodies."""

    def __init__(self, logger: Optional[BoardLoggerAdapter] = None):
        self._logger = logger or get_board_logger(__name__)

    def decode(self, headers: Mapping[str, str], body: bytes, path: Optional[str] = None) -> DecodedBody:
        """
        Decode ``body`` according to its content-type.

        Raises:
            DecodeError: When a JSON-labelled body does not parse
        """
        content_type = normalize_content_type(headers)
        charset = extract_charset(headers)
        text, note = decode_text(body, charset)

        log_content_processing(
            self._logger,
            operation="decode",
            content_type=content_type,
            charset=charset,
            size_bytes=len(body),
            path=path,
            decode_note=note,
        )

        if not is_json_content_type(content_type):
            return DecodedBody(text=text, content_type=content_type)

        try:
            payload = json.loads(text)
        except ValueError as exc:
            self._logger.error(
                "decode.malformed_json",
                path=path,
                content_type=content_type,
                size_bytes=len(body),
                error_message=str(exc),
            )
            raise DecodeError(
                message=f"Malformed JSON body: {exc}",
                path=path,
                content_type=content_type,
                body=text,
                cause=exc,
            ) from exc

        if isinstance(payload, dict):
            envelope = Envelope.from_json(payload)
        else:
            # no ReplyCode and no ReplyData: a success carrying nothing
            self._logger.warning(
                "decode.not_an_envelope",
                path=path,
                json_type=type(payload).__name__,
            )
            envelope = Envelope(reply_code=None, reply_text=None, reply_data=None)

        return DecodedBody(text=text, content_type=content_type, envelope=envelope)


def classify_envelope(
    envelope: Envelope,
    *,
    status_code: int,
    status_text: Optional[str],
    body: str,
    path: Optional[str] = None,
) -> Any:
    """
    Return the envelope's ReplyData, or raise RemoteError for ReplyCode >= 500.

    The data is returned as-is; unwrapping LeanKit's always-an-array
    convention is left to the endpoint methods.
    """
    if envelope.is_failure:
        raise RemoteError(
            message="",
            path=path,
            status_code=status_code,
            status_text=status_text,
            reply_code=envelope.reply_code,
            reply_text=envelope.reply_text,
            description=describe_reply_code(envelope.reply_code),
            body=body,
        )
    return envelope.reply_data

"""
Request encoding: turns a RequestDescriptor into method, headers and body.

Three encodings exist, picked in this order:
  - multipart/form-data when a file payload is present (``file`` + ``Description`` fields)
  - application/json when a JSON payload is present
  - no body otherwise
"""

from __future__ import annotations

import json
from typing import Mapping, Optional

import httpx

from ..exceptions import EncodingError
from ..models.requests import (
    DEFAULT_ATTACHMENT_DESCRIPTION,
    EncodedRequest,
    FilePayload,
    RequestDescriptor,
)
from ..observability.logging import (
    get_board_logger,
    log_content_processing,
    BoardLoggerAdapter,
)


class RequestEncoder:
    """
    Encode request descriptors for the wire.

    ``default_headers`` sit underneath caller-supplied headers; the
    body headers computed here sit on top of both.
    """

    def __init__(
        self,
        default_headers: Optional[Mapping[str, str]] = None,
        logger: Optional[BoardLoggerAdapter] = None,
    ):
        self.default_headers = dict(default_headers or {})
        self._logger = logger or get_board_logger(__name__)

    def encode(self, descriptor: RequestDescriptor, url: str) -> EncodedRequest:
        """
        Encode ``descriptor`` addressed to ``url``.

        Raises:
            EncodingError: When the file payload is not bytes or the JSON
                payload cannot be serialized
        """
        headers = httpx.Headers(self.default_headers)
        headers.update(descriptor.headers or {})

        if descriptor.file is not None:
            content, body_headers = self._encode_multipart(descriptor.file, url, descriptor.path)
            encoding = "multipart"
        elif descriptor.has_json:
            content, body_headers = self._encode_json(descriptor.json, descriptor.path)
            encoding = "json"
        else:
            content, body_headers = None, {}
            encoding = "none"

        for key, value in body_headers.items():
            headers[key] = value

        if content is not None:
            log_content_processing(
                self._logger,
                operation="encode",
                content_type=headers.get("content-type"),
                size_bytes=len(content),
                encoding=encoding,
                path=descriptor.path,
            )

        return EncodedRequest(
            method=descriptor.effective_method,
            headers=headers,
            content=content,
            encoding=encoding,
        )

    def _encode_json(self, payload, path: str) -> tuple[bytes, dict[str, str]]:
        try:
            content = json.dumps(payload).encode("utf-8")
        except (TypeError, ValueError, RecursionError) as exc:
            self._logger.error(
                "encode.json_failed",
                path=path,
                error_type=exc.__class__.__name__,
                error_message=str(exc),
            )
            raise EncodingError(
                message=f"JSON payload is not serializable: {exc}",
                path=path,
                encoding="json",
                cause=exc,
            ) from exc

        return content, {
            "content-type": "application/json",
            "content-length": str(len(content)),
        }

    def _encode_multipart(
        self, file: FilePayload, url: str, path: str
    ) -> tuple[bytes, dict[str, str]]:
        if not isinstance(file.data, (bytes, bytearray)):
            self._logger.error(
                "encode.multipart_not_bytes",
                path=path,
                data_type=type(file.data).__name__,
            )
            raise EncodingError(
                message=(
                    f"File payload must be bytes, got {type(file.data).__name__}"
                ),
                path=path,
                encoding="multipart",
            )

        description = file.description or DEFAULT_ATTACHMENT_DESCRIPTION
        # httpx owns the multipart framing; staging a request yields the
        # boundary header and the exact body bytes
        staged = httpx.Request(
            "POST",
            url,
            data={"Description": description},
            files={"file": (file.filename, bytes(file.data))},
        )
        content = staged.read()

        return content, {
            "content-type": staged.headers["content-type"],
            "content-length": str(len(content)),
        }

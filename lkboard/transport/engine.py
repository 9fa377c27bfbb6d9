from __future__ import annotations
import sys
import time
from typing import Any, Optional

import httpx

from ..models.config import BoardSettings
from ..models.requests import EncodedRequest, RequestDescriptor
from ..exceptions import (
    HTTPError,
    LeanKitError,
    RemoteError,
    TransportError,
    TimeoutError as BoardTimeoutError,
    ConnectionError as BoardConnectionError,
    DNSResolutionError,
)
from ..session.cookies import CookieStore
from ..observability.logging import get_board_logger, log_exception, BoardLoggerAdapter
from .encoder import RequestEncoder
from .decoder import ResponseDecoder, classify_envelope

_DNS_MARKERS = (
    "Name or service not known",
    "getaddrinfo failed",
    "nodename nor servname",
    "Temporary failure in name resolution",
    "No address associated with hostname",
)

_REDACTED_HEADERS = frozenset({"authorization", "cookie", "set-cookie", "proxy-authorization"})

MAX_REDIRECTS = 10


class TransportEngine:
    """
    One request/response cycle against the LeanKit API.

    Lifecycle of a call to ``request()``:
      build URL -> encode body -> authorization header -> session cookie ->
      send -> absorb Set-Cookie -> HTTP status check -> stream hand-off or
      buffered decode -> envelope classification

    GET redirects are followed (up to MAX_REDIRECTS hops), re-rendering the
    session cookie on every hop. A redirect that is not followed is an
    HTTPError. Nothing is retried here. Every failure is raised to the
    caller as one of TransportError, HTTPError, DecodeError or RemoteError.

    Example:
        async with TransportEngine(settings) as engine:
            data = await engine.request(RequestDescriptor(path="/kanban/api/boards/1"))
    """

    def __init__(
        self,
        settings: BoardSettings,
        cookie_store: Optional[CookieStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._logger = self.settings.logger or get_board_logger(
            __name__, host=settings.host, board_id=settings.board_id
        )
        if cookie_store is None:
            cookie_store = CookieStore(session_key=settings.session_cookie_name, logger=self._logger)
        self.cookies = cookie_store
        self._encoder = RequestEncoder(
            default_headers={
                "user-agent": settings.user_agent,
                "accept": settings.accept,
                "accept-encoding": settings.accept_encoding,
            },
            logger=self._logger,
        )
        self._decoder = ResponseDecoder(logger=self._logger)

    def _client_options(self) -> dict[str, Any]:
        timeouts = self.settings.timeouts
        options: dict[str, Any] = {
            "timeout": httpx.Timeout(
                connect=timeouts.connect,
                read=timeouts.read,
                write=timeouts.write,
                pool=timeouts.pool,
            ),
            "http2": self.settings.http2,
            "limits": httpx.Limits(
                max_keepalive_connections=self.settings.max_keepalive_connections,
                max_connections=self.settings.max_connections,
            ),
            "follow_redirects": False,
        }
        if self._transport is not None:
            options["transport"] = self._transport
            options["trust_env"] = False
        elif self.settings.proxy is not None:
            options["proxy"] = self.settings.proxy.url
        return options

    async def __aenter__(self) -> "TransportEngine":
        self._client = httpx.AsyncClient(**self._client_options())
        self._logger.debug(
            "client.initialized",
            http2=self.settings.http2,
            proxied=self.settings.proxy is not None,
            use_session=self.settings.use_session,
            dry_run=self.settings.dry_run,
        )
        return self

    async def __aexit__(self, *exc) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._logger.debug("client.closed")

    def build_url(self, path: Optional[str]) -> str:
        url = self.settings.base_url
        if path:
            url += path
        return url

    async def request(self, descriptor: RequestDescriptor) -> Any:
        """
        Perform one call.

        Returns:
            The envelope's ReplyData for JSON bodies, the body text for any
            other content-type, or the open httpx.Response when
            ``descriptor.streamed`` is set (the caller must close it).

        Raises:
            EncodingError: Body could not be encoded; nothing was sent
            TransportError: Network/protocol failure before an HTTP status
            HTTPError: HTTP status >= 400, or a redirect that was not followed
            DecodeError: JSON-labelled body failed to parse
            RemoteError: Envelope ReplyCode >= 500
            SystemExit: Dry run is enabled; nothing was sent
        """
        path = descriptor.path
        url = self.build_url(path)
        encoded = self._encoder.encode(descriptor, url)

        headers = encoded.headers
        headers["authorization"] = self.settings.authorization
        if self.settings.use_session:
            self.cookies.render(headers)

        if self.settings.debug:
            self._log_request_options(url, encoded)

        if self.settings.dry_run:
            self._logger.info("request.dry_run", method=encoded.method, url=url)
            sys.exit(0)

        assert self._client is not None, "Use async context manager: `async with TransportEngine(...)`"
        request = httpx.Request(encoded.method, url, headers=headers, content=encoded.content)

        start = time.perf_counter()
        self._logger.info("request.started", method=encoded.method, path=path, encoding=encoded.encoding)

        response = await self._send(request, encoded.method, path, start)
        hops = 0
        while response.is_redirect and encoded.method == "GET" and hops < MAX_REDIRECTS:
            await response.aclose()
            request = self._redirect_request(request, response)
            hops += 1
            self._logger.info("request.redirected", path=path, hop=hops, location=str(request.url))
            response = await self._send(request, encoded.method, path, start)

        if response.status_code >= 400 or response.is_redirect:
            await response.aclose()
            error = HTTPError(
                message="",
                path=path,
                status_code=response.status_code,
                status_text=response.reason_phrase,
            )
            log_exception(
                self._logger,
                error,
                "request.http_error",
                method=encoded.method,
                path=path,
                status_code=response.status_code,
                duration_ms=self._elapsed_ms(start),
            )
            raise error

        if descriptor.streamed:
            self._logger.info(
                "request.completed",
                method=encoded.method,
                path=path,
                status_code=response.status_code,
                streamed=True,
                duration_ms=self._elapsed_ms(start),
            )
            return response

        try:
            raw = await response.aread()
        except httpx.RequestError as exc:
            raise self._transport_error(exc, encoded.method, str(request.url), path, start) from exc
        finally:
            await response.aclose()

        decoded = self._decoder.decode(response.headers, raw, path)
        if not decoded.is_envelope:
            result: Any = decoded.text
        else:
            try:
                result = classify_envelope(
                    decoded.envelope,
                    status_code=response.status_code,
                    status_text=response.reason_phrase,
                    body=decoded.text,
                    path=path,
                )
            except RemoteError as exc:
                log_exception(
                    self._logger,
                    exc,
                    "request.remote_error",
                    method=encoded.method,
                    path=path,
                    reply_code=exc.reply_code,
                    description=exc.description,
                )
                raise

        self._logger.info(
            "request.completed",
            method=encoded.method,
            path=path,
            status_code=response.status_code,
            reply_code=decoded.envelope.reply_code if decoded.envelope else None,
            size_bytes=len(raw),
            duration_ms=self._elapsed_ms(start),
        )
        return result

    async def _send(self, request: httpx.Request, method: str, path: str, start: float) -> httpx.Response:
        """Send one hop and absorb its cookies, whatever the status."""
        try:
            response = await self._client.send(request, stream=True)
        except httpx.RequestError as exc:
            raise self._transport_error(exc, method, str(request.url), path, start) from exc

        if self.settings.debug:
            self._logger.debug(
                "response.received",
                path=path,
                status_line=f"{response.http_version} {response.status_code} {response.reason_phrase}",
                headers=self._redact(response.headers),
            )

        if self.settings.use_session:
            self.cookies.absorb(response.headers)
            if self.settings.debug:
                self._logger.debug("cookie.store", cookie_names=sorted(self.cookies.snapshot()))
        return response

    def _redirect_request(self, request: httpx.Request, response: httpx.Response) -> httpx.Request:
        url = request.url.join(response.headers["location"])
        headers = httpx.Headers(request.headers)
        headers.pop("host", None)
        if url.host != request.url.host:
            # credentials stay with the LeanKit host
            headers.pop("authorization", None)
            headers.pop("cookie", None)
        elif self.settings.use_session:
            self.cookies.render(headers)
        return httpx.Request("GET", url, headers=headers)

    def _transport_error(
        self,
        exc: httpx.RequestError,
        method: str,
        url: str,
        path: str,
        start: float,
    ) -> LeanKitError:
        """Translate an httpx failure into the matching TransportError."""
        parsed_url = httpx.URL(url)
        error: TransportError

        if isinstance(exc, httpx.TimeoutException):
            timeout_type = "unknown"
            if isinstance(exc, httpx.ConnectTimeout):
                timeout_type = "connect"
            elif isinstance(exc, httpx.ReadTimeout):
                timeout_type = "read"
            elif isinstance(exc, httpx.WriteTimeout):
                timeout_type = "write"
            elif isinstance(exc, httpx.PoolTimeout):
                timeout_type = "pool"
            error = BoardTimeoutError(
                message=f"Request timed out ({timeout_type})",
                path=path,
                timeout_type=timeout_type,
                cause=exc,
            )
        elif isinstance(exc, httpx.ConnectError) and any(m in str(exc) for m in _DNS_MARKERS):
            error = DNSResolutionError(
                message=f"DNS resolution failed for {parsed_url.host}",
                path=path,
                hostname=parsed_url.host,
                cause=exc,
            )
        elif isinstance(exc, httpx.ConnectError):
            error = BoardConnectionError(
                message=f"Connection failed: {exc}",
                path=path,
                host=parsed_url.host,
                port=parsed_url.port or 443,
                cause=exc,
            )
        else:
            error = TransportError(
                message=f"Transport failure: {exc.__class__.__name__}: {exc}",
                path=path,
                cause=exc,
            )

        log_exception(
            self._logger,
            exc,
            "request.failed",
            method=method,
            path=path,
            error_kind=error.__class__.__name__,
            duration_ms=self._elapsed_ms(start),
        )
        return error

    def _log_request_options(self, url: str, encoded: EncodedRequest) -> None:
        self._logger.debug(
            "request.options",
            url=url,
            method=encoded.method,
            headers=self._redact(encoded.headers),
            encoding=encoded.encoding,
            content_length=len(encoded.content) if encoded.content is not None else 0,
            proxy=self.settings.proxy.host if self.settings.proxy else None,
        )

    @staticmethod
    def _redact(headers: httpx.Headers) -> dict[str, str]:
        return {
            key: ("<redacted>" if key.lower() in _REDACTED_HEADERS else value)
            for key, value in headers.items()
        }

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return round((time.perf_counter() - start) * 1000, 2)

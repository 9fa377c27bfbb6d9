"""
Tests for TransportEngine, the request/response lifecycle.

Tests cover:
- URL building, authorization header and session cookie attachment
- Header precedence over caller-supplied authorization/cookie
- Cookie absorption from responses (including error responses)
- HTTPError for status >= 400 without decoding the body
- GET redirect following and unfollowed redirects
- Envelope classification (success data, RemoteError)
- Raw-text passthrough and streamed responses
- Transport failures mapped to TransportError variants
- JSON echo round trip
- Dry-run mode
- Client options (proxy, trust_env)
"""

from __future__ import annotations

import base64
import json
import logging
from unittest.mock import MagicMock

import httpx
import pytest

from lkboard import BoardSettings, ProxySettings, RequestDescriptor, FilePayload
from lkboard.exceptions import (
    ConnectionError as BoardConnectionError,
    DecodeError,
    DNSResolutionError,
    HTTPError,
    RemoteError,
    TimeoutError as BoardTimeoutError,
    TransportError,
)
from lkboard.observability.logging import BoardLoggerAdapter
from lkboard.session.cookies import CookieStore
from lkboard.transport.engine import MAX_REDIRECTS, TransportEngine

SESSION = "ASP.NET_SessionId"
HOST = "acme.leankit.com"


def make_settings(**overrides) -> BoardSettings:
    options = dict(email="me@example.com", password="secret", host=HOST, board_id=101)
    options.update(overrides)
    return BoardSettings(**options)


def envelope(code=200, text="ok", data=None, status=200, headers=None) -> httpx.Response:
    return httpx.Response(
        status,
        json={"ReplyCode": code, "ReplyText": text, "ReplyData": data if data is not None else []},
        headers=headers,
    )


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response


@pytest.fixture
def recorder():
    return Recorder(envelope(data=[{"Id": 1}]))


@pytest.fixture
async def engine(recorder):
    async with TransportEngine(make_settings(), transport=httpx.MockTransport(recorder)) as eng:
        yield eng


@pytest.fixture
async def session_engine(recorder):
    settings = make_settings(use_session=True)
    async with TransportEngine(settings, transport=httpx.MockTransport(recorder)) as eng:
        yield eng


class TestRequestBuilding:
    """What goes on the wire."""

    @pytest.mark.asyncio
    async def test_url_is_https_host_plus_path(self, engine, recorder):
        await engine.request(RequestDescriptor(path="/kanban/api/boards/101"))

        assert str(recorder.requests[0].url) == f"https://{HOST}/kanban/api/boards/101"
        assert recorder.requests[0].method == "GET"

    def test_empty_path_targets_host_root(self):
        engine = TransportEngine(make_settings())

        assert engine.build_url("") == f"https://{HOST}"
        assert engine.build_url(None) == f"https://{HOST}"

    @pytest.mark.asyncio
    async def test_authorization_header_is_basic_token(self, engine, recorder):
        await engine.request(RequestDescriptor(path="/x"))

        token = base64.b64encode(b"me@example.com:secret").decode()
        assert recorder.requests[0].headers["authorization"] == f"Basic {token}"

    @pytest.mark.asyncio
    async def test_caller_cannot_override_authorization(self, engine, recorder):
        await engine.request(
            RequestDescriptor(path="/x", headers={"Authorization": "Bearer stolen", "X-Trace": "1"})
        )

        sent = recorder.requests[0].headers
        assert sent["authorization"].startswith("Basic ")
        assert len(sent.get_list("authorization")) == 1
        assert sent["x-trace"] == "1"

    @pytest.mark.asyncio
    async def test_json_payload_is_posted(self, engine, recorder):
        await engine.request(RequestDescriptor(path="/x", json={"Text": "hi"}))

        sent = recorder.requests[0]
        assert sent.method == "POST"
        assert json.loads(sent.content) == {"Text": "hi"}
        assert sent.headers["content-type"] == "application/json"

    @pytest.mark.asyncio
    async def test_multipart_upload_is_posted(self, engine, recorder):
        await engine.request(
            RequestDescriptor(path="/x", file=FilePayload(data=b"filedata", filename="a.txt"))
        )

        sent = recorder.requests[0]
        assert sent.method == "POST"
        assert sent.headers["content-type"].startswith("multipart/form-data")
        assert b"filedata" in sent.content


class TestSessionCookies:
    """Session cookie absorption and replay."""

    @pytest.mark.asyncio
    async def test_cookie_from_response_is_sent_on_next_request(self, session_engine, recorder):
        recorder.responses = [
            envelope(headers=[("set-cookie", f"{SESSION}=s1; path=/; HttpOnly")]),
            envelope(),
        ]

        await session_engine.request(RequestDescriptor(path="/first"))
        await session_engine.request(RequestDescriptor(path="/second"))

        assert "cookie" not in recorder.requests[0].headers
        assert recorder.requests[1].headers["cookie"] == f"{SESSION}=s1;"

    @pytest.mark.asyncio
    async def test_session_cookie_overrides_caller_cookie(self, session_engine, recorder):
        session_engine.cookies.absorb(httpx.Headers([("set-cookie", f"{SESSION}=mine")]))

        await session_engine.request(RequestDescriptor(path="/x", headers={"Cookie": "theirs=1"}))

        assert recorder.requests[0].headers.get_list("cookie") == [f"{SESSION}=mine;"]

    @pytest.mark.asyncio
    async def test_cookies_are_absorbed_from_error_responses(self, session_engine, recorder):
        recorder.responses = [
            httpx.Response(401, headers=[("set-cookie", f"{SESSION}=late")]),
        ]

        with pytest.raises(HTTPError):
            await session_engine.request(RequestDescriptor(path="/x"))

        assert session_engine.cookies.session_cookie.value == "late"

    @pytest.mark.asyncio
    async def test_session_mode_off_ignores_cookies(self, engine, recorder):
        recorder.responses = [
            envelope(headers=[("set-cookie", f"{SESSION}=s1")]),
            envelope(),
        ]

        await engine.request(RequestDescriptor(path="/first"))
        await engine.request(RequestDescriptor(path="/second"))

        assert len(engine.cookies) == 0
        assert "cookie" not in recorder.requests[1].headers

    @pytest.mark.asyncio
    async def test_injected_empty_store_is_shared(self, recorder):
        store = CookieStore(session_key=SESSION)
        recorder.responses = [envelope(headers=[("set-cookie", f"{SESSION}=shared")])]
        settings = make_settings(use_session=True)

        async with TransportEngine(
            settings, cookie_store=store, transport=httpx.MockTransport(recorder)
        ) as engine:
            assert engine.cookies is store
            await engine.request(RequestDescriptor(path="/x"))

        assert store.session_cookie.value == "shared"


class TestRedirects:
    """GET redirects are followed; anything else surfaces as HTTPError."""

    @pytest.mark.asyncio
    async def test_get_redirect_is_followed(self, engine, recorder):
        recorder.responses = [
            httpx.Response(302, headers={"Location": "/moved"}, text="Object moved"),
            httpx.Response(200, text="final body"),
        ]

        result = await engine.request(RequestDescriptor(path="/x"))

        assert result == "final body"
        assert str(recorder.requests[1].url) == f"https://{HOST}/moved"
        assert recorder.requests[1].headers["authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_session_cookie_from_redirect_is_sent_on_next_hop(self, session_engine, recorder):
        recorder.responses = [
            httpx.Response(302, headers=[("location", "/moved"), ("set-cookie", f"{SESSION}=hop")]),
            envelope(),
        ]

        await session_engine.request(RequestDescriptor(path="/x"))

        assert recorder.requests[1].headers["cookie"] == f"{SESSION}=hop;"

    @pytest.mark.asyncio
    async def test_cross_host_redirect_drops_credentials(self, session_engine, recorder):
        session_engine.cookies.absorb(httpx.Headers([("set-cookie", f"{SESSION}=mine")]))
        recorder.responses = [
            httpx.Response(302, headers={"Location": "https://files.example.net/blob"}),
            httpx.Response(200, text="blob"),
        ]

        await session_engine.request(RequestDescriptor(path="/x"))

        hop = recorder.requests[1]
        assert hop.url.host == "files.example.net"
        assert "authorization" not in hop.headers
        assert "cookie" not in hop.headers

    @pytest.mark.asyncio
    async def test_post_redirect_raises_http_error(self, engine, recorder):
        recorder.responses = [httpx.Response(302, headers={"Location": "/login"})]

        with pytest.raises(HTTPError) as exc_info:
            await engine.request(RequestDescriptor(path="/x", json={"a": 1}))

        assert exc_info.value.status_code == 302
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_redirect_loop_raises_http_error(self, engine, recorder):
        recorder.responses = [lambda request: httpx.Response(302, headers={"Location": "/again"})]

        with pytest.raises(HTTPError) as exc_info:
            await engine.request(RequestDescriptor(path="/x"))

        assert exc_info.value.status_code == 302
        assert len(recorder.requests) == MAX_REDIRECTS + 1


class TestHTTPErrors:
    """HTTP status >= 400 handling."""

    @pytest.mark.asyncio
    async def test_401_has_fixed_message(self, engine, recorder):
        recorder.responses = [httpx.Response(401, text="nope")]

        with pytest.raises(HTTPError) as exc_info:
            await engine.request(RequestDescriptor(path="/kanban/api/boards/101"))

        err = exc_info.value
        assert err.message == "401 Authorization required - bad user or pass"
        assert err.status_code == 401
        assert err.status_text == "Unauthorized"
        assert err.path == "/kanban/api/boards/101"

    @pytest.mark.asyncio
    async def test_unmapped_status_gets_placeholder(self, engine, recorder):
        recorder.responses = [httpx.Response(404)]

        with pytest.raises(HTTPError) as exc_info:
            await engine.request(RequestDescriptor(path="/missing"))

        assert exc_info.value.message == "Err message tbd"
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_error_body_is_never_decoded(self, engine, recorder):
        # a failing envelope inside a 500 is still an HTTP error, not a RemoteError
        recorder.responses = [envelope(code=503, status=500)]

        with pytest.raises(HTTPError) as exc_info:
            await engine.request(RequestDescriptor(path="/x"))

        assert not isinstance(exc_info.value, RemoteError)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_streamed_request_with_error_status_raises(self, engine, recorder):
        recorder.responses = [httpx.Response(403, content=b"denied")]

        with pytest.raises(HTTPError):
            await engine.request(RequestDescriptor(path="/x", streamed=True))


class TestEnvelopeHandling:
    """Successful HTTP exchanges and the LeanKit envelope."""

    @pytest.mark.asyncio
    async def test_success_returns_reply_data_as_is(self, engine, recorder):
        recorder.responses = [envelope(code=200, data=[{"Id": 5, "Title": "Card"}])]

        result = await engine.request(RequestDescriptor(path="/x"))

        assert result == [{"Id": 5, "Title": "Card"}]

    @pytest.mark.asyncio
    async def test_no_data_code_is_success(self, engine, recorder):
        recorder.responses = [envelope(code=100, text="No data", data=[])]

        assert await engine.request(RequestDescriptor(path="/x")) == []

    @pytest.mark.asyncio
    async def test_reply_code_503_is_remote_error(self, engine, recorder):
        recorder.responses = [envelope(code=503, text="Kaboom")]

        with pytest.raises(RemoteError) as exc_info:
            await engine.request(RequestDescriptor(path="/x"))

        err = exc_info.value
        assert err.description == "FatalException"
        assert err.reply_text == "Kaboom"
        assert err.status_code == 200
        assert json.loads(err.body)["ReplyCode"] == 503

    @pytest.mark.asyncio
    async def test_malformed_json_is_decode_error(self, engine, recorder):
        recorder.responses = [
            httpx.Response(200, content=b"{oops", headers={"Content-Type": "application/json"})
        ]

        with pytest.raises(DecodeError):
            await engine.request(RequestDescriptor(path="/x"))

    @pytest.mark.asyncio
    async def test_json_array_body_is_success_without_data(self, engine, recorder):
        recorder.responses = [httpx.Response(200, json=[{"Id": 1}])]

        assert await engine.request(RequestDescriptor(path="/x")) is None

    @pytest.mark.asyncio
    async def test_infinite_reply_code_is_remote_error(self, engine, recorder):
        recorder.responses = [
            httpx.Response(
                200,
                content=b'{"ReplyCode": 1e999, "ReplyText": "huge", "ReplyData": []}',
                headers={"Content-Type": "application/json"},
            )
        ]

        with pytest.raises(RemoteError) as exc_info:
            await engine.request(RequestDescriptor(path="/x"))

        assert exc_info.value.description == "No description found"

    @pytest.mark.asyncio
    async def test_non_json_body_is_returned_as_text(self, engine, recorder):
        recorder.responses = [httpx.Response(200, text="plain old text")]

        assert await engine.request(RequestDescriptor(path="/x")) == "plain old text"

    @pytest.mark.asyncio
    async def test_streamed_response_is_handed_over_open(self, engine, recorder):
        recorder.responses = [
            httpx.Response(200, content=b"\x00\x01binary", headers={"Content-Type": "application/json"})
        ]

        response = await engine.request(RequestDescriptor(path="/x", streamed=True))
        try:
            assert isinstance(response, httpx.Response)
            assert await response.aread() == b"\x00\x01binary"
        finally:
            await response.aclose()

    @pytest.mark.asyncio
    async def test_json_payload_round_trips_through_echo(self, engine, recorder):
        def echo(request: httpx.Request) -> httpx.Response:
            return envelope(data=json.loads(request.content))

        recorder.responses = [echo]
        payload = {"Title": "Échange", "Tags": ["a", "b"], "Size": 3, "Blocked": False, "Lane": None}

        assert await engine.request(RequestDescriptor(path="/echo", json=payload)) == payload


class TestTransportErrors:
    """Network failures before any HTTP status."""

    @pytest.mark.asyncio
    async def test_connect_error(self, engine, recorder):
        recorder.responses = [httpx.ConnectError("Connection refused")]

        with pytest.raises(BoardConnectionError) as exc_info:
            await engine.request(RequestDescriptor(path="/x"))

        assert exc_info.value.host == HOST
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_dns_failure(self, engine, recorder):
        recorder.responses = [httpx.ConnectError("[Errno -2] Name or service not known")]

        with pytest.raises(DNSResolutionError) as exc_info:
            await engine.request(RequestDescriptor(path="/x"))

        assert exc_info.value.hostname == HOST

    @pytest.mark.asyncio
    async def test_read_timeout(self, engine, recorder):
        recorder.responses = [httpx.ReadTimeout("timed out")]

        with pytest.raises(BoardTimeoutError) as exc_info:
            await engine.request(RequestDescriptor(path="/x"))

        assert exc_info.value.timeout_type == "read"

    @pytest.mark.asyncio
    async def test_protocol_error_is_generic_transport_error(self, engine, recorder):
        recorder.responses = [httpx.RemoteProtocolError("peer closed connection")]

        with pytest.raises(TransportError) as exc_info:
            await engine.request(RequestDescriptor(path="/x"))

        assert type(exc_info.value) is TransportError

    @pytest.mark.asyncio
    async def test_transport_errors_are_not_retried(self, engine, recorder):
        recorder.responses = [httpx.ConnectError("Connection refused")]

        with pytest.raises(TransportError):
            await engine.request(RequestDescriptor(path="/x"))

        assert len(recorder.requests) == 1


class TestDryRun:
    """Dry run never reaches the network."""

    @pytest.mark.asyncio
    async def test_dry_run_exits_without_sending(self, recorder):
        settings = make_settings(dry_run=True)
        async with TransportEngine(settings, transport=httpx.MockTransport(recorder)) as engine:
            with pytest.raises(SystemExit) as exc_info:
                await engine.request(RequestDescriptor(path="/x", json={"a": 1}))

        assert exc_info.value.code == 0
        assert recorder.requests == []


class TestDebugLogging:
    """Debug mode logs request details without leaking credentials."""

    @pytest.mark.asyncio
    async def test_debug_mode_redacts_authorization(self, recorder, caplog):
        settings = make_settings(debug=True, use_session=True)
        caplog.set_level(logging.DEBUG, logger="lkboard")

        async with TransportEngine(settings, transport=httpx.MockTransport(recorder)) as engine:
            await engine.request(RequestDescriptor(path="/x"))

        events = [record.getMessage() for record in caplog.records]
        assert "request.options" in events
        assert "response.received" in events
        assert "secret" not in caplog.text

    @pytest.mark.asyncio
    async def test_cookie_values_are_not_logged(self, recorder):
        base_logger = MagicMock()
        settings = make_settings(debug=True, use_session=True, logger=BoardLoggerAdapter(base_logger))
        recorder.responses = [envelope(headers=[("set-cookie", f"{SESSION}=topsecretvalue")])]

        async with TransportEngine(settings, transport=httpx.MockTransport(recorder)) as engine:
            await engine.request(RequestDescriptor(path="/x"))

        store_calls = [c for c in base_logger.debug.call_args_list if c.args[0] == "cookie.store"]
        assert store_calls
        assert store_calls[0].kwargs["extra"]["cookie_names"] == [SESSION]
        assert "topsecretvalue" not in repr(base_logger.mock_calls)

    def test_redact_masks_sensitive_headers(self):
        redacted = TransportEngine._redact(
            httpx.Headers({"Authorization": "Basic abc", "Cookie": "a=1", "Accept": "*/*"})
        )

        assert redacted["authorization"] == "<redacted>"
        assert redacted["cookie"] == "<redacted>"
        assert redacted["accept"] == "*/*"


class TestClientOptions:
    """httpx.AsyncClient construction."""

    def test_proxy_with_credentials(self):
        settings = make_settings(proxy=ProxySettings(host="proxy.local:3128", user="u", password="p"))

        options = TransportEngine(settings)._client_options()

        assert options["proxy"] == "http://u:p@proxy.local:3128"
        assert options["follow_redirects"] is False

    def test_no_proxy_by_default(self):
        options = TransportEngine(make_settings())._client_options()

        assert "proxy" not in options

    def test_injected_transport_ignores_environment(self, recorder):
        transport = httpx.MockTransport(recorder)

        options = TransportEngine(make_settings(), transport=transport)._client_options()

        assert options["transport"] is transport
        assert options["trust_env"] is False

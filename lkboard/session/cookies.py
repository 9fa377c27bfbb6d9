"""
Session cookie store.

Parses ``Set-Cookie`` response headers into SessionCookie records and
replays the one session cookie the client cares about on later requests.
Deliberately not a cookie jar: no domain/path matching, and expiry
attributes are recorded but never enforced. A cookie is only ever replaced
by a newer one of the same name.

The store is shared by every request issued through one client and is
only touched from the event loop thread, so no locking is needed.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field, asdict
from email.utils import parsedate_to_datetime
from datetime import timezone
from typing import Any, Dict, Iterable, Iterator, Mapping, MutableMapping, Optional, Union

import httpx

from ..observability.logging import get_board_logger, BoardLoggerAdapter

__all__ = [
    "KNOWN_ATTRIBUTES",
    "SessionCookie",
    "CookieStore",
    "parse_set_cookie",
]

VALUE_ATTRIBUTES = frozenset({"expires", "domain", "max-age", "path"})
FLAG_ATTRIBUTES = frozenset({"secure", "httponly"})
KNOWN_ATTRIBUTES = VALUE_ATTRIBUTES | FLAG_ATTRIBUTES


@dataclass
class SessionCookie:
    """One received cookie, keyed by name in the CookieStore."""

    name: str
    value: str
    cookie_string: str                      # "name=value;" as replayed in the Cookie header
    expires: Optional[str] = None
    max_age: Optional[int] = None
    domain: Optional[str] = None
    path: Optional[str] = None
    secure: bool = False
    httponly: bool = False
    expires_at: Optional[float] = None      # epoch seconds parsed from Expires
    created_at: float = field(default_factory=time.time, compare=False)
    max_age_expires_at: Optional[float] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionCookie":
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


def _parse_expires(value: str) -> Optional[float]:
    try:
        expires = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if expires is None:
        return None
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    return expires.timestamp()


def _parse_max_age(value: str) -> Optional[int]:
    try:
        return int(value.strip())
    except ValueError:
        return None


def parse_set_cookie(header: str, now: Optional[float] = None) -> Optional[SessionCookie]:
    """
    Parse one ``Set-Cookie`` header value.

    The first ``;``-separated part is the ``name=value`` pair; the rest are
    attributes. Unknown or malformed attributes are skipped. Returns None
    when there is no cookie name at all.
    """
    parts = header.split(";")
    pair = parts[0].strip()
    name, _, value = pair.partition("=")
    name = name.strip()
    if not name:
        return None

    created_at = time.time() if now is None else now
    cookie = SessionCookie(
        name=name,
        value=value.strip(),
        cookie_string=pair + ";",
        created_at=created_at,
    )

    for attr in parts[1:]:
        key, sep, attr_value = attr.partition("=")
        key = key.strip().lower()
        if key not in KNOWN_ATTRIBUTES:
            continue
        if key in FLAG_ATTRIBUTES:
            setattr(cookie, key, True)
        elif sep:
            attr_value = attr_value.strip()
            if key == "max-age":
                cookie.max_age = _parse_max_age(attr_value)
            else:
                setattr(cookie, key, attr_value)

    if cookie.expires is not None:
        cookie.expires_at = _parse_expires(cookie.expires)
    if cookie.max_age is not None:
        cookie.max_age_expires_at = created_at + cookie.max_age

    return cookie


class CookieStore:
    """
    Name-keyed store of the cookies received from LeanKit.

    Example:
        store = CookieStore(session_key="ASP.NET_SessionId")
        store.absorb(response.headers)
        headers = {}
        store.render(headers)   # headers["cookie"] == "ASP.NET_SessionId=abc;"
    """

    def __init__(
        self,
        session_key: str = "ASP.NET_SessionId",
        logger: Optional[BoardLoggerAdapter] = None,
    ):
        self.session_key = session_key
        self._cookies: Dict[str, SessionCookie] = {}
        self._logger = logger or get_board_logger(__name__)

    def __len__(self) -> int:
        return len(self._cookies)

    def __contains__(self, name: object) -> bool:
        return name in self._cookies

    def __iter__(self) -> Iterator[SessionCookie]:
        return iter(list(self._cookies.values()))

    def get(self, name: str) -> Optional[SessionCookie]:
        return self._cookies.get(name)

    @property
    def session_cookie(self) -> Optional[SessionCookie]:
        return self._cookies.get(self.session_key)

    def set(self, cookie: SessionCookie) -> None:
        """Store a cookie, replacing any previous record with the same name."""
        self._cookies[cookie.name] = cookie

    def clear(self) -> None:
        self._cookies.clear()

    def absorb(self, headers: Union[httpx.Headers, Mapping[str, Any]]) -> int:
        """
        Absorb every ``Set-Cookie`` header of a response.

        Returns the number of cookies stored.
        """
        values = _set_cookie_values(headers)
        stored = 0
        for raw in values:
            cookie = parse_set_cookie(raw)
            if cookie is None:
                self._logger.debug("cookie.skipped", raw_length=len(raw))
                continue
            self.set(cookie)
            stored += 1

        if stored:
            self._logger.debug(
                "cookie.absorbed",
                absorbed=stored,
                cookie_names=sorted(self._cookies),
                has_session=self.session_key in self._cookies,
            )
        return stored

    def render(self, headers: MutableMapping[str, str]) -> MutableMapping[str, str]:
        """Set the ``cookie`` header from the session cookie, if one is held."""
        cookie = self._cookies.get(self.session_key)
        if cookie is not None:
            headers["cookie"] = cookie.cookie_string
        return headers

    def snapshot(self) -> Dict[str, SessionCookie]:
        return dict(self._cookies)


def _set_cookie_values(headers: Union[httpx.Headers, Mapping[str, Any]]) -> Iterable[str]:
    if isinstance(headers, httpx.Headers):
        return headers.get_list("set-cookie")
    for key, value in headers.items():
        if key.lower() == "set-cookie":
            return [value] if isinstance(value, str) else list(value)
    return []

from __future__ import annotations
import base64
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import quote
from typing import TYPE_CHECKING, Optional, Union

from ..exceptions import InvalidSettingsError

if TYPE_CHECKING:
    from ..observability.logging import BoardLoggerAdapter

DEFAULT_UA = "lkboard/0.1 (+https://leankit.com)"
DEFAULT_BASE_PATH = "/kanban/api"
DEFAULT_SESSION_COOKIE = "ASP.NET_SessionId"
DEFAULT_BULK_DOWNLOAD_LIMIT = 10


@dataclass
class Timeouts:
    # handed to httpx as-is; the client adds no deadline of its own
    connect: float = 5.0
    read: float = 120.0   # allow large attachments
    write: float = 30.0
    pool: float = 5.0


@dataclass
class ProxySettings:
    host: str
    user: Optional[str] = None
    password: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.host:
            raise InvalidSettingsError(
                message="Proxy provided without proxy host",
                setting_name="proxy.host",
                setting_value=self.host,
            )

    @property
    def url(self) -> str:
        """Proxy URL, with escaped credentials embedded only when both are set."""
        scheme, sep, host = self.host.partition("://")
        if not sep:
            scheme, host = "http", self.host
        if self.user is not None and self.password is not None:
            host = f"{quote(self.user, safe='')}:{quote(self.password, safe='')}@{host}"
        return f"{scheme}://{host}"


@dataclass
class BoardSettings:
    # Credentials / target
    email: str
    password: str
    host: str                              # e.g. "acme.leankit.com"
    board_id: Union[int, str]
    base_path: str = DEFAULT_BASE_PATH

    # Routing
    proxy: Optional[ProxySettings] = None

    # Session handling
    use_session: bool = False
    session_cookie_name: str = DEFAULT_SESSION_COOKIE
    session_file: Optional[Path] = None    # JSON file the session cookie is persisted to

    # Behaviour switches
    debug: bool = False                    # log full request/response details
    dry_run: bool = False                  # never touch the network; exits the process

    # Batch downloads
    bulk_download_limit: int = DEFAULT_BULK_DOWNLOAD_LIMIT

    # HTTP basics
    user_agent: str = DEFAULT_UA
    accept: str = "application/json, */*"
    accept_encoding: str = "gzip, deflate, br"
    http2: bool = True
    timeouts: Timeouts = field(default_factory=Timeouts)
    max_connections: int = 100
    max_keepalive_connections: int = 20

    # Logging
    logger: Optional["BoardLoggerAdapter"] = None

    def __post_init__(self) -> None:
        for name in ("email", "password", "host", "board_id"):
            value = getattr(self, name)
            if value is None or value == "":
                raise InvalidSettingsError(
                    message=f"Constructor Error: {name} required",
                    setting_name=name,
                    setting_value=value,
                )
        if self.bulk_download_limit < 1:
            raise InvalidSettingsError(
                message="",
                setting_name="bulk_download_limit",
                setting_value=self.bulk_download_limit,
            )
        # precomputed once; credentials are immutable for the client's lifetime
        token = base64.b64encode(f"{self.email}:{self.password}".encode("utf-8"))
        self._authorization = f"Basic {token.decode('ascii')}"

    @property
    def authorization(self) -> str:
        """The ``authorization`` header value derived from the credentials."""
        return self._authorization

    @property
    def base_url(self) -> str:
        return f"https://{self.host}"

    def __repr__(self) -> str:
        return (
            f"BoardSettings(email={self.email!r}, host={self.host!r}, "
            f"board_id={self.board_id!r}, use_session={self.use_session}, "
            f"dry_run={self.dry_run})"
        )

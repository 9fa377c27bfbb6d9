from .cookies import CookieStore, SessionCookie, parse_set_cookie
from .manager import SessionManager

__all__ = [
    "CookieStore",
    "SessionCookie",
    "SessionManager",
    "parse_set_cookie",
]

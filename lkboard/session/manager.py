"""
Persistence of the session cookie store across client lifetimes.

Lets a process pick up the LeanKit session left behind by a previous run
instead of re-authenticating from scratch.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from .cookies import CookieStore, SessionCookie
from ..observability.logging import get_board_logger, log_timing, BoardLoggerAdapter


class SessionManager:
    """
    Save and restore a CookieStore as JSON.

    Example:
        manager = SessionManager(session_file=Path("leankit_session.json"))
        await manager.load_session(store)
        ...
        await manager.save_session(store)
    """

    def __init__(
        self,
        session_file: Optional[Path] = None,
        logger: Optional[BoardLoggerAdapter] = None,
    ):
        self.session_file = Path(session_file) if session_file else Path(".lkboard_session.json")
        self._logger = logger or get_board_logger(__name__)

    async def save_session(self, store: CookieStore) -> None:
        """Write every stored cookie to the session file."""
        session_data = {
            "session_key": store.session_key,
            "cookies": [cookie.to_dict() for cookie in store],
            "saved_at": datetime.now().isoformat(),
        }

        with log_timing(self._logger, "session.save", session_file=str(self.session_file)):
            self.session_file.parent.mkdir(parents=True, exist_ok=True)
            self.session_file.write_text(json.dumps(session_data, indent=2))

        self._logger.info(
            "session.saved",
            session_file=str(self.session_file),
            cookie_count=len(store),
        )

    async def load_session(self, store: CookieStore) -> bool:
        """
        Load cookies from the session file into ``store``.

        Returns:
            True if a session was loaded, False if none exists or it is unreadable
        """
        if not self.session_file.exists():
            self._logger.debug("session.not_found", session_file=str(self.session_file))
            return False

        try:
            session_data = json.loads(self.session_file.read_text())
            cookies = [SessionCookie.from_dict(item) for item in session_data.get("cookies", [])]
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            self._logger.warning(
                "session.load_failed",
                session_file=str(self.session_file),
                error=str(exc),
            )
            return False

        for cookie in cookies:
            store.set(cookie)

        self._logger.info(
            "session.loaded",
            session_file=str(self.session_file),
            cookie_count=len(cookies),
            saved_at=session_data.get("saved_at"),
        )
        return True

    async def clear_session(self) -> None:
        """Delete the saved session data."""
        if self.session_file.exists():
            self.session_file.unlink()
            self._logger.info("session.cleared", session_file=str(self.session_file))

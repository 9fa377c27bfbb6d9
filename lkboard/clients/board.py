from __future__ import annotations
import os
import time
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Union

import aiofiles
import httpx

from ..exceptions import TransportError, WriteError
from ..models.config import BoardSettings
from ..models.requests import FilePayload, RequestDescriptor
from ..models.results import AttachmentDownloadResult, BatchItem
from ..observability.logging import get_board_logger, log_exception
from ..session.cookies import CookieStore
from ..session.manager import SessionManager
from ..transport.engine import TransportEngine
from ..utils import normalize_content_type
from .batch import BatchDownloader

Id = Union[int, str]


def first(data: Any) -> Any:
    """LeanKit wraps single entities in an array; hand back the entity."""
    if isinstance(data, list):
        return data[0] if data else None
    return data


class LeanKitBoard:
    """
    Async client for one LeanKit board.

    Example:
        settings = BoardSettings(
            email="me@example.com",
            password="secret",
            host="acme.leankit.com",
            board_id=101,
            use_session=True,
        )
        async with LeanKitBoard(settings) as board:
            card = await board.get_card(4242)
            await board.post_comment(4242, "Picked up")
            errors = await board.download_bulk_attachments(
                [BatchItem(id=9, path="out/design.pdf"), BatchItem(id=10, path="out/logo.png")]
            )
    """

    def __init__(
        self,
        settings: BoardSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._logger = settings.logger or get_board_logger(
            __name__, host=settings.host, board_id=settings.board_id
        )
        self.cookies = CookieStore(session_key=settings.session_cookie_name, logger=self._logger)
        self._engine = TransportEngine(settings, cookie_store=self.cookies, transport=transport)

        self._session_manager: Optional[SessionManager] = None
        if settings.use_session and settings.session_file:
            self._session_manager = SessionManager(settings.session_file, logger=self._logger)

    @property
    def board_id(self) -> Id:
        return self.settings.board_id

    @property
    def base_path(self) -> str:
        return self.settings.base_path

    async def __aenter__(self) -> "LeanKitBoard":
        await self._engine.__aenter__()
        if self._session_manager:
            await self._session_manager.load_session(self.cookies)
        return self

    async def __aexit__(self, *exc) -> None:
        try:
            if self._session_manager:
                await self._session_manager.save_session(self.cookies)
        finally:
            await self._engine.__aexit__(*exc)

    async def request(self, descriptor: RequestDescriptor) -> Any:
        """Issue a raw call through the transport engine."""
        return await self._engine.request(descriptor)

    async def _get(self, path: str) -> Any:
        return await self._engine.request(RequestDescriptor(path=path))

    async def _post(self, path: str, payload: Any = None) -> Any:
        return await self._engine.request(RequestDescriptor(path=path, method="POST", json=payload))

    # --- Boards ---

    async def get_board(self) -> Any:
        return first(await self._get(f"{self.base_path}/boards/{self.board_id}"))

    async def get_board_archive(self) -> Any:
        return first(await self._get(f"{self.base_path}/board/{self.board_id}/archive"))

    # --- Cards ---

    async def get_card(self, card_id: Id) -> Any:
        return first(await self._get(f"{self.base_path}/board/{self.board_id}/getcard/{card_id}"))

    async def post_card(self, card: Mapping[str, Any], lane_id: Id, position: int = 0) -> Any:
        """Add ``card`` to ``lane_id`` at ``position`` (0 is the top)."""
        path = f"{self.base_path}/board/{self.board_id}/AddCard/lane/{lane_id}/position/{position}"
        return first(await self._post(path, card))

    async def delete_card(self, card_id: Id) -> Any:
        return await self._post(f"{self.base_path}/board/{self.board_id}/DeleteCard/{card_id}")

    async def get_card_history(self, card_id: Id) -> Any:
        return first(await self._get(f"{self.base_path}/card/history/{self.board_id}/{card_id}"))

    # --- Users ---

    async def assign_user(
        self, card_id: Id, user_id: Id, override_comment: Optional[str] = None
    ) -> Any:
        payload = {"CardId": card_id, "UserId": user_id, "OverrideComment": override_comment}
        return await self._post(f"{self.base_path}/board/{self.board_id}/AssignUserLite", payload)

    async def unassign_user(self, card_id: Id, user_id: Id) -> Any:
        payload = {"CardId": card_id, "UserId": user_id}
        return await self._post(f"{self.base_path}/board/{self.board_id}/UnassignUserLite", payload)

    # --- Comments ---

    async def get_comments(self, card_id: Id) -> Any:
        # NOTE: LeanKit answers an unknown card id with an empty list, not an error
        return first(await self._get(f"{self.base_path}/card/getComments/{self.board_id}/{card_id}"))

    async def post_comment(self, card_id: Id, comment: str) -> Any:
        return await self._post(
            f"{self.base_path}/card/saveComment/{self.board_id}/{card_id}",
            {"Text": comment},
        )

    # --- Attachments ---

    async def post_attachment(self, card_id: Id, file: FilePayload) -> Any:
        """Upload ``file`` to a card as multipart/form-data."""
        path = f"{self.base_path}/card/saveAttachment/{self.board_id}/{card_id}"
        return await self._engine.request(RequestDescriptor(path=path, file=file))

    async def get_attachment_list(self, card_id: Id) -> Any:
        return first(
            await self._get(f"{self.base_path}/card/getAttachments/{self.board_id}/{card_id}")
        )

    async def download_attachment(
        self,
        attachment_id: Id,
        write_path: Union[str, Path],
        chunk_size: int = 65536,
    ) -> AttachmentDownloadResult:
        """
        Stream one attachment to ``write_path``.

        ``write_path`` is resolved against the current working directory;
        missing parent directories are created. Nothing is written when the
        request itself fails.

        Raises:
            LeanKitError: Any transport, HTTP or remote failure
            WriteError: The destination could not be written
        """
        path = f"{self.base_path}/card/downloadAttachment/{self.board_id}/{attachment_id}"
        file_path = Path(os.getcwd(), write_path).resolve()
        start_time = time.perf_counter()
        logger = self._logger.bind(attachment_id=attachment_id, attachment_path=str(file_path))

        response = await self._engine.request(RequestDescriptor(path=path, streamed=True))
        size_bytes = 0
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(file_path, "wb") as f:
                async for chunk in response.aiter_bytes(chunk_size=chunk_size):
                    await f.write(chunk)
                    size_bytes += len(chunk)
        except OSError as exc:
            error = WriteError(
                message=f"Failed to write attachment {attachment_id}: {exc}",
                path=path,
                file_path=str(file_path),
                cause=exc,
            )
            log_exception(logger, exc, "attachment.write_failed")
            raise error from exc
        except httpx.RequestError as exc:
            log_exception(logger, exc, "attachment.read_failed")
            raise TransportError(
                message=f"Attachment stream interrupted: {exc.__class__.__name__}: {exc}",
                path=path,
                cause=exc,
            ) from exc
        finally:
            await response.aclose()

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "attachment.downloaded",
            size_bytes=size_bytes,
            duration_ms=duration_ms,
        )

        return AttachmentDownloadResult(
            attachment_id=attachment_id,
            file_path=file_path,
            status_code=response.status_code,
            content_type=normalize_content_type(response.headers),
            size_bytes=size_bytes,
            duration_ms=duration_ms,
        )

    async def download_bulk_attachments(
        self,
        attachments: Iterable[Union[BatchItem, Mapping[str, Any]]],
    ) -> Optional[List[Exception]]:
        """
        Download many attachments, at most ``bulk_download_limit`` at a time.

        Returns:
            None if every download succeeded, else the list of errors
        """
        items = [
            item if isinstance(item, BatchItem) else BatchItem(id=item["id"], path=item["path"])
            for item in attachments
        ]
        downloader = BatchDownloader(
            limit=self.settings.bulk_download_limit,
            dry_run=self.settings.dry_run,
            logger=self._logger,
        )
        return await downloader.download_all(
            items,
            lambda item: self.download_attachment(item.id, item.path),
        )

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from ..exceptions import DryRunError
from ..models.config import DEFAULT_BULK_DOWNLOAD_LIMIT
from ..observability.logging import get_board_logger, log_exception, BoardLoggerAdapter

T = TypeVar("T")


class BatchDownloader:
    """
    Run many downloads with at most ``limit`` in flight.

    Items are admitted in list order; each completion, success or failure,
    frees a slot for the next waiting item. A failing item never stops its
    siblings: failures are collected and reported once, after every item
    has been attempted.

    Example:
        downloader = BatchDownloader(limit=10)
        errors = await downloader.download_all(
            items,
            lambda item: board.download_attachment(item.id, item.path),
        )
        if errors:
            for err in errors:
                print(f"failed: {err}")
    """

    def __init__(
        self,
        limit: int = DEFAULT_BULK_DOWNLOAD_LIMIT,
        dry_run: bool = False,
        logger: Optional[BoardLoggerAdapter] = None,
    ):
        if limit < 1:
            raise ValueError(f"limit must be at least 1, got: {limit}")
        self.limit = limit
        self.dry_run = dry_run
        self._logger = logger or get_board_logger(__name__)

    async def download_all(
        self,
        items: Sequence[T],
        download: Callable[[T], Awaitable[Any]],
    ) -> Optional[List[Exception]]:
        """
        Call ``download`` for every item under the concurrency cap.

        Returns:
            None when every item succeeded, otherwise the non-empty list of
            captured exceptions in completion order

        Raises:
            DryRunError: When dry run is enabled; no item is started
        """
        if self.dry_run:
            error = DryRunError(message="")
            self._logger.error("batch.dry_run_rejected", total_items=len(items))
            raise error

        self._logger.info("batch.started", total_items=len(items), limit=self.limit)
        start_time = time.perf_counter()

        semaphore = asyncio.Semaphore(self.limit)
        errors: List[Exception] = []
        successful = 0

        async def download_one(index: int, item: T) -> None:
            nonlocal successful
            item_logger = self._logger.bind(index=index)
            async with semaphore:
                try:
                    await download(item)
                    successful += 1
                except Exception as exc:
                    errors.append(exc)
                    log_exception(item_logger, exc, "batch.item_failed")

        await asyncio.gather(*(download_one(i, item) for i, item in enumerate(items)))

        total = len(items)
        self._logger.info(
            "batch.completed",
            total_items=total,
            successful=successful,
            failed=len(errors),
            success_rate=(successful / total * 100) if total else 0.0,
            duration_ms=int((time.perf_counter() - start_time) * 1000),
        )

        return errors or None

"""
Logging adapter for the LeanKit board client.

Keeps lkboard decoupled from any particular logging backend while giving
every event a consistent dotted name and keyword metadata.

Architecture:
- BoardLoggerAdapter wraps any LoggerAdapter and exposes event-style helpers
- _logger_factory lets embedding applications inject their own factory
- The default factory uses standard library logging

Usage in lkboard:
    from lkboard.observability.logging import get_board_logger

    logger = get_board_logger(__name__, host="acme.leankit.com")
    logger.info("request.started", method="GET", path="/kanban/api/boards/1")

Usage in consumer applications (configuring the factory):
    from lkboard.observability.logging import configure_logging
    from myapp.logging import get_structured_logger

    configure_logging(logger_factory=get_structured_logger)
"""

from __future__ import annotations

import logging
import time
from logging import Logger, LoggerAdapter
from typing import Any, Callable, Dict, Optional


# Global logger factory (can be injected by embedding applications)
_logger_factory: Optional[Callable[..., LoggerAdapter]] = None


class BoardLoggerAdapter:
    """
    Thin wrapper around LoggerAdapter providing event-style logging.

    Bound context is merged into every record's ``extra``.
    """

    def __init__(self, logger: LoggerAdapter, context: Optional[Dict[str, Any]] = None):
        self._logger = logger
        self._context = context or {}

    def _merge_context(self, **extra: Any) -> Dict[str, Any]:
        return {**self._context, **extra}

    def bind(self, **context: Any) -> "BoardLoggerAdapter":
        """Return a new adapter with additional bound context."""
        return BoardLoggerAdapter(self._logger, self._merge_context(**context))

    def debug(self, event: str, **extra: Any) -> None:
        self._logger.debug(event, extra=self._merge_context(**extra))

    def info(self, event: str, **extra: Any) -> None:
        self._logger.info(event, extra=self._merge_context(**extra))

    def warning(self, event: str, **extra: Any) -> None:
        self._logger.warning(event, extra=self._merge_context(**extra))

    def error(self, event: str, exc_info: Optional[BaseException] = None, **extra: Any) -> None:
        self._logger.error(event, extra=self._merge_context(**extra), exc_info=exc_info)


def _default_logger_factory(name: str, **context: Any) -> LoggerAdapter:
    """Default logger factory using standard library logging."""
    base_logger: Logger = logging.getLogger(name)
    return logging.LoggerAdapter(base_logger, {"extra": context})


def configure_logging(logger_factory: Optional[Callable[..., LoggerAdapter]]) -> None:
    """
    Configure lkboard to use a custom logger factory.

    Args:
        logger_factory: Callable ``(name: str, **context) -> LoggerAdapter``,
            or None to restore the standard library default.
    """
    global _logger_factory
    _logger_factory = logger_factory


def get_board_logger(
    name: str,
    host: Optional[str] = None,
    board_id: Optional[Any] = None,
    **extra_context: Any
) -> BoardLoggerAdapter:
    """
    Get a logger with board context bound.

    Uses the configured logger factory if set, otherwise stdlib logging.

    Args:
        name: Logger name (typically __name__)
        host: LeanKit account host
        board_id: Board the client is bound to
        **extra_context: Additional context to bind

    Returns:
        BoardLoggerAdapter with bound context
    """
    context: Dict[str, Any] = {**extra_context}

    if host is not None:
        context["host"] = host
    if board_id is not None:
        context["board_id"] = board_id

    factory = _logger_factory or _default_logger_factory
    base_logger = factory(name, **context)

    return BoardLoggerAdapter(base_logger, context)


def log_timing(
    logger: BoardLoggerAdapter,
    event_prefix: str,
    **context: Any
) -> "TimingContext":
    """
    Context manager for timing an operation.

    Usage:
        with log_timing(logger, "session.save", session_file=str(path)):
            path.write_text(payload)
        # logs session.save.started and session.save.completed with duration
    """
    return TimingContext(logger, event_prefix, context)


class TimingContext:
    """Context manager for timing and logging an operation."""

    def __init__(self, logger: BoardLoggerAdapter, event_prefix: str, context: Dict[str, Any]):
        self.logger = logger
        self.event_prefix = event_prefix
        self.context = context
        self.start_time = 0.0

    def __enter__(self) -> "TimingContext":
        self.start_time = time.time()
        self.logger.debug(f"{self.event_prefix}.started", **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        duration_ms = (time.time() - self.start_time) * 1000

        if exc_type is None:
            self.logger.debug(
                f"{self.event_prefix}.completed",
                duration_ms=round(duration_ms, 2),
                **self.context
            )
        else:
            self.logger.error(
                f"{self.event_prefix}.failed",
                duration_ms=round(duration_ms, 2),
                exc_info=exc_val,
                **self.context
            )


def log_exception(
    logger: BoardLoggerAdapter,
    exc: BaseException,
    event: str,
    **context: Any
) -> None:
    """
    Log an exception with its type and message.

    Usage:
        try:
            await engine.request(descriptor)
        except LeanKitError as exc:
            log_exception(logger, exc, "request.failed", method="GET")
            raise
    """
    error_context = {
        **context,
        "error_type": exc.__class__.__name__,
        "error_message": str(exc),
    }

    logger.error(event, exc_info=exc, **error_context)


def log_content_processing(
    logger: BoardLoggerAdapter,
    operation: str,
    content_type: Optional[str] = None,
    charset: Optional[str] = None,
    size_bytes: Optional[int] = None,
    **context: Any
) -> None:
    """
    Log body processing steps (encode, decode, envelope classification).

    Usage:
        log_content_processing(
            logger,
            operation="decode",
            content_type="application/json",
            size_bytes=5238,
        )
    """
    logger.debug(
        f"content.{operation}",
        content_type=content_type,
        charset=charset,
        size_bytes=size_bytes,
        **context
    )

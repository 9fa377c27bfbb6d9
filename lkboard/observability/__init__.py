from .logging import (
    BoardLoggerAdapter,
    configure_logging,
    get_board_logger,
    log_exception,
)

__all__ = [
    "BoardLoggerAdapter",
    "configure_logging",
    "get_board_logger",
    "log_exception",
]

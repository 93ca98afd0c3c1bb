import logging
import sys
from typing import Optional, Union

from lsprotocol.types import LogMessageParams, MessageType
from pygls.lsp.server import LanguageServer

LOGGER_NAME = "plsqlnav"


class LspLogHandler(logging.Handler):
    """Forwards log records to the client as window/logMessage notifications."""

    LEVEL_TO_MESSAGE_TYPE = {
        logging.CRITICAL: MessageType.Error,
        logging.ERROR: MessageType.Error,
        logging.WARNING: MessageType.Warning,
        logging.INFO: MessageType.Info,
        logging.DEBUG: MessageType.Log,
    }

    def __init__(self, ls: LanguageServer):
        super().__init__()
        self.ls = ls

    def emit(self, record):
        try:
            message = self.format(record)
            # Nothing to send to before the server owns a protocol
            if self.ls and hasattr(self.ls, "window_log_message"):
                message_type = self.LEVEL_TO_MESSAGE_TYPE.get(
                    record.levelno, MessageType.Log
                )
                self.ls.window_log_message(
                    LogMessageParams(message=message, type=message_type)
                )
        except Exception:
            self.handleError(record)


def parse_level(level: Union[int, str, None], default: int = logging.INFO) -> int:
    """Turn a level given by a client setting ("debug", "INFO", 10) into an int."""
    if level is None:
        return default
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else default


def set_log_level(level: Union[int, str, None]) -> None:
    """Change the level of the plsqlnav logger and all of its handlers."""
    logger = logging.getLogger(LOGGER_NAME)
    resolved = parse_level(level, logger.level or logging.INFO)
    logger.setLevel(resolved)
    for handler in logger.handlers:
        handler.setLevel(resolved)


def setup_logging(
    ls: Optional[LanguageServer], level: int = logging.INFO
) -> logging.Logger:
    """Configures logging for the LSP server."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Prevent duplicate log handlers in case of reload
    if not logger.hasHandlers():
        # stdout carries the JSON-RPC stream, console logs go to stderr
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(console_handler)

        if ls is not None:
            lsp_handler = LspLogHandler(ls)
            lsp_handler.setLevel(level)
            lsp_handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
            logger.addHandler(lsp_handler)

    return logger

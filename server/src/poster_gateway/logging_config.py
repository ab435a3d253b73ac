"""Logging setup for Poster Gateway: stdout/stderr split and credential redaction"""

import logging
import re
import sys

from poster_gateway.config import config

# uvicorn's access log prints the callback query string verbatim
SENSITIVE_PARAMS = re.compile(
    r"\b(code|state|access_token|refresh_token|code_verifier)=([^&\s\"']+)"
)

# httpx logs every outgoing request URL at INFO, including allow-list lookups by email
QUIET_LOGGERS = ("httpx", "httpcore")


class MaxLevelFilter(logging.Filter):
    """Pass only records strictly below a level"""

    def __init__(self, max_level: int):
        super().__init__()
        self.max_level = max_level

    def filter(self, record):
        return record.levelno < self.max_level


class RedactCredentialsFilter(logging.Filter):
    """Mask OAuth codes and tokens in the rendered log message"""

    def filter(self, record):
        message = record.getMessage()
        redacted = SENSITIVE_PARAMS.sub(r"\1=[redacted]", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _handler(stream, min_level: int, max_level: int | None = None) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(min_level)
    if max_level is not None:
        handler.addFilter(MaxLevelFilter(max_level))
    handler.addFilter(RedactCredentialsFilter())
    handler.setFormatter(logging.Formatter("%(levelname)s:%(name)s:%(message)s"))
    return handler


def setup_logging(log_level: str | None = None):
    """
    Route INFO/DEBUG to stdout and WARNING+ to stderr, with credentials masked.

    The level comes from config unless one is passed in.
    """
    level_name = (log_level or config.get("log_level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(_handler(sys.stdout, logging.DEBUG, max_level=logging.WARNING))
    root_logger.addHandler(_handler(sys.stderr, logging.WARNING))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

from __future__ import annotations

import json
import logging
import sys

ROOT_LOGGER = "neurosym"

# Third-party loggers that log every HTTP round-trip at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore", "LiteLLM")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": record.created,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    *,
    quiet_http: bool = True,
) -> logging.Logger:
    """Configure and return the root neurosym logger.

    Calling it twice is a no-op; the first configuration wins.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
    logger.addHandler(handler)

    if quiet_http:
        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the neurosym namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")

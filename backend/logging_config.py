"""Process logging: format, levels, and secret redaction.

Logging here is operational only. Lifecycle events that must be kept go
to the notification log through ``AuditService``.
"""

import logging
import re

from config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s  %(message)s"

QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "httpx",
    "httpcore",
    "urllib3",
    "keyring",
)

_SECRET_PATTERNS = (
    re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE),
    re.compile(
        r"(\b(?:access_token|refresh_token|code_verifier|client_secret|code)[\"']?\s*[=:]\s*[\"']?)"
        r"[^\s&\"',}]+",
        re.IGNORECASE,
    ),
)


def redact(text: str) -> str:
    """Mask bearer tokens and OAuth secrets embedded in ``text``."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(r"\1***", text)
    return text


class RedactSecretsFilter(logging.Filter):
    """Rewrites records so OAuth tokens never reach a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def setup_logging() -> None:
    """Configure the root logger from ``settings.LOG_LEVEL``.

    Safe to call more than once; handlers are replaced, not stacked.
    """
    logging.basicConfig(
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        level=getattr(logging, settings.LOG_LEVEL),
        force=True,
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(RedactSecretsFilter())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

"""Logging setup.

Every module logs through ``logging.getLogger(__name__)``. Provider tokens
must never reach a log record; ``SecretRedactionFilter`` masks the token
shapes Slack and Google issue in case one slips into an exception message.
"""

import logging
import re

from .config import get_settings

_TOKEN_PATTERNS = [
    re.compile(r"xox[abposr]-[A-Za-z0-9-]+"),  # Slack bot/user tokens
    re.compile(r"1//[A-Za-z0-9_-]{20,}"),  # Google refresh tokens
    re.compile(r"ya29\.[A-Za-z0-9_.-]+"),  # Google access tokens
]


def redact(text: str) -> str:
    for pattern in _TOKEN_PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    return text


class SecretRedactionFilter(logging.Filter):
    """Mask provider tokens in the rendered log message."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once at startup."""
    settings = get_settings()
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    root = logging.getLogger()
    for handler in root.handlers:
        if not any(isinstance(f, SecretRedactionFilter) for f in handler.filters):
            handler.addFilter(SecretRedactionFilter())

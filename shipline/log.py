"""Logging setup for the command line entry point."""

from __future__ import annotations

import logging

from shipline.security.redact import RedactingFilter, Redactor, default_redactor

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


def configure_logging(
    level: str | int = "INFO",
    redactor: Redactor = default_redactor,
) -> None:
    """Configure root logging and mask secrets on every root handler."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    logging.getLogger().setLevel(level)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(RedactingFilter(redactor))

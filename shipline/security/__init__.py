"""Hashing and secret masking."""

from shipline.security.hasher import Hasher
from shipline.security.redact import MASK, RedactingFilter, Redactor, default_redactor

__all__ = [
    "Hasher",
    "MASK",
    "RedactingFilter",
    "Redactor",
    "default_redactor",
]

"""Secret masking for log output and error messages."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Iterable

from pydantic import SecretStr

MASK = "***"

# Lines of a multi-line secret shorter than this are not masked on their own
_MIN_LINE_LEN = 4


class Redactor:
    """Replace registered secret values with ``***``.

    Multi-line secrets (private keys) are registered line by line as well,
    so a partial echo of key material is still masked.  Registrations are
    counted: concurrent runs sharing a secret keep it masked until the last
    one discards it.
    """

    def __init__(self, secrets: Iterable[str | SecretStr | None] = ()) -> None:
        self._lock = threading.Lock()
        self._secrets: Counter[str] = Counter()
        self.add(*secrets)

    def add(self, *secrets: str | SecretStr | None) -> None:
        with self._lock:
            for secret in secrets:
                if secret is None:
                    continue
                value = secret.get_secret_value() if isinstance(secret, SecretStr) else secret
                for candidate in _candidates(value):
                    self._secrets[candidate] += 1

    def discard(self, *secrets: str | SecretStr | None) -> None:
        with self._lock:
            for secret in secrets:
                if secret is None:
                    continue
                value = secret.get_secret_value() if isinstance(secret, SecretStr) else secret
                for candidate in _candidates(value):
                    self._secrets[candidate] -= 1
                    if self._secrets[candidate] <= 0:
                        del self._secrets[candidate]

    def redact(self, text: str) -> str:
        with self._lock:
            # Longest first so a full key is masked before its lines
            secrets = sorted(self._secrets, key=len, reverse=True)
        for secret in secrets:
            text = text.replace(secret, MASK)
        return text

    def __len__(self) -> int:
        return len(self._secrets)


def _candidates(value: str) -> set[str]:
    whole = value.strip()
    if not whole:
        return set()
    lines = {line.strip() for line in whole.splitlines()}
    return {whole} | {line for line in lines if len(line) >= _MIN_LINE_LEN}


class RedactingFilter(logging.Filter):
    """Logging filter that masks secrets in every record it sees."""

    def __init__(self, redactor: Redactor) -> None:
        super().__init__()
        self.redactor = redactor

    def filter(self, record: logging.LogRecord) -> bool:
        if not len(self.redactor):
            return True
        record.msg = self.redactor.redact(record.getMessage())
        record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = self.redactor.redact(record.exc_text)
        return True


# Process-wide redactor used by the runner and the log filter
default_redactor = Redactor()

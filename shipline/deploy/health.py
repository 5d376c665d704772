"""ServiceProbe — checks that a deployed service answers over HTTP."""

from __future__ import annotations

import logging
import time

import requests
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ProbeResult(BaseModel):
    """Outcome of probing a service URL."""

    url: str = ""
    healthy: bool = False
    status_code: int | None = None
    body: str = ""
    attempts: int = 0
    message: str = ""


class ServiceProbe:
    """Poll a URL until it returns 200 (and the expected body, if given).

    Parameters
    ----------
    expected_body:
        Exact response text required; ``None`` accepts any 200 response.
    attempts:
        Number of requests before giving up.
    interval:
        Seconds to wait between attempts.
    timeout:
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        expected_body: str | None = None,
        *,
        attempts: int = 5,
        interval: float = 2.0,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.expected_body = expected_body
        self.attempts = max(1, attempts)
        self.interval = interval
        self.timeout = timeout
        self._session = session or requests.Session()

    def check(self, url: str) -> ProbeResult:
        """Probe *url* and return the last observation."""
        result = ProbeResult(url=url)
        for attempt in range(1, self.attempts + 1):
            result.attempts = attempt
            try:
                resp = self._session.get(url, timeout=self.timeout)
            except requests.RequestException as exc:
                result.message = f"request failed: {exc}"
                logger.debug("Probe %d/%d of %s failed: %s", attempt, self.attempts, url, exc)
            else:
                result.status_code = resp.status_code
                result.body = resp.text
                if resp.status_code != 200:
                    result.message = f"HTTP {resp.status_code}"
                elif self.expected_body is not None and resp.text.strip() != self.expected_body:
                    result.message = "unexpected response body"
                else:
                    result.healthy = True
                    result.message = "ok"
                    logger.info("Service at %s is healthy", url)
                    return result
            if attempt < self.attempts:
                time.sleep(self.interval)

        logger.warning("Service at %s unhealthy after %d attempts: %s", url, result.attempts, result.message)
        return result

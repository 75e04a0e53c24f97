"""Default ``GET`` fetcher backed by httpx."""

from __future__ import annotations

import logging

import httpx

from gridcalc.calc._errors import FetchError
from gridcalc.calc._protocol import DEFAULT_CONFIG

logger = logging.getLogger(__name__)


class HttpxFetcher:
    """Blocking HTTP GET with a caller-supplied timeout.

    Redirects are followed; non-2xx responses, transport failures and
    malformed URLs all surface as :class:`FetchError`. *transport* is passed
    straight to :class:`httpx.Client` (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        timeout: float = DEFAULT_CONFIG.fetch_timeout,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    def fetch(self, url: str) -> str:
        try:
            with httpx.Client(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = client.get(url)
                response.raise_for_status()
                return response.text
        except httpx.TimeoutException as e:
            logger.debug("GET %s timed out after %ss", url, self.timeout)
            raise FetchError(f"Request to {url} timed out") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("GET %s failed: %s", url, e)
            raise FetchError(str(e)) from e

    def __repr__(self) -> str:
        return f"<HttpxFetcher timeout={self.timeout}>"

"""Shared async HTTP client for storefront price sources.

Wraps :class:`httpx.AsyncClient` with:

* **Bounded waits** — one :class:`httpx.Timeout` applied to connect, read and
  write so a hung call cannot stall the daily scan.
* **Automatic retries** — exponential back-off with random jitter via
  :mod:`tenacity` for transient failures (HTTP 5xx, connection errors).
  A timeout is not retried, so one fetch waits at most one timeout.
* **Capacity-limit classification** — HTTP 429 *and* HTTP 403 raise
  :class:`~salewatch.core.exceptions.PriceSourceRateLimitError` immediately.
  They never consume retry budget: the scheduler owns the cooldown.
* **Structured error mapping** — persistent client errors (other 4xx) raise
  :class:`~salewatch.core.exceptions.PriceSourceFetchError` immediately;
  exhausted transient retries are wrapped in the same exception.

Typical usage::

    from salewatch.providers.api.http_client import PriceSourceHttpClient

    async with PriceSourceHttpClient(source="steam") as client:
        response = await client.get(
            "https://store.steampowered.com/api/appdetails",
            params={"appids": 620},
        )
        data = response.json()

Tests inject an :class:`httpx.MockTransport` via the ``transport`` argument.
"""

from __future__ import annotations

import logging
import random
from types import TracebackType
from typing import Any, Final

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
)

from salewatch.core.exceptions import PriceSourceFetchError, PriceSourceRateLimitError

__all__ = ["PriceSourceHttpClient"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: HTTP status codes the storefront uses to signal throttling.
_RATE_LIMIT_STATUS: Final[frozenset[int]] = frozenset({403, 429})

#: Default per-phase timeout in seconds.
_DEFAULT_TIMEOUT: Final[float] = 10.0

#: Default total attempts (1 initial + 1 retry).
_DEFAULT_MAX_ATTEMPTS: Final[int] = 2

#: Hard cap on exponential back-off base before adding jitter (seconds).
_MAX_BACKOFF_BASE: Final[float] = 30.0

#: Upper bound on jitter added on top of the exponential base (seconds).
_MAX_BACKOFF_JITTER: Final[float] = 5.0

_USER_AGENT: Final[str] = "salewatch/0.1 (+https://store.steampowered.com)"


# ---------------------------------------------------------------------------
# Internal sentinel exception
# ---------------------------------------------------------------------------


class _RetryableServerError(PriceSourceFetchError):
    """Internal: signals a 5xx status for tenacity to retry.

    Surfaces to callers as a plain :class:`PriceSourceFetchError` once the
    retry budget is spent.
    """


# ---------------------------------------------------------------------------
# Retry wait strategy
# ---------------------------------------------------------------------------


def _backoff_wait(retry_state: RetryCallState, scale: float = 1.0) -> float:
    """Exponential back-off (1 s, 2 s, 4 s, …) plus random jitter.

    Args:
        retry_state: Tenacity call-state for the current attempt.
        scale: Multiplier applied to the final wait (``0`` disables sleeping).

    Returns:
        Seconds to sleep before the next attempt.
    """
    attempt = max(retry_state.attempt_number, 1)
    base = min(2.0 ** (attempt - 1), _MAX_BACKOFF_BASE)
    jitter = random.uniform(0.0, min(base, _MAX_BACKOFF_JITTER))
    return (base + jitter) * scale


# ---------------------------------------------------------------------------
# Public client
# ---------------------------------------------------------------------------


class PriceSourceHttpClient:
    """Async HTTP client used by price sources.

    Each request method returns the :class:`httpx.Response` on HTTP 2xx and
    raises a classified :class:`~salewatch.core.exceptions.PriceSourceError`
    on every other outcome.

    Args:
        source: Price source name used in exceptions and log lines.
        base_url: Optional base URL prepended to relative request paths.
        timeout: Connect/read/write timeout in seconds.
        max_attempts: Total attempts on transient errors, including the
            initial try (≥ 1).
        backoff_scale: Multiplier for retry sleeps.  Tests pass ``0``.
        transport: Optional custom :mod:`httpx` transport.

    Raises:
        ValueError: If ``max_attempts`` is less than 1.
    """

    def __init__(
        self,
        *,
        source: str,
        base_url: str = "",
        timeout: float = _DEFAULT_TIMEOUT,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        backoff_scale: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts!r}.")

        self._source = source
        self._base_url = base_url
        self._max_attempts = max_attempts
        self._backoff_scale = backoff_scale
        self._timeout_s = timeout
        self._timeout = httpx.Timeout(timeout)
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> PriceSourceHttpClient:
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public request methods
    # ------------------------------------------------------------------

    async def get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Perform an HTTP GET request with retries.

        Args:
            url: The request URL or path (relative to ``base_url`` if set).
            params: Optional query-string parameters.

        Returns:
            The :class:`httpx.Response` on HTTP 2xx.

        Raises:
            PriceSourceRateLimitError: On HTTP 429 or 403 (never retried).
            PriceSourceFetchError: On any other HTTP error, on a timeout
                (not retried), or on connection errors and 5xx responses
                once retries are exhausted.
        """
        return await self._request_with_retry("GET", url, params=params)

    async def close(self) -> None:
        """Close the underlying HTTP client.  Safe to call more than once."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("PriceSourceHttpClient session closed (%s).", self._source)
        self._http = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Return the open HTTP client, creating it lazily if needed."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
                headers={
                    "Accept": "application/json",
                    "User-Agent": _USER_AGENT,
                },
            )
            logger.debug("PriceSourceHttpClient session opened (%s).", self._source)
        return self._http

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        retry_types = (_RetryableServerError, httpx.TransportError)

        def _wait(rs: RetryCallState) -> float:
            return _backoff_wait(rs, self._backoff_scale)

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.warning(
                "HTTP %s %s attempt %d/%d failed (%s). Retrying…",
                method,
                url,
                rs.attempt_number,
                self._max_attempts,
                type(exc).__name__ if exc else "?",
            )

        response: httpx.Response | None = None
        try:
            async for attempt in AsyncRetrying(
                wait=_wait,
                stop=stop_after_attempt(self._max_attempts),
                retry=(
                    retry_if_exception_type(retry_types)
                    & retry_if_not_exception_type(httpx.TimeoutException)
                ),
                reraise=True,
                before_sleep=_before_sleep,
            ):
                with attempt:
                    response = await self._single_request(method, url, params=params)
        except _RetryableServerError as exc:
            raise PriceSourceFetchError(self._source, str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise PriceSourceFetchError(
                self._source, f"Timed out after {self._timeout_s:g}s: {url}"
            ) from exc
        except httpx.TransportError as exc:
            raise PriceSourceFetchError(
                self._source, f"Network error ({type(exc).__name__}): {exc}"
            ) from exc

        assert response is not None, "tenacity exited without a response or exception"
        return response

    async def _single_request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        """Perform exactly one HTTP request and classify its status.

        Raises:
            PriceSourceRateLimitError: On HTTP 429 / 403.
            _RetryableServerError: On HTTP 5xx (internal sentinel).
            PriceSourceFetchError: On other non-2xx statuses.
            httpx.TransportError: Network-level failures (propagated for retry).
        """
        client = await self._ensure_client()

        try:
            response = await client.request(method, url, params=params)
        except httpx.TransportError:
            logger.debug("Transport error on %s %s.", method, url, exc_info=True)
            raise

        logger.debug("HTTP %s %s → %d", method, url, response.status_code)

        if response.is_success:
            return response

        if response.status_code in _RATE_LIMIT_STATUS:
            logger.warning(
                "Price source %s capacity limited (HTTP %d).",
                self._source,
                response.status_code,
            )
            raise PriceSourceRateLimitError(self._source, status_code=response.status_code)

        if response.is_server_error:
            raise _RetryableServerError(
                self._source,
                f"Transient HTTP {response.status_code} from {url}",
            )

        raise PriceSourceFetchError(
            self._source,
            f"HTTP {response.status_code} from {url}: {response.text[:200]}",
        )

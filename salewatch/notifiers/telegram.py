"""Telegram Bot API client for Salewatch.

Provides :class:`TelegramClient`, a lightweight async wrapper around the
Telegram Bot API's ``sendMessage`` endpoint.  One client serves every
subscriber group: the destination ``chat_id`` is passed per message.

It handles:

* A keep-alive :class:`httpx.AsyncClient` with an explicit timeout budget.
* Automatic retries with capped exponential back-off via :mod:`tenacity`.
* ``retry_after`` honouring on HTTP 429 responses.
* Structured exception mapping to
  :class:`~salewatch.core.exceptions.TelegramError` and
  :class:`~salewatch.core.exceptions.TelegramRateLimitError`.

This module owns *transport* concerns only.  Message content lives in
:mod:`salewatch.notifiers.formatter` and the run-mode aware entry point in
:mod:`salewatch.notifiers.notifier`.

Typical usage::

    async with TelegramClient(token="123:ABC") as client:
        await client.send_message("-1001234", "Hello from Salewatch\\!")
"""

from __future__ import annotations

import logging
import random
from typing import Final

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from salewatch.core.exceptions import TelegramError, TelegramRateLimitError

__all__ = ["TelegramClient"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_TELEGRAM_BASE_URL: Final[str] = "https://api.telegram.org"

#: HTTP status codes that indicate a transient server error and are safe to retry.
_RETRYABLE_STATUS: Final[frozenset[int]] = frozenset({500, 502, 503, 504})

_DEFAULT_TIMEOUT: Final[float] = 10.0

#: Default total send attempts (1 initial + 2 retries).
_DEFAULT_MAX_ATTEMPTS: Final[int] = 3

#: Upper bound on exponential back-off jitter (seconds).
_MAX_BACKOFF_JITTER: Final[float] = 5.0

#: Hard cap on exponential back-off base (seconds).
_MAX_BACKOFF_BASE: Final[float] = 30.0


# ---------------------------------------------------------------------------
# Internal sentinel exception
# ---------------------------------------------------------------------------


class _RetryableServerError(TelegramError):
    """Internal sentinel raised on 5xx to trigger a tenacity retry."""


# ---------------------------------------------------------------------------
# Wait strategy
# ---------------------------------------------------------------------------


def _telegram_wait(retry_state: RetryCallState, scale: float = 1.0) -> float:
    """Compute the wait duration before the next attempt.

    A :class:`TelegramRateLimitError` carrying ``retry_after`` is honoured
    exactly; everything else gets exponential back-off with jitter.
    """
    if retry_state.outcome is not None:
        exc = retry_state.outcome.exception()
        if isinstance(exc, TelegramRateLimitError) and exc.retry_after > 0:
            logger.debug("Honouring Telegram Retry-After of %.1f s", exc.retry_after)
            return exc.retry_after * scale

    attempt = max(retry_state.attempt_number, 1)
    base = min(2.0 ** (attempt - 1), _MAX_BACKOFF_BASE)
    jitter = random.uniform(0.0, min(base, _MAX_BACKOFF_JITTER))
    return (base + jitter) * scale


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class TelegramClient:
    """Async Telegram Bot API client with timeout budget and automatic retries.

    Args:
        token: Bot token as provided by @BotFather (non-empty).
        timeout: Connect/read/write timeout in seconds.
        max_attempts: Total send attempts including the initial try (≥ 1).
        backoff_scale: Multiplier for retry sleeps.  Tests pass ``0``.
        transport: Optional custom :mod:`httpx` transport.

    Raises:
        ValueError: If ``token`` or ``max_attempts`` are invalid.
    """

    def __init__(
        self,
        token: str,
        *,
        timeout: float = _DEFAULT_TIMEOUT,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        backoff_scale: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token:
            raise ValueError("TelegramClient requires a non-empty token.")
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts!r}.")

        self._token = token
        self._max_attempts = max_attempts
        self._backoff_scale = backoff_scale
        self._timeout = httpx.Timeout(timeout)
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TelegramClient:
        await self._ensure_http_client()
        return self

    async def __aexit__(self, *_args: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send_message(
        self,
        chat_id: str,
        text: str,
        *,
        parse_mode: str = "MarkdownV2",
        preview_url: str | None = None,
    ) -> None:
        """Send a text message to *chat_id*.

        Retries on transport errors, HTTP 429 and HTTP 5xx.  Other 4xx
        responses (400 bad markup, 401 bad token, 403 bot removed from the
        chat) raise immediately.

        Args:
            chat_id: Destination chat / channel identifier.
            text: Ready-to-send message text, already escaped for
                *parse_mode*.
            parse_mode: Telegram parse mode, ``""`` for plain text.
            preview_url: URL to show as the link preview (the listing's
                header image).  Previews are disabled when ``None``.

        Raises:
            TelegramRateLimitError: After exhausting retries on HTTP 429.
            TelegramError: For any other non-recoverable Telegram API or
                network error.
        """
        if not chat_id:
            raise ValueError("send_message requires a non-empty chat_id.")
        try:
            await self._send_with_retry(
                chat_id=chat_id, text=text, parse_mode=parse_mode, preview_url=preview_url
            )
        except httpx.TransportError as exc:
            raise TelegramError(f"Network error ({type(exc).__name__}): {exc}") from exc

    async def close(self) -> None:
        """Close the underlying HTTP client.  Safe to call more than once."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("TelegramClient HTTP session closed.")
        self._http = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_http_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=_TELEGRAM_BASE_URL,
                timeout=self._timeout,
                transport=self._transport,
                headers={"User-Agent": "salewatch/0.1"},
            )
            logger.debug("TelegramClient HTTP session opened.")
        return self._http

    async def _send_with_retry(
        self,
        *,
        chat_id: str,
        text: str,
        parse_mode: str,
        preview_url: str | None,
    ) -> None:
        retry_types = (
            TelegramRateLimitError,
            _RetryableServerError,
            httpx.TransportError,
        )

        def _wait(rs: RetryCallState) -> float:
            return _telegram_wait(rs, self._backoff_scale)

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.warning(
                "Telegram send attempt %d/%d failed (%s). Retrying in %.1f s…",
                rs.attempt_number,
                self._max_attempts,
                type(exc).__name__ if exc else "?",
                _wait(rs),
            )

        async for attempt in AsyncRetrying(
            wait=_wait,
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception_type(retry_types),
            reraise=True,
            before_sleep=_before_sleep,
        ):
            with attempt:
                await self._single_attempt(
                    chat_id=chat_id, text=text, parse_mode=parse_mode, preview_url=preview_url
                )

    async def _single_attempt(
        self,
        *,
        chat_id: str,
        text: str,
        parse_mode: str,
        preview_url: str | None,
    ) -> None:
        """Perform exactly one HTTP POST to ``sendMessage``.

        Raises:
            TelegramRateLimitError: HTTP 429.
            _RetryableServerError: HTTP 5xx.
            TelegramError: Non-retryable HTTP error or ``ok=false`` body.
            httpx.TransportError: Network-level error, propagated for retry.
        """
        client = await self._ensure_http_client()
        endpoint = f"/bot{self._token}/sendMessage"

        payload: dict[str, object] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if preview_url:
            payload["link_preview_options"] = {"url": preview_url, "prefer_large_media": True}
        else:
            payload["link_preview_options"] = {"is_disabled": True}

        logger.debug(
            "Telegram sendMessage (chat_id=%s, chars=%d, parse_mode=%r)",
            chat_id,
            len(text),
            parse_mode,
        )

        try:
            response = await client.post(endpoint, json=payload)
        except httpx.TransportError:
            logger.debug("Transport error on Telegram POST.", exc_info=True)
            raise

        logger.debug("Telegram response: HTTP %d", response.status_code)

        if response.status_code == 200:
            _assert_telegram_ok(response)
            return

        if response.status_code == 429:
            retry_after = _parse_retry_after(response)
            logger.warning("Telegram rate limit (HTTP 429), retry_after=%.1f s", retry_after)
            raise TelegramRateLimitError(retry_after=retry_after)

        if response.status_code in _RETRYABLE_STATUS:
            raise _RetryableServerError(
                f"Transient server error: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        raise TelegramError(_extract_description(response), status_code=response.status_code)


# ---------------------------------------------------------------------------
# Response parsing helpers
# ---------------------------------------------------------------------------


def _assert_telegram_ok(response: httpx.Response) -> None:
    """Verify an HTTP-200 Telegram response has ``"ok": true``.

    Raises:
        TelegramError: If the body is not JSON or says ``ok=false``.
    """
    try:
        body = response.json()
    except ValueError as exc:
        raise TelegramError(
            f"Could not parse Telegram 200 response: {exc}",
            status_code=200,
        ) from exc

    if not isinstance(body, dict) or not body.get("ok"):
        description = (
            body.get("description", "(no description)") if isinstance(body, dict) else body
        )
        raise TelegramError(f"Telegram ok=false: {description}", status_code=200)


def _parse_retry_after(response: httpx.Response) -> float:
    """Extract the back-off delay from a Telegram HTTP 429 response.

    Prefers ``parameters.retry_after`` in the JSON body, then the
    ``Retry-After`` header, then ``1.0``.  Always ≥ 1.0.
    """
    try:
        body = response.json()
        ra = body.get("parameters", {}).get("retry_after")
        if ra is not None:
            return max(float(ra), 1.0)
    except (ValueError, AttributeError, TypeError):
        logger.debug("No retry_after in Telegram 429 body.")

    header = response.headers.get("retry-after", "")
    if header:
        try:
            return max(float(header), 1.0)
        except ValueError:
            logger.debug("Could not parse Retry-After header %r.", header)

    return 1.0


def _extract_description(response: httpx.Response) -> str:
    """Human-readable error from a non-2xx response (never empty)."""
    try:
        body = response.json()
        return str(body.get("description") or response.text or f"HTTP {response.status_code}")
    except (ValueError, AttributeError):
        return response.text or f"HTTP {response.status_code}"

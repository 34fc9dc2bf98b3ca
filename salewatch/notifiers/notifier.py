"""High-level alert entry point for Salewatch.

Provides :class:`Notifier`, the object the daily scan calls to deliver a
sale or release alert to one group.  It owns the decision of *whether* to
send (based on :class:`~salewatch.core.run_context.RunContext`) and
delegates to:

* :func:`~salewatch.notifiers.formatter.render_mdv2` — message rendering.
* :class:`~salewatch.notifiers.telegram.TelegramClient` — transport.

Each call is independent; the Notifier holds no subscription state and
never retries beyond what the transport already does.

Typical usage::

    from salewatch.core.run_context import RunContext
    from salewatch.notifiers.notifier import Notifier
    from salewatch.notifiers.telegram import TelegramClient

    async with TelegramClient(token=settings.telegram_bot_token) as client:
        notifier = Notifier(client=client, ctx=RunContext())
        await notifier.send(group.chat_id, build_sale_alert(snapshot))
"""

from __future__ import annotations

import logging

from salewatch.core.exceptions import TelegramError
from salewatch.core.models import AlertMessage
from salewatch.core.run_context import RunContext
from salewatch.notifiers.formatter import render_mdv2
from salewatch.notifiers.telegram import TelegramClient

__all__ = ["Notifier"]

logger = logging.getLogger(__name__)


class Notifier:
    """Renders and delivers a single alert.

    Respects the :class:`~salewatch.core.run_context.RunContext` mode:

    * **dry-run** (``ctx.dry_run=True``) — renders the message and logs it
      at ``INFO`` instead of sending it.  No client is needed.
    * **live** — renders and sends via Telegram.

    Args:
        client: Open :class:`TelegramClient`.  May be ``None`` in dry-run
            mode only.  The Notifier does not manage its lifecycle.
        ctx: Runtime operating mode flags.

    Raises:
        ValueError: Live mode without a client.
    """

    def __init__(self, client: TelegramClient | None, ctx: RunContext) -> None:
        if client is None and ctx.should_notify:
            raise ValueError("Notifier requires a TelegramClient in live mode.")
        self._client = client
        self._ctx = ctx

    async def send(self, chat_id: str | None, message: AlertMessage) -> bool:
        """Deliver *message* to *chat_id*.

        Returns:
            ``True`` if the message was sent (live) or logged (dry-run);
            ``False`` if there is no destination to send to.

        Raises:
            TelegramError: The live send failed after the transport's
                retries.  An ``ERROR`` record is emitted before it
                propagates, so callers do not need to repeat the logging.
        """
        if not chat_id:
            logger.debug("No destination for %s alert %r; skipped.", message.kind, message.title)
            return False

        text = render_mdv2(message)

        if not self._ctx.should_notify:
            logger.info(
                "[dry-run] Would send %s alert to %s\n%s",
                message.kind,
                chat_id,
                text,
            )
            return True

        assert self._client is not None
        try:
            await self._client.send_message(chat_id, text, preview_url=message.image_url)
        except TelegramError as exc:
            logger.error(
                "Failed to send %s alert to %s (%s): %s",
                message.kind,
                chat_id,
                message.title[:60],
                exc,
            )
            raise
        logger.info("Alert sent to %s: %s", chat_id, message.title[:60])
        return True

"""Runtime context for a single Salewatch process.

Encapsulates the operator-selected operating mode that alters notification
behaviour without changing any configuration values.  One
:class:`RunContext` is created in :mod:`salewatch.__main__` and threaded into
the :class:`~salewatch.notifiers.notifier.Notifier`.

dry_run
    Run every pass exactly as in production, including subscription flag
    updates, but **log the rendered alert** instead of POSTing it to
    Telegram.  Useful for local development against a copy of the database.

:attr:`should_notify` is the single property every layer should read:

    >>> RunContext().should_notify
    True

    >>> RunContext(dry_run=True).should_notify
    False
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

__all__ = ["RunContext"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunContext:
    """Immutable container for per-process operating-mode flags.

    Attributes:
        dry_run: When ``True``, alerts are formatted and logged but never
            delivered.
    """

    dry_run: bool = field(default=False)

    @property
    def should_notify(self) -> bool:
        """Return ``True`` if the notifier should actually send messages."""
        return not self.dry_run

    @property
    def mode_label(self) -> str:
        """``"dry-run"`` or ``"live"``, used in log lines."""
        return "dry-run" if self.dry_run else "live"

    def __str__(self) -> str:
        return f"RunContext(mode={self.mode_label}, should_notify={self.should_notify})"

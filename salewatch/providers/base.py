"""Price source interface contract.

A price source turns one listing id into a
:class:`~salewatch.core.models.ListingSnapshot` or raises a classified
:class:`~salewatch.core.exceptions.PriceSourceError`:

* :class:`~salewatch.core.exceptions.PriceSourceRateLimitError` — the source
  is throttling us.  The scheduler parks the pass and retries the same id
  after a cooldown.
* :class:`~salewatch.core.exceptions.PriceSourceNotFoundError` — the id is
  not a real listing.
* :class:`~salewatch.core.exceptions.PriceSourceFetchError` /
  :class:`~salewatch.core.exceptions.PriceSourceParseError` — transient
  network, timeout, or payload failures.

Price sources are read-only.  The scheduler receives one instance at
construction (never a process-wide global) so tests can substitute a fake.

Typical usage::

    async with SteamStoreSource(settings) as source:
        snapshot = await source.fetch(620)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from types import TracebackType
from typing import ClassVar

from salewatch.core.models import ListingSnapshot

__all__ = ["BasePriceSource"]

logger = logging.getLogger(__name__)


class BasePriceSource(ABC):
    """Abstract base for all price sources.

    Subclasses declare :attr:`name` at class level and implement
    :meth:`fetch`.  The async context manager protocol is provided for free;
    override :meth:`close` to release resources.

    Attributes:
        name: Short label used in exceptions and log lines.
    """

    name: ClassVar[str]

    async def close(self) -> None:  # noqa: B027
        """Release any resources held by this source (default: no-op)."""

    async def __aenter__(self) -> BasePriceSource:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @abstractmethod
    async def fetch(self, listing_id: int) -> ListingSnapshot:
        """Return the current state of *listing_id*.

        Implementations must bound their wait (a hung call is reported as
        :class:`~salewatch.core.exceptions.PriceSourceFetchError`) and must
        not perform any writes.

        Raises:
            PriceSourceRateLimitError: The source signalled overload.
            PriceSourceNotFoundError: The id is not a valid listing.
            PriceSourceFetchError: Network failure, timeout, or bad status.
            PriceSourceParseError: The payload could not be mapped.
        """

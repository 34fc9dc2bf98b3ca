"""Steam storefront price source.

Reads one listing at a time from the public storefront "app details" JSON
endpoint (``/api/appdetails``).

The endpoint answers with a single-key object::

    {"620": {"success": true, "data": {...}}}

Only the ``basic``, ``price_overview``, ``recommendations`` and
``release_date`` sections are requested.  Free and unreleased listings come
back without ``price_overview``; missing optional sections map to zero/empty
values rather than errors.

Classification on top of :class:`PriceSourceHttpClient`:

* ``success == false``, a missing entry, or a ``steam_appid`` that differs
  from the requested id (the storefront redirects some ids to bundles or
  parent apps) → :class:`~salewatch.core.exceptions.PriceSourceNotFoundError`.
* A body that is not JSON, or fields of the wrong type →
  :class:`~salewatch.core.exceptions.PriceSourceParseError`.

Typical usage::

    from salewatch.core.settings import Settings
    from salewatch.providers.api.steam import SteamStoreSource

    async with SteamStoreSource(Settings()) as source:
        snapshot = await source.fetch(620)
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from salewatch.core.exceptions import PriceSourceNotFoundError, PriceSourceParseError
from salewatch.core.models import ListingSnapshot
from salewatch.core.settings import Settings
from salewatch.providers.api.http_client import PriceSourceHttpClient
from salewatch.providers.base import BasePriceSource

__all__ = ["SteamStoreSource"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_BASE_URL: str = "https://store.steampowered.com"
_DETAILS_PATH: str = "/api/appdetails"
_FILTERS: str = "basic,price_overview,recommendations,release_date"

# ---------------------------------------------------------------------------
# Parsing helpers (module-level, stateless)
# ---------------------------------------------------------------------------


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    """Return ``data[key]`` when it is an object, else an empty dict.

    The storefront sometimes serialises an absent section as ``[]``.
    """
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _map_details(listing_id: int, data: dict[str, Any]) -> ListingSnapshot:
    """Map an ``appdetails`` ``data`` block to a :class:`ListingSnapshot`.

    Raises:
        pydantic.ValidationError: Field values outside the model's bounds.
        TypeError / ValueError: Numeric fields that cannot be coerced.
    """
    price = _section(data, "price_overview")
    recommendations = _section(data, "recommendations")
    release = _section(data, "release_date")

    return ListingSnapshot(
        listing_id=listing_id,
        name=data.get("name") or "",
        discount=int(price.get("discount_percent") or 0),
        initial_price=price.get("initial_formatted") or "",
        final_price=price.get("final_formatted") or "",
        is_free=bool(data.get("is_free", False)),
        release_pending=bool(release.get("coming_soon", False)),
        reviews=int(recommendations.get("total") or 0),
        description=data.get("short_description") or "",
        image_url=data.get("header_image") or None,
    )


# ---------------------------------------------------------------------------
# Source class
# ---------------------------------------------------------------------------


class SteamStoreSource(BasePriceSource):
    """Price source backed by the Steam storefront ``appdetails`` API.

    Args:
        settings: Application settings (country code, timeout, attempts).
        http_client: Optional pre-built HTTP client (useful for testing).
    """

    name = "steam"

    def __init__(
        self,
        settings: Settings,
        http_client: PriceSourceHttpClient | None = None,
    ) -> None:
        self._country_code = settings.store_country_code
        self._http = http_client or PriceSourceHttpClient(
            source=self.name,
            base_url=_BASE_URL,
            timeout=settings.price_source_timeout,
            max_attempts=settings.price_source_max_attempts,
        )
        self._owns_http = http_client is None

    async def fetch(self, listing_id: int) -> ListingSnapshot:
        key = str(listing_id)
        response = await self._http.get(
            _DETAILS_PATH,
            params={"filters": _FILTERS, "appids": key, "cc": self._country_code},
        )

        try:
            payload = response.json()
        except ValueError as exc:
            raise PriceSourceParseError(
                self.name, f"Response for {listing_id} is not JSON: {exc}"
            ) from exc

        if not isinstance(payload, dict):
            raise PriceSourceParseError(
                self.name, f"Unexpected payload type {type(payload).__name__}"
            )

        entry = payload.get(key)
        if not isinstance(entry, dict) or not entry.get("success"):
            raise PriceSourceNotFoundError(self.name, listing_id)

        data = entry.get("data")
        if not isinstance(data, dict) or data.get("steam_appid") != listing_id:
            raise PriceSourceNotFoundError(self.name, listing_id)

        try:
            snapshot = _map_details(listing_id, data)
        except (ValidationError, TypeError, ValueError) as exc:
            raise PriceSourceParseError(
                self.name, f"Could not map details for {listing_id}: {exc}"
            ) from exc

        logger.debug(
            "Fetched %s: discount=%d%% release_pending=%s",
            listing_id,
            snapshot.discount,
            snapshot.release_pending,
        )
        return snapshot

    async def close(self) -> None:
        """Close the HTTP client if it was created by this source."""
        if self._owns_http:
            await self._http.close()

"""Price sources that report the current state of a storefront listing."""

from salewatch.providers.api.steam import SteamStoreSource
from salewatch.providers.base import BasePriceSource

__all__ = ["BasePriceSource", "SteamStoreSource"]

"""HTTP-backed price sources: the Steam storefront."""

from salewatch.providers.api.http_client import PriceSourceHttpClient
from salewatch.providers.api.steam import SteamStoreSource

__all__ = ["PriceSourceHttpClient", "SteamStoreSource"]

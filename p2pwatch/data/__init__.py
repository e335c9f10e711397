"""Data access layer for the P2P marketplace."""

from .clients import MarketplaceEndpoint, OrderSource
from .models import (
    AdRequest,
    AdResponse,
    AdTerms,
    Advertisement,
    Advertiser,
    MalformedAdvertisementError,
    TradeType,
)
from .p2p_client import MarketplaceError, MarketplaceTransportError, P2PClient

__all__ = [
    "AdRequest",
    "AdResponse",
    "AdTerms",
    "Advertisement",
    "Advertiser",
    "MalformedAdvertisementError",
    "MarketplaceEndpoint",
    "MarketplaceError",
    "MarketplaceTransportError",
    "OrderSource",
    "P2PClient",
    "TradeType",
]

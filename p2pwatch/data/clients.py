"""Client interfaces for interacting with the P2P marketplace."""

from dataclasses import dataclass
from typing import Protocol

from .models import AdRequest, AdResponse


@dataclass
class MarketplaceEndpoint:
    """Connection details for a marketplace.

    Attributes:
        name: Human readable marketplace identifier.
        base_url: Root URL, also used to build advertiser profile links.
        search_path: Path of the advertisement search endpoint.
    """

    name: str
    base_url: str
    search_path: str

    @property
    def search_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.search_path}"

    def advertiser_url(self, user_no: str) -> str:
        return f"{self.base_url.rstrip('/')}/en/advertiserDetail?advertiserNo={user_no}"


class OrderSource(Protocol):
    """Protocol describing what the arbitrage detector needs from a client."""

    endpoint: MarketplaceEndpoint
    page_size: int

    async def fetch_orders_async(self, request: AdRequest) -> AdResponse:
        """Return the marketplace listings matching ``request``."""

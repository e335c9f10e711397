"""Binance P2P advertisement search client.

The client issues a single POST per query and normalizes the body into an
:class:`~p2pwatch.data.models.AdResponse`. It is fail-soft: whenever the
marketplace answers at all, even with an HTTP error status, that answer is
decoded and returned as ordinary data (usually an empty order list). Only a
request that produced no response whatsoever raises
:class:`MarketplaceTransportError`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from .clients import MarketplaceEndpoint
from .models import AdRequest, AdResponse, TradeType

DEFAULT_ENDPOINT = MarketplaceEndpoint(
    name="binance-p2p",
    base_url="https://p2p.binance.com",
    search_path="/bapi/c2c/v2/friendly/c2c/adv/search",
)

REQUEST_HEADERS = {
    "Cache-Control": "no-cache",
    "Content-Type": "application/json",
}


class MarketplaceError(Exception):
    """Base error for marketplace access."""


class MarketplaceTransportError(MarketplaceError):
    """No response could be obtained from the marketplace (timeout, DNS, refused)."""


class P2PClient:
    """Search client for P2P advertisements."""

    def __init__(
        self,
        endpoint: Optional[MarketplaceEndpoint] = None,
        page_size: int = 5,
        timeout: Optional[float] = 10.0,
        session: Optional[requests.Session] = None,
        metrics_callback: Optional[Callable[[str, Dict[str, float]], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.endpoint = endpoint or DEFAULT_ENDPOINT
        self.page_size = page_size
        self.timeout = timeout
        self.session = session or requests.Session()
        self.metrics_callback = metrics_callback
        self.logger = logger or logging.getLogger(__name__)

    def build_request(
        self,
        asset: str,
        fiat: str,
        trade_type: TradeType | str,
        trans_amount: Optional[str] = None,
        page: int = 1,
    ) -> AdRequest:
        """Create a request using the configured page size."""

        return AdRequest(
            asset=asset,
            fiat=fiat,
            trade_type=trade_type if isinstance(trade_type, TradeType) else TradeType.parse(trade_type),
            trans_amount=trans_amount,
            page=page,
            rows=self.page_size,
        )

    def fetch_orders(self, request: AdRequest) -> AdResponse:
        """Fetch advertisements matching ``request``.

        Raises:
            MarketplaceTransportError: no response body could be obtained.
        """

        url = self.endpoint.search_url
        payload = request.to_payload()
        started = time.monotonic()
        try:
            response = self.session.post(url, json=payload, headers=REQUEST_HEADERS, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            return self._absorb_remote_error(request, exc)
        except requests.RequestException as exc:
            if getattr(exc, "response", None) is not None:
                return self._absorb_remote_error(request, exc)
            self.logger.error(
                "Marketplace unreachable at %s: %s", url, exc,
                extra={"event": "transport_error", "trade_type": request.trade_type.value, "asset": request.asset},
            )
            self._emit_metrics("transport_error", {"count": 1.0})
            raise MarketplaceTransportError(f"no response from {url}: {exc}") from exc

        result = AdResponse.from_body(self._decode(response))
        elapsed_ms = (time.monotonic() - started) * 1000.0
        self.logger.debug(
            "Fetched %d %s orders for %s/%s", len(result.orders), request.trade_type.value, request.asset, request.fiat,
            extra={
                "event": "fetch_orders",
                "trade_type": request.trade_type.value,
                "orders": len(result.orders),
                "latency_ms": elapsed_ms,
            },
        )
        self._emit_metrics("orders_fetched", {"orders": float(len(result.orders)), "latency_ms": elapsed_ms})
        return result

    async def fetch_orders_async(self, request: AdRequest) -> AdResponse:
        """Run :meth:`fetch_orders` off the event loop."""

        return await asyncio.to_thread(self.fetch_orders, request)

    def _absorb_remote_error(self, request: AdRequest, exc: requests.RequestException) -> AdResponse:
        response = exc.response
        body = self._decode(response) if response is not None else None
        status = getattr(response, "status_code", None)
        self.logger.warning(
            "Marketplace rejected %s query (status=%s): %s", request.trade_type.value, status, exc,
            extra={"event": "remote_error", "status": status, "trade_type": request.trade_type.value},
        )
        self._emit_metrics("remote_errors", {"status": float(status or 0)})
        return AdResponse.from_body(body, remote_error=True)

    def _decode(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            self.logger.warning("Marketplace returned a non-JSON body (status=%s)", response.status_code)
            return None

    def _emit_metrics(self, name: str, values: Dict[str, float]) -> None:
        if not self.metrics_callback:
            return
        try:
            self.metrics_callback(name, values)
        except Exception as exc:  # pragma: no cover - external callback safety
            self.logger.debug("Metric callback failed for %s: %s", name, exc)


__all__ = [
    "DEFAULT_ENDPOINT",
    "MarketplaceError",
    "MarketplaceTransportError",
    "P2PClient",
    "REQUEST_HEADERS",
]

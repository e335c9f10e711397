"""Cross-side spread detection for P2P advertisements.

The detector looks at the cheapest ``Buy``-direction listing and the richest
``Sell``-direction listing for one asset/fiat pair. A spread exists only when
the best sell-side price is strictly above the best buy-side price. The
percentage is measured against the sell price::

    spread_pct = (sell - buy) / sell * 100

Both sides are fetched concurrently; a transport failure on either side fails
the whole check because the spread needs both prices.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from p2pwatch.data.clients import OrderSource
from p2pwatch.data.models import AdRequest, Advertisement, TradeType
from p2pwatch.infra.metrics import MetricsSink

from .listings import render_listing, thousand_separator
from .ranking import rank_by_price_then_reliability

TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class SpreadOpportunity:
    """A profitable pairing of the best buy-side and sell-side listings."""

    asset: str
    fiat: str
    best_buy: Advertisement
    best_sell: Advertisement
    buy_request: AdRequest
    sell_request: AdRequest
    spread: Decimal
    spread_pct: Decimal

    @classmethod
    def evaluate(
        cls,
        buy_side: List[Advertisement],
        sell_side: List[Advertisement],
        buy_request: AdRequest,
        sell_request: AdRequest,
    ) -> Optional["SpreadOpportunity"]:
        """Compare the heads of two best-first lists."""

        if not buy_side or not sell_side:
            return None
        best_buy, best_sell = buy_side[0], sell_side[0]
        lowest_buy = best_buy.price
        highest_sell = best_sell.price
        if highest_sell <= lowest_buy:
            return None
        spread = highest_sell - lowest_buy
        pct = (spread / highest_sell * 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        return cls(
            asset=buy_request.asset,
            fiat=buy_request.fiat,
            best_buy=best_buy,
            best_sell=best_sell,
            buy_request=buy_request,
            sell_request=sell_request,
            spread=spread,
            spread_pct=pct,
        )

    def render(self, source: OrderSource) -> str:
        header = f"Arbitrage {self.asset}/{self.fiat}: {self.spread_pct}% spread"
        amount = f"Spread {self.fiat}: {thousand_separator(self.spread, 2)}"
        return "\n\n".join(
            [
                f"{header}\n{amount}",
                "Best buy:\n" + render_listing(self.best_buy, self.buy_request, source.endpoint),
                "Best sell:\n" + render_listing(self.best_sell, self.sell_request, source.endpoint),
            ]
        )


class P2PArbitrageDetector:
    """Find buy-low/sell-high spreads across the two sides of one market."""

    def __init__(
        self,
        client: OrderSource,
        metrics: Optional[MetricsSink] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.metrics = metrics
        self.logger = logger or logging.getLogger(__name__)

    async def detect(self, buy_request: AdRequest, sell_request: AdRequest) -> Optional[SpreadOpportunity]:
        """Return the current opportunity, or ``None`` when there is no spread.

        Raises:
            MarketplaceTransportError: either side could not be fetched.
        """

        buy_side, sell_side = await self._fetch_both(buy_request, sell_request)
        ranked_buy = rank_by_price_then_reliability(buy_side)
        ranked_sell = rank_by_price_then_reliability(sell_side)
        ranked_sell.reverse()

        opportunity = SpreadOpportunity.evaluate(ranked_buy, ranked_sell, buy_request, sell_request)
        if opportunity:
            self.logger.info(
                "Spread detected for %s/%s", opportunity.asset, opportunity.fiat,
                extra={
                    "event": "spread_detected",
                    "asset": opportunity.asset,
                    "fiat": opportunity.fiat,
                    "buy_price": str(opportunity.best_buy.price),
                    "sell_price": str(opportunity.best_sell.price),
                    "spread_pct": str(opportunity.spread_pct),
                },
            )
            if self.metrics is not None:
                self.metrics.set_gauge("spread_pct", float(opportunity.spread_pct))
        return opportunity

    async def detect_opportunity(self, buy_request: AdRequest, sell_request: AdRequest) -> str:
        """Return the rendered opportunity text, or ``""`` when there is none."""

        opportunity = await self.detect(buy_request, sell_request)
        if opportunity is None:
            return ""
        return opportunity.render(self.client)

    async def detect_for(self, asset: str, fiat: str) -> str:
        buy_request = AdRequest(asset=asset, fiat=fiat, trade_type=TradeType.BUY, rows=self.client.page_size)
        return await self.detect_opportunity(buy_request, buy_request.with_trade_type(TradeType.SELL))

    async def _fetch_both(
        self, buy_request: AdRequest, sell_request: AdRequest
    ) -> tuple[List[Advertisement], List[Advertisement]]:
        results = await asyncio.gather(
            self.client.fetch_orders_async(buy_request),
            self.client.fetch_orders_async(sell_request),
            return_exceptions=True,
        )
        errors = []
        for side, result in zip((TradeType.BUY, TradeType.SELL), results):
            if isinstance(result, BaseException):
                self.logger.warning(
                    "%s side fetch failed: %s", side.value, result,
                    extra={"event": "side_fetch_failed", "trade_type": side.value},
                )
                errors.append(result)
        if errors:
            raise errors[0]
        buy_response, sell_response = results
        return buy_response.orders, sell_response.orders


__all__ = ["P2PArbitrageDetector", "SpreadOpportunity"]

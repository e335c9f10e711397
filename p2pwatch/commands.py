"""Transport-neutral chat command dispatcher.

Maps the text a user sends (``/buyp2p``, ``sellp2p_100000``, ``/watchp2p`` ...)
onto the client, ranker, detector and watcher registry, and returns the reply
to send back. Any chat SDK can sit in front of :meth:`CommandDispatcher.handle`.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Optional

from p2pwatch.data.models import MalformedAdvertisementError, TradeType, is_amount_string
from p2pwatch.data.p2p_client import MarketplaceError, P2PClient
from p2pwatch.pricing.listings import render_listings, thousand_separator
from p2pwatch.pricing.p2p_arbitrage import P2PArbitrageDetector
from p2pwatch.pricing.ranking import rank_by_price_then_reliability
from p2pwatch.watch.scheduler import StartResult, StopResult, WatcherRegistry

AMOUNT_COMMAND = re.compile(r"^/?(buyp2p|sellp2p)_(.+)$", re.IGNORECASE)

UNREACHABLE = "Sorry, the marketplace could not be reached. Please try again later."
UNKNOWN = "Sorry, I don't understand that command yet."

# Who the listings are from, keyed by the direction the user searches.
COUNTERPARTY = {TradeType.BUY: "SELLERS", TradeType.SELL: "BUYERS"}


@dataclass(frozen=True)
class Reply:
    text: str
    html: bool = False


class CommandDispatcher:
    def __init__(
        self,
        client: P2PClient,
        detector: P2PArbitrageDetector,
        watchers: WatcherRegistry,
        asset: str = "USDT",
        fiat: str = "MMK",
        period_seconds: float = 60.0,
        branding: str = "",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.detector = detector
        self.watchers = watchers
        self.asset = asset
        self.fiat = fiat
        self.period_seconds = period_seconds
        self.branding = branding
        self.logger = logger or logging.getLogger(__name__)

    async def handle(self, destination: str, text: str) -> Reply:
        command = text.strip().split("@", 1)[0]
        lowered = command.lower()

        if lowered == "/start":
            return Reply("Welcome! Try /buyp2p, /sellp2p, /arbp2p or /watchp2p.")
        if lowered == "/buyp2p":
            return await self._listings(TradeType.BUY)
        if lowered == "/sellp2p":
            return await self._listings(TradeType.SELL)
        if lowered == "/arbp2p":
            return await self._arbitrage()
        if lowered == "/watchp2p":
            return await self._watch(destination)
        if lowered == "/stopwatch":
            return await self._unwatch(destination)

        match = AMOUNT_COMMAND.match(command)
        if match:
            trade_type = TradeType.BUY if match.group(1).lower() == "buyp2p" else TradeType.SELL
            amount = match.group(2)
            if not is_amount_string(amount):
                return Reply(f'Please use the correct format. (e.g. "{match.group(1).lower()}_100000")')
            return await self._listings(trade_type, amount.strip())

        return Reply(UNKNOWN)

    async def _listings(self, trade_type: TradeType, amount: Optional[str] = None) -> Reply:
        request = self.client.build_request(self.asset, self.fiat, trade_type, trans_amount=amount)
        try:
            response = await self.client.fetch_orders_async(request)
        except (MarketplaceError, MalformedAdvertisementError) as exc:
            self.logger.error("Listing lookup failed: %s", exc, extra={"event": "command_failed", "command": "listings"})
            return Reply(UNREACHABLE)

        ranked = rank_by_price_then_reliability(response.orders)
        who = COUNTERPARTY[trade_type]
        if amount is None:
            if not ranked:
                verb = "selling" if trade_type is TradeType.BUY else "buying"
                return Reply(f"Sorry! No one is {verb} {self.asset} at the moment.")
            prefix = f"{len(ranked)} Best P2P {who}"
        else:
            shown = thousand_separator(Decimal(amount).to_integral_value(rounding=ROUND_DOWN))
            if not ranked:
                return Reply(f"Sorry! No {who} found for {shown} {self.fiat}.")
            prefix = f"{len(ranked)} P2P {who} For {shown} {self.fiat}"

        body = render_listings(ranked, request, self.client.endpoint)
        return Reply(self._brand(f"{prefix}\n\n{body}"), html=True)

    async def _arbitrage(self) -> Reply:
        try:
            text = await self.detector.detect_for(self.asset, self.fiat)
        except (MarketplaceError, MalformedAdvertisementError) as exc:
            self.logger.error("Arbitrage check failed: %s", exc, extra={"event": "command_failed", "command": "arbp2p"})
            return Reply(UNREACHABLE)
        if not text:
            return Reply(f"No {self.asset}/{self.fiat} arbitrage spread right now.")
        return Reply(self._brand(text), html=True)

    async def _watch(self, destination: str) -> Reply:
        result = await self.watchers.start(destination)
        if result is StartResult.ALREADY_RUNNING:
            return Reply("Already watching for arbitrage spreads.")
        return Reply(
            f"Watching {self.asset}/{self.fiat} for arbitrage spreads every {self.period_seconds:g} seconds."
        )

    async def _unwatch(self, destination: str) -> Reply:
        result = await self.watchers.stop(destination)
        if result is StopResult.NOT_RUNNING:
            return Reply("Not watching at the moment.")
        return Reply("Stopped watching for arbitrage spreads.")

    def _brand(self, text: str) -> str:
        if not self.branding:
            return text
        return f"{text}\n\n{self.branding}"


__all__ = ["CommandDispatcher", "Reply"]

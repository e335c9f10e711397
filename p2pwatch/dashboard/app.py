"""FastAPI dashboard for listings, spread checks and watch subscriptions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException

from p2pwatch.commands import CommandDispatcher
from p2pwatch.data.models import MalformedAdvertisementError, TradeType, is_amount_string
from p2pwatch.data.p2p_client import MarketplaceError, P2PClient
from p2pwatch.infra.metrics import MetricsSink
from p2pwatch.pricing.listings import render_listing
from p2pwatch.pricing.p2p_arbitrage import P2PArbitrageDetector
from p2pwatch.pricing.ranking import display_order, rank_by_price_then_reliability
from p2pwatch.watch.scheduler import WatcherRegistry

MAX_NOTIFICATIONS = 200


@dataclass
class DashboardState:
    """Recent notifications pushed by the watchers."""

    notifications: List[Dict[str, Any]] = field(default_factory=list)

    def record_notification(self, destination: str, text: str) -> None:
        self.notifications.append(
            {"destination": destination, "text": text, "sent_at": datetime.now(timezone.utc).isoformat()}
        )
        if len(self.notifications) > MAX_NOTIFICATIONS:
            self.notifications = self.notifications[-MAX_NOTIFICATIONS:]


def create_dashboard_app(
    client: P2PClient,
    detector: P2PArbitrageDetector,
    watchers: WatcherRegistry,
    state: DashboardState,
    metrics: MetricsSink,
    asset: str = "USDT",
    fiat: str = "MMK",
    dispatcher: Optional[CommandDispatcher] = None,
) -> FastAPI:
    app = FastAPI(title="P2P Spread Watch", version="0.1.0")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "watching": watchers.active_destinations()}

    @app.get("/listings/{side}")
    async def listings(side: str, amount: Optional[str] = None) -> dict:
        try:
            trade_type = TradeType.parse(side)
        except ValueError:
            raise HTTPException(status_code=404, detail=f"unknown side {side!r}")
        if amount is not None and not is_amount_string(amount):
            raise HTTPException(status_code=422, detail="amount must be a non-negative number")

        request = client.build_request(asset, fiat, trade_type, trans_amount=amount)
        try:
            response = await client.fetch_orders_async(request)
        except (MarketplaceError, MalformedAdvertisementError) as exc:
            raise HTTPException(status_code=502, detail=str(exc))

        ordered = display_order(rank_by_price_then_reliability(response.orders), trade_type)
        return {
            "asset": asset,
            "fiat": fiat,
            "trade_type": trade_type.value,
            "remote_error": response.remote_error,
            "listings": [
                {
                    "advertiser": ad.advertiser.nick_name,
                    "merchant": ad.advertiser.is_merchant,
                    "price": str(ad.price),
                    "available": str(ad.adv.surplus_amount),
                    "completion_rate": str(ad.completion_rate),
                    "payments": list(ad.payment_method_names()),
                    "html": render_listing(ad, request, client.endpoint),
                }
                for ad in ordered
            ],
        }

    @app.get("/opportunity")
    async def opportunity() -> dict:
        try:
            text = await detector.detect_for(asset, fiat)
        except (MarketplaceError, MalformedAdvertisementError) as exc:
            raise HTTPException(status_code=502, detail=str(exc))
        return {"found": bool(text), "text": text}

    @app.post("/watch/{destination}")
    async def start_watch(destination: str) -> dict:
        result = await watchers.start(destination)
        return {"destination": destination, "result": result.value}

    @app.delete("/watch/{destination}")
    async def stop_watch(destination: str) -> dict:
        result = await watchers.stop(destination)
        return {"destination": destination, "result": result.value}

    @app.get("/notifications")
    async def notifications() -> List[dict]:
        return state.notifications[-50:]

    if dispatcher is not None:

        @app.post("/commands/{destination}")
        async def command(destination: str, body: Dict[str, str]) -> dict:
            reply = await dispatcher.handle(destination, body.get("text", ""))
            return {"text": reply.text, "html": reply.html}

    @app.get("/metrics")
    async def metrics_view() -> dict:
        return metrics.export()

    return app


__all__ = ["DashboardState", "create_dashboard_app"]

"""Process entry point wiring the client, detector, watchers and dashboard."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Optional

import uvicorn

from p2pwatch.commands import CommandDispatcher
from p2pwatch.dashboard.app import DashboardState, create_dashboard_app
from p2pwatch.data.clients import MarketplaceEndpoint
from p2pwatch.data.p2p_client import P2PClient
from p2pwatch.infra.config import AppConfig, load_config
from p2pwatch.infra.logging import configure_logging
from p2pwatch.infra.metrics import MetricsSink
from p2pwatch.pricing.p2p_arbitrage import P2PArbitrageDetector
from p2pwatch.watch.scheduler import SpreadWatcher, WatcherRegistry


@dataclass
class Services:
    client: P2PClient
    detector: P2PArbitrageDetector
    watchers: WatcherRegistry
    dispatcher: CommandDispatcher
    state: DashboardState
    metrics: MetricsSink


def build_services(cfg: AppConfig, client: Optional[P2PClient] = None) -> Services:
    logger = logging.getLogger("p2pwatch")
    metrics = MetricsSink()
    state = DashboardState()
    market = cfg.marketplace
    client = client or P2PClient(
        endpoint=MarketplaceEndpoint(name=market.name, base_url=market.base_url, search_path=market.search_path),
        page_size=market.page_size,
        timeout=market.timeout_seconds,
        metrics_callback=metrics.observe,
        logger=logger.getChild("client"),
    )
    detector = P2PArbitrageDetector(client, metrics=metrics, logger=logger.getChild("detector"))

    def notify(destination: str, text: str) -> None:
        state.record_notification(destination, text)

    def new_watcher() -> SpreadWatcher:
        return SpreadWatcher(
            detect=lambda: detector.detect_for(cfg.defaults.asset, cfg.defaults.fiat),
            notify=notify,
            period=cfg.watch.period_seconds,
            metrics=metrics,
            logger=logger.getChild("watcher"),
        )

    watchers = WatcherRegistry(new_watcher)
    dispatcher = CommandDispatcher(
        client,
        detector,
        watchers,
        asset=cfg.defaults.asset,
        fiat=cfg.defaults.fiat,
        period_seconds=cfg.watch.period_seconds,
        branding=cfg.branding,
        logger=logger.getChild("commands"),
    )
    return Services(client, detector, watchers, dispatcher, state, metrics)


async def run_bot(config_path: Optional[str] = None) -> None:
    configure_logging()
    cfg = load_config(config_path)
    logger = logging.getLogger(__name__)
    services = build_services(cfg)

    stop_event = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            asyncio.get_running_loop().add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows/limited environments
            pass

    async def serve_dashboard() -> None:
        if not cfg.dashboard.enable:
            logger.warning("Dashboard disabled; nothing will trigger watchers")
            return
        app = create_dashboard_app(
            services.client,
            services.detector,
            services.watchers,
            services.state,
            services.metrics,
            asset=cfg.defaults.asset,
            fiat=cfg.defaults.fiat,
            dispatcher=services.dispatcher,
        )
        config = uvicorn.Config(app, host=cfg.dashboard.host, port=cfg.dashboard.port, log_level="info")
        server = uvicorn.Server(config)
        await server.serve()
        stop_event.set()

    task = asyncio.create_task(serve_dashboard())
    await stop_event.wait()
    await services.watchers.stop_all()
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


async def run_command(text: str, config_path: Optional[str] = None, destination: str = "cli") -> str:
    """Dispatch a single command and return the reply text."""

    cfg = load_config(config_path)
    services = build_services(cfg)
    reply = await services.dispatcher.handle(destination, text)
    return reply.text


def main() -> None:
    parser = argparse.ArgumentParser(description="P2P marketplace spread watcher")
    parser.add_argument("--config", default=None, help="YAML config path (defaults to $CONFIG_PATH)")
    parser.add_argument("--command", default=None, help='Run one chat command, e.g. "/arbp2p", and exit')
    args = parser.parse_args()

    if args.command:
        configure_logging(default_level="WARNING")
        print(asyncio.run(run_command(args.command, args.config)))
        return
    asyncio.run(run_bot(args.config))


if __name__ == "__main__":
    main()

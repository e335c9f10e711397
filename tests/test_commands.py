import json
import unittest
from typing import Any, Dict, List, Optional

import requests

from p2pwatch.app import build_services
from p2pwatch.infra.config import AppConfig, WatchConfig
from p2pwatch.data.p2p_client import DEFAULT_ENDPOINT, P2PClient


def listing(price: str, name: str) -> dict:
    return {
        "adv": {"price": price, "surplusAmount": "800", "tradeMethods": [{"tradeMethodName": "KBZPay"}]},
        "advertiser": {"nickName": name, "userNo": name, "userType": "user", "monthFinishRate": 0.99},
    }


class RoutingSession:
    """Answers search requests with canned listings per trade direction."""

    def __init__(self, buy: List[dict], sell: List[dict], error: Optional[Exception] = None) -> None:
        self.bodies = {"Buy": {"data": buy, "success": True}, "Sell": {"data": sell, "success": True}}
        self.error = error
        self.payloads: List[Dict[str, Any]] = []

    def post(self, url: str, json: Any = None, headers: Any = None, timeout: Any = None) -> requests.Response:
        self.payloads.append(json)
        if self.error is not None:
            raise self.error
        response = requests.Response()
        response.status_code = 200
        response.url = url
        response._content = _dumps(self.bodies[json["tradeType"]])
        return response


def _dumps(body: dict) -> bytes:
    return json.dumps(body).encode("utf-8")


class CommandDispatcherTest(unittest.IsolatedAsyncioTestCase):
    def make_dispatcher(self, session: RoutingSession, branding: str = ""):
        cfg = AppConfig(watch=WatchConfig(period_seconds=3600), branding=branding)
        services = build_services(cfg, client=P2PClient(endpoint=DEFAULT_ENDPOINT, session=session))
        self.services = services
        return services.dispatcher

    async def asyncTearDown(self) -> None:
        services = getattr(self, "services", None)
        if services is not None:
            await services.watchers.stop_all()

    async def test_buy_listings(self) -> None:
        session = RoutingSession(buy=[listing("3510", "b"), listing("3500", "a")], sell=[])
        dispatcher = self.make_dispatcher(session, branding="-- p2pwatch")

        reply = await dispatcher.handle("chat-1", "/buyp2p")

        self.assertTrue(reply.html)
        self.assertTrue(reply.text.startswith("2 Best P2P SELLERS\n\n"))
        self.assertLess(reply.text.index(">a</a>"), reply.text.index(">b</a>"))
        self.assertTrue(reply.text.endswith("-- p2pwatch"))

    async def test_empty_listings(self) -> None:
        dispatcher = self.make_dispatcher(RoutingSession(buy=[], sell=[]))

        self.assertEqual("Sorry! No one is selling USDT at the moment.", (await dispatcher.handle("c", "/buyp2p")).text)
        self.assertEqual("Sorry! No one is buying USDT at the moment.", (await dispatcher.handle("c", "/sellp2p")).text)

    async def test_amount_filter(self) -> None:
        session = RoutingSession(buy=[], sell=[listing("3400", "x")])
        dispatcher = self.make_dispatcher(session)

        reply = await dispatcher.handle("chat-1", "sellp2p_100000")

        self.assertTrue(reply.text.startswith("1 P2P BUYERS For 100,000 MMK"))
        self.assertEqual("100000", session.payloads[-1]["transAmount"])

        empty = await dispatcher.handle("chat-1", "/buyp2p_2500000")
        self.assertEqual("Sorry! No SELLERS found for 2,500,000 MMK.", empty.text)

    async def test_amount_filter_rejects_non_numbers(self) -> None:
        dispatcher = self.make_dispatcher(RoutingSession(buy=[], sell=[]))

        reply = await dispatcher.handle("chat-1", "buyp2p_lots")

        self.assertEqual('Please use the correct format. (e.g. "buyp2p_100000")', reply.text)

    async def test_amount_filter_rejects_exponent_notation(self) -> None:
        session = RoutingSession(buy=[], sell=[])
        dispatcher = self.make_dispatcher(session)

        for command in ("buyp2p_1e2000000", "buyp2p_1E5", "buyp2p_1234567890123456"):
            with self.subTest(command=command):
                reply = await dispatcher.handle("chat-1", command)
                self.assertEqual('Please use the correct format. (e.g. "buyp2p_100000")', reply.text)
        self.assertEqual([], session.payloads)

    async def test_arbitrage_check(self) -> None:
        session = RoutingSession(buy=[listing("100", "cheap")], sell=[listing("105", "rich")])
        dispatcher = self.make_dispatcher(session)

        reply = await dispatcher.handle("chat-1", "/arbp2p")

        self.assertIn("4.76% spread", reply.text)

    async def test_no_spread_and_failure_are_distinguished(self) -> None:
        no_spread = self.make_dispatcher(RoutingSession(buy=[listing("105", "a")], sell=[listing("100", "b")]))
        self.assertEqual("No USDT/MMK arbitrage spread right now.", (await no_spread.handle("c", "/arbp2p")).text)

        failing = self.make_dispatcher(RoutingSession(buy=[], sell=[], error=requests.ConnectionError("down")))
        self.assertIn("could not be reached", (await failing.handle("c", "/arbp2p")).text)
        self.assertIn("could not be reached", (await failing.handle("c", "/buyp2p")).text)

    async def test_watch_and_stop(self) -> None:
        session = RoutingSession(buy=[listing("100", "cheap")], sell=[listing("105", "rich")])
        dispatcher = self.make_dispatcher(session)

        self.assertIn("every 3600 seconds", (await dispatcher.handle("chat-1", "/watchp2p")).text)
        self.assertEqual("Already watching for arbitrage spreads.", (await dispatcher.handle("chat-1", "/watchp2p")).text)
        self.assertEqual(1, len(self.services.state.notifications))
        self.assertEqual("Stopped watching for arbitrage spreads.", (await dispatcher.handle("chat-1", "/stopwatch")).text)
        self.assertEqual("Not watching at the moment.", (await dispatcher.handle("chat-1", "/stopwatch")).text)

    async def test_unknown_command(self) -> None:
        dispatcher = self.make_dispatcher(RoutingSession(buy=[], sell=[]))

        self.assertEqual("Sorry, I don't understand that command yet.", (await dispatcher.handle("c", "hello")).text)

    async def test_bot_suffix_is_ignored(self) -> None:
        dispatcher = self.make_dispatcher(RoutingSession(buy=[], sell=[]))

        self.assertIn("Welcome", (await dispatcher.handle("c", "/start@p2p_bot")).text)


if __name__ == "__main__":
    unittest.main()

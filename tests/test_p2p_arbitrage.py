import unittest
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from p2pwatch.data.models import AdRequest, AdResponse, Advertisement, MalformedAdvertisementError, TradeType
from p2pwatch.data.p2p_client import DEFAULT_ENDPOINT, MarketplaceTransportError
from p2pwatch.infra.metrics import MetricsSink
from p2pwatch.pricing.p2p_arbitrage import P2PArbitrageDetector, SpreadOpportunity

BUY = AdRequest(asset="USDT", fiat="MMK", trade_type=TradeType.BUY)
SELL = BUY.with_trade_type(TradeType.SELL)


def make_ad(price: str, name: str = "trader", rate: str = "0.95") -> Advertisement:
    return Advertisement.from_payload(
        {
            "adv": {"price": price, "surplusAmount": "250", "tradeMethods": [{"tradeMethodName": "KBZPay"}]},
            "advertiser": {"nickName": name, "userNo": name, "userType": "user", "monthFinishRate": rate},
        }
    )


class FakeOrderSource:
    endpoint = DEFAULT_ENDPOINT
    page_size = 5

    def __init__(
        self,
        buy: Iterable[str] = (),
        sell: Iterable[str] = (),
        errors: Optional[Dict[TradeType, Exception]] = None,
    ) -> None:
        self.orders = {
            TradeType.BUY: [make_ad(price, f"buy{price}") for price in buy],
            TradeType.SELL: [make_ad(price, f"sell{price}") for price in sell],
        }
        self.errors = errors or {}
        self.requests: List[AdRequest] = []

    async def fetch_orders_async(self, request: AdRequest) -> AdResponse:
        self.requests.append(request)
        error = self.errors.get(request.trade_type)
        if error is not None:
            raise error
        return AdResponse(orders=list(self.orders[request.trade_type]))


class SpreadEvaluationTest(unittest.TestCase):
    def test_percentage_is_relative_to_sell_price(self) -> None:
        opportunity = SpreadOpportunity.evaluate([make_ad("100")], [make_ad("105")], BUY, SELL)

        assert opportunity
        self.assertEqual(Decimal("5"), opportunity.spread)
        self.assertEqual(Decimal("4.76"), opportunity.spread_pct)

    def test_equal_or_inverted_prices_are_not_opportunities(self) -> None:
        self.assertIsNone(SpreadOpportunity.evaluate([make_ad("100")], [make_ad("100")], BUY, SELL))
        self.assertIsNone(SpreadOpportunity.evaluate([make_ad("105")], [make_ad("100")], BUY, SELL))

    def test_empty_side_short_circuits(self) -> None:
        self.assertIsNone(SpreadOpportunity.evaluate([], [make_ad("999")], BUY, SELL))
        self.assertIsNone(SpreadOpportunity.evaluate([make_ad("1")], [], BUY, SELL))


class P2PArbitrageDetectorTest(unittest.IsolatedAsyncioTestCase):
    async def test_uses_cheapest_buy_and_richest_sell(self) -> None:
        source = FakeOrderSource(buy=["102", "100", "101"], sell=["103", "105", "104"])
        detector = P2PArbitrageDetector(source)

        opportunity = await detector.detect(BUY, SELL)

        assert opportunity
        self.assertEqual(Decimal("100"), opportunity.best_buy.price)
        self.assertEqual(Decimal("105"), opportunity.best_sell.price)
        self.assertEqual(Decimal("4.76"), opportunity.spread_pct)
        self.assertEqual({TradeType.BUY, TradeType.SELL}, {request.trade_type for request in source.requests})

    async def test_text_names_percentage_and_both_listings(self) -> None:
        detector = P2PArbitrageDetector(FakeOrderSource(buy=["100"], sell=["105"]))

        text = await detector.detect_opportunity(BUY, SELL)

        self.assertTrue(text.startswith("Arbitrage USDT/MMK: 4.76% spread"))
        self.assertIn("Seller: <a href=", text)
        self.assertIn(">buy100</a>", text)
        self.assertIn("Buyer: <a href=", text)
        self.assertIn(">sell105</a>", text)
        self.assertIn("Payments: KBZPay", text)

    async def test_text_is_deterministic(self) -> None:
        detector = P2PArbitrageDetector(FakeOrderSource(buy=["100", "101"], sell=["105"]))

        first = await detector.detect_opportunity(BUY, SELL)
        second = await detector.detect_opportunity(BUY, SELL)

        self.assertEqual(first, second)

    async def test_no_spread_returns_empty_text(self) -> None:
        for buy, sell in ((["105"], ["100"]), (["100"], ["100"]), ([], ["105"]), (["100"], [])):
            with self.subTest(buy=buy, sell=sell):
                detector = P2PArbitrageDetector(FakeOrderSource(buy=buy, sell=sell))
                self.assertEqual("", await detector.detect_opportunity(BUY, SELL))

    async def test_transport_failure_on_either_side_propagates(self) -> None:
        for side in (TradeType.BUY, TradeType.SELL):
            with self.subTest(side=side):
                error = MarketplaceTransportError("down")
                detector = P2PArbitrageDetector(FakeOrderSource(buy=["100"], sell=["105"], errors={side: error}))
                with self.assertRaises(MarketplaceTransportError):
                    await detector.detect(BUY, SELL)

    async def test_detect_for_builds_both_requests(self) -> None:
        source = FakeOrderSource(buy=["100"], sell=["101"])

        text = await P2PArbitrageDetector(source).detect_for("USDT", "MMK")

        self.assertIn("0.99% spread", text)
        self.assertTrue(all(request.rows == 5 and request.fiat == "MMK" for request in source.requests))

    async def test_records_spread_gauge(self) -> None:
        metrics = MetricsSink()
        detector = P2PArbitrageDetector(FakeOrderSource(buy=["100"], sell=["105"]), metrics=metrics)

        await detector.detect(BUY, SELL)

        self.assertEqual(4.76, metrics.export()["spread_pct"])

    async def test_no_spread_leaves_gauge_unset(self) -> None:
        metrics = MetricsSink()
        detector = P2PArbitrageDetector(FakeOrderSource(buy=["105"], sell=["100"]), metrics=metrics)

        await detector.detect(BUY, SELL)

        self.assertNotIn("spread_pct", metrics.export())

    async def test_malformed_listing_surfaces_as_malformed_error(self) -> None:
        class GarbledSource(FakeOrderSource):
            async def fetch_orders_async(self, request: AdRequest) -> AdResponse:
                return AdResponse.from_body({"data": [{"adv": {"price": "1", "tradeMethods": [None]}}]})

        detector = P2PArbitrageDetector(GarbledSource(buy=["100"], sell=["105"]))

        with self.assertRaises(MalformedAdvertisementError):
            await detector.detect(BUY, SELL)


if __name__ == "__main__":
    unittest.main()

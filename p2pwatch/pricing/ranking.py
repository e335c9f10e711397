"""Ordering helpers for advertisement lists.

Both rankers are pure and rely on :func:`sorted`, which is stable, so listings
that tie on every key keep their marketplace order.
"""

from __future__ import annotations

from typing import Iterable, List

from p2pwatch.data.models import Advertisement, TradeType


def rank_by_price_then_reliability(orders: Iterable[Advertisement]) -> List[Advertisement]:
    """Cheapest first; equal prices go to the advertiser with the higher completion rate."""

    return sorted(orders, key=lambda order: (order.price, -order.completion_rate))


def rank_by_price_only(orders: Iterable[Advertisement]) -> List[Advertisement]:
    return sorted(orders, key=lambda order: order.price)


def display_order(orders: Iterable[Advertisement], trade_type: TradeType) -> List[Advertisement]:
    """Order an already selected set for presentation.

    Sell-side listings are shown highest price first so the top entry is
    always the best deal for the reader.
    """

    ranked = rank_by_price_only(orders)
    if trade_type is TradeType.SELL:
        ranked.reverse()
    return ranked


__all__ = ["display_order", "rank_by_price_only", "rank_by_price_then_reliability"]

"""Ranking, rendering and spread detection for P2P advertisements."""

from .listings import render_listing, render_listings, thousand_separator
from .p2p_arbitrage import P2PArbitrageDetector, SpreadOpportunity
from .ranking import display_order, rank_by_price_only, rank_by_price_then_reliability

__all__ = [
    "P2PArbitrageDetector",
    "SpreadOpportunity",
    "display_order",
    "rank_by_price_only",
    "rank_by_price_then_reliability",
    "render_listing",
    "render_listings",
    "thousand_separator",
]

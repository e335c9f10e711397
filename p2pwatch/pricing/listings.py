"""HTML rendering of advertisements for chat-style notifications."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import Iterable, List, Union

from p2pwatch.data.clients import MarketplaceEndpoint
from p2pwatch.data.models import AdRequest, Advertisement, TradeType

from .ranking import display_order


def thousand_separator(value: Union[Decimal, int, float], fraction_digits: int = 0) -> str:
    """Group digits with commas and render exactly ``fraction_digits`` decimals."""

    number = Decimal(str(value))
    return f"{number:,.{fraction_digits}f}"


def _side_label(trade_type: TradeType) -> str:
    return "Seller" if trade_type is TradeType.BUY else "Buyer"


def render_listing(ad: Advertisement, request: AdRequest, endpoint: MarketplaceEndpoint) -> str:
    advertiser = ad.advertiser
    name = f"{advertiser.nick_name} ({advertiser.user_type})" if advertiser.is_merchant else advertiser.nick_name
    whole_price = ad.price.to_integral_value(rounding=ROUND_DOWN)
    lines = [
        f"Price {request.fiat}: {thousand_separator(whole_price)}",
        f"Available {request.asset}: {thousand_separator(ad.adv.surplus_amount, 2)}",
        f"{_side_label(request.trade_type)}: "
        f"<a href='{endpoint.advertiser_url(advertiser.user_no)}'>{name}</a>",
        "Payments: " + ", ".join(ad.payment_method_names()),
    ]
    return "\n".join(lines)


def render_listings(ads: Iterable[Advertisement], request: AdRequest, endpoint: MarketplaceEndpoint) -> str:
    rendered: List[str] = [
        render_listing(ad, request, endpoint) for ad in display_order(ads, request.trade_type)
    ]
    return "\n\n".join(rendered)


__all__ = ["render_listing", "render_listings", "thousand_separator"]

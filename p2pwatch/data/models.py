"""Normalized advertisement schema for the P2P marketplace.

Raw marketplace payloads are parsed exactly once, here. Prices, quantities and
completion rates become :class:`~decimal.Decimal` values so downstream ranking
and spread maths never re-parse strings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

AMOUNT_PATTERN = re.compile(r"\d{1,15}(?:\.\d{1,8})?", re.ASCII)


class MalformedAdvertisementError(ValueError):
    """Raised when a listing is not shaped like an advertisement or carries non-numeric figures."""


class TradeType(str, Enum):
    """Trade direction from the advertiser's point of view."""

    BUY = "Buy"
    SELL = "Sell"

    @classmethod
    def parse(cls, value: str) -> "TradeType":
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        raise ValueError(f"unknown trade type: {value!r}")

    def opposite(self) -> "TradeType":
        return TradeType.SELL if self is TradeType.BUY else TradeType.BUY


def _to_decimal(value: Any, name: str) -> Decimal:
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise MalformedAdvertisementError(f"{name} is not numeric: {value!r}") from exc
    if not parsed.is_finite() or parsed < 0:
        raise MalformedAdvertisementError(f"{name} must be a non-negative number: {value!r}")
    return parsed


def _mapping(value: Any, name: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise MalformedAdvertisementError(f"{name} must be an object: {value!r}")
    return value


def is_amount_string(value: str) -> bool:
    """Return True when ``value`` is a plain non-negative decimal such as ``"100000"`` or ``"2500.50"``.

    Exponents and signs are refused, and both parts are length-capped, so an
    amount can always be echoed back and forwarded as ``transAmount``.
    """

    if not isinstance(value, str):
        return False
    return AMOUNT_PATTERN.fullmatch(value.strip()) is not None


@dataclass(frozen=True)
class AdRequest:
    """Search query sent to the marketplace."""

    asset: str
    fiat: str
    trade_type: TradeType
    trans_amount: Optional[str] = None
    page: int = 1
    rows: int = 5

    def __post_init__(self) -> None:
        if not isinstance(self.trade_type, TradeType):
            object.__setattr__(self, "trade_type", TradeType.parse(self.trade_type))
        if self.trans_amount is not None:
            if not is_amount_string(self.trans_amount):
                raise ValueError(f"trans_amount must be a non-negative number, got {self.trans_amount!r}")
            object.__setattr__(self, "trans_amount", self.trans_amount.strip())
        if not self.asset or not self.fiat:
            raise ValueError("asset and fiat are required")

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "page": self.page,
            "rows": self.rows,
            "asset": self.asset,
            "tradeType": self.trade_type.value,
            "fiat": self.fiat,
        }
        if self.trans_amount is not None:
            payload["transAmount"] = self.trans_amount
        return payload

    def with_trade_type(self, trade_type: TradeType) -> "AdRequest":
        return replace(self, trade_type=trade_type)


@dataclass(frozen=True)
class Advertiser:
    nick_name: str
    user_no: str
    user_type: str
    month_finish_rate: Decimal

    @property
    def is_merchant(self) -> bool:
        return self.user_type == "merchant"


@dataclass(frozen=True)
class AdTerms:
    price: Decimal
    surplus_amount: Decimal
    trade_methods: List[Optional[str]] = field(default_factory=list)


@dataclass(frozen=True)
class Advertisement:
    """A single marketplace listing."""

    advertiser: Advertiser
    adv: AdTerms

    @property
    def price(self) -> Decimal:
        return self.adv.price

    @property
    def completion_rate(self) -> Decimal:
        return self.advertiser.month_finish_rate

    def payment_method_names(self) -> Iterator[str]:
        return (name for name in self.adv.trade_methods if name)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Advertisement":
        payload = _mapping(payload, "advertisement")
        adv = _mapping(payload.get("adv") or {}, "adv")
        advertiser = _mapping(payload.get("advertiser") or {}, "advertiser")
        raw_methods = adv.get("tradeMethods") or []
        if not isinstance(raw_methods, list):
            raise MalformedAdvertisementError(f"tradeMethods must be a list: {raw_methods!r}")
        methods = [_mapping(method, "tradeMethod").get("tradeMethodName") for method in raw_methods]
        return cls(
            advertiser=Advertiser(
                nick_name=str(advertiser.get("nickName") or ""),
                user_no=str(advertiser.get("userNo") or ""),
                user_type=str(advertiser.get("userType") or "user"),
                month_finish_rate=_to_decimal(advertiser.get("monthFinishRate", 0), "monthFinishRate"),
            ),
            adv=AdTerms(
                price=_to_decimal(adv.get("price"), "price"),
                surplus_amount=_to_decimal(adv.get("surplusAmount", 0), "surplusAmount"),
                trade_methods=methods,
            ),
        )


@dataclass
class AdResponse:
    """Decoded marketplace search result.

    ``remote_error`` is set when the marketplace answered with an error
    envelope. Such a response still carries an order list (usually empty) and
    flows downstream like any other result.
    """

    orders: List[Advertisement] = field(default_factory=list)
    success: bool = True
    code: Optional[str] = None
    message: Optional[str] = None
    remote_error: bool = False
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_body(cls, body: Any, remote_error: bool = False) -> "AdResponse":
        if not isinstance(body, dict):
            return cls(success=False, remote_error=True, raw={})
        rows = body.get("data")
        orders = [Advertisement.from_payload(row) for row in rows] if isinstance(rows, list) else []
        success = bool(body.get("success", not remote_error))
        return cls(
            orders=orders,
            success=success,
            code=None if body.get("code") is None else str(body.get("code")),
            message=body.get("message"),
            remote_error=remote_error or not success,
            raw=body,
        )


__all__ = [
    "AdRequest",
    "AdResponse",
    "AdTerms",
    "Advertisement",
    "Advertiser",
    "MalformedAdvertisementError",
    "TradeType",
    "is_amount_string",
]

"""Orders, trades, signals and the events exchanged by the execution engine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Union


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Side(str, Enum):
    """Side of an order or trade."""

    BUY = "buy"
    SELL = "sell"

    def __str__(self) -> str:
        return self.value


class OrderStatus(str, Enum):
    """Lifecycle state of an order."""

    NEW = "new"
    PARTIALLY_FILLED = "partially_filled"
    FILLED = "filled"
    CANCELED = "canceled"
    REJECTED = "rejected"

    def __str__(self) -> str:
        return self.value


@dataclass
class Order:
    """An order on one exchange."""

    exchange: str
    symbol: str
    id: str
    side: Side
    price: Decimal
    amount: Decimal
    client_id: str | None = None
    filled_amount: Decimal = Decimal(0)
    status: OrderStatus = OrderStatus.NEW
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def remaining_amount(self) -> Decimal:
        return self.amount - self.filled_amount

    @property
    def is_closed(self) -> bool:
        return self.status in (OrderStatus.FILLED, OrderStatus.CANCELED, OrderStatus.REJECTED)


@dataclass(frozen=True)
class Trade:
    """An executed trade."""

    symbol: str
    side: Side
    price: Decimal
    amount: Decimal
    exchange: str = ""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=_now)

    @property
    def notional(self) -> Decimal:
        return self.price * self.amount


@dataclass
class ExecutionConfig:
    """Limits and mode of the execution engine."""

    max_position_size: Decimal = Decimal(1000)
    max_daily_loss: Decimal = Decimal(500)
    max_orders_per_second: int = 10
    enable_paper_trading: bool = True


@dataclass(frozen=True)
class TradingSignal:
    """A strategy's suggestion to trade."""

    side: Side
    price: Decimal
    amount: Decimal
    confidence: float
    reason: str


@dataclass(frozen=True)
class OrderPlaced:
    order: Order


@dataclass(frozen=True)
class OrderFilled:
    order: Order


@dataclass(frozen=True)
class OrderCanceled:
    order: Order


@dataclass(frozen=True)
class TradeExecuted:
    trade: Trade


@dataclass(frozen=True)
class RiskLimitHit:
    reason: str


@dataclass(frozen=True)
class StrategySignal:
    strategy: str
    market: str
    signal: TradingSignal


ExecutionEvent = Union[
    OrderPlaced, OrderFilled, OrderCanceled, TradeExecuted, RiskLimitHit, StrategySignal
]
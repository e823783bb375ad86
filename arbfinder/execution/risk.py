"""Pre-trade risk checks and daily loss, drawdown and order-rate tracking."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from arbfinder.execution.models import Side

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass
class RiskConfig:
    max_position_size: Decimal = Decimal(10000)
    max_daily_loss: Decimal = Decimal(1000)
    max_drawdown: Decimal = Decimal(5000)
    max_leverage: Decimal = Decimal(3)
    max_orders_per_minute: int = 60
    max_order_size: Decimal = Decimal(1000)
    min_order_size: Decimal = Decimal(10)
    allowed_symbols: list[str] = field(
        default_factory=lambda: ["BTCUSDT", "ETHUSDT", "ADAUSDT"]
    )
    blocked_symbols: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RiskMetrics:
    daily_pnl: Decimal
    max_drawdown: Decimal
    position_count: int
    largest_position: Decimal
    orders_last_minute: int
    risk_score: float


class RiskManager:
    """Decides whether an order may be sent, given limits and recent activity."""

    def __init__(self, config: RiskConfig | None = None) -> None:
        self.config = config if config is not None else RiskConfig()
        self._daily_pnl = _ZERO
        self._daily_reset_time = _start_of_day(_now())
        self._order_history: list[tuple[datetime, str]] = []
        self._position_sizes: dict[str, Decimal] = {}
        self._max_drawdown_reached = _ZERO

    def check_order_risk(
        self, symbol: str, side: Side, price: Decimal, amount: Decimal
    ) -> bool:
        if not self._is_symbol_allowed(symbol):
            logger.warning("Symbol %s is not allowed for trading", symbol)
            return False

        order_value = price * amount
        if order_value > self.config.max_order_size:
            logger.warning(
                "Order size %s exceeds maximum allowed %s",
                order_value,
                self.config.max_order_size,
            )
            return False
        if order_value < self.config.min_order_size:
            logger.warning(
                "Order size %s below minimum required %s",
                order_value,
                self.config.min_order_size,
            )
            return False

        if not self._position_within_limit(symbol, side, amount):
            logger.warning("Position size limit exceeded for %s", symbol)
            return False
        if self._daily_pnl < -self.config.max_daily_loss:
            logger.warning("Daily loss limit exceeded")
            return False
        if self._max_drawdown_reached < -self.config.max_drawdown:
            logger.warning("Maximum drawdown limit exceeded")
            return False
        if self._orders_last_minute(symbol) >= self.config.max_orders_per_minute:
            logger.warning("Order rate limit exceeded for %s", symbol)
            return False
        return True

    def update_daily_pnl(self, pnl_change: Decimal) -> None:
        self._reset_daily_if_needed()
        self._daily_pnl += pnl_change
        if self._daily_pnl < self._max_drawdown_reached:
            self._max_drawdown_reached = self._daily_pnl

    def update_position_size(self, symbol: str, new_size: Decimal) -> None:
        self._position_sizes[symbol] = new_size

    def record_order(self, symbol: str) -> None:
        """Remember an order; entries older than an hour are dropped."""
        now = _now()
        self._order_history.append((now, symbol))
        cutoff = now - timedelta(hours=1)
        self._order_history = [entry for entry in self._order_history if entry[0] > cutoff]

    def risk_metrics(self) -> RiskMetrics:
        return RiskMetrics(
            daily_pnl=self._daily_pnl,
            max_drawdown=self._max_drawdown_reached,
            position_count=len(self._position_sizes),
            largest_position=max(self._position_sizes.values(), default=_ZERO),
            orders_last_minute=self._orders_last_minute(),
            risk_score=self._risk_score(),
        )

    def is_emergency_stop_required(self) -> bool:
        metrics = self.risk_metrics()
        return (
            metrics.daily_pnl <= -self.config.max_daily_loss
            or metrics.max_drawdown <= -self.config.max_drawdown
            or metrics.risk_score >= 90.0
        )

    def position_limit_remaining(self, symbol: str) -> Decimal:
        return self.config.max_position_size - self._position_sizes.get(symbol, _ZERO)

    def _is_symbol_allowed(self, symbol: str) -> bool:
        if symbol in self.config.blocked_symbols:
            return False
        if not self.config.allowed_symbols:
            return True
        return symbol in self.config.allowed_symbols

    def _position_within_limit(self, symbol: str, side: Side, amount: Decimal) -> bool:
        current = self._position_sizes.get(symbol, _ZERO)
        new_size = current + amount if side is Side.BUY else abs(current - amount)
        return new_size <= self.config.max_position_size

    def _orders_last_minute(self, symbol: str | None = None) -> int:
        cutoff = _now() - timedelta(minutes=1)
        return sum(
            1
            for timestamp, order_symbol in self._order_history
            if timestamp > cutoff and (symbol is None or order_symbol == symbol)
        )

    def _reset_daily_if_needed(self) -> None:
        today_start = _start_of_day(_now())
        if today_start > self._daily_reset_time:
            self._daily_pnl = _ZERO
            self._max_drawdown_reached = _ZERO
            self._daily_reset_time = today_start

    def _risk_score(self) -> float:
        config = self.config
        score = 0.0

        pnl_ratio = float(self._daily_pnl / config.max_daily_loss)
        score += min(abs(pnl_ratio) * 40.0, 40.0)

        drawdown_ratio = float(self._max_drawdown_reached / config.max_drawdown)
        score += min(abs(drawdown_ratio) * 30.0, 30.0)

        position_ratio = max(
            (float(size / config.max_position_size) for size in self._position_sizes.values()),
            default=0.0,
        )
        score += min(position_ratio * 20.0, 20.0)

        order_rate_ratio = self._orders_last_minute() / config.max_orders_per_minute
        score += min(order_rate_ratio * 10.0, 10.0)

        return min(score, 100.0)
"""Balances, open orders, positions and profit tracking for one account."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from arbfinder.execution.models import Order, OrderStatus, Side, Trade

_ZERO = Decimal(0)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def base_asset(symbol: str) -> str:
    """Guess the base asset of a symbol such as ``BTCUSDT`` or ``ETH/BTC``."""
    if symbol.endswith("USDT"):
        return symbol[:-4]
    if symbol.endswith("USD"):
        return symbol[:-3]
    if "/" in symbol:
        return symbol.split("/")[0]
    return symbol[:3]


def quote_asset(symbol: str) -> str:
    """Guess the quote asset of a symbol, falling back to USDT."""
    if symbol.endswith("USDT"):
        return "USDT"
    if symbol.endswith("USD"):
        return "USD"
    if "/" in symbol:
        return symbol.split("/")[1]
    return "USDT"


@dataclass
class Balance:
    asset: str
    total: Decimal = _ZERO
    available: Decimal = _ZERO
    locked: Decimal = _ZERO


@dataclass
class Position:
    symbol: str
    side: Side
    size: Decimal = _ZERO
    entry_price: Decimal = _ZERO
    current_price: Decimal = _ZERO
    unrealized_pnl: Decimal = _ZERO
    realized_pnl: Decimal = _ZERO
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def compute_unrealized_pnl(self) -> Decimal:
        if self.side is Side.BUY:
            return (self.current_price - self.entry_price) * self.size
        return (self.entry_price - self.current_price) * self.size


@dataclass
class Portfolio:
    """Asset balances with funds locked by pending orders, and positions built from trades."""

    balances: dict[str, Balance] = field(default_factory=dict)
    positions: dict[str, Position] = field(default_factory=dict)
    pending_orders: dict[str, Order] = field(default_factory=dict)
    trades: list[Trade] = field(default_factory=list)
    pnl: Decimal = _ZERO
    total_value: Decimal = _ZERO
    last_updated: datetime = field(default_factory=_now)

    def _touch(self) -> None:
        self.last_updated = _now()

    def _entry(self, asset: str) -> Balance:
        return self.balances.setdefault(asset, Balance(asset))

    def add_balance(self, asset: str, amount: Decimal) -> None:
        balance = self._entry(asset)
        balance.total += amount
        balance.available += amount
        self._touch()

    def update_balance(
        self, asset: str, total: Decimal, available: Decimal, locked: Decimal
    ) -> None:
        balance = self._entry(asset)
        balance.total = total
        balance.available = available
        balance.locked = locked
        self._touch()

    def balance(self, asset: str) -> Balance | None:
        return self.balances.get(asset)

    def available_balance(self, asset: str) -> Decimal:
        balance = self.balances.get(asset)
        return balance.available if balance is not None else _ZERO

    def add_pending_order(self, order: Order) -> None:
        """Track an order and lock the funds it needs."""
        if order.side is Side.BUY:
            self._lock(quote_asset(order.symbol), order.price * order.amount)
        else:
            self._lock(base_asset(order.symbol), order.amount)
        self.pending_orders[order.id] = order
        self._touch()

    def remove_pending_order(self, order_id: str) -> None:
        """Stop tracking an order and release the funds still locked for it."""
        order = self.pending_orders.pop(order_id, None)
        if order is not None:
            remaining = order.amount - order.filled_amount
            if order.side is Side.BUY:
                self._unlock(quote_asset(order.symbol), order.price * remaining)
            else:
                self._unlock(base_asset(order.symbol), remaining)
        self._touch()

    def update_order(self, order: Order) -> None:
        """Apply a new state of a pending order, settling any newly filled amount."""
        existing = self.pending_orders.get(order.id)
        if existing is not None:
            filled_diff = order.filled_amount - existing.filled_amount
            if filled_diff > _ZERO:
                base = base_asset(order.symbol)
                quote = quote_asset(order.symbol)
                quote_amount = order.price * filled_diff
                if order.side is Side.BUY:
                    self.add_balance(base, filled_diff)
                    self._unlock(quote, quote_amount)
                    self._remove(quote, quote_amount)
                else:
                    self.add_balance(quote, quote_amount)
                    self._unlock(base, filled_diff)
                    self._remove(base, filled_diff)
            self.pending_orders[order.id] = order
            if order.status in (OrderStatus.FILLED, OrderStatus.CANCELED):
                self.remove_pending_order(order.id)
        self._touch()

    def add_trade(self, trade: Trade) -> None:
        self._apply_trade(trade)
        self.trades.append(trade)
        self._touch()

    def update_position_price(self, symbol: str, current_price: Decimal) -> None:
        position = self.positions.get(symbol)
        if position is not None:
            position.current_price = current_price
            position.unrealized_pnl = position.compute_unrealized_pnl()
            position.updated_at = _now()
        self._touch()

    def compute_total_value(self, prices: Mapping[str, Decimal]) -> Decimal:
        """Value all balances in USDT; assets without a ``<ASSET>USDT`` price are skipped."""
        total = _ZERO
        for balance in self.balances.values():
            if balance.asset in ("USDT", "USD"):
                total += balance.total
            else:
                price = prices.get(f"{balance.asset}USDT")
                if price is not None:
                    total += balance.total * price
        return total

    def unrealized_pnl(self) -> Decimal:
        return sum((p.unrealized_pnl for p in self.positions.values()), _ZERO)

    def realized_pnl(self) -> Decimal:
        return sum((p.realized_pnl for p in self.positions.values()), _ZERO)

    def _lock(self, asset: str, amount: Decimal) -> None:
        balance = self.balances.get(asset)
        if balance is not None and balance.available >= amount:
            balance.available -= amount
            balance.locked += amount

    def _unlock(self, asset: str, amount: Decimal) -> None:
        balance = self.balances.get(asset)
        if balance is not None:
            balance.locked -= min(amount, balance.locked)
            balance.available += min(amount, balance.locked)

    def _remove(self, asset: str, amount: Decimal) -> None:
        balance = self.balances.get(asset)
        if balance is not None:
            balance.total -= min(amount, balance.total)

    def _apply_trade(self, trade: Trade) -> None:
        position = self.positions.get(trade.symbol)
        if position is None:
            position = Position(
                symbol=trade.symbol, side=trade.side, current_price=trade.price
            )
            self.positions[trade.symbol] = position

        closing = position.side is not trade.side and position.size > _ZERO
        if closing:
            close_amount = min(trade.amount, position.size)
            if trade.side is Side.BUY:
                pnl = (position.entry_price - trade.price) * close_amount
            else:
                pnl = (trade.price - position.entry_price) * close_amount
            position.realized_pnl += pnl
            position.size -= close_amount
            if position.size == _ZERO:
                position.side = trade.side
        else:
            new_size = position.size + trade.amount
            position.entry_price = (
                position.entry_price * position.size + trade.price * trade.amount
            ) / new_size
            position.size = new_size
            position.side = trade.side

        position.current_price = trade.price
        position.updated_at = _now()
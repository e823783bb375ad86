"""The execution engine: order placement, market data polling and event handling."""

from __future__ import annotations

import asyncio
import contextlib
import copy
import logging
import time
import uuid
from collections import deque
from collections.abc import Iterable
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from arbfinder.exchange.traits import ExchangeError, OrderError
from arbfinder.execution.models import (
    ExecutionConfig,
    ExecutionEvent,
    Order,
    OrderCanceled,
    OrderFilled,
    OrderPlaced,
    RiskLimitHit,
    Side,
    StrategySignal,
    TradeExecuted,
)
from arbfinder.execution.portfolio import Portfolio
from arbfinder.execution.risk import RiskManager

logger = logging.getLogger(__name__)


@runtime_checkable
class MarketDataSource(Protocol):
    """An exchange that serves markets, tickers and order books.

    ``get_markets`` yields market symbols; a ticker has ``bid`` and ``ask``.
    """

    async def get_markets(self) -> Iterable[str]: ...

    async def get_ticker(self, symbol: str) -> Any: ...

    async def get_orderbook(self, symbol: str) -> Any: ...


@runtime_checkable
class TradingVenue(Protocol):
    """An exchange that accepts and cancels orders."""

    async def place_order(
        self, market: str, side: Side, price: Decimal, amount: Decimal
    ) -> Order: ...

    async def cancel_order(self, market: str, order_id: str) -> None: ...


class ExecutionEngine:
    """Places orders within rate and risk limits and keeps the portfolio up to date.

    Order events are applied to the portfolio by a background task that runs
    between ``start`` and ``stop``. In paper trading mode orders never reach
    an exchange.
    """

    MARKET_POLL_INTERVAL = 0.1
    RATE_WINDOW = 1.0

    def __init__(self, config: ExecutionConfig | None = None) -> None:
        self.config = config if config is not None else ExecutionConfig()
        self.risk_manager = RiskManager()
        self._exchanges: dict[str, MarketDataSource] = {}
        self._trading_exchanges: dict[str, TradingVenue] = {}
        self._strategies: list[Any] = []
        self._portfolio = Portfolio()
        self._events: asyncio.Queue[ExecutionEvent] = asyncio.Queue()
        self._order_times: dict[str, deque[float]] = {}
        self._event_task: asyncio.Task | None = None
        self._market_tasks: list[asyncio.Task] = []

    def add_exchange(self, name: str, exchange: MarketDataSource) -> None:
        self._exchanges[name] = exchange

    def add_trading_exchange(self, name: str, exchange: TradingVenue) -> None:
        self._trading_exchanges[name] = exchange

    def add_strategy(self, strategy: Any) -> None:
        self._strategies.append(strategy)

    async def start(self) -> None:
        """Start event processing and poll every market of every exchange."""
        logger.info("Starting execution engine")
        if self._event_task is None or self._event_task.done():
            self._event_task = asyncio.create_task(self._process_events())
        for name, exchange in self._exchanges.items():
            try:
                markets = list(await exchange.get_markets())
            except Exception as exc:
                raise ExchangeError(str(exc)) from exc
            for market in markets:
                logger.debug("Polling market %s on %s", market, name)
                self._market_tasks.append(asyncio.create_task(self._poll_market(exchange, market)))

    async def stop(self) -> None:
        """Apply all queued events, then stop the background tasks."""
        if self._event_task is not None and not self._event_task.done():
            await self._events.join()
        tasks = [*self._market_tasks]
        if self._event_task is not None:
            tasks.append(self._event_task)
        self._market_tasks = []
        self._event_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Execution engine stopped")

    async def place_order(
        self, exchange: str, market: str, side: Side, price: Decimal, amount: Decimal
    ) -> str:
        """Place an order and return its id."""
        if not self._within_rate_limit(exchange):
            raise OrderError("Rate limit exceeded")
        if not self.risk_manager.check_order_risk(market, side, price, amount):
            raise OrderError("Risk limits exceeded")

        if self.config.enable_paper_trading:
            order = Order(
                exchange=exchange,
                symbol=market,
                id=str(uuid.uuid4()),
                side=side,
                price=price,
                amount=amount,
            )
        else:
            venue = self._trading_exchanges.get(exchange)
            if venue is None:
                raise ExchangeError(f"Trading not supported for exchange: {exchange}")
            try:
                order = await venue.place_order(market, side, price, amount)
            except Exception as exc:
                raise OrderError(str(exc)) from exc

        self._events.put_nowait(OrderPlaced(order))
        return order.id

    async def cancel_order(self, exchange: str, market: str, order_id: str) -> None:
        if self.config.enable_paper_trading:
            logger.info("Paper trading: Canceling order %s", order_id)
            return
        venue = self._trading_exchanges.get(exchange)
        if venue is None:
            raise ExchangeError(f"Trading not supported for exchange: {exchange}")
        try:
            await venue.cancel_order(market, order_id)
        except Exception as exc:
            raise OrderError(str(exc)) from exc

    def portfolio_snapshot(self) -> Portfolio:
        """An independent copy of the current portfolio."""
        return copy.deepcopy(self._portfolio)

    def _within_rate_limit(self, exchange: str) -> bool:
        now = time.monotonic()
        times = self._order_times.setdefault(exchange, deque())
        while times and times[0] <= now - self.RATE_WINDOW:
            times.popleft()
        if len(times) >= self.config.max_orders_per_second:
            return False
        times.append(now)
        return True

    async def _poll_market(self, exchange: MarketDataSource, market: str) -> None:
        while True:
            try:
                ticker = await exchange.get_ticker(market)
                await exchange.get_orderbook(market)
                logger.info("Market tick: %s - Bid: %s, Ask: %s", market, ticker.bid, ticker.ask)
            except Exception as exc:
                logger.error("Error processing market tick for %s: %s", market, exc)
            await asyncio.sleep(self.MARKET_POLL_INTERVAL)

    async def _process_events(self) -> None:
        while True:
            event = await self._events.get()
            try:
                self._handle_event(event)
            except Exception as exc:
                logger.error("Failed to handle event %r: %s", event, exc)
            finally:
                self._events.task_done()

    def _handle_event(self, event: ExecutionEvent) -> None:
        match event:
            case OrderPlaced(order=order):
                logger.info("Order placed: %r", order)
                self._portfolio.add_pending_order(order)
            case OrderFilled(order=order):
                logger.info("Order filled: %r", order)
                self._portfolio.update_order(order)
            case OrderCanceled(order=order):
                logger.info("Order canceled: %r", order)
                self._portfolio.remove_pending_order(order.id)
            case TradeExecuted(trade=trade):
                logger.info("Trade executed: %r", trade)
                self._portfolio.add_trade(trade)
            case RiskLimitHit(reason=reason):
                logger.warning("Risk limit hit: %s", reason)
            case StrategySignal(strategy=strategy, signal=signal):
                logger.info("Strategy signal from %s: %r", strategy, signal)
# arbfinder

Asynchronous building blocks for a cryptocurrency arbitrage trading system:
exchange connection bookkeeping, symbol normalization, rate limiting,
websocket connections, heartbeat monitoring, portfolio accounting, pre-trade
risk checks and an order execution engine with a paper-trading mode.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Layout

### `arbfinder.exchange`

- `traits` — shared types: `Symbol`, `VenueId`, `OrderSide`, `OrderType`,
  `ExchangeConfig`, `ConnectionStatus`, `SubscriptionInfo`, `SymbolInfo`,
  `TradingFees`, `AccountInfo`; the abstract `ExchangeAdapter` and
  `WebSocketHandler` interfaces; and the exceptions `ArbFinderError`,
  `ExchangeError`, `InvalidDataError`, `WebSocketError`, `OrderError` and
  `InternalError`.
- `normalizer` — `SymbolNormalizer` maps exchange spellings of symbols, order
  sides and order types to the normalized values and back, and formats
  symbols in any `SymbolFormat` (slash, dash, underscore, concatenated, lower,
  upper). Helper functions: `parse_symbol_from_string`,
  `parse_symbol_from_parts`, `normalize_price_precision` (rounds),
  `normalize_quantity_precision` (rounds down), and `extract_string_field`,
  `extract_float_field`, `extract_int_field`, `extract_bool_field`,
  `parse_timestamp_ms`, `parse_timestamp_s` for reading decoded JSON objects.
  Failures raise `InvalidDataError`.
- `rate_limiter` — `RateLimiter` (a fixed number of permits per window),
  `TokenBucket` (continuously refilled fractional tokens) and
  `AdaptiveRateLimiter`, which lowers its permits per window by 10% when
  more than 10% of recorded requests failed and raises them by 10% (up to
  twice the base) when fewer than 5% failed. Windows are given in seconds.
- `websocket` — `WebSocketConnection` connects to an `ExchangeConfig`'s
  `websocket_url`, sends messages and pings, measures pong latency and, in
  `run_with_handler`, feeds received messages to a `WebSocketHandler`,
  reconnecting up to `reconnect_attempts` times. `WebSocketManager` holds
  named connections.
- `heartbeat` — `HeartbeatManager` sends pings through a coroutine you
  supply, counts missed pongs and keeps latency statistics
  (`latency_percentiles()` returns `LatencyStats`). `ConnectionHealthMonitor`
  runs a heartbeat and calls a reconnect coroutine when the link is
  unhealthy.
- `manager` — `ExchangeManager` holds `ExchangeAdapter`s by `VenueId`,
  connects and disconnects them, and tracks their `ConnectionStatus`,
  subscriptions and message counts (`market_data_stats()`).

### `arbfinder.execution`

- `models` — `Side`, `OrderStatus`, `Order`, `Trade`, `ExecutionConfig`,
  `TradingSignal` and the events `OrderPlaced`, `OrderFilled`,
  `OrderCanceled`, `TradeExecuted`, `RiskLimitHit` and `StrategySignal`.
- `portfolio` — `Portfolio` with balances, funds locked by pending orders,
  fills settled by `update_order`, and positions with realized and
  unrealized profit built from trades. `base_asset` and `quote_asset` split
  symbols such as `BTCUSDT` or `ETH/BTC`.
- `risk` — `RiskManager` checks orders against a `RiskConfig` (allowed and
  blocked symbols, order size, position size, daily loss, drawdown, orders
  per minute) and reports `RiskMetrics` with a risk score from 0 to 100.
- `engine` — `ExecutionEngine` places and cancels orders within a per-exchange
  orders-per-second limit and the risk checks, applies order events to its
  portfolio in the background between `start()` and `stop()`, and polls
  markets of exchanges that follow the `MarketDataSource` protocol. Real
  orders go to exchanges that follow the `TradingVenue` protocol.

## Example

```python
import asyncio
from decimal import Decimal

from arbfinder.exchange.normalizer import SymbolNormalizer, parse_symbol_from_string
from arbfinder.execution.engine import ExecutionEngine
from arbfinder.execution.models import ExecutionConfig, Side

symbol = parse_symbol_from_string("ADAUSDT")
print(symbol)  # ADA/USDT

normalizer = SymbolNormalizer()
print(normalizer.normalize_side("BID"))  # buy


async def main():
    engine = ExecutionEngine(ExecutionConfig(enable_paper_trading=True))
    await engine.start()
    order_id = await engine.place_order(
        "binance", "BTCUSDT", Side.BUY, Decimal("100"), Decimal("1")
    )
    await engine.stop()
    print(order_id in engine.portfolio_snapshot().pending_orders)  # True


asyncio.run(main())
```

In paper-trading mode orders are never sent to an exchange; they are recorded
in the engine's portfolio, which `portfolio_snapshot()` returns as a copy.

## What this package does not do

- It ships no adapters for particular exchanges. `ExchangeAdapter`,
  `MarketDataSource` and `TradingVenue` are interfaces you implement.
- It has no trading strategies and no arbitrage search: `add_strategy` only
  stores a strategy, and the engine's market polling only logs bid and ask.
- It has no command-line program, configuration file loading or persistent
  storage.
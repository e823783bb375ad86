"""Core exchange types, errors and the interfaces exchange adapters implement."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


class ArbFinderError(Exception):
    """Base class for every error raised by the package."""


class ExchangeError(ArbFinderError):
    """An exchange or adapter operation failed."""


class InvalidDataError(ArbFinderError):
    """Data received from or sent to an exchange could not be interpreted."""


class WebSocketError(ArbFinderError):
    """A websocket connection failed or is not available."""


class OrderError(ArbFinderError):
    """An order could not be placed or cancelled."""


class InternalError(ArbFinderError):
    """An internal invariant was broken."""


class VenueId(str, Enum):
    """Identifier of a trading venue."""

    BINANCE = "binance"
    COINBASE = "coinbase"
    KRAKEN = "kraken"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Symbol:
    """A trading pair made of a base and a quote asset."""

    base: str
    quote: str

    def __str__(self) -> str:
        return f"{self.base}/{self.quote}"


class OrderSide(str, Enum):
    """Side of an order."""

    BUY = "buy"
    SELL = "sell"

    def __str__(self) -> str:
        return self.value


class OrderType(str, Enum):
    """Kind of an order."""

    MARKET = "market"
    LIMIT = "limit"
    STOP_MARKET = "stop_market"
    STOP_LIMIT = "stop_limit"
    POST_ONLY = "post_only"
    FILL_OR_KILL = "fill_or_kill"
    IMMEDIATE_OR_CANCEL = "immediate_or_cancel"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TradingFees:
    maker_fee: Decimal
    taker_fee: Decimal


@dataclass(frozen=True)
class SymbolInfo:
    symbol: Symbol
    status: str
    base_asset_precision: int
    quote_asset_precision: int
    tick_size: Decimal
    lot_size: Decimal
    min_order_size: Decimal
    max_order_size: Decimal
    min_notional: Decimal
    trading_fees: TradingFees


@dataclass
class AccountInfo:
    account_type: str
    trading_enabled: bool
    withdraw_enabled: bool
    deposit_enabled: bool
    balances: list[Any]
    permissions: list[str]
    commission_rates: TradingFees


@dataclass
class ConnectionStatus:
    """Connection bookkeeping for one venue."""

    connected: bool = False
    last_ping: datetime | None = None
    reconnect_count: int = 0
    error_count: int = 0
    last_error: str | None = None


@dataclass
class SubscriptionInfo:
    """A live market data subscription and its message counters."""

    symbol: Symbol
    data_type: str
    subscribed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    message_count: int = 0
    last_message: datetime | None = None


@dataclass
class ExchangeConfig:
    """Connection and rate-limit settings for one exchange."""

    base_url: str = ""
    websocket_url: str = ""
    api_key: str | None = None
    secret_key: str | None = None
    passphrase: str | None = None
    sandbox: bool = False
    rate_limit_requests_per_second: int = 10
    rate_limit_orders_per_second: int = 5
    reconnect_attempts: int = 10
    reconnect_delay_ms: int = 5000
    heartbeat_interval_ms: int = 30000
    request_timeout_ms: int = 10000


class ExchangeAdapter(ABC):
    """Connection and market data interface of one exchange."""

    @abstractmethod
    def venue_id(self) -> VenueId:
        """Return the venue this adapter talks to."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection to the venue."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection to the venue."""

    @abstractmethod
    async def is_connected(self) -> bool:
        """Return whether the connection is open."""

    @abstractmethod
    async def subscribe_orderbook(self, symbol: Symbol, depth: int | None) -> None:
        """Start receiving order book updates for a symbol."""

    @abstractmethod
    async def subscribe_trades(self, symbol: Symbol) -> None:
        """Start receiving trades for a symbol."""

    @abstractmethod
    async def unsubscribe_orderbook(self, symbol: Symbol) -> None:
        """Stop receiving order book updates for a symbol."""


class WebSocketHandler(ABC):
    """Callbacks invoked by a websocket connection."""

    @abstractmethod
    async def on_message(self, message: str) -> None:
        """Handle a text message."""

    @abstractmethod
    async def on_connect(self) -> None:
        """Handle a (re)established connection."""

    @abstractmethod
    async def on_disconnect(self) -> None:
        """Handle a closed connection."""

    @abstractmethod
    async def on_error(self, error: ArbFinderError) -> None:
        """Handle a transport error."""

    @abstractmethod
    async def on_ping(self) -> None:
        """Handle a ping from the peer."""

    @abstractmethod
    async def on_pong(self) -> None:
        """Handle a pong from the peer."""
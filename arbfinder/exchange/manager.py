"""Registry of exchange adapters with connection and subscription bookkeeping."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from arbfinder.exchange.traits import (
    ArbFinderError,
    ConnectionStatus,
    ExchangeAdapter,
    ExchangeError,
    SubscriptionInfo,
    Symbol,
    VenueId,
)

logger = logging.getLogger(__name__)

_ORDERBOOK = "orderbook"
_TRADES = "trades"
_DEFAULT_DEPTH = 20


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MarketDataStats:
    """Message counters of one venue's subscriptions."""

    total_messages: int
    messages_per_second: float
    last_message_time: datetime | None
    symbols_subscribed: int
    uptime_percentage: float


@dataclass
class _Slot:
    adapter: ExchangeAdapter
    lock: asyncio.Lock = dataclasses.field(default_factory=asyncio.Lock)


class ExchangeManager:
    """Keeps exchange adapters, their connection states and their subscriptions.

    Calls into one adapter are serialized; different adapters run independently.
    """

    RESTART_DELAY = 1.0

    def __init__(self) -> None:
        self._slots: dict[VenueId, _Slot] = {}
        self._connections: dict[VenueId, ConnectionStatus] = {}
        self._subscriptions: dict[VenueId, list[SubscriptionInfo]] = {}
        self.restart_delay = self.RESTART_DELAY

    def _slot(self, venue_id: VenueId) -> _Slot:
        try:
            return self._slots[venue_id]
        except KeyError:
            raise ExchangeError(f"Adapter not found for venue: {venue_id}") from None

    def add_adapter(self, adapter: ExchangeAdapter) -> None:
        venue_id = adapter.venue_id()
        logger.info("Adding adapter for venue: %s", venue_id)
        self._slots[venue_id] = _Slot(adapter)
        self._connections[venue_id] = ConnectionStatus()
        self._subscriptions[venue_id] = []

    async def remove_adapter(self, venue_id: VenueId) -> None:
        logger.info("Removing adapter for venue: %s", venue_id)
        try:
            await self.disconnect(venue_id)
        except ArbFinderError as exc:
            logger.warning("Failed to disconnect before removal: %s", exc)
        self._slots.pop(venue_id, None)
        self._connections.pop(venue_id, None)
        self._subscriptions.pop(venue_id, None)

    async def connect(self, venue_id: VenueId) -> None:
        logger.info("Connecting to venue: %s", venue_id)
        slot = self._slot(venue_id)
        try:
            async with slot.lock:
                await slot.adapter.connect()
        except Exception as exc:
            status = self._connections.get(venue_id)
            if status is not None:
                status.connected = False
                status.error_count += 1
                status.last_error = str(exc)
            logger.error("Failed to connect to venue %s: %s", venue_id, exc)
            raise
        status = self._connections.get(venue_id)
        if status is not None:
            status.connected = True
            status.last_ping = None
            status.last_error = None
        logger.info("Successfully connected to venue: %s", venue_id)

    async def disconnect(self, venue_id: VenueId) -> None:
        logger.info("Disconnecting from venue: %s", venue_id)
        slot = self._slot(venue_id)
        try:
            async with slot.lock:
                await slot.adapter.disconnect()
        except Exception as exc:
            logger.error("Failed to disconnect from venue %s: %s", venue_id, exc)
            raise
        status = self._connections.get(venue_id)
        if status is not None:
            status.connected = False
            status.last_ping = None
        subscriptions = self._subscriptions.get(venue_id)
        if subscriptions is not None:
            subscriptions.clear()
        logger.info("Successfully disconnected from venue: %s", venue_id)

    async def connect_all(self) -> None:
        """Connect every venue; failures are logged and do not stop the others."""
        logger.info("Connecting to all venues")
        failed = 0
        for venue_id in list(self._slots):
            try:
                await self.connect(venue_id)
            except ArbFinderError as exc:
                logger.warning("Failed to connect to %s: %s", venue_id, exc)
                failed += 1
        if failed:
            logger.warning("%d venues failed to connect", failed)

    async def disconnect_all(self) -> None:
        logger.info("Disconnecting from all venues")
        for venue_id in list(self._slots):
            try:
                await self.disconnect(venue_id)
            except ArbFinderError as exc:
                logger.warning("Failed to disconnect from %s: %s", venue_id, exc)

    def is_connected(self, venue_id: VenueId) -> bool:
        status = self._connections.get(venue_id)
        return status is not None and status.connected

    def connection_status(self, venue_id: VenueId) -> ConnectionStatus | None:
        status = self._connections.get(venue_id)
        return dataclasses.replace(status) if status is not None else None

    def all_connection_statuses(self) -> dict[VenueId, ConnectionStatus]:
        return {venue: dataclasses.replace(status) for venue, status in self._connections.items()}

    async def subscribe_orderbook(
        self, venue_id: VenueId, symbol: Symbol, depth: int | None
    ) -> None:
        logger.debug("Subscribing to orderbook for %s on %s", symbol, venue_id)
        slot = self._slot(venue_id)
        try:
            async with slot.lock:
                await slot.adapter.subscribe_orderbook(symbol, depth)
        except Exception as exc:
            logger.error(
                "Failed to subscribe to orderbook for %s on %s: %s", symbol, venue_id, exc
            )
            raise
        self._add_subscription(venue_id, symbol, _ORDERBOOK)
        logger.debug("Successfully subscribed to orderbook for %s on %s", symbol, venue_id)

    async def subscribe_trades(self, venue_id: VenueId, symbol: Symbol) -> None:
        logger.debug("Subscribing to trades for %s on %s", symbol, venue_id)
        slot = self._slot(venue_id)
        try:
            async with slot.lock:
                await slot.adapter.subscribe_trades(symbol)
        except Exception as exc:
            logger.error("Failed to subscribe to trades for %s on %s: %s", symbol, venue_id, exc)
            raise
        self._add_subscription(venue_id, symbol, _TRADES)
        logger.debug("Successfully subscribed to trades for %s on %s", symbol, venue_id)

    async def unsubscribe_orderbook(self, venue_id: VenueId, symbol: Symbol) -> None:
        logger.debug("Unsubscribing from orderbook for %s on %s", symbol, venue_id)
        slot = self._slot(venue_id)
        try:
            async with slot.lock:
                await slot.adapter.unsubscribe_orderbook(symbol)
        except Exception as exc:
            logger.error(
                "Failed to unsubscribe from orderbook for %s on %s: %s", symbol, venue_id, exc
            )
            raise
        subscriptions = self._subscriptions.get(venue_id)
        if subscriptions is not None:
            subscriptions[:] = [
                sub
                for sub in subscriptions
                if not (sub.symbol == symbol and sub.data_type == _ORDERBOOK)
            ]
        logger.debug("Successfully unsubscribed from orderbook for %s on %s", symbol, venue_id)

    def _add_subscription(self, venue_id: VenueId, symbol: Symbol, data_type: str) -> None:
        subscriptions = self._subscriptions.get(venue_id)
        if subscriptions is not None:
            subscriptions.append(SubscriptionInfo(symbol=symbol, data_type=data_type))

    def subscriptions(self, venue_id: VenueId) -> list[SubscriptionInfo]:
        return [dataclasses.replace(sub) for sub in self._subscriptions.get(venue_id, [])]

    def all_subscriptions(self) -> dict[VenueId, list[SubscriptionInfo]]:
        return {
            venue: [dataclasses.replace(sub) for sub in subs]
            for venue, subs in self._subscriptions.items()
        }

    def get_adapter(self, venue_id: VenueId) -> ExchangeAdapter | None:
        slot = self._slots.get(venue_id)
        return slot.adapter if slot is not None else None

    def available_venues(self) -> list[VenueId]:
        return list(self._slots)

    def connected_venues(self) -> list[VenueId]:
        return [venue for venue, status in self._connections.items() if status.connected]

    def record_message(self, venue_id: VenueId, symbol: Symbol, data_type: str) -> None:
        """Count a message against the first matching subscription."""
        for sub in self._subscriptions.get(venue_id, []):
            if sub.symbol == symbol and sub.data_type == data_type:
                sub.message_count += 1
                sub.last_message = _now()
                break

    def record_error(self, venue_id: VenueId, error: str) -> None:
        status = self._connections.get(venue_id)
        if status is not None:
            status.error_count += 1
            status.last_error = error

    def record_ping(self, venue_id: VenueId) -> None:
        status = self._connections.get(venue_id)
        if status is not None:
            status.last_ping = _now()

    async def health_check(self) -> dict[VenueId, bool]:
        """Ask every adapter whether it considers itself connected."""
        health: dict[VenueId, bool] = {}
        for venue_id, slot in list(self._slots.items()):
            async with slot.lock:
                health[venue_id] = await slot.adapter.is_connected()
        return health

    async def restart_adapter(self, venue_id: VenueId) -> None:
        logger.info("Restarting adapter for venue: %s", venue_id)
        try:
            await self.disconnect(venue_id)
        except ArbFinderError as exc:
            logger.warning("Error during disconnect before restart: %s", exc)
        await asyncio.sleep(self.restart_delay)
        await self.connect(venue_id)
        status = self._connections.get(venue_id)
        if status is not None:
            status.reconnect_count += 1
        logger.info("Successfully restarted adapter for venue: %s", venue_id)

    async def subscribe_to_symbols(self, venue_id: VenueId, symbols: Iterable[Symbol]) -> None:
        """Subscribe to order book and trades of each symbol, logging failures."""
        symbols = list(symbols)
        logger.info("Subscribing to %d symbols on %s", len(symbols), venue_id)
        for symbol in symbols:
            try:
                await self.subscribe_orderbook(venue_id, symbol, _DEFAULT_DEPTH)
            except ArbFinderError as exc:
                logger.warning(
                    "Failed to subscribe to orderbook for %s on %s: %s", symbol, venue_id, exc
                )
            try:
                await self.subscribe_trades(venue_id, symbol)
            except ArbFinderError as exc:
                logger.warning(
                    "Failed to subscribe to trades for %s on %s: %s", symbol, venue_id, exc
                )

    async def unsubscribe_from_symbols(
        self, venue_id: VenueId, symbols: Iterable[Symbol]
    ) -> None:
        symbols = list(symbols)
        logger.info("Unsubscribing from %d symbols on %s", len(symbols), venue_id)
        for symbol in symbols:
            try:
                await self.unsubscribe_orderbook(venue_id, symbol)
            except ArbFinderError as exc:
                logger.warning(
                    "Failed to unsubscribe from orderbook for %s on %s: %s",
                    symbol,
                    venue_id,
                    exc,
                )

    def market_data_stats(self) -> dict[VenueId, MarketDataStats]:
        stats: dict[VenueId, MarketDataStats] = {}
        now = _now()
        for venue_id, subs in self._subscriptions.items():
            total = sum(sub.message_count for sub in subs)
            last = max((sub.last_message for sub in subs if sub.last_message), default=None)
            rate = 0.0
            if last is not None:
                elapsed = int((now - last).total_seconds())
                if elapsed > 0:
                    rate = total / elapsed
            stats[venue_id] = MarketDataStats(
                total_messages=total,
                messages_per_second=rate,
                last_message_time=last,
                symbols_subscribed=len(subs),
                uptime_percentage=100.0,
            )
        return stats
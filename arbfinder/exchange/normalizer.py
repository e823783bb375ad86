"""Translation between exchange-specific and normalized symbols, sides and order types."""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from arbfinder.exchange.traits import InvalidDataError, OrderSide, OrderType, Symbol

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_U64_MAX = 2**64 - 1
_UNSIGNED = re.compile(r"\+?[0-9]+")
_CONCATENATED_QUOTES = ("USDT", "USDC", "USD", "BTC", "ETH", "BNB")

_DEFAULT_SIDES = (
    ("buy", OrderSide.BUY),
    ("BUY", OrderSide.BUY),
    ("bid", OrderSide.BUY),
    ("BID", OrderSide.BUY),
    ("sell", OrderSide.SELL),
    ("SELL", OrderSide.SELL),
    ("ask", OrderSide.SELL),
    ("ASK", OrderSide.SELL),
)

_DEFAULT_TYPES = (
    ("market", OrderType.MARKET),
    ("MARKET", OrderType.MARKET),
    ("limit", OrderType.LIMIT),
    ("LIMIT", OrderType.LIMIT),
    ("stop", OrderType.STOP_MARKET),
    ("STOP", OrderType.STOP_MARKET),
    ("stop_market", OrderType.STOP_MARKET),
    ("STOP_MARKET", OrderType.STOP_MARKET),
    ("stop_limit", OrderType.STOP_LIMIT),
    ("STOP_LIMIT", OrderType.STOP_LIMIT),
    ("post_only", OrderType.POST_ONLY),
    ("POST_ONLY", OrderType.POST_ONLY),
    ("fill_or_kill", OrderType.FILL_OR_KILL),
    ("FILL_OR_KILL", OrderType.FILL_OR_KILL),
    ("fok", OrderType.FILL_OR_KILL),
    ("FOK", OrderType.FILL_OR_KILL),
    ("immediate_or_cancel", OrderType.IMMEDIATE_OR_CANCEL),
    ("IMMEDIATE_OR_CANCEL", OrderType.IMMEDIATE_OR_CANCEL),
    ("ioc", OrderType.IMMEDIATE_OR_CANCEL),
    ("IOC", OrderType.IMMEDIATE_OR_CANCEL),
)


class SymbolFormat(Enum):
    SLASH = "slash"  # BTC/USDT
    DASH = "dash"  # BTC-USDT
    UNDERSCORE = "underscore"  # BTC_USDT
    CONCATENATED = "concatenated"  # BTCUSDT
    LOWER = "lower"  # btcusdt
    UPPER = "upper"  # BTCUSDT


class SymbolNormalizer:
    """Two-way mapping tables for symbols, order sides and order types.

    When several exchange spellings map to the same value, the first one
    registered is the one used to denormalize it.
    """

    def __init__(self) -> None:
        self._symbols: dict[str, Symbol] = {}
        self._symbols_reverse: dict[Symbol, str] = {}
        self._sides: dict[str, OrderSide] = {}
        self._sides_reverse: dict[OrderSide, str] = {}
        self._types: dict[str, OrderType] = {}
        self._types_reverse: dict[OrderType, str] = {}
        for name, side in _DEFAULT_SIDES:
            self.add_side_mapping(name, side)
        for name, order_type in _DEFAULT_TYPES:
            self.add_type_mapping(name, order_type)

    def add_symbol_mapping(self, exchange_symbol: str, normalized_symbol: Symbol) -> None:
        self._symbols_reverse.setdefault(normalized_symbol, exchange_symbol)
        self._symbols[exchange_symbol] = normalized_symbol

    def add_side_mapping(self, exchange_side: str, normalized_side: OrderSide) -> None:
        self._sides_reverse.setdefault(normalized_side, exchange_side)
        self._sides[exchange_side] = normalized_side

    def add_type_mapping(self, exchange_type: str, normalized_type: OrderType) -> None:
        self._types_reverse.setdefault(normalized_type, exchange_type)
        self._types[exchange_type] = normalized_type

    def format_symbol_for_exchange(self, symbol: Symbol, fmt: SymbolFormat) -> str:
        if fmt is SymbolFormat.SLASH:
            return f"{symbol.base}/{symbol.quote}"
        if fmt is SymbolFormat.DASH:
            return f"{symbol.base}-{symbol.quote}"
        if fmt is SymbolFormat.UNDERSCORE:
            return f"{symbol.base}_{symbol.quote}"
        if fmt is SymbolFormat.CONCATENATED:
            return f"{symbol.base}{symbol.quote}"
        if fmt is SymbolFormat.LOWER:
            return f"{symbol.base.lower()}{symbol.quote.lower()}"
        return f"{symbol.base.upper()}{symbol.quote.upper()}"

    def normalize_symbol(self, exchange_symbol: str) -> Symbol:
        mapped = self._symbols.get(exchange_symbol)
        if mapped is not None:
            return mapped
        return parse_symbol_from_string(exchange_symbol)

    def denormalize_symbol(self, symbol: Symbol) -> str:
        mapped = self._symbols_reverse.get(symbol)
        if mapped is not None:
            return mapped
        return self.format_symbol_for_exchange(symbol, SymbolFormat.SLASH)

    def normalize_side(self, exchange_side: str) -> OrderSide:
        try:
            return self._sides[exchange_side]
        except KeyError:
            raise InvalidDataError(f"Unknown side: {exchange_side}") from None

    def denormalize_side(self, side: OrderSide) -> str:
        return self._sides_reverse.get(side, str(side))

    def normalize_order_type(self, exchange_type: str) -> OrderType:
        try:
            return self._types[exchange_type]
        except KeyError:
            raise InvalidDataError(f"Unknown order type: {exchange_type}") from None

    def denormalize_order_type(self, order_type: OrderType) -> str:
        return self._types_reverse.get(order_type, str(order_type))


def parse_symbol_from_parts(base: str, quote: str) -> Symbol:
    return Symbol(base.upper(), quote.upper())


def parse_symbol_from_string(symbol_str: str) -> Symbol:
    """Split a symbol written with '/', '-', '_' or with a known quote suffix."""
    for separator in ("/", "-", "_"):
        base, found, quote = symbol_str.partition(separator)
        if found:
            return Symbol(base, quote)
    for quote in _CONCATENATED_QUOTES:
        if symbol_str.endswith(quote) and len(symbol_str) > len(quote):
            return Symbol(symbol_str[: -len(quote)], quote)
    raise InvalidDataError(f"Unable to parse symbol: {symbol_str}")


def _round_half_away(value: float) -> float:
    return math.copysign(math.floor(abs(value) + 0.5), value)


def normalize_price_precision(price: float, precision: int) -> float:
    factor = 10.0**precision
    return _round_half_away(price * factor) / factor


def normalize_quantity_precision(quantity: float, precision: int) -> float:
    factor = 10.0**precision
    return math.floor(quantity * factor) / factor


def _field(value: Any, field: str) -> Any:
    if isinstance(value, dict):
        return value.get(field)
    return None


def extract_string_field(value: Any, field: str) -> str:
    item = _field(value, field)
    if isinstance(item, str):
        return item
    raise InvalidDataError(f"Missing or invalid field: {field}")


def extract_float_field(value: Any, field: str) -> float:
    item = _field(value, field)
    if isinstance(item, (int, float)) and not isinstance(item, bool):
        return float(item)
    if isinstance(item, str) and item == item.strip():
        try:
            return float(item)
        except ValueError:
            pass
    raise InvalidDataError(f"Missing or invalid numeric field: {field}")


def extract_int_field(value: Any, field: str) -> int:
    item = _field(value, field)
    number: int | None = None
    if isinstance(item, int) and not isinstance(item, bool):
        number = item
    elif isinstance(item, str) and _UNSIGNED.fullmatch(item):
        number = int(item)
    if number is not None and 0 <= number <= _U64_MAX:
        return number
    raise InvalidDataError(f"Missing or invalid integer field: {field}")


def extract_bool_field(value: Any, field: str) -> bool:
    item = _field(value, field)
    if isinstance(item, bool):
        return item
    raise InvalidDataError(f"Missing or invalid boolean field: {field}")


def parse_timestamp_ms(value: Any, field: str) -> datetime:
    timestamp = extract_int_field(value, field)
    try:
        return _EPOCH + timedelta(milliseconds=timestamp)
    except OverflowError:
        raise InvalidDataError(f"Invalid timestamp: {timestamp}") from None


def parse_timestamp_s(value: Any, field: str) -> datetime:
    timestamp = extract_int_field(value, field)
    try:
        return _EPOCH + timedelta(seconds=timestamp)
    except OverflowError:
        raise InvalidDataError(f"Invalid timestamp: {timestamp}") from None
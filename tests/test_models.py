from decimal import Decimal

import pytest

from arbfinder.execution.models import (
    ExecutionConfig,
    Order,
    OrderCanceled,
    OrderFilled,
    OrderPlaced,
    OrderStatus,
    RiskLimitHit,
    Side,
    StrategySignal,
    Trade,
    TradeExecuted,
    TradingSignal,
)


def _order(**overrides):
    values = dict(
        exchange="binance",
        symbol="BTCUSDT",
        id="order-1",
        side=Side.BUY,
        price=Decimal("100"),
        amount=Decimal("2"),
    )
    values.update(overrides)
    return Order(**values)


def test_execution_config_defaults():
    config = ExecutionConfig()
    assert config.max_position_size == Decimal(1000)
    assert config.max_daily_loss == Decimal(500)
    assert config.max_orders_per_second == 10
    assert config.enable_paper_trading is True


def test_new_order_defaults():
    order = _order()
    assert order.status is OrderStatus.NEW
    assert order.filled_amount == Decimal(0)
    assert order.client_id is None
    assert order.remaining_amount == order.amount
    assert order.is_closed is False
    assert order.created_at.tzinfo is not None


def test_remaining_amount_after_partial_fill():
    order = _order(filled_amount=Decimal("0.5"), status=OrderStatus.PARTIALLY_FILLED)
    assert order.remaining_amount + order.filled_amount == order.amount
    assert order.is_closed is False


@pytest.mark.parametrize(
    "status", [OrderStatus.FILLED, OrderStatus.CANCELED, OrderStatus.REJECTED]
)
def test_terminal_statuses_close_order(status):
    assert _order(status=status).is_closed is True


def test_trade_ids_are_unique_and_notional():
    first = Trade(symbol="BTCUSDT", side=Side.SELL, price=Decimal("3"), amount=Decimal("4"))
    second = Trade(symbol="BTCUSDT", side=Side.SELL, price=Decimal("3"), amount=Decimal("4"))
    assert first.id != second.id
    assert first.notional == first.price * first.amount


def test_side_round_trips_through_value():
    for side in Side:
        assert Side(side.value) is side
        assert str(side) == side.value


def test_order_status_round_trips_through_value():
    for status in OrderStatus:
        assert OrderStatus(str(status)) is status


def _describe(event):
    match event:
        case OrderPlaced(order=order):
            return ("placed", order.id)
        case OrderFilled(order=order):
            return ("filled", order.id)
        case OrderCanceled(order=order):
            return ("canceled", order.id)
        case TradeExecuted(trade=trade):
            return ("trade", trade.symbol)
        case RiskLimitHit(reason=reason):
            return ("risk", reason)
        case StrategySignal(strategy=strategy, signal=signal):
            return ("signal", strategy, signal.side)
    return None


def test_events_dispatch_by_kind():
    order = _order()
    trade = Trade(symbol="ETHUSDT", side=Side.BUY, price=Decimal("1"), amount=Decimal("1"))
    signal = TradingSignal(
        side=Side.SELL, price=Decimal("1"), amount=Decimal("1"), confidence=0.5, reason="spread"
    )
    assert _describe(OrderPlaced(order)) == ("placed", order.id)
    assert _describe(OrderFilled(order)) == ("filled", order.id)
    assert _describe(OrderCanceled(order)) == ("canceled", order.id)
    assert _describe(TradeExecuted(trade)) == ("trade", "ETHUSDT")
    assert _describe(RiskLimitHit("Daily loss limit exceeded")) == (
        "risk",
        "Daily loss limit exceeded",
    )
    assert _describe(StrategySignal("arb", "BTCUSDT", signal)) == ("signal", "arb", Side.SELL)


def test_events_are_immutable():
    event = RiskLimitHit("limit")
    with pytest.raises(AttributeError):
        event.reason = "other"
    assert event.reason == "limit"
from decimal import Decimal

from arbfinder.execution.models import Side
from arbfinder.execution.risk import RiskConfig, RiskManager


def test_valid_order_passes():
    manager = RiskManager()
    assert manager.check_order_risk("BTCUSDT", Side.BUY, Decimal(100), Decimal(1)) is True


def test_symbol_not_in_allowed_list_rejected():
    manager = RiskManager()
    assert manager.check_order_risk("DOGEUSDT", Side.BUY, Decimal(100), Decimal(1)) is False


def test_empty_allowed_list_allows_all_but_blocked():
    manager = RiskManager(RiskConfig(allowed_symbols=[], blocked_symbols=["XRPUSDT"]))
    assert manager.check_order_risk("DOGEUSDT", Side.BUY, Decimal(100), Decimal(1)) is True
    assert manager.check_order_risk("XRPUSDT", Side.BUY, Decimal(100), Decimal(1)) is False


def test_order_value_bounds():
    manager = RiskManager()
    assert manager.check_order_risk("BTCUSDT", Side.BUY, Decimal(100), Decimal(11)) is False
    assert manager.check_order_risk("BTCUSDT", Side.BUY, Decimal(1), Decimal(5)) is False


def test_position_size_limit():
    manager = RiskManager()
    manager.update_position_size("BTCUSDT", manager.config.max_position_size)
    assert manager.check_order_risk("BTCUSDT", Side.BUY, Decimal(100), Decimal(1)) is False
    assert manager.check_order_risk("BTCUSDT", Side.SELL, Decimal(100), Decimal(1)) is True


def test_daily_loss_limit():
    manager = RiskManager()
    manager.update_daily_pnl(-manager.config.max_daily_loss - Decimal(1))
    assert manager.check_order_risk("BTCUSDT", Side.BUY, Decimal(100), Decimal(1)) is False


def test_drawdown_limit_persists_after_recovery():
    config = RiskConfig(max_daily_loss=Decimal(100000), max_drawdown=Decimal(50))
    manager = RiskManager(config)
    manager.update_daily_pnl(Decimal(-60))
    manager.update_daily_pnl(Decimal(60))
    metrics = manager.risk_metrics()
    assert metrics.daily_pnl == Decimal(0)
    assert metrics.max_drawdown == Decimal(-60)
    assert manager.check_order_risk("BTCUSDT", Side.BUY, Decimal(100), Decimal(1)) is False


def test_order_rate_limit_is_per_symbol():
    manager = RiskManager()
    for _ in range(manager.config.max_orders_per_minute):
        manager.record_order("BTCUSDT")
    assert manager.check_order_risk("BTCUSDT", Side.BUY, Decimal(100), Decimal(1)) is False
    assert manager.check_order_risk("ETHUSDT", Side.BUY, Decimal(100), Decimal(1)) is True
    assert manager.risk_metrics().orders_last_minute == manager.config.max_orders_per_minute


def test_fresh_manager_metrics():
    manager = RiskManager()
    metrics = manager.risk_metrics()
    assert metrics.position_count == 0
    assert metrics.largest_position == Decimal(0)
    assert metrics.risk_score == 0.0
    assert manager.is_emergency_stop_required() is False


def test_emergency_stop_on_daily_loss():
    manager = RiskManager()
    manager.update_daily_pnl(-manager.config.max_daily_loss)
    assert manager.is_emergency_stop_required() is True
    assert 0.0 < manager.risk_metrics().risk_score <= 100.0


def test_position_metrics_and_remaining_limit():
    manager = RiskManager()
    manager.update_position_size("BTCUSDT", Decimal(4000))
    manager.update_position_size("ETHUSDT", Decimal(2500))
    metrics = manager.risk_metrics()
    assert metrics.position_count == 2
    assert metrics.largest_position == Decimal(4000)
    remaining = manager.position_limit_remaining("BTCUSDT")
    assert remaining + Decimal(4000) == manager.config.max_position_size
    assert manager.position_limit_remaining("ADAUSDT") == manager.config.max_position_size


def test_risk_score_is_capped():
    manager = RiskManager()
    manager.update_daily_pnl(-manager.config.max_drawdown * 10)
    manager.update_position_size("BTCUSDT", manager.config.max_position_size * 10)
    for _ in range(manager.config.max_orders_per_minute * 2):
        manager.record_order("BTCUSDT")
    assert manager.risk_metrics().risk_score == 100.0
    assert manager.is_emergency_stop_required() is True
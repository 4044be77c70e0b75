# tests/notifier/test_formatter.py
from pool_monitor.aggregator.window import WindowExtremes
from pool_monitor.alert.hysteresis import AlertEvent, AlertKind
from pool_monitor.notifier.formatter import (
    format_breach_alert,
    format_recovery_alert,
    format_tick_summary,
)
from pool_monitor.storage.models import Metric, Sample

NOW = 1706600000000


def _event(metric: Metric, kind: AlertKind, change: float = 6.0) -> AlertEvent:
    return AlertEvent(
        entity_id="0xPool",
        metric=metric,
        kind=kind,
        direction="increased" if change >= 0 else "decreased",
        change=change,
        threshold=5,
        current_value=1.06,
        extreme_at=NOW - 3600 * 1000,
        timestamp=NOW,
    )


def test_format_price_breach():
    msg = format_breach_alert(_event(Metric.PRICE, AlertKind.BREACH), "WETH/USDC", "WETH", "USDC")

    assert "Price Alert" in msg
    assert "<b>Pool</b>: WETH/USDC" in msg
    assert "Price has increased by</b>: <b>6.00%</b>" in msg
    assert "<b>Threshold</b>: 5%" in msg
    assert "Current Price (USDC per WETH)" in msg
    assert "1.06" in msg
    assert "2024-01-30" in msg


def test_format_liquidity_breach_decrease():
    msg = format_breach_alert(
        _event(Metric.LIQUIDITY, AlertKind.REALERT, change=-12.346), "WETH/USDC", "WETH", "USDC"
    )

    assert "Liquidity Alert" in msg
    assert "Liquidity has decreased by</b>: <b>12.35%</b>" in msg
    assert "Current Liquidity" in msg


def test_format_recovery():
    msg = format_recovery_alert(
        _event(Metric.PRICE, AlertKind.RECOVERY, change=1.0), "WETH/USDC", "WETH", "USDC"
    )

    assert "Price Update" in msg
    assert "back below threshold" in msg
    assert "WETH/USDC" in msg
    assert "increased" not in msg
    assert "Threshold" not in msg


def test_symbols_are_escaped():
    msg = format_breach_alert(_event(Metric.PRICE, AlertKind.BREACH), "<A>/B&C", "<A>", "B&C")

    assert "&lt;A&gt;/B&amp;C" in msg
    assert "<A>" not in msg


def test_format_tick_summary():
    sample = Sample(entity_id="0xPool", timestamp=NOW, price=2500.0, liquidity=25_010.0)
    extremes = {
        Metric.PRICE: WindowExtremes(max_increase=6.0, max_increase_at=NOW - 1000),
        Metric.LIQUIDITY: WindowExtremes(),
    }

    text = format_tick_summary(sample, extremes, "WETH/USDC", "WETH", "USDC", 24)

    assert "WETH/USDC" in text
    assert "price (USDC per WETH) 2,500.00" in text
    assert "max price change 24h +6.00% (increased)" in text
    assert "max liquidity change 24h +0.00% (increased)" in text

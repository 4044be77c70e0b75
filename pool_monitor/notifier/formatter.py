# pool_monitor/notifier/formatter.py
from datetime import UTC, datetime
from html import escape

from pool_monitor.aggregator.window import WindowExtremes
from pool_monitor.alert.hysteresis import AlertEvent
from pool_monitor.storage.models import Metric, Sample


def _format_time(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, UTC).strftime("%Y-%m-%d %H:%M UTC")


def _format_value(value: float) -> str:
    if abs(value) >= 1_000:
        return f"{value:,.2f}"
    return f"{value:.6g}"


def _current_label(metric: Metric, base_symbol: str, quote_symbol: str) -> str:
    if metric is Metric.PRICE:
        return f"Current Price ({escape(quote_symbol)} per {escape(base_symbol)})"
    return "Current Liquidity"


def format_breach_alert(
    event: AlertEvent,
    pair_name: str,
    base_symbol: str,
    quote_symbol: str,
) -> str:
    title = event.metric.value.capitalize()
    lines = [
        f"⚠️ <b>{title} Alert</b>",
        f"<b>Pool</b>: {escape(pair_name)}",
        f"<b>{title} has {event.direction} by</b>: <b>{event.magnitude:.2f}%</b>",
        f"<b>Threshold</b>: {event.threshold:g}%",
        f"<b>{_current_label(event.metric, base_symbol, quote_symbol)}</b>: "
        f"{_format_value(event.current_value)}",
    ]
    if event.extreme_at is not None:
        lines.append(f"<b>Compared to</b>: {_format_time(event.extreme_at)}")
    lines.append(f"<b>Time</b>: {_format_time(event.timestamp)}")
    return "\n".join(lines)


def format_recovery_alert(
    event: AlertEvent,
    pair_name: str,
    base_symbol: str,
    quote_symbol: str,
) -> str:
    title = event.metric.value.capitalize()
    return "\n".join(
        [
            f"ℹ️ <b>{title} Update</b>",
            f"{title} change is back below threshold for pool {escape(pair_name)}",
            f"<b>{_current_label(event.metric, base_symbol, quote_symbol)}</b>: "
            f"{_format_value(event.current_value)}",
            f"<b>Time</b>: {_format_time(event.timestamp)}",
        ]
    )


def format_tick_summary(
    sample: Sample,
    extremes: dict[Metric, WindowExtremes],
    pair_name: str,
    base_symbol: str,
    quote_symbol: str,
    window_hours: float,
) -> str:
    """单轮采样的日志摘要 (纯文本)"""
    parts = [
        f"Pool {sample.entity_id} {pair_name}",
        f"price ({quote_symbol} per {base_symbol}) {_format_value(sample.price)}",
        f"liquidity {_format_value(sample.liquidity)}",
    ]
    for metric, ext in extremes.items():
        change, at, direction = ext.dominant()
        text = f"max {metric.value} change {window_hours:g}h {change:+.2f}% ({direction})"
        if at is not None:
            text += f" at {_format_time(at)}"
        parts.append(text)
    return " | ".join(parts)

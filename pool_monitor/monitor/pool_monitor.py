# pool_monitor/monitor/pool_monitor.py
import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

from pool_monitor.aggregator.window import WindowExtremes, calculate_metric_extremes
from pool_monitor.alert.hysteresis import AlertEvent, AlertKind, AlertSignal, evaluate_signal
from pool_monitor.collector.pool_source import PoolSource, SourceUnavailableError
from pool_monitor.notifier.formatter import format_tick_summary
from pool_monitor.storage.database import Database, StoreUnavailableError
from pool_monitor.storage.models import Metric, Sample

logger = logging.getLogger(__name__)

AlertCallback = Callable[["PoolMonitor", AlertEvent], Coroutine[Any, Any, None]]


class PoolMonitor:
    """单个池子的采样、窗口聚合与告警状态

    Owns the price/liquidity AlertSignal pair. Ticks for the same pool never
    overlap: a tick that finds the previous one still running is skipped.
    """

    def __init__(
        self,
        source: PoolSource,
        store: Database,
        thresholds: dict[Metric, float],
        window_ms: int,
        cooldown_ms: int,
        on_alert: AlertCallback | None = None,
    ):
        self.source = source
        self.store = store
        self.thresholds = thresholds
        self.window_ms = window_ms
        self.cooldown_ms = cooldown_ms
        self.on_alert = on_alert
        self.signals: dict[Metric, AlertSignal] = {metric: AlertSignal() for metric in Metric}
        self.last_sample: Sample | None = None
        self._lock = asyncio.Lock()

    @property
    def address(self) -> str:
        return self.source.address

    def _clock(self, now: int | None) -> int:
        if now is None:
            now = int(time.time() * 1000)
        # 同一池子的时间戳不回退
        if self.last_sample and now < self.last_sample.timestamp:
            return self.last_sample.timestamp
        return now

    async def tick(self, now: int | None = None) -> list[AlertEvent]:
        if self._lock.locked():
            logger.warning(f"Previous tick for {self.address} still running, skipping")
            return []

        async with self._lock:
            return await self._tick(self._clock(now))

    async def _tick(self, now: int) -> list[AlertEvent]:
        try:
            sample = await self.source.fetch_sample(now)
        except SourceUnavailableError as e:
            logger.error(f"Failed to fetch data for pool {self.address}: {e}")
            return []

        self.last_sample = sample
        token0, token1 = self.source.token0, self.source.token1

        try:
            await self.store.record(
                self.address,
                sample,
                token0.symbol if token0 else None,
                token1.symbol if token1 else None,
            )
        except StoreUnavailableError as e:
            logger.error(f"Error inserting historical data: {e}")

        try:
            await self.store.prune(self.address, now - self.window_ms)
        except StoreUnavailableError as e:
            logger.error(f"Error deleting old data: {e}")

        try:
            window = await self.store.window(self.address, now - self.window_ms, now)
        except StoreUnavailableError as e:
            # 窗口缺失时不评估
            logger.error(f"Error fetching historical data, skipping evaluation: {e}")
            return []

        extremes: dict[Metric, WindowExtremes] = {}
        events: list[AlertEvent] = []
        for metric in Metric:
            extremes[metric] = calculate_metric_extremes(sample, window, metric)
            event = self._evaluate(metric, sample, extremes[metric], now)
            if event:
                events.append(event)

        logger.info(
            format_tick_summary(
                sample,
                extremes,
                self.source.pair_name,
                self.source.base_symbol,
                self.source.quote_symbol,
                self.window_ms / 3_600_000,
            )
        )

        for event in events:
            await self._emit(event)
        return events

    def _evaluate(
        self,
        metric: Metric,
        sample: Sample,
        extremes: WindowExtremes,
        now: int,
    ) -> AlertEvent | None:
        change, extreme_at, direction = extremes.dominant()
        threshold = self.thresholds[metric]

        result = evaluate_signal(self.signals[metric], change, threshold, self.cooldown_ms, now)
        self.signals[metric] = result.signal

        if result.kind is None:
            return None

        if result.kind is AlertKind.RECOVERY:
            logger.info(f"{metric.value} alert cleared for {self.address}")
        else:
            logger.info(
                f"{metric.value} {result.kind.value} for {self.address}: "
                f"{change:+.2f}% (threshold {threshold:g}%)"
            )

        return AlertEvent(
            entity_id=self.address,
            metric=metric,
            kind=result.kind,
            direction=direction,
            change=change,
            threshold=threshold,
            current_value=metric.value_of(sample),
            extreme_at=extreme_at,
            timestamp=now,
        )

    async def _emit(self, event: AlertEvent) -> None:
        if not self.on_alert:
            return
        try:
            await self.on_alert(self, event)
        except Exception as e:
            # 状态已更新，通知失败不回滚
            logger.error(f"Failed to deliver {event.metric.value} alert for {self.address}: {e}")

# pool_monitor/main.py
import asyncio
import functools
import logging
import os
import signal
import time
from datetime import UTC, datetime
from html import escape
from pathlib import Path

from pool_monitor.alert.hysteresis import AlertEvent, AlertKind
from pool_monitor.client.rpc import RpcClient
from pool_monitor.collector.pool_source import PoolSource
from pool_monitor.config import Config, load_config
from pool_monitor.monitor.pool_monitor import PoolMonitor
from pool_monitor.notifier.formatter import format_breach_alert, format_recovery_alert
from pool_monitor.notifier.telegram import TelegramNotifier
from pool_monitor.storage.database import Database
from pool_monitor.storage.models import Metric

logger = logging.getLogger(__name__)


class PoolMonitorApp:
    def __init__(self, config: Config):
        self.config = config
        self.db = Database(config.database.path)
        self.rpc = RpcClient(config.rpc.url, timeout=config.rpc.timeout_seconds)
        self.notifier = TelegramNotifier(config.telegram.bot_token, config.telegram.chat_ids)
        self.monitors: list[PoolMonitor] = []
        self.running = False
        self.start_time = time.time()
        self._in_flight: set[asyncio.Task[list[AlertEvent]]] = set()

    async def init(self) -> None:
        # Ensure data directory exists
        Path(self.config.database.path).parent.mkdir(parents=True, exist_ok=True)

        await self.db.init()
        await self.rpc.init()

        # 注册池子，失败即退出
        for pool in self.config.pools:
            source = PoolSource(self.rpc, pool.address, pool.price_basis)
            await source.init()
            self.monitors.append(
                PoolMonitor(
                    source=source,
                    store=self.db,
                    thresholds={
                        Metric.PRICE: self.config.price_threshold(pool),
                        Metric.LIQUIDITY: self.config.liquidity_threshold(pool),
                    },
                    window_ms=self.config.monitor.window_ms,
                    cooldown_ms=self.config.monitor.cooldown_ms,
                    on_alert=self._on_alert,
                )
            )

        self.notifier.on_status = self._on_status

    async def _on_alert(self, monitor: PoolMonitor, event: AlertEvent) -> None:
        source = monitor.source
        if event.kind is AlertKind.RECOVERY:
            text = format_recovery_alert(
                event, source.pair_name, source.base_symbol, source.quote_symbol
            )
        else:
            text = format_breach_alert(
                event, source.pair_name, source.base_symbol, source.quote_symbol
            )

        if not await self.notifier.broadcast(text):
            logger.warning(
                f"{event.metric.value} {event.kind.value} for {monitor.address} not delivered"
            )

    async def _on_status(self) -> str:
        uptime = time.time() - self.start_time
        days = int(uptime // 86400)
        hours = int((uptime % 86400) // 3600)
        minutes = int((uptime % 3600) // 60)

        lines = ["🔧 <b>Status</b>", f"Uptime: {days}d {hours}h {minutes}m", ""]
        for monitor in self.monitors:
            source = monitor.source
            states = ", ".join(
                f"{metric.value}: {sig.state.value}" for metric, sig in monitor.signals.items()
            )
            lines.append(f"<b>{escape(source.pair_name)}</b> {escape(monitor.address)}")
            if monitor.last_sample:
                seen = datetime.fromtimestamp(monitor.last_sample.timestamp / 1000, UTC)
                lines.append(
                    f"  price {monitor.last_sample.price:.6g} "
                    f"({escape(source.quote_symbol)} per {escape(source.base_symbol)}) "
                    f"at {seen:%H:%M UTC}"
                )
            lines.append(f"  {states}")
        return "\n".join(lines)

    def _poll_cycle(self) -> None:
        for monitor in self.monitors:
            task = asyncio.create_task(monitor.tick())
            self._in_flight.add(task)
            task.add_done_callback(functools.partial(self._on_tick_done, monitor))

    def _on_tick_done(self, monitor: PoolMonitor, task: asyncio.Task[list[AlertEvent]]) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Tick for {monitor.address} failed: {exc!r}")

    async def _poll_pools(self) -> None:
        """定时采样所有池子"""
        interval = self.config.monitor.fetch_interval_seconds
        while self.running:
            self._poll_cycle()
            await asyncio.sleep(interval)

    async def _drain(self) -> None:
        if not self._in_flight:
            return
        grace = self.config.monitor.shutdown_grace_seconds
        logger.info(f"Waiting up to {grace:g}s for {len(self._in_flight)} in-flight ticks")
        _, pending = await asyncio.wait(set(self._in_flight), timeout=grace)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"Cancelled {len(pending)} unfinished ticks")

    async def run(self) -> None:
        await self.init()
        self.running = True

        if self.config.telegram.commands_enabled:
            await self.notifier.start_polling()

        poller = asyncio.create_task(self._poll_pools())
        logger.info(f"Pool Monitor started with {len(self.monitors)} pools")

        # Wait for shutdown signal
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        await stop_event.wait()
        await self.shutdown(poller)

    async def shutdown(self, poller: asyncio.Task[None] | None = None) -> None:
        self.running = False
        if poller:
            poller.cancel()
            await asyncio.gather(poller, return_exceptions=True)

        await self._drain()
        if self.config.telegram.commands_enabled:
            await self.notifier.stop_polling()
        await self.rpc.close()
        await self.db.close()

        logger.info("Pool Monitor stopped")


async def main() -> None:
    config = load_config(Path(os.environ.get("POOL_MONITOR_CONFIG", "config.yaml")))
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app = PoolMonitorApp(config)
    await app.run()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

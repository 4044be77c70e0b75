# pool_monitor/config.py
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, PositiveFloat, field_validator

PriceBasis = Literal["a_per_b", "b_per_a"]

# token0 报价 = token1 per token0
LEGACY_PRICE_BASIS = {
    "token0": "b_per_a",
    "token1": "a_per_b",
}


class RpcConfig(BaseModel):
    url: str
    timeout_seconds: PositiveFloat = 10


class TelegramConfig(BaseModel):
    bot_token: str
    chat_ids: list[str]
    commands_enabled: bool = False


class DatabaseConfig(BaseModel):
    path: str = "data/pool_monitor.db"


class MonitorConfig(BaseModel):
    fetch_interval_seconds: PositiveFloat = 60
    window_hours: PositiveFloat = 24
    cooldown_hours: PositiveFloat = 3
    shutdown_grace_seconds: PositiveFloat = 30

    @property
    def window_ms(self) -> int:
        return int(self.window_hours * 3600 * 1000)

    @property
    def cooldown_ms(self) -> int:
        return int(self.cooldown_hours * 3600 * 1000)


class AlertThresholdsConfig(BaseModel):
    price_change: PositiveFloat = 5
    liquidity_change: PositiveFloat = 10


class PoolConfig(BaseModel):
    address: str
    price_basis: PriceBasis = "b_per_a"
    price_change_threshold: PositiveFloat | None = None
    liquidity_change_threshold: PositiveFloat | None = None

    @field_validator("price_basis", mode="before")
    @classmethod
    def _normalize_price_basis(cls, value: object) -> object:
        if isinstance(value, str):
            return LEGACY_PRICE_BASIS.get(value, value)
        return value


class Config(BaseModel):
    rpc: RpcConfig
    telegram: TelegramConfig
    database: DatabaseConfig = DatabaseConfig()
    monitor: MonitorConfig = MonitorConfig()
    alert_thresholds: AlertThresholdsConfig = AlertThresholdsConfig()
    pools: list[PoolConfig] = []
    log_level: str = "INFO"

    def price_threshold(self, pool: PoolConfig) -> float:
        if pool.price_change_threshold is not None:
            return pool.price_change_threshold
        return self.alert_thresholds.price_change

    def liquidity_threshold(self, pool: PoolConfig) -> float:
        if pool.liquidity_change_threshold is not None:
            return pool.liquidity_change_threshold
        return self.alert_thresholds.liquidity_change


def load_config(path: Path) -> Config:
    with open(path) as f:
        data = yaml.safe_load(f)
    return Config(**data)

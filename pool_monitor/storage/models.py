# pool_monitor/storage/models.py
from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Sample:
    entity_id: str  # 池子地址
    timestamp: int  # ms
    price: float
    liquidity: float  # reserve_a + reserve_b


class Metric(Enum):
    PRICE = "price"
    LIQUIDITY = "liquidity"

    def value_of(self, sample: Sample) -> float:
        value: float = getattr(sample, self.value)
        return value

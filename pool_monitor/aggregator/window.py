# pool_monitor/aggregator/window.py
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from pool_monitor.storage.models import Metric, Sample

INCREASED = "increased"
DECREASED = "decreased"


@dataclass
class WindowExtremes:
    max_increase: float = 0.0
    max_increase_at: int | None = None
    max_decrease: float = 0.0
    max_decrease_at: int | None = None

    def dominant(self) -> tuple[float, int | None, str]:
        """取幅度更大的方向，幅度相等时取上涨

        Returns:
            (变化百分比, 极值样本时间戳, 方向)
        """
        if abs(self.max_increase) >= abs(self.max_decrease):
            return self.max_increase, self.max_increase_at, INCREASED
        return self.max_decrease, self.max_decrease_at, DECREASED


def calculate_change(current: float, past: float) -> float:
    return (current - past) / past * 100


def calculate_extremes(
    current: float,
    samples: Iterable[Sample],
    value: Callable[[Sample], float],
) -> WindowExtremes:
    """计算窗口内相对当前值的最大涨幅和最大跌幅

    Samples whose value is zero are skipped. The window may come back from
    the store in any order, so ties go to whichever sample is seen first.
    """
    result = WindowExtremes()

    for sample in samples:
        past = value(sample)
        if past == 0:
            continue

        pct = calculate_change(current, past)
        if pct > result.max_increase:
            result.max_increase = pct
            result.max_increase_at = sample.timestamp
        elif pct < result.max_decrease:
            result.max_decrease = pct
            result.max_decrease_at = sample.timestamp

    return result


def calculate_metric_extremes(
    current: Sample,
    samples: list[Sample],
    metric: Metric,
) -> WindowExtremes:
    return calculate_extremes(metric.value_of(current), samples, metric.value_of)

# pool_monitor/alert/hysteresis.py
from dataclasses import dataclass, replace
from enum import Enum

from pool_monitor.storage.models import Metric


class AlertState(Enum):
    NORMAL = "normal"
    ALERTING = "alerting"


class AlertKind(Enum):
    BREACH = "breach"
    REALERT = "realert"
    RECOVERY = "recovery"


@dataclass(frozen=True)
class AlertSignal:
    state: AlertState = AlertState.NORMAL
    last_fired_at: int | None = None

    def __post_init__(self) -> None:
        if self.state is AlertState.ALERTING and self.last_fired_at is None:
            raise ValueError("Alerting signal requires last_fired_at")
        if self.state is AlertState.NORMAL and self.last_fired_at is not None:
            raise ValueError("Normal signal cannot carry last_fired_at")

    @property
    def active(self) -> bool:
        return self.state is AlertState.ALERTING


@dataclass
class AlertEvent:
    entity_id: str
    metric: Metric
    kind: AlertKind
    direction: str  # increased / decreased
    change: float  # 带符号百分比
    threshold: float
    current_value: float
    extreme_at: int | None
    timestamp: int

    @property
    def magnitude(self) -> float:
        return abs(self.change)


@dataclass
class Evaluation:
    signal: AlertSignal
    kind: AlertKind | None  # None: 无通知 (正常或冷却中)


def evaluate_signal(
    signal: AlertSignal,
    change: float,
    threshold: float,
    cooldown_ms: int,
    now: int,
) -> Evaluation:
    """滞回状态机：normal <-> alerting，alerting 期间按冷却时间重复提醒"""
    breaching = abs(change) >= threshold

    if signal.state is AlertState.NORMAL:
        if breaching:
            return Evaluation(AlertSignal(AlertState.ALERTING, now), AlertKind.BREACH)
        return Evaluation(signal, None)

    if not breaching:
        return Evaluation(AlertSignal(), AlertKind.RECOVERY)

    if signal.last_fired_at is None:
        raise ValueError("Alerting signal requires last_fired_at")
    if now - signal.last_fired_at >= cooldown_ms:
        return Evaluation(replace(signal, last_fired_at=now), AlertKind.REALERT)

    # 冷却中
    return Evaluation(signal, None)

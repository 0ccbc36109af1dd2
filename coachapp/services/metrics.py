from typing import Optional, Sequence

from coachapp.schemas.progress import DerivedMetrics, SetLog


def compute_metrics(set_logs: Sequence[SetLog]) -> DerivedMetrics:
    """
    Живые показатели сессии по списку подходов.

    Объём считается по каждому подходу (вес × повторы) и суммируется;
    "средний вес × сумма повторов" даёт другой, неверный результат.
    """
    total_reps = 0
    total_volume = 0.0
    for s in set_logs:
        reps = s.reps_done or 0
        weight = s.weight_kg_done or 0
        total_reps += reps
        total_volume += weight * reps
    return DerivedMetrics(
        sets_done=len(set_logs),
        total_reps=total_reps,
        total_volume_kg=total_volume,
    )


class MetricsMemo:
    """Пересчёт только при смене версии списка подходов."""

    def __init__(self):
        self._version: Optional[int] = None
        self._value = DerivedMetrics()

    def get(self, set_logs: Sequence[SetLog], version: int) -> DerivedMetrics:
        if version != self._version:
            self._value = compute_metrics(set_logs)
            self._version = version
        return self._value

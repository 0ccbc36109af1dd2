"""
Трекер UX-метрик.

Вместо глобального синглтона с флагом-выключателем используется явно созданный сервис:
при UX_METRICS_ENABLED=False подставляется NullUXMetricsTracker, который
ничего не делает, и вызывающему коду не нужно проверять флаг.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from coachapp.gateway import DataGateway, GatewayError
from coachapp.schemas.ux_metrics import UXMetricCategory, UXMetricEntry, UXMetricType

logger = logging.getLogger(__name__)

UX_METRICS_TABLE = "ux_metrics"


class UXMetricsTracker:
    """Интерфейс трекера. Базовая реализация: no-op."""

    async def track_metric(
        self,
        category: UXMetricCategory,
        metric_type: UXMetricType,
        value: float,
        unit: Optional[str] = None,
        user_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        return None

    async def track_task_completion(self, task_name: str, success: bool, user_id: Optional[str] = None) -> None:
        await self.track_metric(
            UXMetricCategory.usability,
            UXMetricType.task_completion_rate,
            1 if success else 0,
            "boolean",
            user_id=user_id,
            context={"task_name": task_name, "success": success},
        )

    async def track_error(self, error_type: str, user_id: Optional[str] = None) -> None:
        await self.track_metric(
            UXMetricCategory.usability,
            UXMetricType.error_rate,
            1,
            "count",
            user_id=user_id,
            context={"error_type": error_type},
        )

    async def track_api_response_time(self, endpoint: str, elapsed_ms: float, user_id: Optional[str] = None) -> None:
        await self.track_metric(
            UXMetricCategory.performance,
            UXMetricType.api_response_time,
            elapsed_ms,
            "milliseconds",
            user_id=user_id,
            context={"endpoint": endpoint},
        )

    async def track_feature_usage(self, feature_name: str, user_id: Optional[str] = None) -> None:
        await self.track_metric(
            UXMetricCategory.engagement,
            UXMetricType.feature_usage,
            1,
            "count",
            user_id=user_id,
            context={"feature_name": feature_name},
        )

    async def flush(self) -> int:
        return 0


class NullUXMetricsTracker(UXMetricsTracker):
    pass


class GatewayUXMetricsTracker(UXMetricsTracker):
    MAX_QUEUE = 500

    def __init__(self, gateway: DataGateway):
        self.gateway = gateway
        self.session_id = f"session_{uuid.uuid4().hex[:12]}"
        self.queue: List[UXMetricEntry] = []

    async def track_metric(
        self,
        category: UXMetricCategory,
        metric_type: UXMetricType,
        value: float,
        unit: Optional[str] = None,
        user_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        entry = UXMetricEntry(
            user_id=user_id,
            session_id=self.session_id,
            category=category,
            metric_type=metric_type,
            metric_value=value,
            metric_unit=unit,
            context=context or {},
            created_at=datetime.now(timezone.utc),
        )
        self.queue.append(entry)
        if len(self.queue) > self.MAX_QUEUE:
            # старые метрики теряем, новые важнее
            del self.queue[: len(self.queue) - self.MAX_QUEUE]
        await self.flush()

    async def flush(self) -> int:
        """Отправить очередь одним insert; при ошибке очередь остаётся до следующей попытки."""
        if not self.queue:
            return 0
        batch = list(self.queue)
        try:
            await self.gateway.insert(
                UX_METRICS_TABLE, [entry.model_dump(mode="json") for entry in batch]
            )
        except GatewayError as e:
            logger.warning(f"UX metrics flush failed ({len(batch)} queued): {e}")
            return 0
        del self.queue[: len(batch)]
        return len(batch)


def build_ux_tracker(enabled: bool, gateway: Optional[DataGateway]) -> UXMetricsTracker:
    if not enabled or gateway is None:
        return NullUXMetricsTracker()
    return GatewayUXMetricsTracker(gateway)

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class UXMetricCategory(str, Enum):
    engagement = "engagement"
    performance = "performance"
    usability = "usability"
    satisfaction = "satisfaction"
    conversion = "conversion"
    retention = "retention"
    error_recovery = "error_recovery"


class UXMetricType(str, Enum):
    page_view = "page_view"
    session_duration = "session_duration"
    feature_usage = "feature_usage"
    load_time = "load_time"
    api_response_time = "api_response_time"
    task_completion_rate = "task_completion_rate"
    error_rate = "error_rate"
    retry_rate = "retry_rate"
    rating = "rating"
    feature_adoption = "feature_adoption"


class UXMetricEntry(BaseModel):
    user_id: Optional[str] = None
    session_id: str
    category: UXMetricCategory
    metric_type: UXMetricType
    metric_value: float
    metric_unit: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

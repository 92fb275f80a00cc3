"""
Pydantic models for API request/response validation.

Transactions and detection results reuse the ingestion schemas; this module
only adds the service-level responses.
"""
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Optional


class HealthCheckResponse(BaseModel):
    """System health status."""
    status: str = Field(..., description="healthy | down")
    store_ok: bool
    uptime_seconds: float
    last_detection_ms: Optional[float] = None


class MetricsResponse(BaseModel):
    """Detection service metrics."""
    total_requests: int
    total_anomalies: int
    fallback_count: int = Field(..., description="Category runs served by the window detector")
    insufficient_data_count: int = Field(..., description="Category runs with too few transactions")
    avg_latency_ms: float
    p50_latency_ms: float
    p95_latency_ms: float
    p99_latency_ms: float
    error_count: int = 0


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    message: str
    user_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

"""
FastAPI REST API for expense anomaly detection.

Architecture:
- GET  /users/{user_id}/anomalies: merged anomaly feed for all categories
- GET  /users/{user_id}/categories/{category_id}/anomalies: one category
- POST /users/{user_id}/anomalies/check: write-time check of one transaction
- GET  /health: Store health check
- GET  /metrics: Detection metrics

The API only reads transactions; computed anomalies are never written back.
"""
from fastapi import FastAPI, HTTPException, status
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time
from datetime import datetime, timezone
import logging
from typing import Dict, List, Optional

from expense_anomaly.api.models import ErrorResponse, HealthCheckResponse, MetricsResponse
from expense_anomaly.api.service import AnomalyDetectionService
from expense_anomaly.config import settings
from expense_anomaly.ingestion.schema import AnomalyRecord, CategoryDetectionResult, Transaction
from expense_anomaly.ingestion.store import DuckDBTransactionStore

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    filename=settings.LOG_FILE
)
logger = logging.getLogger(__name__)

# Global service instance (initialized at startup)
detection_service: Optional[AnomalyDetectionService] = None
startup_time: float = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: open the DuckDB transaction store and build the detectors.
    Shutdown: close the store.
    """
    global detection_service, startup_time

    logger.info("=" * 70)
    logger.info("STARTING EXPENSE ANOMALY DETECTION API")
    logger.info("=" * 70)

    startup_time = time.time()

    try:
        detection_service = AnomalyDetectionService(
            store=DuckDBTransactionStore(settings.DUCKDB_PATH),
            config=settings
        )

        health = detection_service.health_check()
        if health["status"] != "healthy":
            raise RuntimeError(f"Service unhealthy: {health}")

        logger.info("✅ Health check passed")
        logger.info(f"API ready at http://{settings.API_HOST}:{settings.API_PORT}")

        yield

    except Exception as e:
        logger.error(f"❌ Startup failed: {e}")
        raise

    finally:
        logger.info("Shutting down API...")
        if detection_service:
            detection_service.close()
        logger.info("✅ Shutdown complete")


app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=(
        "Per-category expense anomaly detection\n\n"
        "- Isolation Forest per category (primary)\n"
        "- Trailing-window z-score fallback (deterministic)\n"
        "- Human-readable reason for every flagged expense\n"
    ),
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all uncaught exceptions gracefully."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "InternalServerError",
            "message": "An unexpected error occurred. Please try again.",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )


def _get_service() -> AnomalyDetectionService:
    if detection_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "ServiceUnavailable", "message": "Detection service not initialized"}
        )
    return detection_service


def _store_failure(user_id: str, e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "DetectionError",
            "message": f"Failed to read transactions: {e}",
            "user_id": user_id
        }
    )


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get(
    "/users/{user_id}/anomalies",
    response_model=List[AnomalyRecord],
    summary="Anomaly feed for a user",
    description="All categories, most recent first, then most anomalous first.",
    responses={500: {"model": ErrorResponse}}
)
def user_anomalies(user_id: str) -> List[AnomalyRecord]:
    service = _get_service()
    try:
        return service.detect_for_user(user_id)
    except Exception as e:
        raise _store_failure(user_id, e)


@app.get(
    "/users/{user_id}/categories/{category_id}/anomalies",
    response_model=CategoryDetectionResult,
    response_model_exclude_none=True,
    summary="Anomalies for one category",
    responses={500: {"model": ErrorResponse}}
)
def category_anomalies(user_id: str, category_id: str) -> CategoryDetectionResult:
    service = _get_service()
    try:
        return service.detect_for_category(user_id, category_id)
    except Exception as e:
        raise _store_failure(user_id, e)


@app.post(
    "/users/{user_id}/anomalies/check",
    response_model=Optional[AnomalyRecord],
    summary="Check one transaction",
    description=(
        "Compares the transaction with the other expenses of its category.\n\n"
        "Returns null when the category has fewer than 5 other expenses."
    ),
    responses={500: {"model": ErrorResponse}}
)
def check_transaction(user_id: str, txn: Transaction) -> Optional[AnomalyRecord]:
    service = _get_service()
    try:
        return service.check_transaction(user_id, txn)
    except Exception as e:
        raise _store_failure(user_id, e)


@app.get("/health", response_model=HealthCheckResponse, summary="Health Check")
def health_check() -> HealthCheckResponse:
    if detection_service is None:
        return HealthCheckResponse(
            status="down",
            store_ok=False,
            uptime_seconds=time.time() - startup_time
        )
    health = detection_service.health_check()
    health["uptime_seconds"] = time.time() - startup_time
    return HealthCheckResponse(**health)


@app.get("/metrics", response_model=MetricsResponse, summary="Detection Metrics")
def get_metrics() -> MetricsResponse:
    return MetricsResponse(**_get_service().get_metrics())


@app.get("/", summary="Root Endpoint")
def root() -> Dict:
    """Root endpoint with API info."""
    return {
        "service": settings.API_TITLE,
        "version": settings.API_VERSION,
        "status": "running",
        "uptime_seconds": time.time() - startup_time,
        "endpoints": {
            "feed": "GET /users/{user_id}/anomalies",
            "category": "GET /users/{user_id}/categories/{category_id}/anomalies",
            "check": "POST /users/{user_id}/anomalies/check",
            "health": "GET /health",
            "metrics": "GET /metrics",
            "docs": "GET /docs"
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "expense_anomaly.api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )

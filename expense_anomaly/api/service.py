"""
Anomaly Detection Service for FastAPI Integration.

Wraps the three detection operations over one transaction store and adds:
- Performance and outcome metrics tracking
- Health checks
- One shared pair of detectors, configured once from settings
"""
import time
import numpy as np
from typing import Dict, List, Optional
from collections import deque
import logging

from expense_anomaly.config import Settings, settings as default_settings
from expense_anomaly.inference.aggregator import detect_anomalies_for_user
from expense_anomaly.inference.orchestrator import build_detectors, detect_anomalies_for_category
from expense_anomaly.inference.single_check import check_transaction_for_anomaly
from expense_anomaly.ingestion.schema import AnomalyRecord, CategoryDetectionResult, Transaction
from expense_anomaly.ingestion.store import TransactionStore


logger = logging.getLogger(__name__)


class ServiceMetrics:
    """
    Tracks detection metrics across requests.

    Metrics:
    - Total requests, anomalies returned, errors
    - Category runs that fell back to the window detector
    - Category runs skipped for insufficient data
    - Latency percentiles (p50, p95, p99)
    """

    def __init__(self):
        self.total_requests = 0
        self.total_anomalies = 0
        self.fallback_count = 0
        self.insufficient_data_count = 0
        self.error_count = 0
        self.latencies = deque(maxlen=10000)  # Keep last 10K latencies
        self.start_time = time.time()

    def record_request(self, latency_ms: float, anomaly_count: int):
        self.total_requests += 1
        self.total_anomalies += anomaly_count
        self.latencies.append(latency_ms)

    def record_category_result(self, result: CategoryDetectionResult):
        if result.method is not None:
            self.fallback_count += 1
        if result.message is not None:
            self.insufficient_data_count += 1

    def record_error(self):
        """Record a failed request."""
        self.error_count += 1

    def get_summary(self) -> Dict:
        """Get current metrics summary."""
        summary = {
            "total_requests": self.total_requests,
            "total_anomalies": self.total_anomalies,
            "fallback_count": self.fallback_count,
            "insufficient_data_count": self.insufficient_data_count,
            "error_count": self.error_count,
        }
        if not self.latencies:
            summary.update({
                "avg_latency_ms": 0.0,
                "p50_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "p99_latency_ms": 0.0,
            })
            return summary

        latencies = np.array(list(self.latencies))
        summary.update({
            "avg_latency_ms": float(np.mean(latencies)),
            "p50_latency_ms": float(np.percentile(latencies, 50)),
            "p95_latency_ms": float(np.percentile(latencies, 95)),
            "p99_latency_ms": float(np.percentile(latencies, 99)),
        })
        return summary


class AnomalyDetectionService:
    """
    Expense anomaly detection service.

    Usage:
        service = AnomalyDetectionService(
            store=DuckDBTransactionStore("data/processed/transactions.duckdb")
        )

        feed = service.detect_for_user("user_1")
    """

    def __init__(self, store: TransactionStore, config: Optional[Settings] = None):
        self.store = store
        self.config = config or default_settings
        self.primary, self.fallback = build_detectors(self.config)
        self.metrics = ServiceMetrics()

        logger.info("AnomalyDetectionService ready")
        logger.info(f"   Store: {type(store).__name__}")
        logger.info(f"   Primary detector: {self.primary.method}")
        logger.info(f"   Fallback detector: {self.fallback.method}")

    def detect_for_category(self, user_id: str, category_id: str) -> CategoryDetectionResult:
        start_time = time.time()
        try:
            result = detect_anomalies_for_category(
                self.store, user_id, category_id,
                primary=self.primary, fallback=self.fallback, config=self.config
            )
        except Exception as e:
            self.metrics.record_error()
            logger.error(f"Category detection failed for {user_id}/{category_id}: {e}", exc_info=True)
            raise

        self.metrics.record_category_result(result)
        self.metrics.record_request((time.time() - start_time) * 1000, len(result.anomalies))
        return result

    def detect_for_user(self, user_id: str) -> List[AnomalyRecord]:
        start_time = time.time()
        try:
            anomalies = detect_anomalies_for_user(
                self.store, user_id,
                primary=self.primary, fallback=self.fallback, config=self.config,
                on_category_result=self.metrics.record_category_result
            )
        except Exception as e:
            self.metrics.record_error()
            logger.error(f"User detection failed for {user_id}: {e}", exc_info=True)
            raise

        self.metrics.record_request((time.time() - start_time) * 1000, len(anomalies))
        return anomalies

    def check_transaction(self, user_id: str, transaction: Transaction) -> Optional[AnomalyRecord]:
        start_time = time.time()
        try:
            record = check_transaction_for_anomaly(self.store, user_id, transaction, config=self.config)
        except Exception as e:
            self.metrics.record_error()
            logger.error(f"Transaction check failed for {transaction.id}: {e}", exc_info=True)
            raise

        flagged = 1 if record is not None and record.is_anomaly else 0
        self.metrics.record_request((time.time() - start_time) * 1000, flagged)
        return record

    def health_check(self) -> Dict:
        """
        Check if the store answers a trivial query.

        Returns:
            Dict with health status and component checks
        """
        try:
            self.store.list_distinct_expense_categories("__health__")
            store_ok = True
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            store_ok = False

        return {
            "status": "healthy" if store_ok else "down",
            "store_ok": store_ok,
            "last_detection_ms": self.metrics.latencies[-1] if self.metrics.latencies else None
        }

    def get_metrics(self) -> Dict:
        """Get current detection metrics."""
        return self.metrics.get_summary()

    def close(self):
        """Cleanup resources on shutdown."""
        logger.info("Closing AnomalyDetectionService...")
        logger.info(f"Final stats: {self.metrics.total_requests} requests, "
                    f"{self.metrics.total_anomalies} anomalies, "
                    f"{self.metrics.fallback_count} fallbacks, "
                    f"{self.metrics.error_count} errors")
        close = getattr(self.store, "close", None)
        if close is not None:
            close()

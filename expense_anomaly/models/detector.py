"""
The capability both category detectors provide.

The orchestrator picks an implementation (outlier model first, window
statistics as fallback); neither detector knows about the other.
"""

from typing import List, Optional, Protocol, Sequence

from expense_anomaly.ingestion.schema import AnomalyRecord, Transaction


class CategoryAnomalyDetector(Protocol):
    # Label reported on CategoryDetectionResult.method when used as fallback
    method: str

    def detect(
        self,
        transactions: Sequence[Transaction],
        category_name: Optional[str] = None
    ) -> List[AnomalyRecord]:
        """Return the flagged subset of one category's expense transactions."""
        ...

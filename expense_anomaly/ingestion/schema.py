"""
Record schemas shared by the store, the detectors and the API layer.

A Transaction is read exactly as the store hands it over. "amount" and "date"
are kept raw on purpose: malformed values are coerced where they are used
(see features.feature_definitions), never rejected at the boundary.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EXPENSE_TYPE = "expense"


class Transaction(BaseModel):
    # --- Identity ---
    id: str

    # --- Raw values (may be malformed) ---
    amount: Any = None
    date: Any = None

    # --- Category ---
    category: Optional[str] = None
    category_name: Optional[str] = Field(default=None, alias="categoryName")

    type: str = EXPENSE_TYPE

    # Store documents carry arbitrary extra fields (notes, tags, ...)
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @field_validator("id", mode="before")
    @classmethod
    def force_string_id(cls, v):
        return str(v)

    @property
    def is_expense(self) -> bool:
        return self.type == EXPENSE_TYPE


class AnomalyRecord(Transaction):
    """
    A transaction annotated by a detector.

    anomaly_score sign convention depends on the detector that produced it:
    - window detector: positive, larger = more anomalous
    - outlier model:   negative, more negative = more anomalous
    """
    anomaly_score: Optional[float] = Field(default=None, alias="anomalyScore")
    reason: Optional[str] = None
    # Only set by the single-transaction check
    is_anomaly: Optional[bool] = Field(default=None, alias="isAnomaly")

    @classmethod
    def from_transaction(cls, transaction: Transaction, **annotations) -> "AnomalyRecord":
        data = transaction.model_dump(by_alias=True)
        data.update(annotations)
        return cls.model_validate(data)


class CategoryDetectionResult(BaseModel):
    category_id: str = Field(..., alias="categoryId")
    anomalies: List[AnomalyRecord] = Field(default_factory=list)
    # Present only when the fallback detector produced the anomalies
    method: Optional[str] = None
    # Present only when there was not enough data to run a detector
    message: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

"""Pydantic models for the transaction risk scoring service."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

TransactionStatus = Literal["Completed", "Failed", "Pending", "Reversed"]
RiskCategory = Literal["Block", "Review", "Monitor", "Normal"]
AnomalyCategory = Literal["ImpossibleTravel", "SuspiciousTravel", "Normal"]
FlagType = Literal["Velocity", "Amount_Anomaly", "Exposure", "Geographic"]
InvestigationStatus = Literal["Open", "Cleared", "Confirmed_Fraud"]


class TransactionRequest(BaseModel):
    """Incoming payment transaction to be scored."""
    transaction_id: str = Field(min_length=1)
    sender_wallet_id: str = Field(min_length=1)
    sender_user_id: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    currency: str = Field(min_length=1)
    timestamp: datetime
    status: TransactionStatus
    country_code: str = Field(min_length=2, max_length=5)
    transaction_type: Optional[str] = None

    @field_validator("transaction_id", "sender_wallet_id", "sender_user_id", mode="before")
    @classmethod
    def _coerce_id(cls, value):
        # Upstream ids are serial integers; keys are handled as strings
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("country_code", mode="before")
    @classmethod
    def _normalize_country(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class WindowStats(BaseModel):
    """Trailing-window aggregates for a wallet, including the current event."""
    count_in_window: int
    sum_in_window: Decimal
    all_time_average: Decimal


class LocationDelta(BaseModel):
    """Comparison of a transaction's country against the user's previous one."""
    previous_country: Optional[str] = None
    hours_since_previous: Optional[float] = None
    country_changed: bool = False


class RuleResult(BaseModel):
    """Output of an individual risk rule check."""
    score_delta: int  # Points to add to the risk score
    reasons: list[str]
    matched_rules: list[str]


class RiskResult(BaseModel):
    """Velocity / amount / exposure risk for one transaction."""
    transaction_id: str
    score: int  # 0-85 with the default ladders
    category: RiskCategory
    reasons: list[str] = []
    matched_rules: list[str] = []


class AnomalyResult(BaseModel):
    """Geographic travel classification for one transaction."""
    transaction_id: str
    category: AnomalyCategory
    previous_country: Optional[str] = None
    hours_since_previous: Optional[float] = None


class FlagRecord(BaseModel):
    """An actionable result persisted to the flag store."""
    transaction_id: str
    sender_wallet_id: str
    sender_user_id: str
    risk_score: int
    risk_category: RiskCategory
    anomaly_category: AnomalyCategory
    flag_types: list[FlagType]
    transactions_in_window: int
    amount_in_window: Decimal
    wallet_average_amount: Decimal
    previous_country: Optional[str] = None
    current_country: str
    hours_since_previous: Optional[float] = None
    amount: Decimal
    currency: str
    transaction_time: datetime
    flagged_at: datetime
    investigation_status: InvestigationStatus = "Open"


class ScoringResponse(BaseModel):
    """Result of scoring a single transaction."""
    transaction_id: str
    scored: bool
    duplicate: bool = False
    flagged: bool = False
    risk: Optional[RiskResult] = None
    anomaly: Optional[AnomalyResult] = None


class Rejection(BaseModel):
    """A record refused by the engine, reported on the error channel."""
    transaction_id: Optional[str] = None
    error: str
    detail: str
    received_at: datetime


class BatchRequest(BaseModel):
    """A batch of transactions to score, in arrival order."""
    transactions: list[dict]


class BatchSummary(BaseModel):
    """Aggregate statistics for a batch scoring run."""
    total: int
    scored: int
    unscored: int
    flagged: int
    rejected: int
    block: int
    review: int
    monitor: int
    impossible_travel: int
    suspicious_travel: int
    common_risk_factors: list[str]


class BatchResponse(BaseModel):
    """Result of scoring a batch of transactions."""
    results: list[ScoringResponse]
    rejections: list[Rejection]
    summary: BatchSummary


class StatusUpdate(BaseModel):
    """Investigation status change for a stored flag."""
    investigation_status: InvestigationStatus


class EngineConfig(BaseModel):
    """Tunable thresholds and runtime settings for the scoring engine.

    Ladders are (threshold, points) pairs. They are kept sorted from the
    highest threshold down so the first strict match is the highest one.
    """
    window_minutes: int = Field(default=60, gt=0)
    velocity_thresholds: list[tuple[int, int]] = [(10, 30), (5, 20), (3, 10)]
    amount_multipliers: list[tuple[Decimal, int]] = [
        (Decimal(5), 30),
        (Decimal(3), 20),
        (Decimal(2), 10),
    ]
    exposure_thresholds: list[tuple[Decimal, int]] = [
        (Decimal(10000), 25),
        (Decimal(5000), 15),
    ]
    block_score: int = 50
    review_score: int = 30
    monitor_score: int = 15
    impossible_travel_hours: float = Field(default=4.0, ge=0)
    suspicious_travel_hours: float = Field(default=12.0, ge=0)
    workers: int = Field(default=4, ge=1)
    shards: int = Field(default=16, ge=1)
    max_tracked_keys: Optional[int] = Field(default=1_000_000, gt=0)
    max_tracked_transactions: Optional[int] = Field(default=10_000_000, gt=0)
    sink_max_retries: int = Field(default=5, ge=0)
    sink_backoff_seconds: float = Field(default=0.5, ge=0)

    @field_validator("velocity_thresholds", "amount_multipliers", "exposure_thresholds")
    @classmethod
    def _highest_first(cls, ladder):
        return sorted(ladder, key=lambda step: step[0], reverse=True)

    @model_validator(mode="after")
    def _check_ordering(self) -> "EngineConfig":
        if self.suspicious_travel_hours < self.impossible_travel_hours:
            raise ValueError(
                "suspicious_travel_hours must be >= impossible_travel_hours"
            )
        if not self.block_score >= self.review_score >= self.monitor_score:
            raise ValueError("category cutoffs must satisfy block >= review >= monitor")
        return self

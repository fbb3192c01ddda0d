"""Scoring endpoints for single, batch and streamed transactions."""

from collections import Counter
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request, status

from flagwatch.errors import OutOfOrderEvent, StateCapacityExceeded, StreamClosed
from flagwatch.models import (
    BatchRequest,
    BatchResponse,
    BatchSummary,
    ScoringResponse,
    TransactionRequest,
)
from flagwatch.scoring.engine import ScoringEngine

router = APIRouter(prefix="/api")


def _get_engine(request: Request) -> ScoringEngine:
    """Retrieve the scoring engine from application state."""
    return request.app.state.engine


@router.post("/transactions", response_model=ScoringResponse)
async def score_transaction(
    transaction: TransactionRequest,
    request: Request,
) -> ScoringResponse:
    """Score a single transaction against the sender's history."""
    engine = _get_engine(request)
    try:
        return engine.process(transaction)
    except OutOfOrderEvent as exc:
        engine.reject(exc)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except StateCapacityExceeded as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        )


@router.post("/transactions/batch", response_model=BatchResponse)
async def score_batch(
    batch: BatchRequest,
    request: Request,
) -> BatchResponse:
    """Score a batch of transactions in order and return an aggregate summary.

    Malformed or out-of-order records are rejected individually. The
    summary includes counts per category and the top 5 most common risk
    factors.
    """
    engine = _get_engine(request)
    try:
        results, rejections = engine.process_batch(batch.transactions)
    except StateCapacityExceeded as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        )

    scored = [r for r in results if r.scored and not r.duplicate]
    risk_counts = Counter(r.risk.category for r in scored)
    anomaly_counts = Counter(r.anomaly.category for r in scored)

    # Find the top 5 most common matched rules across all results
    all_rules: list[str] = []
    for r in scored:
        all_rules.extend(r.risk.matched_rules)
    rule_counts = Counter(all_rules)
    common_risk_factors = [rule for rule, _ in rule_counts.most_common(5)]

    summary = BatchSummary(
        total=len(batch.transactions),
        scored=len(scored),
        unscored=len(results) - len(scored),
        flagged=sum(1 for r in scored if r.flagged),
        rejected=len(rejections),
        block=risk_counts["Block"],
        review=risk_counts["Review"],
        monitor=risk_counts["Monitor"],
        impossible_travel=anomaly_counts["ImpossibleTravel"],
        suspicious_travel=anomaly_counts["SuspiciousTravel"],
        common_risk_factors=common_risk_factors,
    )

    return BatchResponse(results=results, rejections=rejections, summary=summary)


@router.post("/transactions/stream", status_code=status.HTTP_202_ACCEPTED)
async def stream_transaction(
    record: Dict[str, Any],
    request: Request,
) -> Dict[str, bool]:
    """Queue a raw record on the partitioned worker pool.

    Scoring happens asynchronously; rejections show up on /api/rejections
    and flags on /api/flags.
    """
    processor = request.app.state.processor
    try:
        accepted = processor.submit(record)
    except StreamClosed as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        )
    return {"accepted": accepted}

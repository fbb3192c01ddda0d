"""Flag store lookup endpoints for investigation workflows."""

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from flagwatch.models import AnomalyCategory, FlagRecord, RiskCategory, StatusUpdate
from flagwatch.storage.memory import FlagStore

router = APIRouter(prefix="/api")


def _get_store(request: Request) -> FlagStore:
    """Retrieve the flag store from application state."""
    return request.app.state.store


@router.get("/flags", response_model=List[FlagRecord])
async def list_flags(
    request: Request,
    risk_category: Optional[RiskCategory] = Query(default=None),
    anomaly_category: Optional[AnomalyCategory] = Query(default=None),
    from_date: Optional[datetime] = Query(default=None),
    to_date: Optional[datetime] = Query(default=None),
    order_by: Literal["arrival", "risk"] = Query(default="arrival"),
) -> List[FlagRecord]:
    """Retrieve flags with optional filters.

    Filters:
      - risk_category / anomaly_category: exact match
      - from_date: transactions with timestamp >= this value
      - to_date: transactions with timestamp <= this value
    """
    store = _get_store(request)
    return store.list(
        risk_category=risk_category,
        anomaly_category=anomaly_category,
        since=from_date,
        until=to_date,
        order_by=order_by,
    )


@router.get("/flags/{transaction_id}", response_model=FlagRecord)
async def get_flag(transaction_id: str, request: Request) -> FlagRecord:
    flag = _get_store(request).get(transaction_id)
    if flag is None:
        raise HTTPException(status_code=404, detail="No flag for this transaction")
    return flag


@router.patch("/flags/{transaction_id}", response_model=FlagRecord)
async def update_flag_status(
    transaction_id: str,
    update: StatusUpdate,
    request: Request,
) -> FlagRecord:
    """Record the outcome of an investigation on a flag."""
    flag = _get_store(request).set_status(transaction_id, update.investigation_status)
    if flag is None:
        raise HTTPException(status_code=404, detail="No flag for this transaction")
    return flag

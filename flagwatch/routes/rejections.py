"""Error channel endpoint for records the engine refused."""

from typing import List, Optional

from fastapi import APIRouter, Query, Request

from flagwatch.models import Rejection

router = APIRouter(prefix="/api")


@router.get("/rejections", response_model=List[Rejection])
async def get_rejections(
    request: Request,
    error: Optional[str] = Query(default=None),
) -> List[Rejection]:
    """List rejected records, optionally only one error type (e.g. OutOfOrderEvent)."""
    rejections = request.app.state.engine.rejections
    if error is not None:
        rejections = [r for r in rejections if r.error == error]
    return rejections

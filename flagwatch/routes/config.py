"""Engine configuration endpoints for reading and updating thresholds."""

from fastapi import APIRouter, Request

from flagwatch.models import EngineConfig

router = APIRouter(prefix="/api")


@router.get("/config", response_model=EngineConfig)
async def get_config(request: Request) -> EngineConfig:
    """Return the current engine configuration."""
    return request.app.state.config


@router.put("/config", response_model=EngineConfig)
async def update_config(
    new_config: EngineConfig,
    request: Request,
) -> EngineConfig:
    """Update the scoring thresholds.

    Thresholds, window length and sink retry settings apply to the next
    transaction. Worker and shard counts only take effect on restart.
    """
    request.app.state.config = new_config
    request.app.state.engine.update_config(new_config)
    sink = request.app.state.sink
    sink.max_retries = new_config.sink_max_retries
    sink.backoff_seconds = new_config.sink_backoff_seconds
    return new_config

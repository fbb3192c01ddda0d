"""Flagwatch Transaction Risk Scoring API.

Real-time risk and geographic-anomaly scoring for a payment transaction
stream. Scores sender wallets on velocity, amount anomaly and window
exposure, classifies impossible/suspicious travel per user, and emits
actionable flags to the flag store.

Run with:
    python3 -m uvicorn flagwatch.main:app --host 0.0.0.0 --port 8000
"""

import logging
from typing import Dict

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError

from flagwatch.config import load_config
from flagwatch.ingest import malformed
from flagwatch.routes import config, flags, rejections, transactions
from flagwatch.scoring.engine import ScoringEngine
from flagwatch.scoring.processor import StreamProcessor
from flagwatch.storage.memory import FlagStore
from flagwatch.storage.sink import FlagSink
from flagwatch.utils.logging_utils import setup_logging

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Flagwatch Transaction Risk Scoring API",
    description=(
        "Real-time risk scoring for payment transactions. "
        "Checks wallet velocity, amount anomalies, window exposure, "
        "and impossible travel between countries."
    ),
    version="1.0.0",
)


@app.on_event("startup")
async def startup() -> None:
    """Load configuration and wire the store, sink, engine and workers."""
    setup_logging()
    engine_config = load_config()

    store = FlagStore()
    sink = FlagSink(
        store,
        max_retries=engine_config.sink_max_retries,
        backoff_seconds=engine_config.sink_backoff_seconds,
    )
    engine = ScoringEngine(config=engine_config, sink=sink)
    processor = StreamProcessor(engine, workers=engine_config.workers)

    # Attach to app state for dependency injection in routes
    app.state.config = engine_config
    app.state.store = store
    app.state.sink = sink
    app.state.engine = engine
    app.state.processor = processor
    logger.info("Scoring service started")


@app.on_event("shutdown")
async def shutdown() -> None:
    """Drain in-flight work before the flag sink is closed."""
    app.state.processor.close()
    app.state.sink.close()
    logger.info("Scoring service stopped")


@app.exception_handler(RequestValidationError)
async def record_invalid_transaction(request: Request, exc: RequestValidationError):
    """Report rejected scoring requests on the error channel, then answer 422."""
    engine = getattr(request.app.state, "engine", None)
    if engine is not None and request.url.path == "/api/transactions":
        engine.reject(malformed(exc.body, exc.errors()))
    return await request_validation_exception_handler(request, exc)


# Mount all API routers
app.include_router(transactions.router)
app.include_router(flags.router)
app.include_router(config.router)
app.include_router(rejections.router)


@app.get("/health")
async def health_check() -> Dict[str, str]:
    """Simple health check endpoint."""
    return {"status": "healthy"}

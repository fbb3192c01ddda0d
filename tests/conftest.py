"""Shared fixtures for the test suite."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from fastapi.testclient import TestClient

from flagwatch.main import app
from flagwatch.models import EngineConfig, FlagRecord, TransactionRequest
from flagwatch.scoring.engine import ScoringEngine
from flagwatch.state.location import LocationTracker
from flagwatch.state.window import WindowAggregator
from flagwatch.storage.memory import FlagStore
from flagwatch.storage.sink import FlagSink


BASE_TIME = datetime(2026, 2, 22, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def config():
    return EngineConfig(sink_backoff_seconds=0)


@pytest.fixture
def store():
    return FlagStore()


@pytest.fixture
def sink(store):
    s = FlagSink(store, max_retries=2, backoff_seconds=0)
    yield s
    s.close()


@pytest.fixture
def windows():
    return WindowAggregator(window=timedelta(hours=1), shards=4)


@pytest.fixture
def locations():
    return LocationTracker(shards=4)


@pytest.fixture
def engine(config, sink):
    return ScoringEngine(config=config, sink=sink)


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def at(minutes=0, hours=0, days=0) -> datetime:
    """A timestamp offset from BASE_TIME."""
    return BASE_TIME + timedelta(days=days, hours=hours, minutes=minutes)


def make_request(
    tx_id="tx-1",
    wallet="W1",
    user="U1",
    amount="100.00",
    currency="USD",
    country="US",
    timestamp=None,
    status="Completed",
    tx_type="P2P",
) -> TransactionRequest:
    if timestamp is None:
        timestamp = BASE_TIME
    elif isinstance(timestamp, str):
        timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    return TransactionRequest(
        transaction_id=tx_id,
        sender_wallet_id=wallet,
        sender_user_id=user,
        amount=Decimal(str(amount)),
        currency=currency,
        timestamp=timestamp,
        status=status,
        country_code=country,
        transaction_type=tx_type,
    )


def make_record(**overrides) -> dict:
    """A raw feed record, as it would arrive as JSON."""
    record = {
        "transaction_id": "tx-1",
        "sender_wallet_id": "W1",
        "sender_user_id": "U1",
        "amount": "100.00",
        "currency": "USD",
        "timestamp": "2026-02-22T10:00:00Z",
        "status": "Completed",
        "country_code": "US",
        "transaction_type": "P2P",
    }
    record.update(overrides)
    return record


def make_flag(
    tx_id="tx-1",
    risk_score=30,
    risk_category="Review",
    anomaly_category="Normal",
    timestamp=None,
) -> FlagRecord:
    ts = timestamp or BASE_TIME
    return FlagRecord(
        transaction_id=tx_id,
        sender_wallet_id="W1",
        sender_user_id="U1",
        risk_score=risk_score,
        risk_category=risk_category,
        anomaly_category=anomaly_category,
        flag_types=["Velocity"],
        transactions_in_window=11,
        amount_in_window=Decimal("1100.00"),
        wallet_average_amount=Decimal("100.00"),
        current_country="US",
        amount=Decimal("100.00"),
        currency="USD",
        transaction_time=ts,
        flagged_at=ts,
    )

"""Transaction ingest normalization.

Turns raw records from the payment feed into validated
TransactionRequest objects. Invalid records raise MalformedInput so the
caller can reject that one record and keep the stream going.
"""

from typing import Any, Mapping, Sequence, Union

from pydantic import ValidationError

from flagwatch.errors import MalformedInput
from flagwatch.models import TransactionRequest

SCORED_STATUS = "Completed"


def normalize(record: Union[TransactionRequest, Mapping[str, Any]]) -> TransactionRequest:
    """Validate a raw record and return it as a TransactionRequest."""
    if isinstance(record, TransactionRequest):
        return record
    if not isinstance(record, Mapping):
        raise MalformedInput(f"expected a mapping, got {type(record).__name__}")

    try:
        return TransactionRequest.model_validate(dict(record))
    except ValidationError as exc:
        raise malformed(record, exc.errors()) from exc


def malformed(record: Any, errors: Sequence[Mapping[str, Any]]) -> MalformedInput:
    """Build a MalformedInput naming the offending fields of `record`."""
    transaction_id = record.get("transaction_id") if isinstance(record, Mapping) else None
    fields = ", ".join(
        ".".join(str(part) for part in error["loc"] if part != "body")
        for error in errors
    )
    return MalformedInput(
        f"invalid or missing field(s): {fields}",
        transaction_id=str(transaction_id) if transaction_id is not None else None,
    )


def is_scorable(transaction: TransactionRequest) -> bool:
    """Only completed transactions enter the scoring state."""
    return transaction.status == SCORED_STATUS

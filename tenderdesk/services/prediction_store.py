"""
Prediction Record Store

Persists forecast runs in the ``predictions`` table and serves the history
screen. One record exists per deterministic id (user + commodity + future
date); repeat runs overwrite it.

Overwrite contract:
    save_prediction() runs a read-modify-write transaction: the row is locked
    with SELECT ... FOR UPDATE, its created_at (if any) is kept, and only the
    supplied fields are upserted. Two concurrent runs for the same id still
    race on outputs/status; the last transaction wins.
"""

import json
import logging
import uuid
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from asyncpg import Connection

from tenderdesk.models.enums import PredictionStatus
from tenderdesk.models.schemas import PredictionRecord
from tenderdesk.sql.prediction_queries import (
    DELETE_PREDICTION,
    LIST_PREDICTIONS_FOR_USER,
    PREDICTION_COLUMNS,
    SELECT_CREATED_AT_FOR_UPDATE,
    SELECT_PREDICTION_OWNER,
    get_upsert_prediction_query,
)


logger = logging.getLogger(__name__)


HISTORY_LIMIT: int = 100


class PredictionNotFoundError(LookupError):
    pass


class PredictionOwnershipError(PermissionError):
    pass


# =============================================================================
# Row mapping
# =============================================================================

def _to_columns(fields: Dict[str, Any]) -> Tuple[List[str], List[Any]]:
    """Translate camelCase document fields into (columns, values); JSON fields are encoded."""
    columns, values = [], []
    for field, value in fields.items():
        if field not in PREDICTION_COLUMNS:
            raise ValueError(f"Unknown prediction field: {field}")

        column, is_json = PREDICTION_COLUMNS[field]
        columns.append(column)
        values.append(json.dumps(value) if is_json and value is not None else value)
    return columns, values


def _decode_json(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def record_from_row(row: Any) -> PredictionRecord:
    """Build a PredictionRecord from an asyncpg row of LIST_PREDICTIONS_FOR_USER."""
    return PredictionRecord(
        id=row["id"],
        uid=row["uid"],
        email=row["email"],
        commodity=row["commodity"],
        futureDate=row["future_date"],
        basisKeys=_decode_json(row["basis_keys"]) or [],
        basisKeysNormalized=_decode_json(row["basis_keys_normalized"]) or [],
        basisLabels=_decode_json(row["basis_labels"]) or [],
        basePrices=_decode_json(row["base_prices"]) or [],
        status=row["status"],
        workflowHttpStatus=row["workflow_http_status"],
        outputs=_decode_json(row["outputs"]),
        error=_decode_json(row["error"]),
        runtimeMs=row["runtime_ms"],
        createdAt=row["created_at"],
        updatedAt=row["updated_at"],
    )


# =============================================================================
# Writes
# =============================================================================

async def save_prediction(
    conn: Connection,
    prediction_id: str,
    fields: Dict[str, Any],
    now: datetime,
) -> datetime:
    """
    Merge ``fields`` into the record ``prediction_id``, preserving createdAt.

    Args:
        conn: Database connection.
        prediction_id: Record id.
        fields: camelCase document fields to write (see PREDICTION_COLUMNS).
            ``updatedAt`` is set to ``now`` when not supplied.
        now: Timestamp used for createdAt on first write and for updatedAt.

    Returns:
        datetime: The record's createdAt after the write.
    """
    fields = {"updatedAt": now, **fields}
    columns, values = _to_columns(fields)
    query = get_upsert_prediction_query(columns)

    async with conn.transaction():
        existing_created_at = await conn.fetchval(SELECT_CREATED_AT_FOR_UPDATE, prediction_id)
        created_at = existing_created_at or now
        await conn.execute(query, prediction_id, created_at, *values)

    logger.debug(f"Saved prediction {prediction_id} ({fields.get('status')})")
    return created_at


async def insert_prediction(conn: Connection, fields: Dict[str, Any], now: datetime) -> str:
    """Store a record under a fresh random id (used when no deterministic id is known yet)."""
    prediction_id = uuid.uuid4().hex
    await save_prediction(conn, prediction_id, fields, now)
    return prediction_id


async def delete_prediction(conn: Connection, prediction_id: str, uid: str) -> None:
    """
    Delete one of the caller's records.

    Raises:
        PredictionNotFoundError: No record with that id.
        PredictionOwnershipError: The record belongs to another user.
    """
    owner = await conn.fetchval(SELECT_PREDICTION_OWNER, prediction_id)
    if owner is None:
        raise PredictionNotFoundError(prediction_id)
    if owner != uid:
        raise PredictionOwnershipError("You can only delete your own records.")

    await conn.execute(DELETE_PREDICTION, prediction_id)
    logger.info(f"Deleted prediction {prediction_id}")


# =============================================================================
# History
# =============================================================================

async def list_predictions(conn: Connection, uid: str, limit: int = HISTORY_LIMIT) -> List[PredictionRecord]:
    """The user's newest records, ordered by createdAt descending."""
    rows = await conn.fetch(LIST_PREDICTIONS_FOR_USER, uid, limit)
    return [record_from_row(row) for row in rows]


def filter_predictions(
    records: Sequence[PredictionRecord],
    status: Optional[str] = None,
    query: Optional[str] = None,
) -> List[PredictionRecord]:
    """
    Filter history rows.

    Args:
        records: Rows to filter.
        status: "success", "error", or None / "all" for no status filter.
        query: Case-insensitive substring matched against commodity, future
            date, basis labels, basis keys and status.
    """
    wanted_status = (status or "all").strip().lower()
    text = (query or "").strip().lower()

    filtered = []
    for record in records:
        if wanted_status != "all" and record.status.value != wanted_status:
            continue

        if text:
            haystack = " | ".join(
                str(part if part is not None else "").lower()
                for part in [
                    record.commodity,
                    record.futureDate,
                    *record.basisLabels,
                    *record.basisKeys,
                    record.status.value,
                ]
            )
            if text not in haystack:
                continue

        filtered.append(record)
    return filtered


def summarize_predictions(records: Sequence[PredictionRecord]) -> Dict[str, Any]:
    """
    KPI summary for the history header.

    Returns:
        Dict with total, success, error, rate (success %, rounded),
        topCommodity / topCount and avgRuntimeMs (over records with a runtime).
    """
    total = len(records)
    success = sum(1 for r in records if r.status == PredictionStatus.SUCCESS)
    error = sum(1 for r in records if r.status == PredictionStatus.ERROR)

    commodities = Counter(
        r.commodity.strip().lower() for r in records if r.commodity and r.commodity.strip()
    )
    top_commodity, top_count = "—", 0
    for commodity, count in commodities.items():
        if count > top_count:
            top_commodity, top_count = commodity, count

    runtimes = [r.runtimeMs for r in records if r.runtimeMs is not None]

    return {
        "total": total,
        "success": success,
        "error": error,
        "rate": round(success / total * 100) if total else 0,
        "topCommodity": top_commodity,
        "topCount": top_count,
        "avgRuntimeMs": sum(runtimes) / max(1, len(runtimes)),
    }

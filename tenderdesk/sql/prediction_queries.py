"""
Parameterized SQL for the ``predictions`` document table.

One row per prediction id. The id is derived deterministically from
``(uid, commodity, futureDate)`` so repeat runs overwrite the same row.
Document-shaped fields are JSONB; asyncpg exchanges them as JSON text, hence
the ``::jsonb`` casts on every JSON placeholder.

Overwrite semantics:
    - Only the columns supplied by the caller are written on conflict, so a
      partial error record leaves the previous outputs in place (merge).
    - ``created_at`` is never part of the ON CONFLICT update list; it is set
      by the first insert and preserved afterwards.
"""

from typing import Dict, List, Sequence, Tuple


# =============================================================================
# Schema
# =============================================================================

CREATE_PREDICTIONS_SCHEMA: str = """
    CREATE TABLE IF NOT EXISTS predictions (
        id                     TEXT PRIMARY KEY,
        uid                    TEXT NOT NULL,
        email                  TEXT,
        commodity              TEXT,
        future_date            TEXT,
        basis_keys             JSONB,
        basis_keys_normalized  JSONB,
        basis_labels           JSONB,
        base_prices            JSONB,
        request                JSONB,
        workflow_payload       JSONB,
        status                 TEXT NOT NULL,
        workflow_http_status   INTEGER,
        outputs                JSONB,
        error                  JSONB,
        runtime_ms             INTEGER,
        created_at             TIMESTAMPTZ NOT NULL,
        updated_at             TIMESTAMPTZ NOT NULL
    );

    CREATE INDEX IF NOT EXISTS predictions_uid_created_idx
        ON predictions (uid, created_at DESC);
"""


# =============================================================================
# Column mapping: document field -> (column, is_json)
# =============================================================================

PREDICTION_COLUMNS: Dict[str, Tuple[str, bool]] = {
    "uid": ("uid", False),
    "email": ("email", False),
    "commodity": ("commodity", False),
    "futureDate": ("future_date", False),
    "basisKeys": ("basis_keys", True),
    "basisKeysNormalized": ("basis_keys_normalized", True),
    "basisLabels": ("basis_labels", True),
    "basePrices": ("base_prices", True),
    "request": ("request", True),
    "workflowPayload": ("workflow_payload", True),
    "status": ("status", False),
    "workflowHttpStatus": ("workflow_http_status", False),
    "outputs": ("outputs", True),
    "error": ("error", True),
    "runtimeMs": ("runtime_ms", False),
    "updatedAt": ("updated_at", False),
}

JSON_COLUMNS: List[str] = [column for column, is_json in PREDICTION_COLUMNS.values() if is_json]


# =============================================================================
# Queries
# =============================================================================

SELECT_CREATED_AT_FOR_UPDATE: str = """
    SELECT created_at
    FROM predictions
    WHERE id = $1
    FOR UPDATE
"""

LIST_PREDICTIONS_FOR_USER: str = """
    SELECT
        id, uid, email, commodity, future_date,
        basis_keys, basis_keys_normalized, basis_labels, base_prices,
        status, workflow_http_status, outputs, error, runtime_ms,
        created_at, updated_at
    FROM predictions
    WHERE uid = $1
    ORDER BY created_at DESC
    LIMIT $2
"""

SELECT_PREDICTION_OWNER: str = """
    SELECT uid
    FROM predictions
    WHERE id = $1
"""

DELETE_PREDICTION: str = """
    DELETE FROM predictions
    WHERE id = $1
"""


def get_upsert_prediction_query(columns: Sequence[str]) -> str:
    """
    Build the merge-upsert statement for the given table columns.

    Placeholders are ``$1`` for the id, ``$2`` for created_at, then one per
    column in the order given.

    Args:
        columns: Table column names to write (excluding id and created_at).

    Returns:
        str: INSERT ... ON CONFLICT (id) DO UPDATE statement.

    Example:
        >>> sql = get_upsert_prediction_query(["uid", "status", "outputs"])
        >>> # await conn.execute(sql, prediction_id, created_at, uid, "success", outputs_json)
    """
    if not columns:
        raise ValueError("at least one column is required")

    placeholders = []
    for index, column in enumerate(columns, start=3):
        cast = "::jsonb" if column in JSON_COLUMNS else ""
        placeholders.append(f"${index}{cast}")

    insert_columns = ", ".join(["id", "created_at", *columns])
    insert_values = ", ".join(["$1", "$2", *placeholders])
    updates = ",\n            ".join(f"{column} = EXCLUDED.{column}" for column in columns)

    return f"""
        INSERT INTO predictions ({insert_columns})
        VALUES ({insert_values})
        ON CONFLICT (id) DO UPDATE SET
            {updates}
    """

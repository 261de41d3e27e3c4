"""
SQL query module for the Tender Desk service.

Submodules:
    prediction_queries: Schema and merge-upsert statements for prediction records.
"""

from tenderdesk.sql.prediction_queries import (
    CREATE_PREDICTIONS_SCHEMA,
    DELETE_PREDICTION,
    JSON_COLUMNS,
    LIST_PREDICTIONS_FOR_USER,
    PREDICTION_COLUMNS,
    SELECT_CREATED_AT_FOR_UPDATE,
    SELECT_PREDICTION_OWNER,
    get_upsert_prediction_query,
)

__all__ = [
    'CREATE_PREDICTIONS_SCHEMA',
    'DELETE_PREDICTION',
    'JSON_COLUMNS',
    'LIST_PREDICTIONS_FOR_USER',
    'PREDICTION_COLUMNS',
    'SELECT_CREATED_AT_FOR_UPDATE',
    'SELECT_PREDICTION_OWNER',
    'get_upsert_prediction_query',
]

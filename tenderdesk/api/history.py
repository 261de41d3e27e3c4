"""
FastAPI router for the prediction history screen.

Key Endpoints:
- GET /predictions - The caller's newest 100 records, filterable, with KPIs
- DELETE /predictions/{prediction_id} - Delete one of the caller's records

Query Parameters (GET /predictions):
- status: "all" (default), "success" or "error"
- q: free text matched against commodity, date, basis labels/keys and status

KPIs are computed over all listed records, before filtering.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query

from tenderdesk.core.dependencies import BearerUserDep, DBSessionDep
from tenderdesk.services.prediction_store import (
    HISTORY_LIMIT,
    PredictionNotFoundError,
    PredictionOwnershipError,
    delete_prediction,
    filter_predictions,
    list_predictions,
    summarize_predictions,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def get_predictions(
    db: DBSessionDep,
    user: BearerUserDep,
    status: Optional[str] = Query(None, description="all, success or error"),
    q: Optional[str] = Query(None, description="Free-text filter"),
) -> Dict[str, Any]:
    """
    List the caller's prediction history.

    Returns:
        { ok: true, total, items: [...], kpis: {...} }
    """
    try:
        records = await list_predictions(db, user.uid, HISTORY_LIMIT)
        filtered = filter_predictions(records, status=status, query=q)
        return {
            "ok": True,
            "total": len(records),
            "items": [record.model_dump(mode="json") for record in filtered],
            "kpis": summarize_predictions(records),
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing predictions for {user.uid}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list predictions")


@router.delete("/{prediction_id}")
async def remove_prediction(prediction_id: str, db: DBSessionDep, user: BearerUserDep) -> Dict[str, Any]:
    """
    Delete one record.

    Raises:
        HTTPException 403: The record belongs to another user.
        HTTPException 404: No such record.
    """
    try:
        await delete_prediction(db, prediction_id, user.uid)
        return {"ok": True, "deleted": prediction_id}
    except PredictionNotFoundError:
        raise HTTPException(status_code=404, detail="Prediction not found")
    except PredictionOwnershipError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting prediction {prediction_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete record.")

"""
FastAPI router for forecast runs.

Key Endpoints:
- POST /predict - Run a forecast through the workflow engine and store it
- POST /prediction/view - Shape a raw workflow response for display

Both endpoints require ``Authorization: Bearer <Firebase ID token>``.

API Contract:
- POST /predict success: the workflow JSON with ``predictionId`` added
- POST /predict workflow failure (502):
  { ok: false, error: "Workflow webhook failed (<status>)", details, predictionId }
- Validation errors (400) and server errors (500): { ok: false, error }
"""

import logging
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from tenderdesk.core.dependencies import BearerUserDep, DBSessionDep, HttpClientDep, SettingsDep
from tenderdesk.models.schemas import PredictionViewRequest
from tenderdesk.services.justification import build_justification
from tenderdesk.services.orchestrator import InvalidPredictionRequest, parse_predict_request, run_prediction
from tenderdesk.services.result_mapper import shape_forecast_response


logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_json_body(request: Request) -> Any:
    """Decode the body leniently: anything that is not JSON counts as ``{}``."""
    try:
        return await request.json()
    except ValueError:
        return {}


async def validated_predict_body(request: Request, user: BearerUserDep, settings: SettingsDep) -> Any:
    """
    Read the ``/predict`` body and reject invalid input with 400.

    Resolved before DBSessionDep on the route: a rejected body never
    acquires a database connection.
    """
    body = await _read_json_body(request)
    try:
        parse_predict_request(body, settings.max_basis)
    except InvalidPredictionRequest as e:
        logger.warning(f"POST /predict rejected for {user.uid}: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    return body


PredictBodyDep = Annotated[Any, Depends(validated_predict_body)]


@router.post("/predict")
async def predict(
    user: BearerUserDep,
    body: PredictBodyDep,
    db: DBSessionDep,
    client: HttpClientDep,
    settings: SettingsDep,
) -> JSONResponse:
    """
    Run one forecast.

    Example Request:
        POST /predict
        {
            "commodity": "sulphur",
            "basis": ["middle-east", "us-gulf"],
            "futureDate": "2026-11-03",
            "basePrices": [410, null]
        }

    Returns:
        JSONResponse with the status chosen by the orchestrator (200, 502 or
        500). Invalid bodies were already rejected with 400.
    """
    outcome = await run_prediction(body, user, db, client, settings)
    return JSONResponse(content=outcome.body, status_code=outcome.status_code)


@router.post("/prediction/view")
async def prediction_view(payload: PredictionViewRequest, user: BearerUserDep) -> Dict[str, Any]:
    """
    Normalize a workflow response into a ForecastView plus the justification
    rows of the requested tab for its active bundle.
    """
    try:
        view = shape_forecast_response(payload.data)
        rows = build_justification(view.bundle, payload.tab)
        return {
            "ok": True,
            "view": view.model_dump(mode="json"),
            "justification": [row.model_dump(mode="json") for row in rows],
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to shape prediction view: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to shape prediction view")

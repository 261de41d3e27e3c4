"""
FastAPI router for auxiliary workflow calls.

Key Endpoints:
- POST /prices/generate - Start price extraction for an uploaded source
- POST /workflow/test-text - Pass-through proxy to the test webhook

Accepts a bearer ID token or the session cookie.
"""

import logging
from typing import Any, Dict

import httpx
from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from tenderdesk.core.config import ConfigurationError
from tenderdesk.core.dependencies import CurrentUserDep, HttpClientDep, SettingsDep
from tenderdesk.core.webhook import WorkflowError
from tenderdesk.models.schemas import PricesGenerateRequest
from tenderdesk.services.uploads import InvalidUploadError, generate_prices


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/prices/generate")
async def prices_generate(
    payload: PricesGenerateRequest,
    client: HttpClientDep,
    settings: SettingsDep,
    user: CurrentUserDep,
) -> Any:
    """
    Example Request:
        POST /prices/generate
        { "commodity": "sulphur", "sourceObjectName": "incoming/sulphur/rdata/prices.xlsx" }

    Returns:
        The workflow's JSON reply, or { ok: true, queued: true, raw } when it
        answered with something other than JSON. Workflow failures are 502
        { ok: false, error, details }.
    """
    try:
        return await generate_prices(
            client,
            settings,
            commodity=payload.commodity,
            source_object_name=payload.sourceObjectName,
            region=payload.region,
            future_date=payload.futureDate,
        )
    except InvalidUploadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except WorkflowError as e:
        logger.warning(f"Price generation failed upstream: {e}")
        return JSONResponse(
            status_code=502,
            content={"ok": False, "error": str(e), "details": e.details},
        )
    except ConfigurationError as e:
        logger.error(f"Price generation unavailable: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Price generation failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e) or "Unknown server error")


@router.post("/workflow/test-text")
async def workflow_test_text(
    request: Request,
    client: HttpClientDep,
    settings: SettingsDep,
    user: CurrentUserDep,
) -> Response:
    """Forward the JSON body to the test webhook and relay its status, body and content type."""
    try:
        url = settings.require("n8n_webhook_test_text_url")
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))

    try:
        body: Dict[str, Any] = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    try:
        upstream = await client.post(url, json=body)
    except httpx.HTTPError as e:
        logger.error(f"Test webhook unreachable: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Test webhook unreachable")

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type", "text/plain"),
    )

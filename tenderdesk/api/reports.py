"""
FastAPI router for reports and signed read URLs.

Key Endpoints:
- GET /report/list - Source documents with their clean-JSON status
- GET /report/read?objectName= - Object content as JSON or text
- GET /files/signedread?objectName= - 15-minute signed read URL

Accepts a bearer ID token or the session cookie. Responses are marked
``Cache-Control: no-store``.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Query, Response
from google.api_core.exceptions import NotFound

from tenderdesk.core.dependencies import CurrentUserDep, ObjectStoreDep
from tenderdesk.services.reports import list_reports, read_report


logger = logging.getLogger(__name__)

router = APIRouter()

SIGNED_READ_MINUTES = 15


@router.get("/report/list")
def get_report_list(response: Response, store: ObjectStoreDep, user: CurrentUserDep) -> Dict[str, Any]:
    response.headers["Cache-Control"] = "no-store"
    try:
        items = list_reports(store)
        return {"ok": True, "items": [item.model_dump(mode="json") for item in items]}
    except Exception as e:
        logger.error(f"Failed to list reports: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list reports")


@router.get("/report/read")
def get_report(
    response: Response,
    store: ObjectStoreDep,
    user: CurrentUserDep,
    objectName: str = Query(""),
) -> Dict[str, Any]:
    """
    Raises:
        HTTPException 400: objectName missing.
        HTTPException 404: No such object.
    """
    response.headers["Cache-Control"] = "no-store"
    object_name = objectName.strip()
    if not object_name:
        raise HTTPException(status_code=400, detail="objectName is required")

    try:
        return read_report(store, object_name)
    except NotFound:
        raise HTTPException(status_code=404, detail="Report not found")
    except Exception as e:
        logger.error(f"Failed to read report {object_name}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to read report")


@router.get("/files/signedread")
def get_signed_read_url(
    response: Response,
    store: ObjectStoreDep,
    user: CurrentUserDep,
    objectName: str = Query(""),
) -> Dict[str, Any]:
    response.headers["Cache-Control"] = "no-store"
    object_name = objectName.strip()
    if not object_name:
        raise HTTPException(status_code=400, detail="Missing objectName")

    try:
        return {"ok": True, "url": store.create_signed_read_url(object_name, SIGNED_READ_MINUTES)}
    except Exception as e:
        logger.error(f"Signed URL failed for {object_name}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Signed URL failed")

"""
FastAPI router for source file uploads.

Key Endpoints:
- POST /upload/init - Signed PUT URL for a new upload (archives the folder)
- POST /upload/put - Multipart upload through the service
- POST /upload/complete - Confirm an upload reached the bucket
- POST /upload/delete - Delete one or more objects
- GET /upload/list?commodity=&region= - Uploaded sources with output flags
- GET /upload/readurl?objectName= - 10-minute signed read URL

Accepts a bearer ID token or the session cookie.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, File, Form, HTTPException, Query, Response, UploadFile

from tenderdesk.core.dependencies import CurrentUserDep, ObjectStoreDep, SettingsDep
from tenderdesk.models.schemas import UploadCompleteRequest, UploadDeleteRequest, UploadInitRequest
from tenderdesk.services.uploads import (
    InvalidUploadError,
    delete_objects,
    init_upload,
    list_uploads,
)


logger = logging.getLogger(__name__)

router = APIRouter()

READ_URL_MINUTES = 10


@router.post("/init")
def upload_init(
    payload: UploadInitRequest,
    store: ObjectStoreDep,
    settings: SettingsDep,
    user: CurrentUserDep,
) -> Dict[str, Any]:
    """
    Example Request:
        POST /upload/init
        { "commodity": "sulphur", "filename": "q3.pdf", "contentType": "application/pdf" }

    Example Response:
        { ok: true, bucket, objectName: "incoming/sulphur/doc/q3.pdf", uploadUrl, expiresMinutes: 15 }
    """
    try:
        return init_upload(
            store,
            commodity=payload.commodity,
            filename=payload.filename,
            content_type=payload.contentType,
            expires_minutes=settings.gcs_signed_url_expires_min or 15,
            region=payload.region,
        )
    except InvalidUploadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Upload init failed for {payload.filename}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Init failed")


@router.post("/put")
def upload_put(
    store: ObjectStoreDep,
    user: CurrentUserDep,
    file: Optional[UploadFile] = File(None),
    objectName: str = Form(""),
    contentType: str = Form("application/octet-stream"),
    bucket: Optional[str] = Form(None),
) -> Dict[str, Any]:
    """Store a multipart ``file`` at ``objectName`` in the configured bucket."""
    if bucket and bucket != store.bucket_name:
        raise HTTPException(status_code=400, detail="Unknown bucket")
    if not objectName.strip():
        raise HTTPException(status_code=400, detail="Missing objectName")
    if file is None:
        raise HTTPException(status_code=400, detail="Missing file")

    try:
        store.upload_bytes(objectName.strip(), file.file.read(), contentType)
        return {"ok": True, "bucket": store.bucket_name, "objectName": objectName.strip()}
    except Exception as e:
        logger.error(f"Upload failed for {objectName}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Upload error")


@router.post("/complete")
def upload_complete(payload: UploadCompleteRequest, store: ObjectStoreDep, user: CurrentUserDep) -> Dict[str, Any]:
    if not payload.objectName:
        raise HTTPException(status_code=400, detail="Missing objectName")

    try:
        info = store.head_object(payload.objectName)
    except Exception as e:
        logger.error(f"Upload complete check failed for {payload.objectName}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Complete failed")

    if info is None:
        raise HTTPException(
            status_code=404,
            detail="Upload not found in bucket yet (object does not exist).",
        )
    return {"ok": True, "file": {"exists": True, **info}}


@router.post("/delete")
def upload_delete(payload: UploadDeleteRequest, store: ObjectStoreDep, user: CurrentUserDep) -> Dict[str, Any]:
    """Accepts ``{objectName}`` or ``{objectNames: [...]}``; missing objects are ignored."""
    if payload.objectNames is not None:
        names = list(payload.objectNames)
    elif payload.objectName:
        names = [payload.objectName]
    else:
        names = []

    try:
        deleted = delete_objects(store, names)
    except InvalidUploadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Delete failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Delete failed")

    logger.info(f"{user.uid} deleted {len(deleted)} objects")
    return {"ok": True, "deleted": deleted}


@router.get("/list")
def upload_list(
    response: Response,
    store: ObjectStoreDep,
    user: CurrentUserDep,
    commodity: str = Query("sulphur"),
    region: str = Query("global"),
) -> Dict[str, Any]:
    response.headers["Cache-Control"] = "no-store"
    try:
        return list_uploads(store, commodity, region)
    except Exception as e:
        logger.error(f"Upload list failed for {commodity}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="List failed")


@router.get("/readurl")
def upload_read_url(
    response: Response,
    store: ObjectStoreDep,
    user: CurrentUserDep,
    objectName: str = Query(""),
) -> Dict[str, Any]:
    response.headers["Cache-Control"] = "no-store"
    object_name = objectName.strip()
    if not object_name:
        raise HTTPException(status_code=400, detail="objectName is required")

    try:
        return {"ok": True, "signedUrl": store.create_signed_read_url(object_name, READ_URL_MINUTES)}
    except Exception as e:
        logger.error(f"Read URL failed for {object_name}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed")

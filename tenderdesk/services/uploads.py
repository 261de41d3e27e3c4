"""
Source file uploads and price generation.

Uploads land in ``incoming/<commodity>/<kind>/[<region>/]<file>``, where the
kind follows from the content type (PDF -> doc, CSV / Excel -> rdata). Only
the latest upload per folder stays in ``incoming/``: starting a new upload
moves the folder's current objects to ``archive/`` and wipes the
``clean/<commodity>/<kind>/`` outputs derived from them.

Price generation hands an uploaded source to the price workflow, which
writes ``clean/<commodity>/<kind>/<commodity>_prices.json``.
"""

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from tenderdesk.core.config import Settings
from tenderdesk.core.storage import ObjectStore
from tenderdesk.core.webhook import WorkflowError, post_to_workflow
from tenderdesk.models.enums import UploadKind
from tenderdesk.services.reports import base_without_extension, file_name_only


logger = logging.getLogger(__name__)


# =============================================================================
# Content types and layout
# =============================================================================

PDF_CONTENT_TYPE = "application/pdf"
SPREADSHEET_CONTENT_TYPES = (
    "text/csv",
    "application/csv",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
)
ALLOWED_CONTENT_TYPES = (PDF_CONTENT_TYPE, *SPREADSHEET_CONTENT_TYPES)

LISTED_KINDS = (UploadKind.DOC, UploadKind.RDATA)
UPLOAD_LIST_LIMIT = 300

INCOMING_PREFIX = "incoming/"
ARCHIVE_PREFIX = "archive/"

# Replies of the price workflow echoed back when they are not JSON
RAW_REPLY_LIMIT = 500


class InvalidUploadError(ValueError):
    pass


def kind_from_content_type(content_type: Optional[str]) -> UploadKind:
    value = (content_type or "").strip().lower()
    if value == PDF_CONTENT_TYPE:
        return UploadKind.DOC
    if value in SPREADSHEET_CONTENT_TYPES:
        return UploadKind.RDATA
    return UploadKind.GENERAL


def split_path(object_name: str) -> Dict[str, str]:
    """
    >>> split_path("incoming/sulphur/doc/a.pdf")
    {'dir': 'incoming/sulphur/doc', 'base': 'a.pdf'}
    """
    parts = [part for part in (object_name or "").split("/") if part]
    base = parts.pop() if parts else "file"
    return {"dir": "/".join(parts), "base": base}


def _object_path(root: str, commodity: str, kind: str, filename: str, region: Optional[str]) -> str:
    commodity = commodity.strip().lower()
    safe_filename = file_name_only(filename) or "file"
    region = (region or "").strip().lower()

    folders = [root, commodity, kind, region] if region else [root, commodity, kind]
    return "/".join([*folders, safe_filename])


def build_object_path(commodity: str, kind: str, filename: str, region: Optional[str] = None) -> str:
    """
    >>> build_object_path(" Sulphur", "doc", "reports/q3.pdf", region="Global")
    'incoming/sulphur/doc/global/q3.pdf'
    """
    return _object_path("incoming", commodity, kind, filename, region)


def build_clean_object_path(commodity: str, kind: str, filename: str, region: Optional[str] = None) -> str:
    return _object_path("clean", commodity, kind, filename, region)


def is_excel_like(name: str) -> bool:
    return (name or "").lower().endswith((".xlsx", ".xls", ".csv"))


# =============================================================================
# Folder maintenance
# =============================================================================

def archive_existing_in_folder(
    store: ObjectStore,
    incoming_dir: str,
    keep_object_name: Optional[str] = None,
) -> List[str]:
    """
    Move every object under ``incoming_dir`` to the same path under ``archive/``.

    Returns:
        The archived object names (their new locations).
    """
    prefix = incoming_dir if incoming_dir.endswith("/") else f"{incoming_dir}/"

    archived = []
    for blob in store.list_blobs(prefix):
        name = blob.name
        if not name or name.endswith("/") or name == keep_object_name:
            continue
        if not name.startswith(INCOMING_PREFIX):
            continue

        target = ARCHIVE_PREFIX + name[len(INCOMING_PREFIX):]
        store.move_object(name, target)
        archived.append(target)

    if archived:
        logger.info(f"Archived {len(archived)} objects from {prefix}")
    return archived


def wipe_clean_folder(store: ObjectStore, commodity: str, kind: str) -> List[str]:
    """Delete everything under ``clean/<commodity>/<kind>/``."""
    prefix = f"clean/{commodity.strip().lower()}/{kind.strip().lower()}/"

    deleted = []
    for blob in store.list_blobs(prefix):
        if not blob.name or blob.name.endswith("/"):
            continue
        store.delete_object(blob.name)
        deleted.append(blob.name)
    return deleted


# =============================================================================
# Upload lifecycle
# =============================================================================

def init_upload(
    store: ObjectStore,
    commodity: str,
    filename: str,
    content_type: str,
    expires_minutes: int,
    region: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Prepare a direct-to-bucket upload.

    Mints a signed PUT URL for the new object, archives the folder's current
    incoming objects and wipes the matching clean outputs.

    Raises:
        InvalidUploadError: Missing filename or a content type other than
            PDF / CSV / Excel.
    """
    filename = (filename or "").strip()
    content_type = (content_type or "application/octet-stream").strip()

    if not filename:
        raise InvalidUploadError("Missing filename")
    if content_type.lower() not in ALLOWED_CONTENT_TYPES:
        raise InvalidUploadError(f"Invalid content type. Received: {content_type or 'unknown'}.")

    kind = kind_from_content_type(content_type)
    object_name = build_object_path(commodity or "sulphur", kind.value, filename, region)
    upload_url = store.create_signed_upload_url(object_name, content_type, expires_minutes)

    archive_existing_in_folder(store, split_path(object_name)["dir"])
    wipe_clean_folder(store, commodity or "sulphur", kind.value)

    return {
        "ok": True,
        "bucket": store.bucket_name,
        "objectName": object_name,
        "uploadUrl": upload_url,
        "expiresMinutes": expires_minutes,
    }


def delete_objects(store: ObjectStore, object_names: List[Any]) -> List[str]:
    """Delete the named objects, ignoring ones that are already gone."""
    names = [str(name if name is not None else "").strip() for name in object_names]
    names = [name for name in names if name]
    if not names:
        raise InvalidUploadError("Missing objectName(s).")

    for name in names:
        store.delete_object(name, ignore_not_found=True)
    return names


def list_uploads(store: ObjectStore, commodity: str, region: str = "global") -> Dict[str, Any]:
    """
    Uploaded doc and rdata sources of a commodity, sorted by name.

    Each item carries ``reportExists`` (its clean JSON) and, for spreadsheet
    sources, ``pricesExists`` (the commodity's generated prices JSON).
    """
    commodity = (commodity or "sulphur").strip().lower()
    region = (region or "global").strip().lower()

    prefixes, items = [], []
    for kind in LISTED_KINDS:
        prefix = f"incoming/{commodity}/{kind.value}/"
        prefixes.append(prefix)

        for item in store.list_objects(prefix, max_results=UPLOAD_LIST_LIMIT):
            if item["name"].endswith("/"):
                continue

            filename = file_name_only(item["name"])
            report_object = f"clean/{commodity}/{kind.value}/{base_without_extension(filename)}.json"
            prices_object = f"clean/{commodity}/{kind.value}/{commodity}_prices.json"

            items.append({
                **item,
                "kind": kind.value,
                "reportExists": store.object_exists(report_object),
                "reportObjectName": report_object,
                "pricesExists": store.object_exists(prices_object) if is_excel_like(filename) else False,
                "pricesObjectName": prices_object,
            })

    items.sort(key=lambda item: item["name"])
    return {
        "ok": True,
        "bucket": store.bucket_name,
        "commodity": commodity,
        "region": region,
        "prefixes": prefixes,
        "items": items,
    }


# =============================================================================
# Price generation
# =============================================================================

async def generate_prices(
    client: httpx.AsyncClient,
    settings: Settings,
    commodity: str,
    source_object_name: str,
    region: str = "",
    future_date: str = "",
) -> Dict[str, Any]:
    """
    Ask the price workflow to extract prices from an uploaded source.

    Returns:
        The workflow's JSON reply, or ``{"ok", "queued", "raw"}`` when it
        replied with something other than JSON.

    Raises:
        InvalidUploadError: commodity or source object missing.
        ConfigurationError: Price webhook or token not configured.
        WorkflowError: Non-2xx reply, or a JSON content type with an
            undecodable body.
    """
    commodity = (commodity or "").strip().lower()
    source_object_name = (source_object_name or "").strip()
    if not commodity or not source_object_name:
        raise InvalidUploadError("commodity and sourceObjectName are required")

    url = settings.require("n8n_webhook_generating_prices_url")
    token = settings.require("n8n_webhook_token")

    payload: Dict[str, Any] = {"commodity": commodity, "sourceObjectName": source_object_name}
    if region.strip():
        payload["region"] = region.strip()
    if future_date.strip():
        payload["futureDate"] = future_date.strip()

    response = await post_to_workflow(client, url, token, payload)
    if not response.is_success:
        raise WorkflowError(response.status_code, response.text)

    if "application/json" not in response.headers.get("content-type", ""):
        return {"ok": True, "queued": True, "raw": response.text[:RAW_REPLY_LIMIT]}

    try:
        data = json.loads(response.text)
    except ValueError:
        data = None
    if data is None:
        raise WorkflowError(502, "Workflow returned non-JSON response")

    logger.info(f"Price generation accepted for {source_object_name}")
    return data

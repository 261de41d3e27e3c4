"""
Report listing and reading.

Source documents live under ``incoming/`` (active) and ``archive/``
(superseded), in ``<source>/<commodity>/doc/[<region>/]<file>``. The price
workflow writes one clean JSON per document to
``clean/<commodity>/doc/[<region>/]<base>.json``; a report is "ready" when
that mirror exists.
"""

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List

from tenderdesk.core.storage import ObjectStore
from tenderdesk.models.enums import ReportSource
from tenderdesk.models.schemas import ReportListItem


logger = logging.getLogger(__name__)


SOURCE_LIST_LIMIT = 2000
CLEAN_LIST_LIMIT = 5000

_EXTENSION = re.compile(r"\.[^/.]+$")


def file_name_only(path: str) -> str:
    return path.replace("\\", "/").split("/")[-1] or path


def base_without_extension(path: str) -> str:
    return _EXTENSION.sub("", file_name_only(path))


def parse_region(object_name: str) -> str:
    """Region folder of ``<source>/<commodity>/<kind>/<region>/<file>``, else "-"."""
    parts = [part for part in object_name.split("/") if part]
    return parts[3] if len(parts) >= 5 else "-"


def build_clean_object_name(object_name: str) -> str:
    """
    Mirror a source object into the clean folder.

    >>> build_clean_object_name("archive/sulphur/doc/global/report.pdf")
    'clean/sulphur/doc/global/report.json'
    """
    parts = [part for part in object_name.split("/") if part]
    commodity = parts[1] if len(parts) > 1 else "unknown"
    kind = parts[2] if len(parts) > 2 else "doc"

    under_kind = parts[3:]
    filename = under_kind[-1] if under_kind else "file"
    folders = under_kind[:-1]

    return "/".join(["clean", commodity, kind, *folders, f"{_EXTENSION.sub('', filename)}.json"])


def _is_doc_object(name: str) -> bool:
    return "/doc/" in name and not name.endswith("/")


def _timestamp(blob: Any) -> str:
    value = blob.updated or blob.time_created
    if value is None:
        return datetime.now(timezone.utc).isoformat()
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


def list_reports(store: ObjectStore) -> List[ReportListItem]:
    """All incoming and archived documents, newest first, with their clean-JSON status."""
    incoming = store.list_blobs("incoming/", max_results=SOURCE_LIST_LIMIT)
    archive = store.list_blobs("archive/", max_results=SOURCE_LIST_LIMIT)
    clean = store.list_blobs("clean/", max_results=CLEAN_LIST_LIMIT)

    clean_names = {
        blob.name for blob in clean
        if "/doc/" in blob.name and blob.name.lower().endswith(".json")
    }

    items = []
    for source, blobs in ((ReportSource.INCOMING, incoming), (ReportSource.ARCHIVE, archive)):
        for blob in blobs:
            if not _is_doc_object(blob.name):
                continue

            parts = [part for part in blob.name.split("/") if part]
            commodity = parts[1] if len(parts) > 1 else "unknown"
            clean_name = build_clean_object_name(blob.name)
            metadata = blob.metadata or {}

            items.append(ReportListItem(
                id=f"{source.value}:{commodity}:{file_name_only(blob.name)}",
                createdAt=_timestamp(blob),
                commodity=commodity,
                region=parse_region(blob.name),
                fileName=file_name_only(blob.name),
                source=source,
                active=source == ReportSource.INCOMING,
                objectName=blob.name,
                cleanObjectName=clean_name,
                hasClean=clean_name in clean_names,
                generatedBy=metadata.get("generatedBy") or "system",
            ))

    items.sort(key=lambda item: item.createdAt, reverse=True)
    return items


def read_report(store: ObjectStore, object_name: str) -> Dict[str, Any]:
    """
    Download an object and decode it as JSON when possible.

    Returns:
        ``{"ok", "kind": "json", "objectName", "json"}`` or, for content that
        is not JSON, ``{"ok", "kind": "text", "objectName", "text"}``.

    Raises:
        google.api_core.exceptions.NotFound: The object does not exist.
    """
    text = store.download_text(object_name)
    try:
        parsed = json.loads(text)
    except ValueError:
        return {"ok": True, "kind": "text", "objectName": object_name, "text": text}

    return {"ok": True, "kind": "json", "objectName": object_name, "json": parsed}

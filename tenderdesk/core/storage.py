"""
Google Cloud Storage access for reports, uploads and signed URLs.

Bucket layout (shared with the workflows that consume the uploads):

    incoming/<commodity>/<kind>/[<region>/]<file>   latest upload per folder
    archive/<commodity>/<kind>/[<region>/]<file>    superseded uploads
    clean/<commodity>/<kind>/[<region>/]<base>.json workflow output per upload

ObjectStore wraps one storage.Client and one bucket. Routers receive it
through the ObjectStoreDep dependency so tests can substitute a mock.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from google.api_core.exceptions import NotFound
from google.cloud import storage

from tenderdesk.core.config import Settings


logger = logging.getLogger(__name__)


def get_storage_client(settings: Settings) -> storage.Client:
    """
    Create a Cloud Storage client.

    Uses the service account file when GOOGLE_APPLICATION_CREDENTIALS is set
    (required for V4 URL signing), otherwise Application Default Credentials.
    """
    if settings.google_application_credentials:
        return storage.Client.from_service_account_json(settings.google_application_credentials)
    return storage.Client()


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat() if hasattr(value, "isoformat") else str(value)


class ObjectStore:
    """Thin wrapper over a single bucket."""

    def __init__(self, client: storage.Client, bucket_name: str):
        self.client = client
        self.bucket_name = bucket_name
        self.bucket = client.bucket(bucket_name)

    # -------------------------------------------------------------------------
    # Signed URLs
    # -------------------------------------------------------------------------

    def create_signed_upload_url(self, object_name: str, content_type: str, expires_minutes: int) -> str:
        blob = self.bucket.blob(object_name)
        return blob.generate_signed_url(
            version="v4",
            expiration=timedelta(minutes=expires_minutes),
            method="PUT",
            content_type=content_type,
        )

    def create_signed_read_url(self, object_name: str, expires_minutes: int = 10) -> str:
        blob = self.bucket.blob(object_name)
        return blob.generate_signed_url(
            version="v4",
            expiration=timedelta(minutes=expires_minutes),
            method="GET",
        )

    # -------------------------------------------------------------------------
    # Metadata and listing
    # -------------------------------------------------------------------------

    def head_object(self, object_name: str) -> Optional[Dict[str, Any]]:
        """Return object metadata, or None when the object does not exist."""
        blob = self.bucket.get_blob(object_name)
        if blob is None:
            return None

        return {
            "bucket": self.bucket_name,
            "objectName": object_name,
            "size": blob.size,
            "contentType": blob.content_type,
            "updated": _iso(blob.updated),
            "md5Hash": blob.md5_hash,
        }

    def object_exists(self, object_name: str) -> bool:
        return self.bucket.blob(object_name).exists()

    def list_blobs(self, prefix: str, max_results: Optional[int] = None) -> List[storage.Blob]:
        return list(self.client.list_blobs(self.bucket_name, prefix=prefix, max_results=max_results))

    def list_objects(
        self,
        prefix: str,
        ends_with: Optional[str] = None,
        max_results: int = 200,
    ) -> List[Dict[str, Any]]:
        """
        List objects under ``prefix`` as plain dicts, newest first.

        Args:
            prefix: Object name prefix, e.g. "incoming/sulphur/doc/".
            ends_with: Optional case-insensitive suffix filter.
            max_results: Upper bound on listed objects.
        """
        items = []
        for blob in self.list_blobs(prefix, max_results=max_results):
            if ends_with and not blob.name.lower().endswith(ends_with.lower()):
                continue
            items.append({
                "name": blob.name,
                "size": blob.size,
                "contentType": blob.content_type,
                "updated": _iso(blob.updated),
            })

        items.sort(key=lambda item: str(item["updated"] or ""), reverse=True)
        return items

    # -------------------------------------------------------------------------
    # Content
    # -------------------------------------------------------------------------

    def download_text(self, object_name: str) -> str:
        """Raises google.api_core.exceptions.NotFound for missing objects."""
        return self.bucket.blob(object_name).download_as_bytes().decode("utf-8")

    def upload_bytes(self, object_name: str, data: bytes, content_type: str) -> None:
        blob = self.bucket.blob(object_name)
        blob.cache_control = "no-store"
        blob.upload_from_string(data, content_type=content_type)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def move_object(self, object_name: str, new_name: str) -> None:
        blob = self.bucket.blob(object_name)
        self.bucket.copy_blob(blob, self.bucket, new_name)
        blob.delete()

    def delete_object(self, object_name: str, ignore_not_found: bool = True) -> None:
        try:
            self.bucket.blob(object_name).delete()
        except NotFound:
            if not ignore_not_found:
                raise
            logger.debug(f"delete skipped, object already gone: {object_name}")

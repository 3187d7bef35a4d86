"""Message media storage using Google Cloud Storage.

Objects are private. Rows reference them by a storage:// locator and
renderers mint a short-lived signed URL when they need to display one.
"""

import asyncio
import logging
from datetime import timedelta

from google.auth.exceptions import GoogleAuthError
from google.cloud import storage
from google.cloud.exceptions import GoogleCloudError

from app.settings import settings

logger = logging.getLogger(__name__)

LOCATOR_SCHEME = "storage://"


class MediaStorageError(Exception):
    """Custom exception for media storage errors."""
    pass


def build_locator(bucket_name: str, blob_path: str) -> str:
    """storage://{bucket}/{path}"""
    return f"{LOCATOR_SCHEME}{bucket_name}/{blob_path}"


def parse_locator(locator: str) -> tuple[str, str]:
    """Split a storage:// locator into (bucket, path).

    Raises:
        MediaStorageError: If the value is not a storage locator
    """
    if not locator or not locator.startswith(LOCATOR_SCHEME):
        raise MediaStorageError(f"Not a storage locator: {locator!r}")
    bucket_name, _, blob_path = locator[len(LOCATOR_SCHEME):].partition("/")
    if not bucket_name or not blob_path:
        raise MediaStorageError(f"Malformed storage locator: {locator!r}")
    return bucket_name, blob_path


class MediaStorage:
    """Service for storing message media in a private GCS bucket."""

    def __init__(self, bucket_name: str | None = None):
        """Initialize the storage client.

        Args:
            bucket_name: Bucket to use (defaults to GCS_MEDIA_BUCKET)
        """
        self.bucket_name = bucket_name or settings.gcs_media_bucket
        self._client: storage.Client | None = None
        self._bucket: storage.Bucket | None = None

    @property
    def client(self) -> storage.Client:
        """Lazy-load the GCS client."""
        if self._client is None:
            self._client = storage.Client(project=settings.gcp_project_id)
        return self._client

    @property
    def bucket(self) -> storage.Bucket:
        """Get the configured bucket."""
        if self._bucket is None:
            if not self.bucket_name:
                raise MediaStorageError("GCS_MEDIA_BUCKET is not configured")
            self._bucket = self.client.bucket(self.bucket_name)
        return self._bucket

    @staticmethod
    def get_blob_path(lead_id: int, timestamp_ms: int, extension: str) -> str:
        """Generate the blob path for a lead's media.

        Path format: leads/{lead_id}/{timestamp_ms}.{ext}
        """
        return f"leads/{lead_id}/{timestamp_ms}.{extension}"

    async def upload(self, blob_path: str, data: bytes, content_type: str) -> str:
        """Upload media bytes and return the object's storage locator.

        Args:
            blob_path: Object path inside the bucket
            data: File contents
            content_type: MIME type stored on the object

        Returns:
            storage:// locator for the uploaded object

        Raises:
            MediaStorageError: If upload fails
        """
        try:
            blob = self.bucket.blob(blob_path)
            blob.cache_control = "private, max-age=31536000"
            # The GCS client is blocking
            await asyncio.to_thread(
                blob.upload_from_string,
                data,
                content_type=content_type,
                timeout=settings.media_upload_timeout_seconds,
            )
        except (GoogleCloudError, GoogleAuthError, OSError) as e:
            logger.error(f"GCS upload failed for {blob_path}: {e}")
            raise MediaStorageError(f"Failed to upload media: {e}") from e

        logger.info(
            "Uploaded message media",
            extra={"blob_path": blob_path, "size_bytes": len(data), "content_type": content_type},
        )
        return build_locator(self.bucket_name, blob_path)

    def generate_signed_url(self, locator: str, ttl_seconds: int | None = None) -> str:
        """Mint a short-lived V4 signed URL for a storage locator.

        Raises:
            MediaStorageError: If the locator is invalid or signing fails
        """
        bucket_name, blob_path = parse_locator(locator)
        expiration = timedelta(seconds=ttl_seconds or settings.media_signed_url_ttl_seconds)
        try:
            blob = self.client.bucket(bucket_name).blob(blob_path)
            return blob.generate_signed_url(version="v4", expiration=expiration, method="GET")
        except (GoogleCloudError, GoogleAuthError, ValueError) as e:
            raise MediaStorageError(f"Failed to sign {locator}: {e}") from e


# Global instance
media_storage = MediaStorage()

# =============================================================================
# core/services/storage_service.py - Supabase Storage Operations
# =============================================================================
# Handles object uploads to Supabase Storage for migrated inspection and job
# images. Uploads overwrite (x-upsert) and return the public URL that
# replaces the inline image in the record.
# =============================================================================

import logging

from app.exceptions import ConfigurationMissingError, NetworkFailureError, StorageUploadError
from lib.supabase_client import SupabaseRestClient

logger = logging.getLogger(__name__)


class StorageService:
    """
    Service for Supabase Storage operations on one bucket.

    Example:
        storage = StorageService(client, "inspection-assets")
        url = await storage.upload_image("insp-1/1767225600000-0-k3x9qa.jpg", data, "image/jpeg")
    """

    def __init__(self, client: SupabaseRestClient, bucket: str):
        self.client = client
        self.bucket = bucket

    @property
    def is_configured(self) -> bool:
        return self.client.is_configured

    @property
    def location(self) -> str | None:
        """Storage URL of the currently configured project plus bucket, or None."""
        config = self.client.runtime.resolve()
        if config is None:
            return None
        return f"{config.storage_url}/{self.bucket}"

    async def upload_image(self, path: str, data: bytes, content_type: str) -> str:
        """
        Upload image bytes to the bucket.

        Args:
            path: Object path inside the bucket
            data: Decoded image bytes
            content_type: MIME type, e.g. image/png

        Returns:
            Public URL of the stored object

        Raises:
            StorageUploadError: If the upload fails for any reason
        """
        try:
            return await self.client.upload_object(self.bucket, path, data, content_type)
        except StorageUploadError:
            logger.error(f"Storage upload rejected: {self.bucket}/{path}")
            raise
        except (ConfigurationMissingError, NetworkFailureError) as e:
            logger.error(f"Storage upload failed: {e}")
            raise StorageUploadError(path, e.message) from e

    def get_public_url(self, path: str) -> str:
        """Public URL of an object in this bucket."""
        return self.client.public_object_url(self.bucket, path)

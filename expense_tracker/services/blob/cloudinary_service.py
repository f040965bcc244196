"""
Attachment Storage using Cloudinary

DESIGN DECISION: We use Cloudinary because:
1. It stores both images and audio (as "video" resources)
2. Reliable cloud infrastructure
3. Simple API
4. Free tier sufficient for personal use

Keys have the form `{root_folder}/{folder}/{owner_id}/{random hex}` and are
used verbatim as Cloudinary public ids.
"""

import secrets
from io import BytesIO
from typing import Optional

import cloudinary
import cloudinary.uploader
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_tracker.config import CloudinarySettings, get_settings
from expense_tracker.models.expense import UploadResult
from expense_tracker.services.blob.interface import (
    VOICE_FOLDER,
    BlobStorageError,
    BlobStorageInterface,
)

logger = structlog.get_logger(__name__)


def resource_type_for_folder(folder: str) -> str:
    """Cloudinary files audio under the "video" resource type."""
    return "video" if folder == VOICE_FOLDER else "image"


class CloudinaryBlobStorage(BlobStorageInterface):
    """Cloudinary-backed attachment storage."""

    def __init__(self, settings: Optional[CloudinarySettings] = None):
        self._settings = settings or get_settings().cloudinary
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def build_key(self, folder: str, owner_id: str) -> str:
        return f"{self._settings.root_folder}/{folder}/{owner_id}/{secrets.token_hex(16)}"

    def _folder_of(self, key: str) -> str:
        """Recover the folder segment of a key built by build_key."""
        parts = key.split("/")
        return parts[-3] if len(parts) >= 3 else ""

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upload(
        self,
        data: bytes,
        folder: str,
        owner_id: str,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        self._configure()
        key = self.build_key(folder, owner_id)

        try:
            result = cloudinary.uploader.upload(
                BytesIO(data),
                public_id=key,
                resource_type=resource_type_for_folder(folder),
                overwrite=False,
            )
        except cloudinary.exceptions.Error as e:
            raise BlobStorageError(f"Cloudinary error: {e}")
        except Exception as e:
            raise BlobStorageError(f"Failed to upload attachment: {e}")

        url = result.get("secure_url", result.get("url", ""))
        if not url:
            raise BlobStorageError("No URL returned from Cloudinary")

        logger.info("attachment_uploaded", key=key, folder=folder, size_bytes=len(data))
        return UploadResult(
            key=result.get("public_id", key),
            url=url,
            folder=folder,
            file_name=filename,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def delete(self, key: str) -> None:
        self._configure()
        try:
            result = cloudinary.uploader.destroy(
                key,
                resource_type=resource_type_for_folder(self._folder_of(key)),
                invalidate=True,
            )
        except cloudinary.exceptions.Error as e:
            raise BlobStorageError(f"Cloudinary error: {e}")
        except Exception as e:
            raise BlobStorageError(f"Failed to delete attachment: {e}")

        # "not found" means it is already gone
        if result.get("result") not in ("ok", "not found"):
            raise BlobStorageError(f"Unexpected Cloudinary response for {key}: {result}")
        logger.info("attachment_deleted", key=key)

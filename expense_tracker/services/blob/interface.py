"""
Abstract Blob Storage Interface

Receipt photos and voice recordings are stored outside the ledger.
The ledger only ever uploads an attachment and later deletes it by key.
"""

from abc import ABC, abstractmethod
from typing import Optional

from expense_tracker.exceptions import UpstreamFailureError
from expense_tracker.models.expense import UploadResult

RECEIPTS_FOLDER = "receipts"
VOICE_FOLDER = "voice"


class BlobStorageInterface(ABC):
    """Upload and delete opaque binary attachments."""

    @abstractmethod
    async def upload(
        self,
        data: bytes,
        folder: str,
        owner_id: str,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Store bytes under a fresh key scoped to folder and owner.

        Args:
            data: Raw file contents
            folder: RECEIPTS_FOLDER or VOICE_FOLDER
            owner_id: Owner the attachment belongs to
            filename: Original file name, informational
            content_type: MIME type, informational

        Returns:
            UploadResult with the key needed for deletion

        Raises:
            BlobStorageError: If the upload fails
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """
        Remove a stored attachment.

        Raises:
            BlobStorageError: If the deletion fails
        """
        pass


class BlobStorageError(UpstreamFailureError):
    """Blob storage backend failed."""

    def __init__(self, message: str):
        super().__init__("blob_storage", message)

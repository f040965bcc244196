"""Attachment storage services package."""

from expense_tracker.services.blob.interface import (
    RECEIPTS_FOLDER,
    VOICE_FOLDER,
    BlobStorageError,
    BlobStorageInterface,
)
from expense_tracker.services.blob.cloudinary_service import (
    CloudinaryBlobStorage,
    resource_type_for_folder,
)

__all__ = [
    "RECEIPTS_FOLDER",
    "VOICE_FOLDER",
    "BlobStorageError",
    "BlobStorageInterface",
    "CloudinaryBlobStorage",
    "resource_type_for_folder",
]

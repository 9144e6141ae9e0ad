import io
import logging
from dataclasses import dataclass

import cloudinary
import cloudinary.api
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from socialdesk.config import settings

logger = logging.getLogger(__name__)

RESOURCE_TYPES = ("auto", "image", "video", "raw")


class MediaStorageError(Exception):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class CloudinaryCredentials:
    cloud_name: str | None
    api_key: str | None
    api_secret: str | None

    @property
    def complete(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def as_options(self) -> dict:
        # Passed per call so several accounts can share one process
        return {"cloud_name": self.cloud_name, "api_key": self.api_key, "api_secret": self.api_secret}


def upload_media(data: bytes, filename: str | None, credentials: CloudinaryCredentials,
                 resource_type: str = "auto", folder: str | None = None) -> dict:
    """Uploads raw bytes and returns {url, public_id, resource_type}."""
    if resource_type not in RESOURCE_TYPES:
        raise MediaStorageError(f"Invalid resource type '{resource_type}'", status_code=400)

    options = {
        "resource_type": resource_type,
        "folder": folder or settings.cloudinary_folder,
        "use_filename": True,
        "unique_filename": True,
        **credentials.as_options(),
    }
    if filename:
        options["filename_override"] = filename

    try:
        result = cloudinary.uploader.upload(io.BytesIO(data), **options)
    except CloudinaryError as e:
        logger.error(f"Cloudinary upload failed: {e}")
        raise MediaStorageError(str(e) or "Failed to upload to Cloudinary") from e

    if not result.get("secure_url"):
        raise MediaStorageError("Cloudinary upload failed: no secure_url in response")

    logger.info(f"Uploaded {result.get('resource_type')} to Cloudinary: {result['public_id']}")
    return {
        "url": result["secure_url"],
        "public_id": result["public_id"],
        "resource_type": result.get("resource_type", resource_type),
    }


def delete_media(public_id: str, credentials: CloudinaryCredentials, resource_type: str | None = None) -> None:
    try:
        result = cloudinary.uploader.destroy(public_id, resource_type=resource_type or "image", **credentials.as_options())
    except CloudinaryError as e:
        raise MediaStorageError(str(e) or "Failed to delete from Cloudinary") from e

    if result.get("result") != "ok":
        raise MediaStorageError(f"Failed to delete file: {result.get('result')}")


def ping(credentials: CloudinaryCredentials) -> bool:
    try:
        result = cloudinary.api.ping(**credentials.as_options())
    except CloudinaryError as e:
        raise MediaStorageError(str(e) or "Failed to connect to Cloudinary") from e

    if result.get("status") != "ok":
        raise MediaStorageError("Cloudinary ping failed")
    return True

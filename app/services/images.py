"""
School image storage: Cloudinary first, local disk as fallback.

Only JPEG, PNG and WebP images up to MAX_UPLOAD_BYTES are accepted. The
stored file name always takes its extension from the accepted image type,
never from the client's file name.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from app.config import (
    CLOUDINARY_API_KEY,
    CLOUDINARY_API_SECRET,
    CLOUDINARY_CLOUD_NAME,
    CLOUDINARY_FOLDER,
    MAX_UPLOAD_BYTES,
    UPLOAD_DIR,
    UPLOAD_TIMEOUT_SECONDS,
    cloudinary_enabled,
)
from app.errors import DependencyFailure, ValidationError
from app.services.cloudinary.client import CloudinaryClient, CloudinaryError

logger = logging.getLogger(__name__)

LOCAL_URL_PREFIX = "/uploads/schools"

_PUBLIC_ID_RE = re.compile(r"upload/v\d+/(.+)\.\w+$")

# MIME type -> (stored extension, accepted file-name extensions)
IMAGE_TYPES: dict[str, tuple[str, frozenset[str]]] = {
    "image/jpeg": (".jpg", frozenset({".jpg", ".jpeg"})),
    "image/jpg": (".jpg", frozenset({".jpg", ".jpeg"})),
    "image/png": (".png", frozenset({".png"})),
    "image/webp": (".webp", frozenset({".webp"})),
}

UNSUPPORTED_IMAGE = "Only image files (JPEG, PNG, WebP) are allowed"


@dataclass
class UploadedImage:
    url: str
    is_cloud: bool


def public_id_from_url(url: str) -> str | None:
    """Extract the Cloudinary public id (folder included) from a hosted URL."""
    match = _PUBLIC_ID_RE.search(url)
    return match.group(1) if match else None


def image_extension(filename: str, content_type: str | None = None) -> str:
    """
    Return the extension an accepted image is stored under.

    Raises ValidationError unless both the declared content type (when
    given) and the file name's extension name the same allowed image type.
    """
    suffix = Path(filename).suffix.lower()
    if content_type:
        mime = content_type.split(";", 1)[0].strip().lower()
        allowed = IMAGE_TYPES.get(mime)
        if allowed is None or suffix not in allowed[1]:
            raise ValidationError(UNSUPPORTED_IMAGE)
        return allowed[0]
    for stored, suffixes in IMAGE_TYPES.values():
        if suffix in suffixes:
            return stored
    raise ValidationError(UNSUPPORTED_IMAGE)


class ImageUploader:
    def __init__(
        self,
        cloud: CloudinaryClient | None,
        upload_dir: Path,
        *,
        folder: str = CLOUDINARY_FOLDER,
        max_bytes: int = MAX_UPLOAD_BYTES,
    ) -> None:
        self._cloud = cloud
        self._upload_dir = upload_dir
        self._folder = folder
        self.max_bytes = max_bytes

    async def close(self) -> None:
        if self._cloud is not None:
            await self._cloud.close()

    def check(self, data: bytes, filename: str, content_type: str | None = None) -> str:
        """Validate size and type; return the extension to store under."""
        if len(data) > self.max_bytes:
            raise ValidationError(
                f"Image is too large (max {self.max_bytes // (1024 * 1024)} MB)"
            )
        return image_extension(filename, content_type)

    async def upload(
        self, data: bytes, filename: str, content_type: str | None = None
    ) -> UploadedImage:
        extension = self.check(data, filename, content_type)
        stored_name = f"{Path(filename).stem or 'image'}{extension}"

        if self._cloud is not None:
            try:
                url = await self._cloud.upload(data, stored_name, folder=self._folder)
                return UploadedImage(url=url, is_cloud=True)
            except CloudinaryError:
                logger.warning("Cloudinary upload failed, falling back to local storage")

        try:
            url = await asyncio.to_thread(self._save_locally, data, extension)
        except OSError as exc:
            logger.exception("Local image save failed")
            raise DependencyFailure("Image upload failed") from exc
        return UploadedImage(url=url, is_cloud=False)

    async def delete(self, url: str) -> bool:
        """Remove a hosted image by URL. Local files are left in place."""
        public_id = public_id_from_url(url)
        if public_id is None:
            return False
        return await self.destroy(public_id)

    async def destroy(self, public_id: str) -> bool:
        if self._cloud is None:
            return False
        try:
            await self._cloud.destroy(public_id)
        except Exception as exc:
            logger.exception("Failed to delete %s from Cloudinary", public_id)
            raise DependencyFailure("Failed to delete image") from exc
        return True

    def _save_locally(self, data: bytes, extension: str) -> str:
        self._upload_dir.mkdir(parents=True, exist_ok=True)
        name = f"school-{int(time.time() * 1000)}-{uuid4().hex[:8]}{extension}"
        (self._upload_dir / name).write_bytes(data)
        logger.info("Saved image locally as %s", name)
        return f"{LOCAL_URL_PREFIX}/{name}"


def build_image_uploader() -> ImageUploader:
    cloud = None
    if cloudinary_enabled():
        cloud = CloudinaryClient(
            CLOUDINARY_CLOUD_NAME,
            CLOUDINARY_API_KEY,
            CLOUDINARY_API_SECRET,
            timeout=UPLOAD_TIMEOUT_SECONDS,
        )
    return ImageUploader(cloud, Path(UPLOAD_DIR))

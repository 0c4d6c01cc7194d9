import asyncio
import logging
import os
from typing import Optional
from urllib.parse import quote, unquote, urlparse

from config import get_settings
from errors import UploadFailed, ValidationFailed

logger = logging.getLogger(__name__)


class FileStorage:
    """Object storage kept on the local filesystem, one directory per bucket."""

    def __init__(self, root_dir: Optional[str] = None, base_url: Optional[str] = None):
        settings = get_settings()
        self.root_dir = os.path.abspath(root_dir or settings.STORAGE_DIR)
        self.base_url = (base_url or settings.PUBLIC_BASE_URL).rstrip("/")

        # Create storage directory if it doesn't exist
        os.makedirs(self.root_dir, exist_ok=True)

    def _object_path(self, bucket: str, path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root_dir, bucket, path))
        bucket_dir = os.path.join(self.root_dir, bucket)
        if os.path.commonpath([full_path, bucket_dir]) != bucket_dir or full_path == bucket_dir:
            raise ValidationFailed(f"Invalid object path: {path}")
        return full_path

    @staticmethod
    def _write(file_path: str, data: bytes):
        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        # "xb" refuses to overwrite an existing object
        with open(file_path, "xb") as buffer:
            buffer.write(data)

    @staticmethod
    def _read(file_path: str) -> bytes:
        with open(file_path, "rb") as buffer:
            return buffer.read()

    async def upload(self, bucket: str, path: str, data: bytes,
                     content_type: str = "application/octet-stream") -> str:
        """
        Store an object under bucket/path

        Returns:
            The object path, for use with get_public_url
        """
        file_path = self._object_path(bucket, path)
        try:
            await asyncio.to_thread(self._write, file_path, data)
        except OSError as e:
            logger.error("Upload of %s/%s failed: %s", bucket, path, e)
            raise UploadFailed(f"Failed to upload {os.path.basename(path)}") from e

        logger.info("Uploaded %s/%s (%d bytes, %s)", bucket, path, len(data), content_type)
        return path

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/files/{bucket}/{quote(path)}"

    async def download(self, bucket: str, path: str) -> bytes:
        file_path = self._object_path(bucket, path)
        try:
            return await asyncio.to_thread(self._read, file_path)
        except FileNotFoundError as e:
            raise ValidationFailed(f"File not found: {path}") from e

    def path_from_url(self, bucket: str, url: str) -> str:
        """Recover the object path from a public URL."""
        parts = urlparse(url).path.split("/")
        if bucket not in parts:
            raise ValidationFailed(f"URL does not point into bucket {bucket}")
        return unquote("/".join(parts[parts.index(bucket) + 1:]))

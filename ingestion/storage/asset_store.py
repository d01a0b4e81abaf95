"""
Image asset storage backends.
Supports a local filesystem directory and S3-compatible object storage.
"""

import asyncio
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from core.config import Settings, settings as default_settings
from core.exceptions import AssetUploadError

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}


@dataclass
class AssetUpload:
    """Result of a successful upload"""
    url: str
    public_id: str
    format: Optional[str]
    bytes: int
    width: Optional[int] = None
    height: Optional[int] = None


class AssetStore(ABC):
    """
    Durable image store.

    Assets are addressed by "{folder}/{asset_id}". Uploading an id that
    already exists replaces it (last write wins), which keeps re-runs safe.
    """

    def __init__(self, public_url: str):
        self.public_url = public_url.rstrip("/")

    @staticmethod
    def public_id(folder: str, asset_id: str) -> str:
        folder = folder.strip("/")
        return f"{folder}/{asset_id}" if folder else asset_id

    @staticmethod
    def format_for(content_type: str) -> Optional[str]:
        mime = (content_type or "").split(";")[0].strip().lower()
        return EXTENSIONS.get(mime)

    def url_for(self, public_id: str) -> str:
        return f"{self.public_url}/{public_id}"

    def is_durable(self, url: str) -> bool:
        """Whether the URL already points into this store"""
        return bool(url) and url.startswith(self.public_url + "/")

    @abstractmethod
    async def upload(
        self,
        content: bytes,
        folder: str,
        asset_id: str,
        content_type: str = "image/jpeg",
        overwrite: bool = True
    ) -> AssetUpload:
        """
        Store image bytes and return the durable URL.

        Raises:
            AssetUploadError: If the store rejects the write
        """
        pass


class LocalAssetStore(AssetStore):
    """Local filesystem storage, served from public_url."""

    def __init__(self, base_path: str, public_url: str):
        super().__init__(public_url)
        self.base_path = Path(base_path)

    def _path(self, public_id: str) -> Path:
        return self.base_path / public_id

    def _write(self, path: Path, content: bytes, overwrite: bool) -> None:
        if path.exists() and not overwrite:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "wb") as f:
            f.write(content)
        os.replace(tmp_path, path)

    async def upload(
        self,
        content: bytes,
        folder: str,
        asset_id: str,
        content_type: str = "image/jpeg",
        overwrite: bool = True
    ) -> AssetUpload:
        public_id = self.public_id(folder, asset_id)
        path = self._path(public_id)
        try:
            await asyncio.to_thread(self._write, path, content, overwrite)
        except OSError as e:
            raise AssetUploadError(
                "Failed to write asset",
                context={"folder": folder, "asset_id": asset_id, "path": str(path)},
                original_exception=e
            )

        return AssetUpload(
            url=self.url_for(public_id),
            public_id=public_id,
            format=self.format_for(content_type),
            bytes=len(content),
        )


class S3AssetStore(AssetStore):
    """S3-compatible cloud storage (AWS S3, DigitalOcean Spaces, MinIO, etc.)."""

    def __init__(
        self,
        endpoint_url: Optional[str],
        bucket_name: str,
        access_key_id: str,
        secret_access_key: str,
        public_url: str,
        region: str = "us-east-1",
        client=None
    ):
        super().__init__(public_url)
        self.bucket_name = bucket_name
        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                region_name=region
            )
        self.s3_client = client

    def _exists(self, key: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError:
            return False

    def _put(self, key: str, content: bytes, content_type: str, overwrite: bool) -> None:
        if not overwrite and self._exists(key):
            return
        self.s3_client.put_object(
            Bucket=self.bucket_name,
            Key=key,
            Body=content,
            ContentType=content_type,
            ACL="public-read"
        )

    async def upload(
        self,
        content: bytes,
        folder: str,
        asset_id: str,
        content_type: str = "image/jpeg",
        overwrite: bool = True
    ) -> AssetUpload:
        public_id = self.public_id(folder, asset_id)
        try:
            await asyncio.to_thread(self._put, public_id, content, content_type, overwrite)
        except (BotoCoreError, ClientError) as e:
            raise AssetUploadError(
                "Image upload failed",
                context={"folder": folder, "asset_id": asset_id, "bucket": self.bucket_name},
                original_exception=e
            )

        return AssetUpload(
            url=self.url_for(public_id),
            public_id=public_id,
            format=self.format_for(content_type),
            bytes=len(content),
        )


def get_asset_store(config: Optional[Settings] = None) -> AssetStore:
    """
    Factory for the configured asset store backend.

    Reads ASSET_STORE_TYPE ('local' or 's3', default 'local') and the
    matching ASSET_STORE_* settings.
    """
    config = config or default_settings
    store_type = config.ASSET_STORE_TYPE.lower()

    if store_type == "s3":
        required = {
            "ASSET_STORE_S3_BUCKET": config.ASSET_STORE_S3_BUCKET,
            "ASSET_STORE_S3_ACCESS_KEY": config.ASSET_STORE_S3_ACCESS_KEY,
            "ASSET_STORE_S3_SECRET_KEY": config.ASSET_STORE_S3_SECRET_KEY,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ValueError(f"S3 asset store requires: {', '.join(missing)}")

        return S3AssetStore(
            endpoint_url=config.ASSET_STORE_S3_ENDPOINT,
            bucket_name=config.ASSET_STORE_S3_BUCKET,
            access_key_id=config.ASSET_STORE_S3_ACCESS_KEY,
            secret_access_key=config.ASSET_STORE_S3_SECRET_KEY,
            public_url=config.ASSET_STORE_PUBLIC_URL,
            region=config.ASSET_STORE_S3_REGION,
        )

    logger.info(f"Using local asset store at {config.ASSET_STORE_LOCAL_PATH}")
    return LocalAssetStore(config.ASSET_STORE_LOCAL_PATH, config.ASSET_STORE_PUBLIC_URL)

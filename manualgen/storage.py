"""
Object Storage
==============
Optional MinIO / S3-compatible upload of screenshots and documents.

Storage is an enhancement, never a requirement: when no endpoint is
configured, or the endpoint cannot be reached, ``put_object`` returns
``None`` and the pipeline keeps its local files only.

Environment:
    MINIO_ENDPOINT      host[:port] (unset = storage disabled)
    MINIO_PORT          optional port appended to the endpoint
    MINIO_USE_SSL       "true" for https
    MINIO_ACCESS_KEY / MINIO_SECRET_KEY
    MINIO_BUCKET_NAME   default "documentacao"
"""

from __future__ import annotations

import io
import logging
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from minio import Minio
from minio.error import S3Error
from urllib3.exceptions import HTTPError as Urllib3HTTPError

logger = logging.getLogger(__name__)

_DEFAULT_BUCKET = "documentacao"
_STORAGE_ERRORS = (S3Error, Urllib3HTTPError, OSError, ValueError)


@dataclass
class StorageConfig:
    endpoint: str = ""
    access_key: str = ""
    secret_key: str = ""
    bucket: str = _DEFAULT_BUCKET
    secure: bool = False

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and self.access_key and self.secret_key)

    @classmethod
    def from_env(cls) -> "StorageConfig":
        endpoint = os.environ.get("MINIO_ENDPOINT", "")
        port = os.environ.get("MINIO_PORT", "")
        if endpoint and port and ":" not in endpoint:
            endpoint = f"{endpoint}:{port}"
        return cls(
            endpoint=endpoint,
            access_key=os.environ.get("MINIO_ACCESS_KEY", ""),
            secret_key=os.environ.get("MINIO_SECRET_KEY", ""),
            bucket=os.environ.get("MINIO_BUCKET_NAME", _DEFAULT_BUCKET),
            secure=os.environ.get("MINIO_USE_SSL", "false").lower() == "true",
        )


class ObjectStorage:
    """Uploads bytes to a bucket, degrading to local-only on any failure."""

    def __init__(self, config: Optional[StorageConfig] = None, client=None):
        self.config = config or StorageConfig()
        self._client = client
        self._available: Optional[bool] = None if (client or self.config.is_configured) else False
        if self._available is False:
            logger.info("[STORAGE] Object storage not configured; keeping files locally")

    @classmethod
    def from_env(cls) -> "ObjectStorage":
        return cls(StorageConfig.from_env())

    @property
    def available(self) -> bool:
        """Probe the endpoint once; the answer is cached for the run."""
        if self._available is None:
            self._available = self._connect()
        return self._available

    def _connect(self) -> bool:
        try:
            if self._client is None:
                self._client = Minio(
                    endpoint=self.config.endpoint,
                    access_key=self.config.access_key,
                    secret_key=self.config.secret_key,
                    secure=self.config.secure,
                )
            if not self._client.bucket_exists(bucket_name=self.config.bucket):
                self._client.make_bucket(bucket_name=self.config.bucket)
                logger.info(f"[STORAGE] Created bucket '{self.config.bucket}'")
        except _STORAGE_ERRORS as exc:
            logger.warning(f"[STORAGE] Endpoint unavailable ({exc}); continuing local-only")
            return False
        logger.info(f"[STORAGE] Connected to {self.config.endpoint}/{self.config.bucket}")
        return True

    def object_url(self, key: str) -> str:
        scheme = "https" if self.config.secure else "http"
        return f"{scheme}://{self.config.endpoint}/{self.config.bucket}/{key}"

    def put_object(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> Optional[str]:
        """Upload *data* under *key*; return its URL, or None when local-only."""
        if not self.available:
            return None
        try:
            self._client.put_object(
                bucket_name=self.config.bucket,
                object_name=key,
                data=io.BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except _STORAGE_ERRORS as exc:
            logger.warning(f"[STORAGE] Upload of {key} failed: {exc}")
            return None
        logger.debug(f"[STORAGE] Uploaded {key} ({len(data)} bytes)")
        return self.object_url(key)

    def upload_file(self, path: str, key: Optional[str] = None) -> Optional[str]:
        file_path = Path(path)
        key = key or file_path.name
        content_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
        try:
            data = file_path.read_bytes()
        except OSError as exc:
            logger.warning(f"[STORAGE] Cannot read {path}: {exc}")
            return None
        return self.put_object(key, data, content_type)

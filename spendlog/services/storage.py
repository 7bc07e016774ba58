"""
Bucketed blob storage on the local filesystem

Files live at ``<root>/<bucket>/<path>``. Downloads outside the service go
through short-lived signed URLs.
"""

import logging
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional, Tuple

from fastapi.concurrency import run_in_threadpool
from jose import JWTError, jwt

from spendlog.config import settings
from spendlog.core.exceptions import NotAuthenticatedError, StorageError, ValidationFailedError

logger = logging.getLogger(__name__)

class LocalBlobStorage:
    def __init__(self, root: Optional[str] = None, secret_key: Optional[str] = None):
        self.root = Path(root or settings.STORAGE_PATH).resolve()
        self.secret_key = secret_key or settings.SECRET_KEY

    def _resolve(self, bucket: str, path: str) -> Path:
        """Absolute path for an object; anything escaping the bucket is rejected"""
        if not bucket or not path or "\x00" in path:
            raise ValidationFailedError("Invalid storage path")
        bucket_root = (self.root / bucket).resolve()
        target = (bucket_root / path).resolve()
        if bucket_root != target and bucket_root not in target.parents:
            raise ValidationFailedError("Invalid storage path")
        return target

    def _write(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        target = self._resolve(bucket, path)
        try:
            await run_in_threadpool(self._write, target, data)
        except OSError as e:
            logger.error("Upload to %s/%s failed: %s", bucket, path, e)
            raise StorageError(f"Failed to upload file: {e}")
        logger.info("Stored %s/%s (%d bytes)", bucket, path, len(data))
        return path

    async def download(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        try:
            return await run_in_threadpool(target.read_bytes)
        except OSError as e:
            logger.error("Download of %s/%s failed: %s", bucket, path, e)
            raise StorageError("Failed to download file from storage")

    async def remove(self, bucket: str, paths: Iterable[str]) -> None:
        """Delete objects; already-missing ones are ignored"""
        for path in paths:
            target = self._resolve(bucket, path)
            try:
                await run_in_threadpool(os.remove, target)
            except FileNotFoundError:
                logger.debug("%s/%s already removed", bucket, path)
            except OSError as e:
                logger.error("Remove of %s/%s failed: %s", bucket, path, e)
                raise StorageError(f"Failed to remove file: {e}")

    def create_signed_url(self, bucket: str, path: str, expires_in: Optional[int] = None) -> str:
        self._resolve(bucket, path)
        expire = datetime.utcnow() + timedelta(
            seconds=expires_in or settings.SIGNED_URL_EXPIRE_SECONDS
        )
        token = jwt.encode(
            {"bucket": bucket, "path": path, "exp": expire},
            self.secret_key,
            algorithm=settings.ALGORITHM
        )
        return f"{settings.API_V1_STR}/files/{bucket}/{path}?token={token}"

    def verify_signed_token(self, token: str) -> Tuple[str, str]:
        """Returns (bucket, path) for a valid, unexpired token"""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[settings.ALGORITHM])
        except JWTError:
            raise NotAuthenticatedError("Invalid or expired link")

        bucket, path = payload.get("bucket"), payload.get("path")
        if not bucket or not path:
            raise NotAuthenticatedError("Invalid or expired link")
        self._resolve(bucket, path)
        return bucket, path

storage = LocalBlobStorage()

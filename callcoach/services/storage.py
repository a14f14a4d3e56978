"""Storage for uploaded call recordings (S3 or the local filesystem)."""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath
from typing import Any
from uuid import uuid4

from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from callcoach.config.settings import StorageConfig
from callcoach.services.aws import create_boto3_client

S3_SCHEME = "s3://"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class StorageError(RuntimeError):
    """Raised when audio persistence or retrieval fails."""


def _safe_segment(value: str) -> str:
    return _UNSAFE_CHARS.sub("_", value).strip("._") or "anonymous"


def _split_s3_ref(storage_ref: str) -> tuple[str, str]:
    bucket, _, key = storage_ref[len(S3_SCHEME) :].partition("/")
    if not bucket or not key:
        raise StorageError(f"Malformed S3 reference: {storage_ref}")
    return bucket, key


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class AudioStorage:
    """Persist and retrieve call audio by opaque storage reference."""

    def __init__(self, config: StorageConfig, *, s3_client: Any | None = None) -> None:
        self._config = config
        self._s3_client = s3_client

    @property
    def _s3(self) -> Any:
        if self._s3_client is None:
            self._s3_client = create_boto3_client("s3", config=self._config)
        return self._s3_client

    async def save_upload(
        self,
        user_id: str,
        filename: str,
        data: bytes,
        content_type: str,
    ) -> tuple[str, str]:
        """Store an upload and return ``(storage_ref, stored_file_name)``."""

        if not data:
            raise StorageError("Audio payload for upload was empty.")

        suffix = PurePosixPath(filename or "").suffix.lower()
        stored_name = f"call-{uuid4().hex}{_UNSAFE_CHARS.sub('', suffix)}"
        owner = _safe_segment(user_id)

        if self._config.backend == "s3":
            bucket = self._config.bucket_name
            if not bucket:
                raise StorageError("S3 bucket name is not configured.")
            key = f"calls/{owner}/{stored_name}"
            try:
                await run_in_threadpool(
                    self._s3.put_object,
                    Bucket=bucket,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                )
            except (BotoCoreError, ClientError) as exc:
                raise StorageError(f"Failed to upload call audio: {exc}") from exc
            return f"{S3_SCHEME}{bucket}/{key}", stored_name

        path = Path(self._config.local_dir) / owner / stored_name
        try:
            await run_in_threadpool(_write_file, path, data)
        except OSError as exc:
            raise StorageError(f"Failed to write call audio: {exc}") from exc
        return str(path), stored_name

    async def load(self, storage_ref: str) -> bytes:
        if storage_ref.startswith(S3_SCHEME):
            bucket, key = _split_s3_ref(storage_ref)

            def _download() -> bytes:
                response = self._s3.get_object(Bucket=bucket, Key=key)
                return response["Body"].read()

            try:
                return await run_in_threadpool(_download)
            except (BotoCoreError, ClientError) as exc:
                raise StorageError(f"Failed to download call audio: {exc}") from exc

        try:
            return await run_in_threadpool(Path(storage_ref).read_bytes)
        except OSError as exc:
            raise StorageError(f"Audio file not found: {storage_ref}") from exc

    async def delete(self, storage_ref: str) -> None:
        if storage_ref.startswith(S3_SCHEME):
            bucket, key = _split_s3_ref(storage_ref)
            try:
                await run_in_threadpool(self._s3.delete_object, Bucket=bucket, Key=key)
            except (BotoCoreError, ClientError) as exc:
                raise StorageError(f"Failed to delete call audio: {exc}") from exc
            return

        try:
            await run_in_threadpool(Path(storage_ref).unlink, missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Failed to delete call audio: {exc}") from exc


__all__ = ["AudioStorage", "StorageError", "S3_SCHEME"]

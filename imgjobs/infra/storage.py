import asyncio
from typing import Protocol

from botocore.exceptions import BotoCoreError, ClientError

from imgjobs.core.exceptions import ObjectNotFoundError, StorageError

_MISSING_CODES = frozenset(["NoSuchKey", "404", "NotFound"])


class BlobStore(Protocol):
    """Object storage used for job input and output."""

    async def get(self, key: str) -> bytes:
        ...

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def signed_url(self, key: str) -> str:
        ...


class S3BlobStore:
    """BlobStore backed by a single S3 (or S3 compatible) bucket."""

    def __init__(self, client, bucket: str, url_expires_s: int = 900):
        self._client = client
        self.bucket = bucket
        self.url_expires_s = url_expires_s

    async def get(self, key: str) -> bytes:
        return await asyncio.to_thread(self._get, key)

    def _get(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in _MISSING_CODES:
                raise ObjectNotFoundError(
                    f"Object not found: {key}", details={"key": key}
                ) from e
            raise StorageError(
                f"Failed to fetch object: {key}", details={"key": key, "code": code}
            ) from e
        except BotoCoreError as e:
            raise StorageError(
                f"Failed to fetch object: {key}", details={"key": key}
            ) from e

        body = response.get("Body")
        if body is None:
            raise StorageError(f"Empty response body for {key}", details={"key": key})
        try:
            return body.read()
        except (BotoCoreError, OSError) as e:
            raise StorageError(
                f"Failed to read object body: {key}", details={"key": key}
            ) from e
        finally:
            body.close()

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(
                f"Failed to upload object: {key}", details={"key": key}
            ) from e

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.delete_object, Bucket=self.bucket, Key=key
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(
                f"Failed to delete object: {key}", details={"key": key}
            ) from e

    async def signed_url(self, key: str) -> str:
        try:
            return await asyncio.to_thread(
                self._client.generate_presigned_url,
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.url_expires_s,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(
                f"Failed to sign download URL: {key}", details={"key": key}
            ) from e

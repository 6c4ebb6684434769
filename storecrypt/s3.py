"""S3-compatible object store backend (AWS S3, MinIO, ...)."""

import logging
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Set

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from . import paths as pathutil
from .base import FileInfo, StorageBackend
from .context import Context, check
from .errors import NotFoundError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_PART_SIZE = 5 * 1024 * 1024
DEFAULT_CONCURRENCY = 2
DELETE_BATCH_SIZE = 1000

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def _error_code(exc: Exception) -> str:
    response = getattr(exc, "response", None) or {}
    error = response.get("Error") or {}
    return str(error.get("Code") or "")


def _batched(items: List[Any], size: int) -> Iterator[List[Any]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class S3Storage(StorageBackend):
    """Storage backend for S3-compatible object stores.

    Keys are `prefix/path`. S3 has no directories, so prefix operations
    work on key prefixes. Deletes of a prefix remove every object version
    and delete marker, which fully clears versioned buckets.

    Example:
        ```python
        client = boto3.client("s3")
        storage = S3Storage(client, bucket="backups", prefix="wal")
        storage.put("0001", open("segment", "rb"))

        # MinIO
        storage = S3Storage.from_config(
            bucket="backups",
            endpoint_url="http://localhost:9000",
            access_key="minio",
            secret_key="minio123",
        )
        ```

    Args:
        client: boto3 S3 client
        bucket: Bucket name
        prefix: Key prefix all paths live under
        part_size: Multipart upload part size in bytes
        max_concurrency: Parallel part uploads per put
    """

    def __init__(
        self,
        client,
        bucket: str,
        prefix: str = "",
        part_size: int = DEFAULT_PART_SIZE,
        max_concurrency: int = DEFAULT_CONCURRENCY,
    ):
        self.client = client
        self.bucket = bucket
        self.prefix = pathutil.clean(prefix)
        self.transfer_config = TransferConfig(
            multipart_threshold=part_size,
            multipart_chunksize=part_size,
            max_concurrency=max_concurrency,
        )

    @classmethod
    def from_config(
        cls,
        bucket: str,
        prefix: str = "",
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region: str = "us-east-1",
        use_ssl: Optional[bool] = None,
        url_style: str = "path",
        **kwargs,
    ) -> "S3Storage":
        """Build the boto3 client from connection settings and wrap it.

        Args:
            bucket: Bucket name
            prefix: Key prefix
            endpoint_url: Custom endpoint (MinIO etc.), None for AWS
            access_key: Access key id (None = default credential chain)
            secret_key: Secret access key
            region: Region name
            use_ssl: Use TLS (default: inferred from endpoint_url)
            url_style: "path" or "virtual" addressing
            **kwargs: Passed to S3Storage (part_size, max_concurrency)
        """
        if use_ssl is None:
            use_ssl = not endpoint_url or endpoint_url.startswith("https://")

        client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            use_ssl=use_ssl,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=Config(s3={"addressing_style": url_style}),
        )
        return cls(client, bucket, prefix=prefix, **kwargs)

    def _key(self, path: str) -> str:
        return pathutil.join(self.prefix, path)

    def _relative(self, key: str) -> str:
        return pathutil.relative_to(key, self.prefix)

    def _owns(self, key: str) -> bool:
        """True if `key` lies under this storage's prefix."""
        return not self.prefix or key.startswith(self.prefix + "/")

    def _list_prefix(self, prefix: str) -> str:
        # The storage root lists as a directory so sibling prefixes
        # ("cluster-10" next to "cluster-1") are not matched
        if self.prefix and not pathutil.clean(prefix):
            return self.prefix + "/"
        return self._key(prefix)

    def _translate(self, exc: Exception, key: str, action: str) -> Exception:
        if _error_code(exc) in NOT_FOUND_CODES:
            return NotFoundError(f"Object not found: s3://{self.bucket}/{key}")
        return TransportError(f"Failed to {action} s3://{self.bucket}/{key}: {exc}")

    def put(self, path: str, stream: BinaryIO, ctx: Optional[Context] = None) -> None:
        check(ctx)
        key = self._key(path)
        try:
            self.client.upload_fileobj(stream, self.bucket, key, Config=self.transfer_config)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key, "upload") from e
        logger.debug(f"Uploaded s3://{self.bucket}/{key}")

    def get(self, path: str, ctx: Optional[Context] = None) -> BinaryIO:
        check(ctx)
        key = self._key(path)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key, "read") from e
        return response["Body"]

    def _iter_objects(self, prefix: str, ctx: Optional[Context]) -> Iterator[Dict[str, Any]]:
        key_prefix = self._list_prefix(prefix)
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=key_prefix):
                check(ctx)
                for obj in page.get("Contents", []) or []:
                    if self._owns(obj["Key"]):
                        yield obj
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key_prefix, "list") from e

    def list(self, prefix: str, ctx: Optional[Context] = None) -> List[str]:
        check(ctx)
        return [self._relative(obj["Key"]) for obj in self._iter_objects(prefix, ctx)]

    def list_info(self, prefix: str, ctx: Optional[Context] = None) -> List[FileInfo]:
        check(ctx)
        return [
            FileInfo(
                path=self._relative(obj["Key"]),
                mod_time=obj["LastModified"],
                size=obj.get("Size", 0),
            )
            for obj in self._iter_objects(prefix, ctx)
        ]

    def delete(self, path: str, ctx: Optional[Context] = None) -> None:
        # DeleteObject succeeds for missing keys, so probe first
        if not self.exists(path, ctx=ctx):
            raise NotFoundError(f"Object not found: s3://{self.bucket}/{self._key(path)}")
        check(ctx)
        key = self._key(path)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key, "delete") from e
        logger.debug(f"Deleted s3://{self.bucket}/{key}")

    def _collect_versions(self, key_prefix: str, ctx: Optional[Context]) -> List[Dict[str, str]]:
        paginator = self.client.get_paginator("list_object_versions")
        identifiers = []
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=key_prefix):
                check(ctx)
                for version in page.get("Versions", []) or []:
                    identifiers.append({"Key": version["Key"], "VersionId": version["VersionId"]})
                for marker in page.get("DeleteMarkers", []) or []:
                    identifiers.append({"Key": marker["Key"], "VersionId": marker["VersionId"]})
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key_prefix, "list versions under") from e
        return identifiers

    def _delete_identifiers(self, identifiers: List[Dict[str, str]], ctx: Optional[Context]):
        for batch in _batched(identifiers, DELETE_BATCH_SIZE):
            check(ctx)
            try:
                self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": batch, "Quiet": True},
                )
            except (ClientError, BotoCoreError) as e:
                raise TransportError(
                    f"Failed to delete {len(batch)} objects from s3://{self.bucket}: {e}"
                ) from e
        if identifiers:
            logger.debug(f"Deleted {len(identifiers)} object versions from s3://{self.bucket}")

    def delete_all(self, prefix: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        key_prefix = self._key(prefix)
        if key_prefix:
            key_prefix += "/"
        self._delete_identifiers(self._collect_versions(key_prefix, ctx), ctx)

    def delete_dir(self, path: str, ctx: Optional[Context] = None) -> None:
        self.delete_all(path, ctx=ctx)
        check(ctx)
        key = self._key(path)
        if not key:
            return
        # Removes a directory placeholder object, if one exists
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            translated = self._translate(e, key, "delete")
            if not isinstance(translated, NotFoundError):
                raise translated from e

    def delete_all_bulk(self, paths: List[str], ctx: Optional[Context] = None) -> None:
        check(ctx)
        identifiers = []
        for path in paths:
            key = self._key(path)
            identifiers.extend(
                ident for ident in self._collect_versions(key, ctx)
                if ident["Key"] == key or ident["Key"].startswith(key + "/")
            )
        self._delete_identifiers(identifiers, ctx)

    def exists(self, path: str, ctx: Optional[Context] = None) -> bool:
        check(ctx)
        key = self._key(path)
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except (ClientError, BotoCoreError) as e:
            translated = self._translate(e, key, "stat")
            if isinstance(translated, NotFoundError):
                return False
            raise translated from e

    def list_top_level_dirs(self, prefix: str, ctx: Optional[Context] = None) -> Set[str]:
        check(ctx)
        key_prefix = pathutil.dir_prefix(self._key(prefix))
        paginator = self.client.get_paginator("list_objects_v2")
        dirs = set()
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=key_prefix, Delimiter="/"):
                check(ctx)
                for common in page.get("CommonPrefixes", []) or []:
                    if common.get("Prefix") and self._owns(common["Prefix"]):
                        dirs.add(self._relative(common["Prefix"].rstrip("/")))
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key_prefix, "list") from e
        return dirs

    def rename(self, old_path: str, new_path: str, ctx: Optional[Context] = None) -> None:
        """Copy then delete. Not atomic; the source's older versions stay."""
        check(ctx)
        src_key = self._key(old_path)
        dst_key = self._key(new_path)
        if src_key == dst_key:
            return
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                CopySource={"Bucket": self.bucket, "Key": src_key},
                Key=dst_key,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, src_key, "copy") from e
        check(ctx)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=src_key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, src_key, "delete") from e
        logger.debug(f"Renamed s3://{self.bucket}/{src_key} -> {dst_key}")

    def __repr__(self) -> str:
        return f"S3Storage(bucket='{self.bucket}', prefix='{self.prefix}')"

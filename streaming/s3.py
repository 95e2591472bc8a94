import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator
from urllib.parse import unquote, urlparse

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import EmptyObject, InvalidRange, NotFound, StoreFailure
from .utils import (
    MANIFEST_CONTENT_TYPE,
    SEGMENT_CONTENT_TYPE,
    hls_key,
    hls_prefix,
    thumbnail_key,
    video_content_type,
    video_key,
)

log = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _boto_config() -> BotoConfig:
    return BotoConfig(
        s3={"addressing_style": "path"},
        signature_version="s3v4",
    )


def _client(endpoint_url: str | None):
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client("s3", endpoint_url=endpoint_url, config=_boto_config())


def get_s3_client():
    """
    Client for server-side reads and writes. S3_ENDPOINT_URL points at MinIO
    locally and is unset for AWS.
    """
    return _client(settings.S3_ENDPOINT_URL)


def get_presign_client():
    """
    Client used only to sign URLs handed to players. Signs against
    S3_PUBLIC_ENDPOINT so the host in the URL is one the player can reach.
    """
    return _client(settings.S3_PUBLIC_ENDPOINT or settings.S3_ENDPOINT_URL)


@dataclass(frozen=True)
class ObjectMetadata:
    size: int
    content_type: str | None
    last_modified: datetime | None
    etag: str | None = None


def _is_missing(exc: ClientError) -> bool:
    code = str(exc.response.get("Error", {}).get("Code", ""))
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in _MISSING_CODES or status == 404


class ObjectStore:
    """
    Thin wrapper around an S3/MinIO bucket.

    Every botocore error is translated: a missing key becomes NotFound,
    anything else StoreFailure. No retries are attempted here.
    """

    def __init__(
        self,
        client,
        bucket: str,
        *,
        public_base_url: str | None = None,
        region: str = "us-east-1",
        presign_client=None,
        chunk_size: int = 1024 * 1024,
        presign_ttl: int = 3600,
    ):
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.region = region
        self.presign_client = presign_client or client
        self.chunk_size = chunk_size
        self.presign_ttl = presign_ttl

    @classmethod
    def from_settings(cls) -> "ObjectStore":
        return cls(
            get_s3_client(),
            settings.S3_BUCKET,
            public_base_url=settings.S3_PUBLIC_ENDPOINT,
            region=settings.S3_REGION,
            presign_client=get_presign_client(),
            chunk_size=settings.S3_STREAM_CHUNK_SIZE,
            presign_ttl=settings.S3_PRESIGN_EXPIRE_SECONDS,
        )

    # -------------------------------------------------
    # URLs
    # -------------------------------------------------
    def public_url(self, key: str) -> str:
        """
        Direct object URL. Path style against the public endpoint when one is
        configured (MinIO), AWS virtual-hosted style otherwise.
        """
        if self.public_base_url:
            return f"{self.public_base_url}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def key_from_url(self, url: str | None) -> str | None:
        """
        Extract the object key from a stored URL. Returns None when the URL
        cannot be parsed or has no path.
        """
        if not url:
            return None
        try:
            parsed = urlparse(url)
        except ValueError:
            return None
        if not parsed.scheme or not parsed.netloc:
            return None
        key = unquote(parsed.path).lstrip("/")
        bucket_prefix = f"{self.bucket}/"
        if key.startswith(bucket_prefix) and not parsed.netloc.startswith(f"{self.bucket}."):
            key = key[len(bucket_prefix):]
        return key or None

    def presigned_url(self, key: str, ttl_seconds: int | None = None) -> str:
        """
        Create a presigned GET URL to download an object.
        """
        try:
            return self.presign_client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds or self.presign_ttl,
                HttpMethod="GET",
            )
        except (BotoCoreError, ClientError) as e:
            raise StoreFailure(f"Could not presign {key}: {e}") from e

    # -------------------------------------------------
    # Writes
    # -------------------------------------------------
    def upload(self, data: bytes, key: str, content_type: str) -> str:
        """Put an object (overwrites) and return its public URL."""
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            raise StoreFailure(f"Upload failed for {key}: {e}") from e
        log.debug("Uploaded %s (%d bytes, %s)", key, len(data), content_type)
        return self.public_url(key)

    def upload_file(self, local_path, key: str, content_type: str | None = None) -> str:
        """
        Upload a single file from disk with an optional Content-Type.
        """
        extra = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self.client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra or None)
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            raise StoreFailure(f"Upload failed for {key}: {e}") from e
        return self.public_url(key)

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StoreFailure(f"Delete failed for {key}: {e}") from e

    def delete_prefix(self, prefix: str) -> int:
        """Delete every object under prefix. Returns the number of keys removed."""
        deleted = 0
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys = [{"Key": obj["Key"]} for obj in page.get("Contents", [])]
                # delete_objects accepts at most 1000 keys per call
                for i in range(0, len(keys), 1000):
                    batch = keys[i:i + 1000]
                    self.client.delete_objects(Bucket=self.bucket, Delete={"Objects": batch, "Quiet": True})
                    deleted += len(batch)
        except (BotoCoreError, ClientError) as e:
            raise StoreFailure(f"Delete failed under {prefix}: {e}") from e
        return deleted

    # -------------------------------------------------
    # Reads
    # -------------------------------------------------
    def head_metadata(self, key: str) -> ObjectMetadata:
        try:
            resp = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                raise NotFound(f"Object not found: {key}") from e
            raise StoreFailure(f"Head failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StoreFailure(f"Head failed for {key}: {e}") from e
        return ObjectMetadata(
            size=int(resp.get("ContentLength") or 0),
            content_type=resp.get("ContentType") or None,
            last_modified=resp.get("LastModified"),
            etag=resp.get("ETag"),
        )

    def _get_object(self, key: str, byte_range: str | None = None) -> dict:
        params = {"Bucket": self.bucket, "Key": key}
        if byte_range:
            params["Range"] = byte_range
        try:
            return self.client.get_object(**params)
        except ClientError as e:
            if _is_missing(e):
                raise NotFound(f"Object not found: {key}") from e
            if e.response.get("Error", {}).get("Code") == "InvalidRange":
                raise InvalidRange(f"Range not satisfiable for {key}: {byte_range}") from e
            raise StoreFailure(f"Download failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StoreFailure(f"Download failed for {key}: {e}") from e

    def open_range(self, key: str, start: int | None = None, end: int | None = None) -> Iterator[bytes]:
        """
        Open a lazy byte stream over [start, end] (inclusive), or the whole
        object when no window is given. The S3 request is issued immediately
        so missing keys fail here rather than mid-response. A zero-byte
        object raises EmptyObject whether or not a window was asked for.
        """
        byte_range = None
        if start is not None or end is not None:
            byte_range = f"bytes={start or 0}-{'' if end is None else end}"
        try:
            resp = self._get_object(key, byte_range)
        except InvalidRange as e:
            # any window over a zero-byte object is rejected by S3
            meta = self.head_metadata(key)
            if meta.size == 0:
                raise EmptyObject(f"Empty file: {key}") from e
            e.total = meta.size
            raise
        body = resp.get("Body")
        if body is None:
            raise StoreFailure(f"No body in S3 response for {key}")
        if not byte_range and int(resp.get("ContentLength") or 0) == 0:
            body.close()
            raise EmptyObject(f"Empty file: {key}")
        return self._iter_body(body)

    def _iter_body(self, body) -> Iterator[bytes]:
        try:
            for chunk in body.iter_chunks(chunk_size=self.chunk_size):
                if chunk:
                    yield chunk
        finally:
            body.close()

    def read_text(self, key: str, encoding: str = "utf-8") -> str:
        """Read a whole (small) object, e.g. a manifest."""
        resp = self._get_object(key)
        body = resp["Body"]
        try:
            return body.read().decode(encoding)
        except (BotoCoreError, ClientError) as e:
            raise StoreFailure(f"Download failed for {key}: {e}") from e
        finally:
            body.close()

    def download_to_file(self, key: str, local_path) -> None:
        try:
            self.client.download_file(self.bucket, key, str(local_path))
        except ClientError as e:
            if _is_missing(e):
                raise NotFound(f"Object not found: {key}") from e
            raise StoreFailure(f"Download failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise StoreFailure(f"Download failed for {key}: {e}") from e

    # -------------------------------------------------
    # Episode key scheme
    # -------------------------------------------------
    def upload_video(self, data: bytes, episode_id: str, filename: str) -> str:
        return self.upload(data, video_key(episode_id, filename), video_content_type(filename))

    def upload_thumbnail(self, data: bytes, episode_id: str, filename: str, content_type: str) -> str:
        return self.upload(data, thumbnail_key(episode_id, filename), content_type)

    def upload_hls_manifest(self, manifest: str, episode_id: str, filename: str) -> str:
        """filename is relative to the episode folder, e.g. 'master.m3u8' or '360p/360p.m3u8'."""
        return self.upload(manifest.encode("utf-8"), hls_key(episode_id, filename), MANIFEST_CONTENT_TYPE)

    def upload_hls_segment(self, local_path, episode_id: str, quality: str, segment_name: str) -> str:
        return self.upload_file(local_path, hls_key(episode_id, f"{quality}/{segment_name}"), SEGMENT_CONTENT_TYPE)

    def hls_manifest_url(self, episode_id: str, filename: str) -> str:
        return self.public_url(hls_key(episode_id, filename))

    def hls_segment_url(self, episode_id: str, quality: str, segment_name: str) -> str:
        return self.public_url(hls_key(episode_id, f"{quality}/{segment_name}"))

    def delete_hls_files(self, episode_id: str) -> int:
        removed = self.delete_prefix(hls_prefix(episode_id))
        log.info("Deleted %d HLS objects for episode %s", removed, episode_id)
        return removed

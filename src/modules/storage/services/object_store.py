"""
Object storage backends

The encrypted blob store only needs ``put``/``get``/``delete`` keyed by URL,
so local disk (development, tests) and S3 (deployment) are interchangeable.
"""
import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote, urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from modules.common.errors import NotFoundError, UpstreamError, ValidationError

logger = logging.getLogger(__name__)


def generate_object_key(name: str) -> str:
    """
    Generates a collision-free key for a named object

    Format: {year}/{month}/{uuid}-{basename}
    """
    now = datetime.utcnow()
    basename = os.path.basename(name) or "blob"
    return f"{now:%Y}/{now:%m}/{uuid.uuid4().hex}-{basename}"


class ObjectStore:
    """Interface shared by the storage backends"""

    def put(self, name: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        raise NotImplementedError

    def get(self, url: str) -> bytes:
        raise NotImplementedError

    def delete(self, url: str) -> None:
        raise NotImplementedError


class LocalObjectStore(ObjectStore):
    """Stores objects as files below ``base_dir`` and addresses them with file:// URLs"""

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir).resolve()
        os.makedirs(self.base_dir, exist_ok=True)

    def _path_for(self, url: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise ValidationError(f"Not a local object URL: {url}")
        path = Path(unquote(parsed.path)).resolve()
        if self.base_dir not in path.parents:
            raise ValidationError("Object URL points outside the storage directory")
        return path

    def put(self, name: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        path = self.base_dir / generate_object_key(name)
        os.makedirs(path.parent, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        logger.info(f"Stored object {path.name} ({len(data)} bytes)")
        return "file://" + quote(str(path))

    def get(self, url: str) -> bytes:
        path = self._path_for(url)
        if not path.exists():
            raise NotFoundError("Stored object not found", {"url": url})
        with open(path, "rb") as f:
            return f.read()

    def delete(self, url: str) -> None:
        path = self._path_for(url)
        if path.exists():
            os.remove(path)


class S3ObjectStore(ObjectStore):
    """AWS S3 backend, objects are addressed by their virtual-hosted URL"""

    def __init__(
        self,
        bucket_name: str,
        region: str = "us-east-1",
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        client=None,
    ):
        self.bucket_name = bucket_name
        self.region = region
        self.s3_client = client or boto3.client(
            "s3",
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )
        self.base_url = f"https://{bucket_name}.s3.{region}.amazonaws.com/"

    def _key_for(self, url: str) -> str:
        if not url.startswith(self.base_url):
            raise ValidationError(f"URL does not belong to bucket {self.bucket_name}")
        return unquote(url[len(self.base_url):])

    def put(self, name: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        key = generate_object_key(name)
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
                ServerSideEncryption="AES256",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload error for {key}: {e}")
            raise UpstreamError("Failed to upload object to storage")
        logger.info(f"Uploaded object to S3: {key}")
        return self.base_url + quote(key)

    def get(self, url: str) -> bytes:
        key = self._key_for(url)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=key)
            return response["Body"].read()
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code in ("NoSuchKey", "404"):
                raise NotFoundError("Stored object not found", {"url": url})
            logger.error(f"S3 download error ({error_code}) for {key}")
            raise UpstreamError("Failed to download object from storage")
        except BotoCoreError as e:
            logger.error(f"S3 download error for {key}: {e}")
            raise UpstreamError("Failed to download object from storage")

    def delete(self, url: str) -> None:
        key = self._key_for(url)
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 delete error for {key}: {e}")
            raise UpstreamError("Failed to delete object from storage")

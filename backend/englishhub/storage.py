# R2 (S3 compatible) object storage: lesson asset upload/delete and bucket listing

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterator, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import UpstreamError
from .settings import settings

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
	".pdf": "application/pdf",
	".mp3": "audio/mpeg",
	".mp4": "video/mp4",
	".wav": "audio/wav",
	".ogg": "audio/ogg",
	".png": "image/png",
	".jpg": "image/jpeg",
	".jpeg": "image/jpeg",
	".gif": "image/gif",
	".webp": "image/webp",
}


def get_content_type(filename: str) -> str:
	ext = os.path.splitext(filename or "")[1].lower()
	return CONTENT_TYPES.get(ext, "application/octet-stream")


def make_client() -> Any:
	return boto3.client(
		"s3",
		region_name="auto",
		endpoint_url=settings.r2_endpoint_url,
		aws_access_key_id=settings.r2_access_key_id,
		aws_secret_access_key=settings.r2_secret_access_key,
		config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
	)


@dataclass(frozen=True)
class StoredObject:
	key: str
	url: str


class R2Storage:
	"""Thin wrapper over a boto3 S3 client bound to one bucket."""

	def __init__(self, client: Any = None, *, bucket: Optional[str] = None, public_url: Optional[str] = None) -> None:
		self.client = client if client is not None else make_client()
		self.bucket = bucket or settings.r2_bucket_name
		self.public_url = (settings.r2_public_url if public_url is None else public_url).rstrip("/")

	def url_for(self, key: str) -> str:
		return f"{self.public_url}/{key}"

	def upload_file(
		self,
		data: bytes,
		original_name: str,
		folder: str = "uploads",
		content_type: str = "application/octet-stream",
	) -> StoredObject:
		ext = os.path.splitext(original_name or "")[1].lower()
		key = f"{folder.strip('/')}/{uuid.uuid4().hex}{ext}"
		try:
			self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
		except (BotoCoreError, ClientError) as e:
			logger.error("upload of %s to %s failed: %s", original_name, key, e)
			raise UpstreamError(f"object storage upload failed: {e}") from e
		logger.info("uploaded %s (%d bytes) as %s", original_name, len(data), key)
		return StoredObject(key=key, url=self.url_for(key))

	def delete_file(self, key: str) -> None:
		try:
			self.client.delete_object(Bucket=self.bucket, Key=key)
		except (BotoCoreError, ClientError) as e:
			logger.error("delete of %s failed: %s", key, e)
			raise UpstreamError(f"object storage delete failed: {e}") from e
		logger.info("deleted %s", key)

	def iter_objects(self, prefix: str = "") -> Iterator[dict]:
		"""Yield every object summary in the bucket, following continuation tokens."""
		paginator = self.client.get_paginator("list_objects_v2")
		params = {"Bucket": self.bucket}
		if prefix:
			params["Prefix"] = prefix
		try:
			for page in paginator.paginate(**params):
				for obj in page.get("Contents", []):
					yield obj
		except (BotoCoreError, ClientError) as e:
			raise UpstreamError(f"listing bucket {self.bucket} failed: {e}") from e


@lru_cache(maxsize=1)
def get_storage() -> R2Storage:
	return R2Storage()

# reqflow/services/storage.py
from functools import lru_cache
import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ConnectionClosedError, EndpointConnectionError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
import structlog

from reqflow.config import settings

logger = structlog.get_logger()
_std_logger = logging.getLogger(__name__)


@retry(
    retry=retry_if_exception_type((EndpointConnectionError, ConnectionClosedError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    before_sleep=before_sleep_log(_std_logger, logging.WARNING),
    reraise=True,
)
def _put_object(s3, **kwargs):
    return s3.put_object(**kwargs)


class DocumentStorage:
    """S3-compatible object storage for requisition documents."""

    def __init__(
        self,
        bucket: Optional[str] = None,
        public_base_url: Optional[str] = None,
        client=None,
    ):
        self.s3 = client or boto3.client(
            "s3",
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            aws_access_key_id=settings.STORAGE_ACCESS_KEY_ID,
            aws_secret_access_key=settings.STORAGE_SECRET_ACCESS_KEY,
            config=Config(signature_version="s3v4"),
            region_name=settings.STORAGE_REGION,
        )
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.public_base_url = public_base_url or settings.STORAGE_PUBLIC_BASE_URL

    def upload(
        self, file_bytes: bytes, key: str, content_type: str = "application/octet-stream"
    ) -> str:
        _put_object(
            self.s3, Bucket=self.bucket, Key=key, Body=file_bytes, ContentType=content_type
        )
        logger.info("storage_uploaded", bucket=self.bucket, key=key, size=len(file_bytes))
        return key

    def public_url(self, key: str, expires_in: int = 3600) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        return self.s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires_in,
        )

    def delete(self, key: str):
        self.s3.delete_object(Bucket=self.bucket, Key=key)
        logger.info("storage_deleted", bucket=self.bucket, key=key)


@lru_cache()
def get_storage() -> DocumentStorage:
    return DocumentStorage()

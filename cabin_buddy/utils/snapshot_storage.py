"""
Snapshot storage on Cloudflare R2.
Snapshots are private JSON objects addressed by path: ``{organization_id}/...json``.
"""

import logging
from typing import Optional

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from ..config import R2_ACCESS_KEY_ID, R2_ACCOUNT_ID, R2_BUCKET_NAME, R2_SECRET_ACCESS_KEY

logger = logging.getLogger(__name__)


class StorageError(Exception):
    pass


def get_r2_client():
    """Get configured boto3 client for Cloudflare R2"""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


class SnapshotStorage:
    """Path-addressed blob storage for snapshot files"""

    def __init__(self, client=None, bucket: Optional[str] = None):
        self._client = client
        self.bucket = bucket or R2_BUCKET_NAME

    @property
    def client(self):
        if self._client is None:
            self._client = get_r2_client()
        return self._client

    def upload(self, key: str, content: bytes, content_type: str = "application/json") -> int:
        """Upload an object and return its size in bytes"""
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
        except ClientError as e:
            logger.error(f"❌ Error uploading {key} to R2: {e}")
            raise StorageError(f"Failed to upload {key}") from e
        logger.info(f"📦 Uploaded {key} ({len(content)} bytes)")
        return len(content)

    def download(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            logger.error(f"❌ Error downloading {key} from R2: {e}")
            raise StorageError(f"Failed to download {key}") from e

    def delete(self, key: str) -> bool:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
            logger.info(f"🗑️ Deleted {key} from R2")
            return True
        except ClientError as e:
            logger.error(f"❌ Error deleting {key} from R2: {e}")
            return False

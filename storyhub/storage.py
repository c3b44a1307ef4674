import os
import uuid
import logging
import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request
from typing import Iterable, Optional

from .core import MEDIA_CLEANUP_FAILURES_TOTAL
from .errors import StorageCleanupError, ValidationError

logger = logging.getLogger(__name__)

# Support both AWS_S3_BUCKET (preferred) and legacy AWS_S3_BUCKET_NAME
S3_BUCKET = os.getenv('AWS_S3_BUCKET') or os.getenv('AWS_S3_BUCKET_NAME')
# Prefer AWS_S3_REGION if provided; fall back to AWS_REGION, then us-east-1
S3_REGION = os.getenv('AWS_S3_REGION') or os.getenv('AWS_REGION', 'us-east-1')
MEDIA_PREFIX = 'stories'
MEDIA_KINDS = ('image', 'audio')


class MediaStorage:
    """S3 access for story media. The story core only ever sees object URLs."""

    def __init__(self, bucket: Optional[str] = S3_BUCKET, region: str = S3_REGION,
                 access_key_id: Optional[str] = None, secret_access_key: Optional[str] = None):
        self.bucket = bucket
        self.region = region
        self.access_key_id = access_key_id or os.getenv('AWS_ACCESS_KEY_ID')
        self.secret_access_key = secret_access_key or os.getenv('AWS_SECRET_ACCESS_KEY')
        self.session = aioboto3.Session()

    def _client(self):
        return self.session.client('s3', region_name=self.region,
                                   aws_secret_access_key=self.secret_access_key,
                                   aws_access_key_id=self.access_key_id,
                                   config=Config(signature_version='s3v4'))

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def key_from_url(self, url: str) -> Optional[str]:
        """Extract the object key from a public URL of this bucket, None for foreign URLs."""
        prefix = f"https://{self.bucket}.s3.{self.region}.amazonaws.com/"
        if not url or not self.bucket or not url.startswith(prefix):
            return None
        return url[len(prefix):] or None

    @staticmethod
    def build_key(user_id: int, file_type: str) -> str:
        kind, _, subtype = (file_type or '').partition('/')
        if kind not in MEDIA_KINDS or not subtype:
            raise ValidationError('fileType must be an image/* or audio/* content type')
        return f"{MEDIA_PREFIX}/{user_id}/{kind}-{uuid.uuid4().hex[:12]}.{subtype}"

    async def presign_upload(self, user_id: int, file_type: str, expires_in: int = 3600) -> dict:
        key = self.build_key(user_id, file_type)
        async with self._client() as client:
            url = await client.generate_presigned_url('put_object',
                                                     Params={'Bucket': self.bucket, 'Key': key, 'ContentType': file_type},
                                                     ExpiresIn=expires_in)
        return {'upload_url': url, 'object_url': self.public_url(key), 'key': key}

    async def delete_url(self, url: str) -> bool:
        """Delete the object behind `url`. Returns False for URLs outside this bucket."""
        key = self.key_from_url(url)
        if not key:
            return False
        try:
            async with self._client() as client:
                await client.delete_object(Bucket=self.bucket, Key=key)
            return True
        except (BotoCoreError, ClientError) as e:
            raise StorageCleanupError(url, str(e)) from e


def get_media_storage(request: Request) -> MediaStorage:
    return request.app.state.media_storage


async def cleanup_media(storage, urls: Iterable[str]):
    """Best-effort removal of superseded media; failures are logged and counted only."""
    for url in urls:
        try:
            deleted = await storage.delete_url(url)
            logger.info({'msg': 'media_deleted' if deleted else 'media_skipped', 'url': url})
        except StorageCleanupError as e:
            MEDIA_CLEANUP_FAILURES_TOTAL.inc()
            logger.warning({'msg': 'media_cleanup_failed', 'url': e.url, 'error': e.message})

"""
Calendar attachment storage.
Keeps the latest generated .ics file per event in Cloudflare R2.
"""

import logging
import re
import threading
from typing import Any, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import (
    R2_ACCESS_KEY_ID,
    R2_ACCOUNT_ID,
    R2_BUCKET_NAME,
    R2_PRESIGNED_URL_TTL,
    R2_SECRET_ACCESS_KEY,
)
from ..exceptions import TransientDependencyError
from .payloads import AttachmentRef

logger = logging.getLogger(__name__)

ICS_CONTENT_TYPE = "text/calendar"


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


def r2_is_configured() -> bool:
    return bool(R2_ACCOUNT_ID and R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY)


def event_prefix(event_id: int) -> str:
    return f"calendar-events/{event_id}/"


def safe_filename(filename: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", filename).strip("_")
    return cleaned[:100] or "event.ics"


class R2AttachmentStore:
    """
    AttachmentStore over an S3-compatible bucket.

    Key format: calendar-events/{event_id}/{filename}
    Only one object is kept per event; a put replaces whatever was there.
    """

    def __init__(self, client=None, bucket: str = R2_BUCKET_NAME, url_ttl: int = R2_PRESIGNED_URL_TTL):
        self._client = client
        self.bucket = bucket
        self.url_ttl = url_ttl

    @property
    def client(self):
        if self._client is None:
            self._client = get_r2_client()
        return self._client

    def _presigned_url(self, key: str) -> Optional[str]:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.url_ttl,
            )
        except ClientError as e:
            logger.warning(f"⚠️ Could not presign {key}: {e}")
            return None

    def _keys_for(self, event_id: int) -> list[str]:
        response = self.client.list_objects_v2(Bucket=self.bucket, Prefix=event_prefix(event_id))
        return [obj["Key"] for obj in response.get("Contents", [])]

    def put(self, content: bytes, metadata: dict[str, Any]) -> AttachmentRef:
        """Store the event's attachment, replacing any earlier one"""
        event_id = metadata["event_id"]
        filename = safe_filename(metadata.get("filename") or f"event-{event_id}.ics")
        key = f"{event_prefix(event_id)}{filename}"

        try:
            for old_key in self._keys_for(event_id):
                if old_key != key:
                    self.client.delete_object(Bucket=self.bucket, Key=old_key)

            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=metadata.get("content_type", ICS_CONTENT_TYPE),
                Metadata={"calendar_event_id": str(event_id)},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"❌ Error uploading calendar attachment for event {event_id}: {e}")
            raise TransientDependencyError(f"Attachment upload failed: {e}", "attachment_store") from e

        logger.info(f"✅ Stored calendar attachment {key}")
        return AttachmentRef(
            key=key,
            filename=filename,
            url=self._presigned_url(key),
            content_type=metadata.get("content_type", ICS_CONTENT_TYPE),
            content=content,
        )

    def get(self, event_id: int) -> Optional[AttachmentRef]:
        """Latest attachment for an event with its content, None when nothing is stored"""
        try:
            keys = self._keys_for(event_id)
            if not keys:
                return None
            key = keys[-1]
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            content = response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            logger.error(f"❌ Error reading calendar attachment for event {event_id}: {e}")
            return None

        return AttachmentRef(
            key=key,
            filename=key.rsplit("/", 1)[-1],
            url=self._presigned_url(key),
            content_type=response.get("ContentType", ICS_CONTENT_TYPE),
            content=content,
        )

    def delete(self, ref: AttachmentRef) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=ref.key)
            logger.info(f"🗑️ Deleted calendar attachment {ref.key}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"❌ Error deleting calendar attachment {ref.key}: {e}")


class InMemoryAttachmentStore:
    """AttachmentStore for local development when R2 is not configured"""

    def __init__(self):
        self._objects: dict[int, AttachmentRef] = {}
        self._lock = threading.Lock()

    def put(self, content: bytes, metadata: dict[str, Any]) -> AttachmentRef:
        event_id = metadata["event_id"]
        filename = safe_filename(metadata.get("filename") or f"event-{event_id}.ics")
        ref = AttachmentRef(
            key=f"{event_prefix(event_id)}{filename}",
            filename=filename,
            content_type=metadata.get("content_type", ICS_CONTENT_TYPE),
            content=content,
        )
        with self._lock:
            self._objects[event_id] = ref
        return ref

    def get(self, event_id: int) -> Optional[AttachmentRef]:
        with self._lock:
            return self._objects.get(event_id)

    def delete(self, ref: AttachmentRef) -> None:
        with self._lock:
            for event_id, stored in list(self._objects.items()):
                if stored.key == ref.key:
                    del self._objects[event_id]

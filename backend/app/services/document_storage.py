"""Credential document storage.

Uploads go to an S3-compatible bucket under
``{user_id}/{category}/{document_id}_{name}``. Before anything is written
the category allow-list, the size cap and the file's magic bytes are
checked. Stored objects stay private: the profile keeps an API path that
redirects to a short-lived presigned URL.
"""

import asyncio
import logging
import re
import uuid
from datetime import datetime, timezone
from pathlib import Path

import boto3
import magic
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile

from app.config import settings
from app.middleware.exceptions import DocumentStorageError, UploadRejectedError
from app.schemas.profile import UploadedDocument
from app.services.profile_sections import DOCUMENT_CATEGORIES

logger = logging.getLogger(__name__)

CHUNK_SIZE_BYTES = 64 * 1024

# Bytes handed to libmagic; every signature we accept sits well inside.
SNIFF_BYTES = 8 * 1024

EXTENSION_MIMES: dict[str, tuple[str, ...]] = {
    "pdf": ("application/pdf",),
    "doc": ("application/msword",),
    "docx": ("application/vnd.openxmlformats-officedocument.wordprocessingml.document",),
    "jpg": ("image/jpeg",),
    "jpeg": ("image/jpeg",),
    "png": ("image/png",),
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str) -> str:
    name = Path(filename or "").name
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    return name or "document"


def file_extension(filename: str) -> str:
    return Path(filename or "").suffix.lower().lstrip(".")


def object_key(user_id: str, category: str, document_id: str, filename: str) -> str:
    return f"{user_id}/{category}/{document_id}_{safe_filename(filename)}"


def document_path(category: str, document_id: str) -> str:
    """API path that redirects to the stored object."""
    return f"/api/profile/documents/{category}/{document_id}"


def _limit_message(max_bytes: int) -> str:
    return f"File exceeds the {max_bytes / (1024 * 1024):g} MB limit"


async def read_upload(file: UploadFile, max_bytes: int | None = None) -> bytes:
    """Read an upload in chunks, refusing it as soon as it passes the cap."""
    limit = max_bytes if max_bytes is not None else settings.max_upload_bytes
    chunks: list[bytes] = []
    total = 0

    while True:
        chunk = await file.read(CHUNK_SIZE_BYTES)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            logger.warning(
                "Upload %s refused after %d bytes", file.filename, total,
                extra={"upload_limit": limit},
            )
            raise UploadRejectedError(_limit_message(limit))
        chunks.append(chunk)

    return b"".join(chunks)


def detect_mime(content: bytes) -> str:
    return magic.from_buffer(content[:SNIFF_BYTES], mime=True)


def get_s3_client():
    """Client for the document bucket (AWS S3, R2, MinIO...)."""
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint_url or None,
        region_name=settings.s3_region,
        aws_access_key_id=settings.s3_access_key_id or None,
        aws_secret_access_key=settings.s3_secret_access_key or None,
        config=Config(signature_version="s3v4"),
    )


class DocumentStore:
    def __init__(
        self,
        client=None,
        bucket: str | None = None,
        max_bytes: int | None = None,
    ):
        self._client = client
        self.bucket = bucket or settings.s3_bucket
        self.max_bytes = max_bytes if max_bytes is not None else settings.max_upload_bytes

    @property
    def client(self):
        if self._client is None:
            self._client = get_s3_client()
        return self._client

    def validate(self, category: str, filename: str, content: bytes) -> str:
        """Check a file against its category; return the detected MIME type.

        Raises UploadRejectedError if the file may not be stored.
        """
        kind = DOCUMENT_CATEGORIES.get(category)
        if kind is None:
            raise UploadRejectedError(f"Unknown document category: {category}")

        extension = file_extension(filename)
        if extension not in kind.allowed_extensions:
            allowed = ", ".join(f".{ext}" for ext in kind.allowed_extensions)
            raise UploadRejectedError(f"{kind.label} must be one of: {allowed}")

        if not content:
            raise UploadRejectedError("File is empty")
        if len(content) > self.max_bytes:
            raise UploadRejectedError(_limit_message(self.max_bytes))

        mime = detect_mime(content)
        if mime not in EXTENSION_MIMES[extension]:
            # The detected type stays in the logs only.
            logger.warning(
                "Content of %s does not match its extension", filename,
                extra={"detected_mime": mime, "category": category},
            )
            raise UploadRejectedError(
                f"File content does not match a .{extension} document"
            )
        return mime

    async def save(
        self, user_id: str, category: str, filename: str, content: bytes
    ) -> UploadedDocument:
        mime = self.validate(category, filename, content)

        document_id = uuid.uuid4().hex
        key = object_key(user_id, category, document_id, filename)
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=mime,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error(
                "Storing %s for user %s failed: %s", category, user_id, exc,
                extra={"bucket": self.bucket, "key": key},
            )
            raise DocumentStorageError() from exc

        logger.info(
            "Stored %s for user %s (%d bytes)", category, user_id, len(content)
        )
        return UploadedDocument(
            id=document_id,
            name=filename,
            size=len(content),
            upload_date=datetime.now(timezone.utc).isoformat(),
            url=document_path(category, document_id),
        )

    async def presigned_url(self, key: str) -> str:
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=settings.document_url_expire_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Presigning %s failed: %s", key, exc)
            raise DocumentStorageError() from exc
